"""CLI entry point for pve-zfs-replicate."""
from __future__ import annotations

import argparse
import logging
import sys

from pzr.config import ConfigError, load_job
from pzr.executor import ExecutorError, LocalExecutor, SSHExecutor
from pzr.guest import GuestNotFoundError, locate_guest
from pzr.lock import GuestLock, LockHeldError
from pzr.log import setup_logging

VERSION = "2.1.0"

log = logging.getLogger(__name__)


def _make_executors(config):
    """Build src (always local) and dst (SSH) executors from config."""
    src_exec = LocalExecutor()
    dst_exec = SSHExecutor(
        host=config.remote.host,
        user=config.remote.user,
        port=config.remote.port,
    )
    return src_exec, dst_exec


def _load(args):
    try:
        return load_job(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Config error: {e}", file=sys.stderr)
        return None


def _locate(config, vmid: str):
    try:
        return locate_guest(vmid, config.qemu_dir, config.lxc_dir)
    except GuestNotFoundError as e:
        log.error("Error: %s", e)
        return None


def cmd_replicate(args) -> int:
    from pzr.replicate import run_replication
    config = _load(args)
    if config is None:
        return 1
    setup_logging(args.log, args.verbose)
    guest = _locate(config, args.vmid)
    if guest is None:
        return 1

    src_exec, dst_exec = _make_executors(config)
    try:
        with GuestLock(config.lock_dir, guest.vmid):
            return run_replication(config, guest, src_exec, dst_exec, mode=args.mode)
    except LockHeldError as e:
        log.error("Error: %s", e)
        return 1


def cmd_delete(args) -> int:
    from pzr.admin import delete_all
    config = _load(args)
    if config is None:
        return 1
    setup_logging(args.log, args.verbose)
    guest = _locate(config, args.vmid)
    if guest is None:
        return 1

    try:
        with GuestLock(config.lock_dir, guest.vmid):
            return delete_all(guest, LocalExecutor())
    except LockHeldError as e:
        log.error("Error: %s", e)
        return 1


def cmd_purge(args) -> int:
    from pzr.admin import purge_all
    config = _load(args)
    if config is None:
        return 1
    setup_logging(args.log, args.verbose)

    try:
        with GuestLock(config.lock_dir, "purge"):
            return purge_all(LocalExecutor(), pool=args.pool)
    except LockHeldError as e:
        log.error("Error: %s", e)
        return 1


def cmd_status(args) -> int:
    """Show a guest's replication snapshots and what the next run would do."""
    from pzr import catalog
    from pzr.decide import count_incrementals_since_full, decide_kind
    config = _load(args)
    if config is None:
        return 1
    setup_logging(verbose=False)
    logging.getLogger("pzr").setLevel(logging.WARNING)
    guest = _locate(config, args.vmid)
    if guest is None:
        return 1

    try:
        snaps = catalog.list_reserved(guest, LocalExecutor())
    except ExecutorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"{'Snapshot':<40} {'Kind':>6}")
    print("-" * 47)
    for snap in snaps:
        print(f"{snap.name:<40} {snap.kind.value:>6}")
    print()
    print(f"Incrementals since last full: {count_incrementals_since_full(snaps)}")
    print(f"Next automatic run: {decide_kind(snaps, config.retention).value}")
    return 0


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(
        prog="pzr",
        description="Replicate Proxmox guest ZFS datasets to a remote host",
    )
    parser.add_argument("--version", "-V", action="version", version=f"%(prog)s {VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)

    # Shared options
    def add_common(p):
        p.add_argument("config", help="Path to job YAML config file")
        p.add_argument("--log", "-l", metavar="FILE",
                       help="Append output to FILE instead of printing to screen")
        p.add_argument("--verbose", "-v", action="store_true",
                       help="Show executed commands")

    p_replicate = sub.add_parser("replicate", help="Snapshot a guest and send it to the remote host")
    add_common(p_replicate)
    p_replicate.add_argument("vmid", help="Guest ID")
    p_replicate.add_argument("--mode", "-m", choices=["auto", "full", "inc"], default="auto",
                             help="Force a full or incremental run (default: auto)")
    p_replicate.set_defaults(func=cmd_replicate)

    p_delete = sub.add_parser("delete", help="Delete a guest's local replication snapshots")
    add_common(p_delete)
    p_delete.add_argument("vmid", help="Guest ID")
    p_delete.set_defaults(func=cmd_delete)

    p_purge = sub.add_parser("purge", help="Destroy all replication snapshots in the local pools")
    add_common(p_purge)
    p_purge.add_argument("--pool", help="Only purge below this pool or dataset")
    p_purge.set_defaults(func=cmd_purge)

    p_status = sub.add_parser("status", help="Show a guest's replication chain")
    p_status.add_argument("config", help="Path to job YAML config file")
    p_status.add_argument("vmid", help="Guest ID")
    p_status.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
