"""Proxmox guest operations: config lookup, qm/pct snapshots, config propagation."""
from __future__ import annotations

import logging
import os
import re
import tempfile
import time
from typing import TYPE_CHECKING

from pzr.models import Guest

if TYPE_CHECKING:
    from pzr.executor import Executor

log = logging.getLogger(__name__)

# qm/pct listsnapshot draws a tree: "`-> name  2025-01-01 00:00:00  description"
_TREE_PREFIX_RE = re.compile(r"^[^A-Za-z0-9]*")


class GuestNotFoundError(Exception):
    pass


def locate_guest(vmid: str, qemu_dir: str, lxc_dir: str) -> Guest:
    """Return the guest for vmid, preferring a VM config over a container one."""
    vm_config = os.path.join(qemu_dir, f"{vmid}.conf")
    if os.path.isfile(vm_config):
        return Guest(vmid=vmid, kind="qemu", config_path=vm_config)

    lxc_config = os.path.join(lxc_dir, f"{vmid}.conf")
    if os.path.isfile(lxc_config):
        log.info("%s appears to be an LXC container; using %s", vmid, lxc_config)
        return Guest(vmid=vmid, kind="lxc", config_path=lxc_config)

    raise GuestNotFoundError(f"Configuration file not found for VMID {vmid}")


def read_config(guest: Guest) -> str:
    with open(guest.config_path) as f:
        return f.read()


def list_snapshot_names(guest: Guest, executor: "Executor") -> list[str]:
    """Return every snapshot name of the guest in listing order ('current' excluded)."""
    output = executor.run([guest.tool, "listsnapshot", guest.vmid])
    names = []
    for line in output.splitlines():
        fields = _TREE_PREFIX_RE.sub("", line).split()
        if fields and fields[0] != "current":
            names.append(fields[0])
    return names


def create_snapshot(guest: Guest, name: str, executor: "Executor") -> bool:
    """Create a guest snapshot; return False without error if it already exists."""
    if name in list_snapshot_names(guest, executor):
        log.info("Snapshot %s already exists.", name)
        return False
    log.info("Creating new %s snapshot %s...", guest.tool, name)
    executor.run([
        guest.tool, "snapshot", guest.vmid, name,
        "--description", f"Replication snapshot created on {time.ctime()}",
    ])
    return True


def delete_snapshot(guest: Guest, name: str, executor: "Executor") -> None:
    executor.run([guest.tool, "delsnapshot", guest.vmid, name])


def sanitize_config(text: str) -> str:
    """
    Return a guest config safe to install on the replica host.

    Snapshot sections ([name] and everything below) and `parent:` references
    are dropped, since the replica has no such snapshots. Autostart is turned
    off so the replica never boots alongside the primary.
    """
    lines = []
    has_onboot = False
    for line in text.splitlines():
        if line.startswith("["):
            break
        if line.startswith("parent:"):
            continue
        if line.startswith("onboot:"):
            line = "onboot: 0"
            has_onboot = True
        lines.append(line)
    if not has_onboot:
        lines.append("onboot: 0")
    return "\n".join(lines) + "\n"


def push_config(guest: Guest, executor: "Executor") -> None:
    """Copy the sanitized guest config to the same path on the executor's host."""
    log.info("Cleaning up and copying guest configuration to %s...", executor.label)
    fd, tmp_path = tempfile.mkstemp(prefix=f"{guest.vmid}.", suffix=".conf")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(sanitize_config(read_config(guest)))
        executor.copy_to(tmp_path, guest.config_path)
    finally:
        os.unlink(tmp_path)
