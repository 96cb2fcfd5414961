"""ZFS operations using an Executor for dependency injection."""
from __future__ import annotations

import logging
import shlex
import subprocess
from typing import TYPE_CHECKING

from pzr.executor import ExecutorError
from pzr.models import DatasetSnapshot

if TYPE_CHECKING:
    from pzr.executor import Executor

log = logging.getLogger(__name__)


def _parse_snapshot_lines(output: str, dataset: str | None = None) -> list[DatasetSnapshot]:
    results = []
    for line in output.splitlines():
        name = line.strip()
        if not name or "@" not in name:
            continue
        snap = DatasetSnapshot.parse(name)
        # Only include snapshots directly on this dataset (not children)
        if dataset is None or snap.dataset == dataset:
            results.append(snap)
    return results


def list_snapshots(dataset: str, executor: "Executor") -> list[DatasetSnapshot]:
    """Return snapshots for a dataset, in listing order."""
    output = executor.run([
        "zfs", "list", "-H", "-o", "name", "-t", "snapshot", "-r", dataset,
    ])
    return _parse_snapshot_lines(output, dataset)


def list_all_snapshots(executor: "Executor", pool: str | None = None) -> list[DatasetSnapshot]:
    """Return every snapshot on the host, or below `pool` when given."""
    cmd = ["zfs", "list", "-H", "-o", "name", "-t", "snapshot"]
    if pool:
        cmd += ["-r", pool]
    return _parse_snapshot_lines(executor.run(cmd))


def snapshot_exists(snapshot: DatasetSnapshot, executor: "Executor") -> bool:
    """Return True if the snapshot exists."""
    try:
        executor.run(["zfs", "list", "-H", "-o", "name", "-t", "snapshot", snapshot.full_name])
        return True
    except ExecutorError:
        return False


def _pipe(
    send_cmd: list[str],
    recv_cmd: list[str],
    src_executor: "Executor",
    dst_executor: "Executor",
) -> None:
    """Stream `send_cmd` stdout into `recv_cmd` stdin; raise on any failure."""
    log.debug("  [send] %s", shlex.join(send_cmd))
    log.debug("  [recv (%s)] %s", dst_executor.label, shlex.join(recv_cmd))

    try:
        send_proc = src_executor.popen(send_cmd, stdout=subprocess.PIPE)
    except OSError as e:
        raise ExecutorError(send_cmd, 1, str(e)) from e
    try:
        recv_proc = dst_executor.popen(recv_cmd, stdin=send_proc.stdout)
    except OSError as e:
        send_proc.kill()
        send_proc.wait()
        raise ExecutorError(recv_cmd, 1, str(e)) from e
    # Allow send_proc to receive SIGPIPE if recv_proc dies
    send_proc.stdout.close()

    recv_rc = recv_proc.wait()
    send_rc = send_proc.wait()

    if send_rc != 0 or recv_rc != 0:
        raise ExecutorError(
            send_cmd + ["|"] + recv_cmd,
            max(send_rc, recv_rc),
            f"send exited {send_rc}, recv exited {recv_rc}",
        )


def send_full(
    snapshot: DatasetSnapshot,
    src_executor: "Executor",
    dst_executor: "Executor",
    dst_dataset: str,
) -> None:
    """
    Send a self-contained stream of `snapshot`, replacing dst_dataset wholesale.

    Uses: zfs send pool/dataset@snap | [ssh] zfs recv -F dst_dataset
    """
    _pipe(
        ["zfs", "send", snapshot.full_name],
        ["zfs", "recv", "-F", dst_dataset],
        src_executor,
        dst_executor,
    )


def send_incremental(
    base: DatasetSnapshot,
    target: DatasetSnapshot,
    src_executor: "Executor",
    dst_executor: "Executor",
    dst_dataset: str,
) -> None:
    """
    Send the delta between base and target to dst_dataset.

    Uses: zfs send -i pool/dataset@base pool/dataset@target | [ssh] zfs recv -F dst_dataset

    -F rolls the receiver back to its most recent snapshot first, so local
    modifications on the replica (e.g. a test boot) do not reject the stream.
    """
    _pipe(
        ["zfs", "send", "-i", base.full_name, target.full_name],
        ["zfs", "recv", "-F", dst_dataset],
        src_executor,
        dst_executor,
    )


def destroy_snapshot(
    snapshot: DatasetSnapshot,
    executor: "Executor",
    recursive: bool = False,
) -> None:
    """Destroy a single snapshot; with recursive=True also its dependent clones (-R)."""
    cmd = ["zfs", "destroy"]
    if recursive:
        cmd.append("-R")
    cmd.append(snapshot.full_name)
    log.debug("  [destroy (%s)] %s", executor.label, shlex.join(cmd))
    executor.run(cmd)
