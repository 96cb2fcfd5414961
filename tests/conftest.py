"""MockExecutor and shared fixtures for testing."""
from __future__ import annotations

import io
import logging
import subprocess
from unittest.mock import MagicMock

import pytest

from pzr.models import Guest


class MockExecutor:
    """
    Executor that returns pre-scripted responses for commands.

    responses: dict mapping tuple(cmd) -> stdout string (or an Exception to raise).
    A list of responses is consumed in order; its last entry then repeats.
    If the command isn't found, raises KeyError (to catch unexpected calls in tests).

    popen_returncodes: dict mapping tuple(cmd) -> exit code of that piped command
    (default 0), to simulate a failing zfs send or recv.
    """

    def __init__(
        self,
        responses: dict | None = None,
        popen_returncodes: dict | None = None,
        label: str = "mock",
    ):
        self.responses: dict = responses or {}
        self.popen_returncodes: dict = popen_returncodes or {}
        self._label = label
        self.calls: list[list[str]] = []  # record of all commands run
        self.popen_calls: list[list[str]] = []
        self.copies: list[tuple[str, str, str]] = []  # (local_path, path, content)

    @property
    def label(self) -> str:
        return self._label

    def run(self, cmd: list[str]) -> str:
        self.calls.append(cmd)
        key = tuple(cmd)
        if key not in self.responses:
            raise KeyError(f"MockExecutor: unexpected command: {cmd}")
        result = self.responses[key]
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, Exception):
            raise result
        return result

    def popen(self, cmd: list[str], **_kwargs) -> subprocess.Popen:
        """Record the call and return a mock Popen exiting with the scripted code."""
        self.calls.append(cmd)
        self.popen_calls.append(cmd)
        rc = self.popen_returncodes.get(tuple(cmd), 0)

        mock_proc = MagicMock(spec=subprocess.Popen)
        mock_proc.stdout = io.BytesIO(b"")
        mock_proc.stdin = io.BytesIO(b"")
        mock_proc.returncode = rc
        mock_proc.wait.return_value = rc
        return mock_proc

    def copy_to(self, local_path: str, path: str) -> None:
        with open(local_path) as f:
            self.copies.append((local_path, path, f.read()))


# ---------------------------------------------------------------------------
# Proxmox fixtures
# ---------------------------------------------------------------------------

VMID = "100"

VM_CONFIG = """\
boot: order=scsi0;net0
cores: 4
efidisk0: local-zfs:vm-100-disk-1,efitype=4m,pre-enrolled-keys=1,size=1M
ide2: local:iso/debian-12.iso,media=cdrom,size=628M
memory: 8192
name: web01
net0: virtio=BC:24:11:00:00:01,bridge=vmbr0
onboot: 1
parent: replicate-20250101-000000-full
scsi0: local-zfs:vm-100-disk-0,iothread=1,size=32G
scsi1: none
scsihw: virtio-scsi-single
tpmstate0: local-zfs:vm-100-disk-2,size=4M,version=v2.0

[replicate-20250101-000000-full]
scsi0: local-zfs:vm-100-disk-0,iothread=1,size=32G
snaptime: 1735689600
"""


def qm_listing(names: list[str]) -> str:
    """Render names the way `qm listsnapshot` draws its tree."""
    lines = []
    for depth, name in enumerate(names):
        lines.append(f"{'  ' * depth}`-> {name:<32} 2025-01-01 00:00:00     Replication snapshot")
    lines.append(f"{'  ' * len(names)}`-> current{' ' * 35}You are here!")
    return "\n".join(lines) + "\n"


def snap_list_output(full_names: list[str]) -> str:
    return "\n".join(full_names) + "\n" if full_names else ""


@pytest.fixture
def guest(tmp_path) -> Guest:
    path = tmp_path / f"{VMID}.conf"
    path.write_text(VM_CONFIG)
    return Guest(vmid=VMID, kind="qemu", config_path=str(path))


@pytest.fixture(autouse=True)
def reset_pzr_logger():
    """Undo setup_logging() so caplog sees records in later tests."""
    yield
    logger = logging.getLogger("pzr")
    for handler in logger.handlers.copy():
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


CTIME = "Thu Jan  2 00:00:00 2025"
DESCRIPTION = f"Replication snapshot created on {CTIME}"


@pytest.fixture
def fixed_ctime(monkeypatch):
    """Pin the snapshot description so `qm snapshot` argv can be scripted."""
    import pzr.guest
    monkeypatch.setattr(pzr.guest.time, "ctime", lambda: CTIME)
    return DESCRIPTION
