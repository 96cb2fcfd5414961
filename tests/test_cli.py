"""Tests for pzr.cli module."""
from __future__ import annotations

import pytest

from pzr import cli
from pzr.lock import GuestLock
from tests.conftest import MockExecutor, VM_CONFIG, VMID, qm_listing


@pytest.fixture
def job_file(tmp_path):
    qemu = tmp_path / "qemu-server"
    qemu.mkdir()
    (qemu / f"{VMID}.conf").write_text(VM_CONFIG)
    path = tmp_path / "job.yaml"
    path.write_text(
        "remote:\n  host: pve2\n"
        f"lock_dir: {tmp_path / 'lock'}\n"
        f"config_dirs:\n  qemu: {qemu}\n  lxc: {tmp_path / 'lxc'}\n"
    )
    return str(path)


def _run(argv) -> int:
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


def test_version(capsys):
    assert _run(["--version"]) == 0
    assert cli.VERSION in capsys.readouterr().out


def test_status_shows_next_kind(job_file, monkeypatch, capsys):
    listing = qm_listing(["replicate-20250101-000000-full", "replicate-20250102-000000-inc"])
    monkeypatch.setattr(cli, "LocalExecutor", lambda: MockExecutor({
        ("qm", "listsnapshot", VMID): listing,
    }))
    assert _run(["status", job_file, VMID]) == 0
    out = capsys.readouterr().out
    assert "replicate-20250102-000000-inc" in out
    assert "Incrementals since last full: 1" in out
    assert "Next automatic run: inc" in out


def test_delete_uses_local_executor(job_file, monkeypatch):
    mock = MockExecutor({
        ("qm", "listsnapshot", VMID): qm_listing(["replicate-20250101-000000-full"]),
        ("qm", "delsnapshot", VMID, "replicate-20250101-000000-full"): "",
    })
    monkeypatch.setattr(cli, "LocalExecutor", lambda: mock)
    assert _run(["delete", job_file, VMID]) == 0
    assert mock.calls[-1][1] == "delsnapshot"


def test_replicate_refused_while_locked(job_file, tmp_path, capsys):
    with GuestLock(str(tmp_path / "lock"), VMID):
        assert _run(["replicate", job_file, VMID]) == 1
    assert "Another run holds" in capsys.readouterr().out


def test_unknown_guest(job_file, capsys):
    assert _run(["replicate", job_file, "999"]) == 1
    assert "999" in capsys.readouterr().out


def test_bad_config(tmp_path, capsys):
    path = tmp_path / "job.yaml"
    path.write_text("remote: {}\n")
    assert _run(["purge", str(path)]) == 1
    assert "Config error" in capsys.readouterr().err


def test_log_file(job_file, tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "LocalExecutor", lambda: MockExecutor({
        ("qm", "listsnapshot", VMID): qm_listing([]),
    }))
    log_file = tmp_path / "pzr.log"
    assert _run(["delete", job_file, VMID, "--log", str(log_file)]) == 0
    text = log_file.read_text()
    assert "No replication snapshots found." in text
    assert text.splitlines()[0][4] == "-"
