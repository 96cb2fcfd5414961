"""Tests for pzr.admin module."""
from __future__ import annotations

from pzr.admin import delete_all, purge_all
from pzr.executor import ExecutorError
from tests.conftest import MockExecutor, VMID, qm_listing, snap_list_output

FULL_1 = "replicate-20250101-000000-full"
INC_2 = "replicate-20250102-000000-inc"


def test_delete_all_removes_only_reserved_newest_first(guest):
    exec_ = MockExecutor({
        ("qm", "listsnapshot", VMID): qm_listing([FULL_1, "before-upgrade", INC_2]),
        ("qm", "delsnapshot", VMID, FULL_1): "",
        ("qm", "delsnapshot", VMID, INC_2): "",
    })
    assert delete_all(guest, exec_) == 0
    deleted = [c[3] for c in exec_.calls if c[1] == "delsnapshot"]
    assert deleted == [INC_2, FULL_1]


def test_delete_all_never_creates_or_sends(guest):
    exec_ = MockExecutor({("qm", "listsnapshot", VMID): qm_listing([])})
    assert delete_all(guest, exec_) == 0
    assert exec_.calls == [["qm", "listsnapshot", VMID]]
    assert exec_.popen_calls == []


def test_delete_all_reports_failure(guest):
    exec_ = MockExecutor({
        ("qm", "listsnapshot", VMID): qm_listing([FULL_1, INC_2]),
        ("qm", "delsnapshot", VMID, INC_2): ExecutorError(["qm"], 255, "snapshot is locked"),
        ("qm", "delsnapshot", VMID, FULL_1): "",
    })
    assert delete_all(guest, exec_) == 1
    assert ["qm", "delsnapshot", VMID, FULL_1] in exec_.calls


def test_purge_all_destroys_reserved_across_guests():
    exec_ = MockExecutor({
        ("zfs", "list", "-H", "-o", "name", "-t", "snapshot"): snap_list_output([
            f"rpool/data/vm-100-disk-0@{FULL_1}",
            "rpool/data/vm-100-disk-0@before-upgrade",
            f"rpool/data/vm-101-disk-0@{INC_2}",
            "rpool/data/vm-102-disk-0@zfs-auto-snap_daily-2025-01-01-0000",
        ]),
        ("zfs", "destroy", f"rpool/data/vm-100-disk-0@{FULL_1}"): "",
        ("zfs", "destroy", f"rpool/data/vm-101-disk-0@{INC_2}"): "",
    })
    assert purge_all(exec_) == 0
    destroyed = [c[-1] for c in exec_.calls if c[:2] == ["zfs", "destroy"]]
    assert destroyed == [
        f"rpool/data/vm-100-disk-0@{FULL_1}",
        f"rpool/data/vm-101-disk-0@{INC_2}",
    ]


def test_purge_all_listing_failure():
    exec_ = MockExecutor({
        ("zfs", "list", "-H", "-o", "name", "-t", "snapshot", "-r", "tank"):
            ExecutorError(["zfs"], 1, "cannot open 'tank'"),
    })
    assert purge_all(exec_, pool="tank") == 1
