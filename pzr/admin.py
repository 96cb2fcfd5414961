"""Administrative modes that bypass replication: delete-only and purge."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pzr import catalog, zfs
from pzr import guest as pve
from pzr.executor import ExecutorError

if TYPE_CHECKING:
    from pzr.executor import Executor
    from pzr.models import Guest

log = logging.getLogger(__name__)


def delete_all(guest: "Guest", executor: "Executor") -> int:
    """
    Delete every reserved snapshot of one guest locally.
    Returns exit code (0=success, 1=a listing or deletion failed).
    """
    log.info(
        "Mode 'delete' selected: Deleting all local snapshots with prefix 'replicate-' for VMID %s.",
        guest.vmid,
    )
    try:
        snaps = catalog.list_reserved(guest, executor)
    except ExecutorError as e:
        log.error("Listing snapshots of VMID %s failed: %s", guest.vmid, e)
        return 1

    if not snaps:
        log.info("No replication snapshots found.")
        return 0
    log.info("Found snapshots: %s", " ".join(s.name for s in snaps))

    any_error = False
    # Newest first: nothing left to re-parent below a deleted snapshot
    for snap in reversed(snaps):
        log.info("Deleting %s snapshot %s...", guest.tool, snap.name)
        try:
            pve.delete_snapshot(guest, snap.name, executor)
        except ExecutorError as e:
            log.error("Deleting %s failed: %s", snap.name, e)
            any_error = True

    if any_error:
        log.error("Some local snapshots of VMID %s could not be deleted.", guest.vmid)
        return 1
    log.info("All local replication snapshots have been deleted.")
    return 0


def purge_all(executor: "Executor", pool: str | None = None) -> int:
    """
    Destroy every reserved ZFS snapshot on the local host (or below pool).
    Returns exit code (0=success, 1=a listing or destroy failed).
    """
    scope = f"pool {pool}" if pool else "all pools"
    log.info("Clearing all replication snapshots from %s.", scope)
    try:
        snaps = catalog.reserved_on_dataset(zfs.list_all_snapshots(executor, pool))
    except ExecutorError as e:
        log.error("Listing snapshots failed: %s", e)
        return 1

    destroyed = 0
    for snap in snaps:
        log.info("Destroying %s", snap.full_name)
        try:
            zfs.destroy_snapshot(snap, executor)
            destroyed += 1
        except ExecutorError as e:
            log.error("Destroying %s failed: %s", snap.full_name, e)

    log.info("Destroyed %d of %d replication snapshot(s).", destroyed, len(snaps))
    return 0 if destroyed == len(snaps) else 1
