"""Reserved snapshot catalog: the replicate-* snapshots of a guest, oldest first."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pzr import guest as pve
from pzr.models import DatasetSnapshot, Snapshot

if TYPE_CHECKING:
    from pzr.executor import Executor
    from pzr.models import Guest

log = logging.getLogger(__name__)


def reserved(names: list[str]) -> list[Snapshot]:
    """Parse reserved names, drop everything else, order by embedded timestamp."""
    snaps = [s for s in (Snapshot.parse(n) for n in names) if s is not None]
    return sorted(snaps, key=lambda s: s.sort_key)


def reserved_on_dataset(snaps: list[DatasetSnapshot]) -> list[DatasetSnapshot]:
    """Same as reserved(), for ZFS-level snapshots of one dataset."""
    found = [s for s in snaps if s.reserved is not None]
    return sorted(found, key=lambda s: s.reserved.sort_key)


def list_reserved(guest: "Guest", executor: "Executor") -> list[Snapshot]:
    """
    Read the guest's reserved snapshots fresh from qm/pct.

    A failing listing raises ExecutorError; no snapshots is an empty list.
    """
    catalog = reserved(pve.list_snapshot_names(guest, executor))
    log.debug("Reserved snapshots of %s: %s", guest.vmid, [s.name for s in catalog])
    return catalog
