"""Local chain management: prune reserved guest snapshots after a run."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pzr import guest as pve
from pzr.executor import ExecutorError
from pzr.models import Kind, RetentionPolicy, Snapshot

if TYPE_CHECKING:
    from pzr.executor import Executor
    from pzr.models import RunContext

log = logging.getLogger(__name__)


def plan_prune(
    catalog: list[Snapshot],
    new_name: str,
    retention: RetentionPolicy,
    new_kind: Kind,
) -> list[Snapshot]:
    """
    Return the reserved snapshots to delete, oldest first.

    1. A new FULL snapshot supersedes the whole previous chain: every other
       reserved snapshot goes.
    2. Of what remains, the oldest are removed until at most retention.keep
       are left. The new snapshot is never a candidate.
    """
    ordered = sorted(catalog, key=lambda s: s.sort_key)
    to_delete: list[Snapshot] = []

    if new_kind is Kind.FULL and len(ordered) > 1:
        to_delete = [s for s in ordered if s.name != new_name]

    remaining = [s for s in ordered if s not in to_delete]
    excess = len(remaining) - retention.keep
    if excess > 0:
        older = [s for s in remaining if s.name != new_name]
        to_delete.extend(older[:excess])

    return sorted(to_delete, key=lambda s: s.sort_key)


def run_prune(ctx: "RunContext", executor: "Executor") -> bool:
    """
    Delete what plan_prune() selects for the run's catalog.
    Returns False if any deletion failed; the others are still attempted.
    """
    to_delete = plan_prune(ctx.catalog, ctx.target.name, ctx.retention, ctx.kind)
    total = len(ctx.catalog)

    if not to_delete:
        log.info("Local snapshot chain is within retention limits (%d snapshots).", total)
        return True

    if ctx.kind is Kind.FULL:
        log.info("New snapshot is FULL. Deleting the older replication snapshots...")
    log.info(
        "There are %d local replication snapshots. Deleting %d of the oldest...",
        total, len(to_delete),
    )

    ok = True
    for snap in to_delete:
        log.info("Deleting local %s snapshot %s", ctx.guest.tool, snap.name)
        try:
            pve.delete_snapshot(ctx.guest, snap.name, executor)
        except ExecutorError as e:
            log.error("Failed to delete %s: %s", snap.name, e)
            ok = False
            continue
        ctx.catalog.remove(snap)

    log.info("Local snapshot chain now holds %d snapshot(s).", len(ctx.catalog))
    return ok
