"""Replication run: snapshot the guest, send every dataset, prune the local chain."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from pzr import catalog, chain, zfs
from pzr import guest as pve
from pzr.decide import resolve_kind
from pzr.executor import ExecutorError
from pzr.models import (
    DatasetSnapshot,
    JobState,
    Kind,
    ReplicationJob,
    RunContext,
    Snapshot,
    TransferMode,
)
from pzr.resolver import resolve_datasets

if TYPE_CHECKING:
    from pzr.executor import Executor
    from pzr.models import Dataset, Guest, JobConfig

log = logging.getLogger(__name__)

RULE = "=" * 42


def find_base_snapshot(
    dataset: "Dataset",
    target: DatasetSnapshot,
    executor: "Executor",
) -> DatasetSnapshot | None:
    """Return the newest reserved snapshot on dataset strictly older than target."""
    target_key = target.reserved.sort_key
    older = [
        s for s in catalog.reserved_on_dataset(zfs.list_snapshots(dataset.path, executor))
        if s.reserved.sort_key < target_key
    ]
    return older[-1] if older else None


def prune_remote(dataset: "Dataset", executor: "Executor") -> None:
    """Destroy every reserved snapshot of dataset on the remote. Best effort."""
    log.info(
        "FULL mode: Removing all remote snapshots with prefix 'replicate-' for %s...",
        dataset.path,
    )
    try:
        snaps = catalog.reserved_on_dataset(zfs.list_snapshots(dataset.path, executor))
    except ExecutorError as e:
        log.warning("No remote snapshots to delete or an error occurred: %s", e.stderr.strip())
        return

    for snap in snaps:
        log.info("Deleting remote snapshot %s", snap.full_name)
        try:
            zfs.destroy_snapshot(snap, executor, recursive=True)
        except ExecutorError as e:
            log.warning("Could not delete remote snapshot %s: %s", snap.full_name, e)


def _send_full(job: ReplicationJob, src: "Executor", dst: "Executor") -> ReplicationJob:
    job.state = JobState.FULL_ATTEMPTED
    prune_remote(job.dataset, dst)
    log.info("Sending FULL ZFS snapshot %s...", job.target.full_name)
    try:
        zfs.send_full(job.target, src, dst, job.dataset.path)
    except ExecutorError as e:
        job.state = JobState.FAILED
        job.error = str(e)
        log.error(
            "FULL replication of %s (%s) failed: %s",
            job.dataset.path, job.mode.value, e,
        )
        return job
    job.state = JobState.SUCCEEDED
    return job


def replicate_dataset(job: ReplicationJob, src: "Executor", dst: "Executor") -> ReplicationJob:
    """
    Transfer job.target to the remote copy of job.dataset.

    FULL: prune the remote's reserved snapshots, then send the whole snapshot
    with `recv -F`. INCREMENTAL: send the delta from the newest older reserved
    snapshot; with no base, or if that transfer fails, fall back to FULL once.
    The local side is only read.
    """
    if not zfs.snapshot_exists(job.target, src):
        log.warning(
            "Local ZFS snapshot %s does not exist. (Disk: %s)",
            job.target.full_name, job.dataset.label,
        )
        job.state = JobState.SKIPPED
        return job
    log.info("Local ZFS snapshot %s exists; proceeding.", job.target.full_name)

    if job.mode is TransferMode.INCREMENTAL:
        log.info("Incremental mode: Starting differential replication for %s...", job.dataset.path)
        job.base = find_base_snapshot(job.dataset, job.target, src)
        if job.base is None:
            log.info(
                "No base snapshot found for incremental replication on %s. "
                "Proceeding with FULL replication as fallback.",
                job.dataset.path,
            )
            job.mode = TransferMode.INCREMENTAL_FALLBACK_TO_FULL
            return _send_full(job, src, dst)

        log.info("Base snapshot found: %s", job.base.full_name)
        job.state = JobState.INCREMENTAL_ATTEMPTED
        try:
            zfs.send_incremental(job.base, job.target, src, dst, job.dataset.path)
        except ExecutorError as e:
            job.error = str(e)
            log.error(
                "Incremental replication for %s failed, trying fallback FULL replication: %s",
                job.dataset.path, e,
            )
            job.mode = TransferMode.INCREMENTAL_FALLBACK_TO_FULL
            return _send_full(job, src, dst)
        job.state = JobState.SUCCEEDED
        return job

    return _send_full(job, src, dst)


def _summary(ctx: RunContext) -> str:
    sent = sum(1 for j in ctx.jobs if j.state is JobState.SUCCEEDED)
    fallback = sum(1 for j in ctx.jobs if j.fell_back)
    skipped = sum(1 for j in ctx.jobs if j.state is JobState.SKIPPED)
    failed = sum(1 for j in ctx.jobs if j.state is JobState.FAILED)
    parts = [f"{sent} dataset(s) sent"]
    if fallback:
        parts.append(f"{fallback} fallback(s) to full")
    if skipped:
        parts.append(f"{skipped} skipped")
    if failed:
        parts.append(f"{failed} error(s)")
    return ", ".join(parts)


def run_replication(
    config: "JobConfig",
    guest: "Guest",
    src_executor: "Executor",
    dst_executor: "Executor",
    mode: str = "auto",
    now: datetime | None = None,
) -> int:
    """
    Run one replication of guest. Returns exit code (0=success, 1=failure).

    Failures before the transfers (listing, snapshot creation, reading the
    guest config) abort the run with nothing pruned and no config pushed.
    A failed dataset does not stop the others nor the local prune, but the
    remote config is only refreshed when every dataset is consistent.
    """
    ctx = RunContext(guest=guest, retention=config.retention)
    log.info(RULE)
    log.info("Starting replication for VMID: %s", guest.vmid)
    log.info("Local configuration: %s", guest.config_path)
    log.info("Target host: %s", dst_executor.label)
    log.info(RULE)

    # --- Phase 1: Gather state and snapshot ---
    try:
        datasets = resolve_datasets(pve.read_config(guest), config.storage_map)
        ctx.catalog = catalog.list_reserved(guest, src_executor)
        ctx.kind = resolve_kind(mode, ctx.catalog, ctx.retention)
        ctx.target = Snapshot.create(ctx.kind, now or datetime.now())
        log.info("New snapshot name: %s", ctx.target.name)
        pve.create_snapshot(guest, ctx.target.name, src_executor)
        ctx.catalog = catalog.list_reserved(guest, src_executor)
    except (ExecutorError, OSError) as e:
        log.error("Replication for VMID %s aborted: %s", guest.vmid, e)
        return 1
    log.info("Updated snapshot list: %s", " ".join(s.name for s in ctx.catalog))

    if not datasets:
        log.warning("No datasets to replicate for VMID %s.", guest.vmid)

    # --- Phase 2: Transfer, one dataset at a time ---
    transfer = TransferMode.FULL if ctx.kind is Kind.FULL else TransferMode.INCREMENTAL
    for dataset in datasets:
        job = ReplicationJob(
            dataset=dataset,
            target=DatasetSnapshot(dataset=dataset.path, name=ctx.target.name),
            mode=transfer,
        )
        ctx.jobs.append(job)
        log.info("-" * 42)
        log.info("Processing disk: %s (Label: %s)", dataset.path, dataset.label)
        try:
            replicate_dataset(job, src_executor, dst_executor)
        except ExecutorError as e:
            job.state = JobState.FAILED
            job.error = str(e)
            log.error("Replication of %s (%s) failed: %s", dataset.path, job.mode.value, e)

    # --- Phase 3: Local chain ---
    log.info(RULE)
    any_error = not chain.run_prune(ctx, src_executor)

    # --- Phase 4: Remote guest config ---
    failed = [j for j in ctx.jobs if j.state is JobState.FAILED]
    if failed:
        any_error = True
        log.error(
            "Not updating remote configuration; failed dataset(s): %s",
            ", ".join(j.dataset.path for j in failed),
        )
    else:
        try:
            pve.push_config(guest, dst_executor)
        except (ExecutorError, OSError) as e:
            log.error("Copying configuration to %s failed: %s", dst_executor.label, e)
            any_error = True

    log.info(RULE)
    log.info("Replication for VMID %s %s: %s", guest.vmid,
             "finished with errors" if any_error else "completed successfully", _summary(ctx))
    return 1 if any_error else 0
