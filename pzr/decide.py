"""Choose whether the next replication snapshot is full or incremental."""
from __future__ import annotations

import logging

from pzr.models import Kind, RetentionPolicy, Snapshot

log = logging.getLogger(__name__)

MODES = ("auto", "full", "inc")


def last_full(catalog: list[Snapshot]) -> Snapshot | None:
    fulls = [s for s in catalog if s.kind is Kind.FULL]
    return max(fulls, key=lambda s: s.sort_key) if fulls else None


def count_incrementals_since_full(catalog: list[Snapshot]) -> int:
    """Incremental snapshots strictly newer than the last full one (0 without a full)."""
    full = last_full(catalog)
    if full is None:
        return 0
    return sum(
        1 for s in catalog
        if s.kind is Kind.INCREMENTAL and s.sort_key > full.sort_key
    )


def decide_kind(catalog: list[Snapshot], retention: RetentionPolicy) -> Kind:
    """
    INCREMENTAL while a full snapshot exists and fewer than retention.keep
    incrementals follow it; FULL otherwise. This bounds the incremental chain
    depth between two full transfers.
    """
    full = last_full(catalog)
    count = count_incrementals_since_full(catalog)
    log.info("Last FULL snapshot timestamp: %s", full.timestamp if full else "none")
    log.info("Number of incremental snapshots after the last FULL: %d", count)

    if full is not None and count < retention.keep:
        log.info(
            "Less than %d incremental snapshots found. New snapshot will be incremental (inc).",
            retention.keep,
        )
        return Kind.INCREMENTAL
    log.info(
        "Either no FULL snapshot found or %d (or more) incremental snapshots exist. "
        "New snapshot will be FULL.",
        retention.keep,
    )
    return Kind.FULL


def resolve_kind(mode: str, catalog: list[Snapshot], retention: RetentionPolicy) -> Kind:
    """Apply a forced mode ('full'/'inc') or decide automatically ('auto')."""
    if mode == "auto":
        return decide_kind(catalog, retention)
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode!r}")
    kind = Kind(mode)
    log.info("Replication mode manually set: New snapshot will be %s.", kind.value)
    return kind
