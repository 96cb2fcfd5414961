"""Data models for pve-zfs-replicate."""
from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

PREFIX = "replicate-"

# replicate-YYYYMMDD-HHMMSS-full | replicate-YYYYMMDD-HHMMSS-inc
NAME_RE = re.compile(r"replicate-(\d{8}-\d{6})-(full|inc)")


def version_key(text: str) -> tuple:
    """Sort key comparing digit runs numerically, like `sort -V`."""
    return tuple(
        (0, int(part)) if part.isdigit() else (1, part)
        for part in re.split(r"(\d+)", text)
        if part
    )


class Kind(Enum):
    FULL = "full"
    INCREMENTAL = "inc"


@dataclass(frozen=True)
class Snapshot:
    """A reserved guest-level snapshot: replicate-<YYYYMMDD>-<HHMMSS>-<kind>."""
    name: str
    timestamp: str  # YYYYMMDD-HHMMSS
    kind: Kind

    @property
    def sort_key(self) -> tuple:
        return version_key(self.timestamp)

    @classmethod
    def parse(cls, name: str) -> "Snapshot | None":
        """Return a Snapshot for a reserved name, None for anything else."""
        m = NAME_RE.fullmatch(name)
        if not m:
            return None
        return cls(name=name, timestamp=m.group(1), kind=Kind(m.group(2)))

    @classmethod
    def create(cls, kind: Kind, when: datetime) -> "Snapshot":
        timestamp = when.strftime("%Y%m%d-%H%M%S")
        return cls(name=f"{PREFIX}{timestamp}-{kind.value}", timestamp=timestamp, kind=kind)


@dataclass(frozen=True, order=True)
class DatasetSnapshot:
    """A ZFS snapshot: pool/dataset@name."""
    dataset: str
    name: str  # just the snapshot name after '@'

    @property
    def full_name(self) -> str:
        return f"{self.dataset}@{self.name}"

    @property
    def reserved(self) -> Snapshot | None:
        return Snapshot.parse(self.name)

    @classmethod
    def parse(cls, full_name: str) -> "DatasetSnapshot":
        dataset, _, name = full_name.partition("@")
        if not name:
            raise ValueError(f"Not a snapshot: {full_name!r}")
        return cls(dataset=dataset, name=name)


@dataclass(frozen=True)
class Dataset:
    path: str  # e.g. rpool/data/vm-100-disk-0
    key: str = ""  # config key, e.g. scsi0

    @property
    def label(self) -> str:
        return posixpath.basename(self.path)


@dataclass(frozen=True)
class Guest:
    vmid: str
    kind: str  # "qemu" or "lxc"
    config_path: str

    @property
    def tool(self) -> str:
        """Proxmox CLI managing this guest's snapshots."""
        return "pct" if self.kind == "lxc" else "qm"


@dataclass
class RetentionPolicy:
    """Keep at most `keep` reserved snapshots locally.

    `keep` also bounds the number of incremental snapshots allowed after the
    most recent full one before the next run is forced to be full.
    """
    keep: int = 5


@dataclass
class RemoteConfig:
    host: str
    user: str = "root"
    port: int = 22


@dataclass
class JobConfig:
    remote: RemoteConfig
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    storage_map: dict[str, str] = field(default_factory=dict)
    lock_dir: str = "/run/lock"
    qemu_dir: str = "/etc/pve/qemu-server"
    lxc_dir: str = "/etc/pve/lxc"


class TransferMode(Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    INCREMENTAL_FALLBACK_TO_FULL = "incremental-fallback-to-full"


class JobState(Enum):
    # PLANNED -> SKIPPED | INCREMENTAL_ATTEMPTED | FULL_ATTEMPTED
    # INCREMENTAL_ATTEMPTED -> SUCCEEDED | FULL_ATTEMPTED (fallback, at most once)
    # FULL_ATTEMPTED -> SUCCEEDED | FAILED
    PLANNED = "planned"
    SKIPPED = "skipped"
    INCREMENTAL_ATTEMPTED = "incremental-attempted"
    FULL_ATTEMPTED = "full-attempted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ReplicationJob:
    """Transfer of one dataset's target snapshot during one run."""
    dataset: Dataset
    target: DatasetSnapshot
    mode: TransferMode
    base: DatasetSnapshot | None = None
    state: JobState = JobState.PLANNED
    # Failure of the incremental attempt that triggered a fallback, or of the final attempt
    error: str = ""

    @property
    def fell_back(self) -> bool:
        return self.mode is TransferMode.INCREMENTAL_FALLBACK_TO_FULL


@dataclass
class RunContext:
    """State of one replication run, passed from step to step."""
    guest: Guest
    retention: RetentionPolicy
    kind: Kind | None = None
    target: Snapshot | None = None
    catalog: list[Snapshot] = field(default_factory=list)
    jobs: list[ReplicationJob] = field(default_factory=list)
