"""Extract the ZFS datasets attached to a guest from its Proxmox config."""
from __future__ import annotations

import logging
import re

from pzr.models import Dataset

log = logging.getLogger(__name__)

# VM disks, EFI vars and TPM state; container root and mount points
DISK_KEY_RE = re.compile(
    r"^\s*((?:scsi|sata|virtio|efidisk|tpmstate|mp)\d+|rootfs):\s*(.*)$"
)


def main_section(config_text: str) -> list[str]:
    """Lines before the first [snapshot] section."""
    lines = []
    for line in config_text.splitlines():
        if line.startswith("["):
            break
        lines.append(line)
    return lines


def volume_to_dataset(volume: str, storage_map: dict[str, str] | None = None) -> str:
    """
    Map a Proxmox volume id to a ZFS dataset.

    "local-zfs:vm-100-disk-0" -> "rpool/data/vm-100-disk-0" with
    storage_map={"local-zfs": "rpool/data"}, else "local-zfs/vm-100-disk-0".
    """
    storage, sep, volname = volume.partition(":")
    if sep and storage_map and storage in storage_map:
        return f"{storage_map[storage].rstrip('/')}/{volname}"
    return volume.replace(":", "/")


def resolve_datasets(config_text: str, storage_map: dict[str, str] | None = None) -> list[Dataset]:
    """Return the guest's datasets in config order, skipping 'none' and CD-ROM entries."""
    datasets: list[Dataset] = []
    seen: set[str] = set()

    for line in main_section(config_text):
        m = DISK_KEY_RE.match(line)
        if not m:
            continue
        key, value = m.group(1), m.group(2).strip()
        volume, _, options = value.partition(",")
        volume = volume.strip()
        log.debug("Processing config line: %s", line.strip())

        if not volume or volume == "none":
            log.info("Skipping unattached disk entry: %s", line.strip())
            continue
        if "media=cdrom" in options.split(","):
            log.debug("Skipping CD-ROM entry: %s", key)
            continue

        path = volume_to_dataset(volume, storage_map)
        if path in seen:
            continue
        seen.add(path)
        datasets.append(Dataset(path=path, key=key))

    log.info("Found %d disk entries.", len(datasets))
    return datasets
