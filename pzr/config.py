"""Load and validate YAML job configuration files."""
from __future__ import annotations

import yaml

from pzr.models import JobConfig, RemoteConfig, RetentionPolicy


class ConfigError(Exception):
    pass


def _int(raw: dict, key: str, default: int) -> int:
    value = raw.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}")


def load_job(path: str) -> JobConfig:
    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping: {path}")

    # --- remote ---
    remote_raw = raw.get("remote")
    if not isinstance(remote_raw, dict) or not remote_raw.get("host"):
        raise ConfigError("remote.host is required")
    user = remote_raw.get("user", "root")
    if not user:
        raise ConfigError("remote.user must not be empty")
    remote = RemoteConfig(
        host=str(remote_raw["host"]),
        user=str(user),
        port=_int(remote_raw, "port", 22),
    )

    # --- retention ---
    keep = _int(raw, "retention", 5)
    if keep < 1:
        raise ConfigError(f"retention must be >= 1, got {keep}")

    # --- storage_map ---
    storage_raw = raw.get("storage_map") or {}
    if not isinstance(storage_raw, dict):
        raise ConfigError("storage_map must be a mapping of storage id to ZFS dataset")
    storage_map = {}
    for storage, dataset in storage_raw.items():
        if not dataset:
            raise ConfigError(f"storage_map entry for {storage!r} is empty")
        storage_map[str(storage)] = str(dataset)

    # --- paths ---
    config = JobConfig(
        remote=remote,
        retention=RetentionPolicy(keep=keep),
        storage_map=storage_map,
    )
    if raw.get("lock_dir"):
        config.lock_dir = str(raw["lock_dir"])
    dirs_raw = raw.get("config_dirs") or {}
    if not isinstance(dirs_raw, dict):
        raise ConfigError("config_dirs must be a mapping with 'qemu' and/or 'lxc'")
    if dirs_raw.get("qemu"):
        config.qemu_dir = str(dirs_raw["qemu"])
    if dirs_raw.get("lxc"):
        config.lxc_dir = str(dirs_raw["lxc"])

    return config
