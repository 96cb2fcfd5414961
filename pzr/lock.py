"""Per-guest run lock so overlapping cron runs never replicate one guest twice."""
from __future__ import annotations

import fcntl
import logging
import os

log = logging.getLogger(__name__)


class LockHeldError(Exception):
    pass


class GuestLock:
    """Exclusive, non-blocking flock on <lock_dir>/pzr-<name>.lock."""

    def __init__(self, lock_dir: str, name: str):
        self.path = os.path.join(lock_dir, f"pzr-{name}.lock")
        self.fd: int | None = None

    def __enter__(self) -> "GuestLock":
        os.makedirs(os.path.dirname(self.path), exist_ok=True)
        fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise LockHeldError(f"Another run holds {self.path}") from None
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self.fd = fd
        log.debug("Acquired lock %s", self.path)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.fd is None:
            return
        fcntl.flock(self.fd, fcntl.LOCK_UN)
        os.close(self.fd)
        self.fd = None
        log.debug("Released lock %s", self.path)
