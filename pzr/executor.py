"""Executor protocol and implementations (local, SSH)."""
from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from typing import Protocol, runtime_checkable

log = logging.getLogger(__name__)

SSH_OPTIONS = [
    "-o", "BatchMode=yes",
    "-o", "StrictHostKeyChecking=accept-new",
]


class ExecutorError(Exception):
    """Raised when a command exits with a non-zero status."""
    def __init__(self, cmd: list[str], returncode: int, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command {shlex.join(cmd)!r} exited {returncode}: {stderr.strip()}"
        )


@runtime_checkable
class Executor(Protocol):
    @property
    def label(self) -> str:
        """Short label for display (e.g. 'local', 'ssh://host')."""
        raise NotImplementedError

    def run(self, cmd: list[str]) -> str:
        """Run a command, return stdout. Raise ExecutorError on failure."""
        raise NotImplementedError

    def popen(self, cmd: list[str], **kwargs) -> subprocess.Popen:
        """Launch a command as a Popen object for piping."""
        raise NotImplementedError

    def copy_to(self, local_path: str, path: str) -> None:
        """Copy a local file to `path` on the executor's host."""
        raise NotImplementedError


def _check(cmd: list[str], result: subprocess.CompletedProcess) -> str:
    if result.returncode != 0:
        raise ExecutorError(cmd, result.returncode, result.stderr)
    return result.stdout


class LocalExecutor:
    """Run commands on the local machine."""

    @property
    def label(self) -> str:
        return "local"

    def run(self, cmd: list[str]) -> str:
        log.debug("[local] %s", shlex.join(cmd))
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
        )
        return _check(cmd, result)

    def popen(self, cmd: list[str], **kwargs) -> subprocess.Popen:
        log.debug("[local] %s", shlex.join(cmd))
        return subprocess.Popen(cmd, text=False, **kwargs)

    def copy_to(self, local_path: str, path: str) -> None:
        try:
            shutil.copyfile(local_path, path)
        except OSError as e:
            raise ExecutorError(["cp", local_path, path], 1, str(e)) from e


class SSHExecutor:
    """Run commands on a remote host via SSH."""

    def __init__(self, host: str, user: str | None = None, port: int = 22):
        self.host = host
        self.user = user
        self.port = port

    @property
    def dest(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    @property
    def label(self) -> str:
        return f"ssh://{self.dest}:{self.port}"

    def _ssh_prefix(self) -> list[str]:
        return ["ssh", *SSH_OPTIONS, "-p", str(self.port), self.dest]

    def run(self, cmd: list[str]) -> str:
        full_cmd = self._ssh_prefix() + [shlex.join(cmd)]
        log.debug("[%s] %s", self.label, shlex.join(cmd))
        result = subprocess.run(
            full_cmd,
            capture_output=True,
            text=True,
            check=False,
        )
        return _check(full_cmd, result)

    def popen(self, cmd: list[str], **kwargs) -> subprocess.Popen:
        full_cmd = self._ssh_prefix() + [shlex.join(cmd)]
        log.debug("[%s] %s", self.label, shlex.join(cmd))
        return subprocess.Popen(full_cmd, text=False, **kwargs)

    def copy_to(self, local_path: str, path: str) -> None:
        cmd = ["scp", *SSH_OPTIONS, "-P", str(self.port), local_path, f"{self.dest}:{path}"]
        log.debug("[local] %s", shlex.join(cmd))
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=False,
        )
        _check(cmd, result)
