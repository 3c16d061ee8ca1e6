from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union
import logging
import os
import subprocess

from .types import HostConfig

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    command: list[str]
    stdout: str
    stderr: str
    returncode: int


class Executor:
    """Base executor abstraction used by operations."""

    def __init__(self, host: HostConfig, *, dry_run: bool = False, become: bool = False):
        self.host = host
        self.dry_run = dry_run
        self.become = become

    def run(
        self,
        command: Sequence[str],
        *,
        check: bool = True,
        mutable: bool = True,
        env: Optional[dict[str, str]] = None,
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
        input: Optional[str] = None,
    ) -> CommandResult:
        """Run ``command`` and optionally skip it during dry-runs."""

        cmd_list = self._wrap(list(command))
        if self.dry_run and mutable:
            return CommandResult(cmd_list, "", "skipped (dry-run)", 0)

        exec_env = None
        if env:
            exec_env = os.environ.copy()
            exec_env.update(env)

        logger.debug("run host=%s cmd=%s", self.host.name, " ".join(cmd_list))
        proc = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            check=False,
            env=exec_env,
            cwd=str(cwd) if cwd is not None else None,
            timeout=timeout,
            input=input,
        )
        if check and proc.returncode != 0:
            raise subprocess.CalledProcessError(
                proc.returncode,
                cmd_list,
                proc.stdout,
                proc.stderr,
            )
        return CommandResult(cmd_list, proc.stdout, proc.stderr, proc.returncode)

    @property
    def escalated(self) -> bool:
        """True when commands must go through ``sudo`` to gain privilege."""
        return self.become and os.geteuid() != 0

    def _wrap(self, command: list[str]) -> list[str]:
        if self.escalated:
            return ["sudo", "-n", "--", *command]
        return command

    # File primitives -----------------------------------------------------
    def path_exists(self, path: Path) -> bool:
        raise NotImplementedError

    def ensure_directory(self, path: Path) -> tuple[bool, str]:
        raise NotImplementedError


class LocalExecutor(Executor):
    """Executor that acts directly on the local host.

    With ``become`` and no root privilege, file checks and directory creation
    go through :meth:`run` so they happen under ``sudo`` like every command.
    """

    def path_exists(self, path: Path) -> bool:
        if self.escalated:
            return self.run(["test", "-e", str(path)], check=False, mutable=False).returncode == 0
        return path.exists()

    def is_directory(self, path: Path) -> bool:
        if self.escalated:
            return self.run(["test", "-d", str(path)], check=False, mutable=False).returncode == 0
        return path.is_dir()

    def ensure_directory(self, path: Path) -> tuple[bool, str]:
        if self.path_exists(path):
            if not self.is_directory(path):
                raise NotADirectoryError(f"{path} exists and is not a directory")
            return False, "noop"
        if not self.dry_run:
            if self.escalated:
                self.run(["mkdir", "-p", str(path)])
            else:
                path.mkdir(parents=True, exist_ok=True)
        return True, "created"
