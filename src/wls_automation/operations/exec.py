from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional, Sequence
import logging

from .base import Operation
from ..executors import CommandResult, Executor
from ..templating import to_bool
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


class CommandOperation(Operation):
    """Run a command with simple guards and output assertions."""

    action = "command"

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        raw_command = spec.get("command") or spec.get("cmd")
        if raw_command is None:
            raise ValueError("command operation requires a command")
        self.command = self._normalize_command(raw_command)
        self.name = str(spec.get("name") or self._format_command(self.command))

        self.only_if = self._normalize_command(spec["only_if"]) if spec.get("only_if") else None
        self.unless = self._normalize_command(spec["unless"]) if spec.get("unless") else None

        self.creates = Path(str(spec["creates"])) if spec.get("creates") else None
        self.cwd = Path(str(spec["cwd"])) if spec.get("cwd") else None
        self.env = self._normalize_env(spec.get("env") or spec.get("environment"))
        self.allowed_returns = self._normalize_returns(spec.get("returns", [0]))
        self.timeout = self._normalize_timeout(spec.get("timeout"))

        raw_changed = spec.get("changed")
        self.changed_override: Optional[bool] = None if raw_changed is None else to_bool(raw_changed)
        self.stdout_contains = self._optional_str(spec.get("stdout_contains"))
        self.stderr_contains = self._optional_str(spec.get("stderr_contains"))

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        if self.creates:
            creates_path = self._resolve_path(self.creates)
            if executor.path_exists(creates_path):
                return self.result(host, changed=False, details=f"skipped (creates {creates_path})")

        if self.only_if:
            guard = self._run_guard(self.only_if, executor)
            if guard.returncode != 0:
                return self.result(host, changed=False, details=f"skipped (only_if rc={guard.returncode})")

        if self.unless:
            guard = self._run_guard(self.unless, executor)
            if guard.returncode == 0:
                return self.result(host, changed=False, details=f"skipped (unless rc={guard.returncode})")

        probe = self.changed_override is False
        result = executor.run(
            self.command,
            check=False,
            mutable=not probe,
            env=self.env,
            cwd=self.cwd,
            timeout=self.timeout,
        )

        if result.returncode not in self.allowed_returns:
            logger.debug(
                "command failed name=%s rc=%s cmd=%s",
                self.name,
                result.returncode,
                self._format_command(self.command),
            )
            return self.result(host, changed=False, details=self._error_detail(result), failed=True)

        if executor.dry_run and not probe:
            return self.result(host, changed=True, details="dry-run")

        if self.stdout_contains is not None and self.stdout_contains not in result.stdout:
            return self.result(host, changed=False, details=f"stdout missing '{self.stdout_contains}'", failed=True)
        if self.stderr_contains is not None and self.stderr_contains not in result.stderr:
            return self.result(host, changed=False, details=f"stderr missing '{self.stderr_contains}'", failed=True)

        changed = True if self.changed_override is None else self.changed_override
        return self.result(host, changed=changed, details=f"ran (rc={result.returncode})")

    def _run_guard(self, command: Sequence[str], executor: Executor) -> CommandResult:
        return executor.run(
            command,
            check=False,
            mutable=False,
            env=self.env,
            cwd=self.cwd,
            timeout=self.timeout,
        )

    def _resolve_path(self, path: Path) -> Path:
        if path.is_absolute() or self.cwd is None:
            return path
        return self.cwd / path

    @staticmethod
    def _normalize_command(value: Any) -> list[str]:
        if isinstance(value, str):
            return ["sh", "-c", value]
        if isinstance(value, Sequence):
            return [str(v) for v in value]
        raise ValueError("command must be a string or list")

    @staticmethod
    def _format_command(command: Sequence[str]) -> str:
        return " ".join(command)

    @staticmethod
    def _normalize_env(value: Any) -> Optional[dict[str, str]]:
        if value is None:
            return None
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        if isinstance(value, Iterable) and not isinstance(value, (str, bytes)):
            env: dict[str, str] = {}
            for item in value:
                key, sep, val = str(item).partition("=")
                if not sep:
                    raise ValueError("env list entries must be KEY=VALUE")
                env[key] = val
            return env
        raise ValueError("command env must be a mapping or list of KEY=VALUE strings")

    @staticmethod
    def _normalize_returns(value: Any) -> list[int]:
        if value is None:
            return [0]
        if isinstance(value, int):
            return [int(value)]
        if isinstance(value, Iterable):
            return [int(v) for v in value]
        raise ValueError("command returns must be an int or list of ints")

    @staticmethod
    def _normalize_timeout(value: Any) -> Optional[float]:
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError) as exc:  # noqa: PERF203
            raise ValueError("command timeout must be numeric") from exc

    @staticmethod
    def _error_detail(result: CommandResult) -> str:
        message = summarize_output(result)
        prefix = f"rc={result.returncode}"
        if message:
            return f"{prefix}: {message}"
        return prefix


def summarize_output(result: CommandResult) -> Optional[str]:
    for text in (result.stderr, result.stdout):
        if not text:
            continue
        stripped = text.strip()
        if not stripped:
            continue
        line = stripped.splitlines()[0]
        return (line[:157] + "...") if len(line) > 160 else line
    return None
