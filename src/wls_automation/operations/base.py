from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..executors import Executor
from ..types import ActionResult, HostConfig


class Operation(ABC):
    """Shared surface for runnable provisioning actions."""

    action = "operation"

    def __init__(self, spec: dict[str, Any]):
        self.spec = spec

    @abstractmethod
    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        """Perform the operation against ``host`` using ``executor``."""

    def result(self, host: HostConfig, *, changed: bool, details: str, failed: bool = False) -> ActionResult:
        return ActionResult(host=host.name, action=self.action, changed=changed, details=details, failed=failed)

    @staticmethod
    def _parse_state(spec: dict[str, Any], action: str) -> str:
        state = str(spec.get("state", "present"))
        if state not in {"present", "absent"}:
            raise ValueError(f"{action} operation state must be 'present' or 'absent'")
        return state

    @staticmethod
    def _require(spec: dict[str, Any], key: str, action: str) -> str:
        value = spec.get(key)
        if value is None or value == "":
            raise ValueError(f"{action} operation requires a {key}")
        return str(value)

    @staticmethod
    def _optional_str(value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)
