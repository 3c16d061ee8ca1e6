from __future__ import annotations

import grp
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .base import Operation
from ..executors import Executor
from ..templating import to_bool
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)


@dataclass
class GroupInfo:
    name: str
    gid: int


class GroupManager:
    def get(self, name: str) -> GroupInfo | None:
        try:
            entry = grp.getgrnam(name)
        except KeyError:
            return None
        return GroupInfo(name=entry.gr_name, gid=entry.gr_gid)

    def add(self, executor: Executor, name: str, *, gid: int | None, system: bool) -> None:
        cmd = ["groupadd"]
        if gid is not None:
            cmd += ["--gid", str(gid)]
        if system:
            cmd.append("--system")
        cmd.append(name)
        executor.run(cmd)

    def set_gid(self, executor: Executor, name: str, gid: int) -> None:
        executor.run(["groupmod", "--gid", str(gid), name])

    def delete(self, executor: Executor, name: str) -> None:
        executor.run(["groupdel", name])


class GroupOperation(Operation):
    """Ensure an OS group exists (or not)."""

    action = "group"

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        self.name = self._require(spec, "name", "group")
        self.state = self._parse_state(spec, "group")
        raw_gid = spec.get("gid")
        self.gid: Optional[int] = int(raw_gid) if raw_gid is not None else None
        self.system = to_bool(spec.get("system", False))
        self.manager = GroupManager()

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        info = self.manager.get(self.name)
        changes: list[str] = []

        if self.state == "present":
            if not info:
                logger.debug("Creating group %s", self.name)
                self.manager.add(executor, self.name, gid=self.gid, system=self.system)
                changes.append("created")
            elif self.gid is not None and info.gid != self.gid:
                logger.debug("Changing gid of %s to %s", self.name, self.gid)
                self.manager.set_gid(executor, self.name, self.gid)
                changes.append(f"gid->{self.gid}")
        elif info:
            logger.debug("Removing group %s", self.name)
            self.manager.delete(executor, self.name)
            changes.append("removed")

        detail = ", ".join(changes) if changes else "noop"
        return self.result(host, changed=bool(changes), details=detail)
