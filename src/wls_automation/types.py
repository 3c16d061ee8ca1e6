from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class HostConfig:
    name: str
    connection: str = "local"
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionSpec:
    type: str
    data: dict[str, Any]
    name: Optional[str] = None
    when: Optional[str] = None
    become: bool = False


@dataclass
class TaskSpec:
    name: str
    hosts: list[str]
    actions: list[ActionSpec]


@dataclass
class Plan:
    hosts: dict[str, HostConfig]
    tasks: list[TaskSpec]
    variables: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionResult:
    host: str
    action: str
    changed: bool
    details: str
    failed: bool = False
    skipped: bool = False
    resource: Optional[str] = None
