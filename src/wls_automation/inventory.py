from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .templating import to_bool
from .types import ActionSpec, HostConfig, Plan, TaskSpec

RESERVED_KEYS = {"type", "title", "when", "become"}


class InventoryLoader:
    """Loads plan definitions from TOML files."""

    def load(self, path: Path, *, vars_files: Iterable[Path] = ()) -> Plan:
        path = Path(path)
        data = self._read_toml(path)
        variables: dict[str, Any] = {}
        for vars_file in vars_files:
            variables.update(self._read_toml(Path(vars_file)))
        plan_vars = data.get("vars", {})
        if not isinstance(plan_vars, dict):
            raise ValueError(f"{path}: vars must be a table")
        variables.update(plan_vars)

        hosts = self._parse_hosts(data.get("hosts", {}))
        tasks = self._parse_tasks(data.get("tasks", []), hosts, path.parent)
        plan = Plan(hosts=hosts, tasks=tasks, variables=variables)
        self._attach_plan_dir(plan, path.parent)
        return plan

    @staticmethod
    def _read_toml(path: Path) -> dict[str, Any]:
        try:
            return tomllib.loads(path.read_text())
        except tomllib.TOMLDecodeError as exc:
            line = getattr(exc, "lineno", None)
            column = getattr(exc, "colno", None)
            if line is not None:
                raise ValueError(f"{path}:{line}:{column} {exc.msg}") from None
            raise ValueError(f"{path}: {exc}") from None

    @staticmethod
    def _parse_hosts(host_data: dict[str, Any]) -> dict[str, HostConfig]:
        if not host_data:
            host_data = {"local": {"connection": "local"}}
        hosts: dict[str, HostConfig] = {}
        for name, payload in host_data.items():
            variables = payload.get("variables", {})
            if not isinstance(variables, dict):
                raise ValueError(f"Host '{name}' variables must be a table")
            connection = payload.get("connection", "local")
            if connection != "local":
                raise ValueError(f"Host '{name}' uses unsupported connection '{connection}'")
            hosts[name] = HostConfig(
                name=name,
                connection=connection,
                variables=dict(variables),
            )
        return hosts

    def _parse_tasks(
        self, raw_tasks: list[dict[str, Any]], hosts: dict[str, HostConfig], base_dir: Path
    ) -> list[TaskSpec]:
        tasks: list[TaskSpec] = []
        for index, task in enumerate(raw_tasks, start=1):
            name = task.get("name", f"task-{index}")
            target_hosts = task.get("hosts") or list(hosts.keys())
            if isinstance(target_hosts, str):
                target_hosts = [target_hosts]
            for host_name in target_hosts:
                if host_name not in hosts:
                    raise ValueError(f"Task '{name}' targets undefined host '{host_name}'")
            raw_actions: list[dict[str, Any]] = []
            include = task.get("include")
            if include:
                raw_actions.extend(self._load_include(base_dir / str(include)))
            raw_actions.extend(task.get("actions", []))
            actions = [
                self._parse_action(action, f"{index}.{pos}")
                for pos, action in enumerate(raw_actions, start=1)
            ]
            tasks.append(TaskSpec(name=name, hosts=list(target_hosts), actions=actions))
        return tasks

    def _load_include(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            raise ValueError(f"Included task file {path} does not exist")
        data = self._read_toml(path)
        actions = data.get("actions", [])
        if not isinstance(actions, list):
            raise ValueError(f"{path}: actions must be an array of tables")
        return actions

    @staticmethod
    def _parse_action(action: Any, action_index: str) -> ActionSpec:
        if not isinstance(action, dict):
            raise ValueError(f"Action {action_index} must be a table")
        action_type = action.get("type")
        if not action_type:
            raise ValueError(f"Action {action_index} is missing a type")
        when = action.get("when")
        # ``name`` stays in data: user and group take it as the account name.
        data = {k: v for k, v in action.items() if k not in RESERVED_KEYS}
        title = action.get("title")
        return ActionSpec(
            type=str(action_type),
            data=data,
            name=str(title) if title else None,
            when=when if when is None or isinstance(when, (str, bool)) else str(when),
            become=to_bool(action.get("become", False)),
        )

    @staticmethod
    def _attach_plan_dir(plan: Plan, base_dir: Path) -> None:
        base = str(base_dir)
        for task in plan.tasks:
            for action in task.actions:
                action.data.setdefault("_plan_dir", base)
