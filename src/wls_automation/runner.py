from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .executors import Executor, LocalExecutor
from .operations import OPERATION_REGISTRY, Operation
from .secrets import SecretResolver
from .templating import Renderer
from .types import ActionResult, ActionSpec, HostConfig, Plan, TaskSpec

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[HostConfig, ActionSpec], None]


class TaskRunner:
    """Runs plan tasks in order; a failed action stops the rest of that host's run."""

    def __init__(
        self,
        plan: Plan,
        *,
        dry_run: bool = False,
        extra_vars: Optional[dict[str, Any]] = None,
        secret_resolver: Optional[SecretResolver] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.plan = plan
        self.dry_run = dry_run
        self.extra_vars = dict(extra_vars or {})
        self.secret_resolver = secret_resolver or SecretResolver()
        self.progress_callback = progress_callback
        self.failed_hosts: set[str] = set()
        self._host_vars: dict[str, dict[str, Any]] = {}

    def run(self) -> list[ActionResult]:
        results: list[ActionResult] = []
        for task in self.plan.tasks:
            results.extend(self._run_task(task))
        return results

    def _run_task(self, task: TaskSpec) -> list[ActionResult]:
        results: list[ActionResult] = []
        logger.debug("task=%s hosts=%s", task.name, ",".join(task.hosts))
        for host_name in task.hosts:
            host = self.plan.hosts.get(host_name)
            if not host:
                raise KeyError(f"Host '{host_name}' is not defined")
            if host.name in self.failed_hosts:
                logger.info("task=%s host=%s skipped after earlier failure", task.name, host.name)
                continue
            for action in task.actions:
                if self.progress_callback:
                    self.progress_callback(host, action)
                result = self._run_action(host, action)
                results.append(result)
                if result.failed:
                    logger.error(
                        "task=%s host=%s aborted at %s: %s", task.name, host.name, action.type, result.details
                    )
                    self.failed_hosts.add(host.name)
                    break
        return results

    def _run_action(self, host: HostConfig, action: ActionSpec) -> ActionResult:
        resource = self._resource_name(action)
        try:
            renderer = Renderer(self.variables_for(host))
            if action.when is not None and not renderer.evaluate(action.when):
                logger.debug("action=%s host=%s skipped by condition", action.type, host.name)
                return ActionResult(
                    host=host.name,
                    action=action.type,
                    changed=False,
                    details="skipped (when)",
                    skipped=True,
                    resource=resource,
                )
            data = {k: (v if k.startswith("_") else renderer.render(v)) for k, v in action.data.items()}
        except Exception as exc:  # noqa: BLE001
            logger.error("action=%s host=%s could not be prepared: %s", action.type, host.name, exc)
            return self._failure(host, action, str(exc), resource)

        operation_cls = OPERATION_REGISTRY.get(action.type)
        if not operation_cls:
            detail = f"unknown operation '{action.type}'"
            logger.warning(detail)
            return self._failure(host, action, detail, resource)

        try:
            operation: Operation = operation_cls(data)
            result = operation.apply(host, self._executor_for(host, become=action.become))
        except Exception as exc:  # noqa: BLE001
            logger.error("action=%s host=%s failed: %s", action.type, host.name, exc, exc_info=True)
            return self._failure(host, action, self._describe_error(exc), resource)

        logger.debug("action=%s host=%s changed=%s", action.type, host.name, result.changed)
        if result.resource is None:
            result.resource = self._resource_name(action, data)
        return result

    def variables_for(self, host: HostConfig) -> dict[str, Any]:
        """Plan vars, then host vars, then extra vars; secret references resolved."""
        cached = self._host_vars.get(host.name)
        if cached is None:
            merged = {**self.plan.variables, **host.variables, **self.extra_vars}
            cached = self.secret_resolver.resolve(merged)
            self._host_vars[host.name] = cached
        return cached

    def _executor_for(self, host: HostConfig, *, become: bool = False) -> Executor:
        if host.connection == "local":
            return LocalExecutor(host, dry_run=self.dry_run, become=become)
        raise ValueError(f"Unknown connection type '{host.connection}'")

    @staticmethod
    def _failure(host: HostConfig, action: ActionSpec, detail: str, resource: Optional[str]) -> ActionResult:
        return ActionResult(
            host=host.name,
            action=action.type,
            changed=False,
            details=detail,
            failed=True,
            resource=resource,
        )

    @staticmethod
    def _describe_error(exc: Exception) -> str:
        stderr = getattr(exc, "stderr", None)
        if isinstance(stderr, str) and stderr.strip():
            return f"{exc}: {stderr.strip().splitlines()[0]}"
        return str(exc)

    @staticmethod
    def _resource_name(action: ActionSpec, data: Optional[dict[str, Any]] = None) -> str | None:
        if action.name:
            return action.name
        source = data if data is not None else action.data
        for key in ("name", "dest", "java", "java_home", "path"):
            value = source.get(key)
            if value:
                return str(value)
        return None
