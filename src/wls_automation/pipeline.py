"""Build pipeline: ordered stages that stop at the first failure, plus a post hook.

Stages are shell commands run on the build agent. Later stages are reported as
skipped once a stage fails. The ``post`` hook always runs: ``always`` commands
first, then ``success`` or ``failure`` depending on the verdict. Post commands
see the verdict in ``PIPELINE_STATUS``.
"""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .executors import Executor, LocalExecutor
from .operations.exec import summarize_output
from .types import HostConfig

logger = logging.getLogger(__name__)

SCENARIO_CONTAINER = "wls-scenario"
SCENARIO_IMAGE = "python:3.12-slim"
SCENARIO_WORKDIR = "/work"
SCENARIO_PLAN = f"{SCENARIO_WORKDIR}/examples/weblogic/plan.toml"
SCENARIO_JDK = "/tmp/jdk-stub.tar.gz"
# The scenario extracts a stub JDK built inside the container instead of downloading one.
SCENARIO_APPLY = f"wls-provision apply -e jdk_remote_src_uri=file://{SCENARIO_JDK}"


@dataclass
class Stage:
    name: str
    commands: list[str]
    env: dict[str, str] = field(default_factory=dict)
    cwd: Optional[Path] = None
    timeout: Optional[float] = None


@dataclass
class PipelineDefinition:
    name: str
    stages: list[Stage]
    post_always: list[str] = field(default_factory=list)
    post_success: list[str] = field(default_factory=list)
    post_failure: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "PipelineDefinition":
        in_container = f"docker exec {SCENARIO_CONTAINER} sh -c"
        return cls(
            name="wls-provisioner",
            stages=[
                Stage("checkout", ["git rev-parse --verify HEAD", "git submodule update --init --recursive"]),
                Stage("prepare-environment", ['python3 -m pip install --upgrade -e ".[test]"']),
                Stage("lint", ["ruff check src tests"]),
                Stage("syntax-check", ["wls-provision check examples/weblogic/plan.toml"]),
                Stage(
                    "scenario-test",
                    [
                        f"docker run -d --name {SCENARIO_CONTAINER} {SCENARIO_IMAGE} sleep infinity",
                        f"docker cp . {SCENARIO_CONTAINER}:{SCENARIO_WORKDIR}",
                        f"{in_container} 'apt-get update && apt-get install -y --no-install-recommends openssl'",
                        f"{in_container} 'sh {SCENARIO_WORKDIR}/tests/fixtures/make_stub_jdk.sh {SCENARIO_JDK}'",
                        f"{in_container} 'pip install {SCENARIO_WORKDIR} && {SCENARIO_APPLY} {SCENARIO_PLAN}'",
                        f"{in_container} '{SCENARIO_APPLY} --fail-on-change {SCENARIO_PLAN}'",
                        "python3 -m pytest",
                    ],
                ),
                Stage("cleanup", [f"docker rm -f {SCENARIO_CONTAINER}"]),
            ],
            post_always=[
                f"docker rm -f {SCENARIO_CONTAINER} >/dev/null 2>&1 || true",
                'echo "pipeline finished: $PIPELINE_STATUS"',
            ],
        )


@dataclass
class StageResult:
    name: str
    status: str
    details: str = ""
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return self.status == "failed"


@dataclass
class PipelineResult:
    name: str
    stages: list[StageResult]
    post: list[StageResult]

    @property
    def succeeded(self) -> bool:
        return not any(r.failed for r in self.stages) and not any(r.failed for r in self.post)


def load_pipeline(path: Path) -> PipelineDefinition:
    """Read a pipeline definition from TOML; a missing file yields the default pipeline."""
    path = Path(path)
    if not path.exists():
        logger.debug("Pipeline file %s not found; using default stages", path)
        return PipelineDefinition.default()
    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"{path}: {exc}") from None

    stages: list[Stage] = []
    seen: set[str] = set()
    for index, raw in enumerate(data.get("stages", []), start=1):
        name = raw.get("name")
        if not name:
            raise ValueError(f"Stage {index} is missing a name")
        if name in seen:
            raise ValueError(f"Duplicate stage name '{name}'")
        seen.add(name)
        commands = _command_list(raw.get("commands", raw.get("command")), f"stage '{name}'")
        if not commands:
            raise ValueError(f"Stage '{name}' has no commands")
        cwd = raw.get("cwd")
        timeout = raw.get("timeout")
        stages.append(
            Stage(
                name=str(name),
                commands=commands,
                env=_string_map(raw.get("env", {})),
                cwd=(path.parent / cwd) if cwd else None,
                timeout=float(timeout) if timeout is not None else None,
            )
        )
    if not stages:
        raise ValueError(f"{path}: pipeline defines no stages")

    post = data.get("post", {})
    return PipelineDefinition(
        name=str(data.get("name", path.stem)),
        stages=stages,
        post_always=_command_list(post.get("always"), "post.always"),
        post_success=_command_list(post.get("success"), "post.success"),
        post_failure=_command_list(post.get("failure"), "post.failure"),
        env=_string_map(data.get("env", {})),
    )


def _command_list(value: Any, where: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValueError(f"{where} commands must be a string or list of strings")


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        raise ValueError("env must be a table")
    return {str(k): str(v) for k, v in value.items()}


class PipelineRunner:
    def __init__(
        self,
        definition: PipelineDefinition,
        *,
        executor: Optional[Executor] = None,
        workdir: Optional[Path] = None,
    ):
        self.definition = definition
        self.executor = executor or LocalExecutor(HostConfig("build-agent"))
        self.workdir = workdir

    def run(self) -> PipelineResult:
        stage_results: list[StageResult] = []
        failed = False
        for stage in self.definition.stages:
            if failed:
                logger.info("stage=%s skipped", stage.name)
                stage_results.append(StageResult(stage.name, "skipped", "earlier stage failed"))
                continue
            result = self._run_stage(stage.name, stage.commands, env=stage.env, cwd=stage.cwd, timeout=stage.timeout)
            stage_results.append(result)
            failed = result.failed

        status = "failure" if failed else "success"
        post_env = {"PIPELINE_STATUS": status}
        post_results: list[StageResult] = []
        hooks = [("post:always", self.definition.post_always)]
        if failed:
            hooks.append(("post:failure", self.definition.post_failure))
        else:
            hooks.append(("post:success", self.definition.post_success))
        for name, commands in hooks:
            if commands:
                post_results.append(self._run_stage(name, commands, env=post_env, keep_going=True))
        return PipelineResult(self.definition.name, stage_results, post_results)

    def _run_stage(
        self,
        name: str,
        commands: list[str],
        *,
        env: dict[str, str],
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
        keep_going: bool = False,
    ) -> StageResult:
        logger.info("stage=%s starting", name)
        started = time.monotonic()
        merged_env = {**self.definition.env, **env}
        errors: list[str] = []
        for command in commands:
            logger.debug("stage=%s cmd=%s", name, command)
            try:
                proc = self.executor.run(
                    ["sh", "-c", command],
                    check=False,
                    env=merged_env or None,
                    cwd=cwd or self.workdir,
                    timeout=timeout,
                )
            except subprocess.TimeoutExpired:
                errors.append(f"'{command}' timed out after {timeout}s")
                if not keep_going:
                    break
                continue
            for line in proc.stdout.splitlines():
                logger.info("[%s] %s", name, line)
            if proc.returncode != 0:
                summary = summarize_output(proc)
                detail = f"'{command}' rc={proc.returncode}"
                errors.append(f"{detail}: {summary}" if summary else detail)
                if not keep_going:
                    break
        duration = time.monotonic() - started
        if errors:
            logger.error("stage=%s failed: %s", name, "; ".join(errors))
            return StageResult(name, "failed", "; ".join(errors), duration)
        logger.info("stage=%s passed in %.1fs", name, duration)
        return StageResult(name, "passed", f"{len(commands)} command(s)", duration)
