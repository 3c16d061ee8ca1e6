from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO

from .config import DEFAULT_CONFIG, WlsConfig, load_config
from .inventory import InventoryLoader
from .operations import OPERATION_REGISTRY
from .pipeline import PipelineResult, PipelineRunner, load_pipeline
from .runner import TaskRunner
from .secrets import SecretResolver
from .templating import Renderer
from .types import ActionResult, ActionSpec, HostConfig, Plan


RESET = "\033[0m"
STATUS_COLORS = {
    "ok": "\033[94m",
    "changed": "\033[92m",
    "passed": "\033[92m",
    "skipped": "\033[96m",
    "pending": "\033[93m",
    "failed": "\033[91m",
    "unknown": "\033[38;5;208m",
}


def colorize(text: str, status: Optional[str], stream: Optional[TextIO] = None) -> str:
    """Wrap ``text`` in the colour for ``status`` when ``stream`` is a terminal."""
    color = STATUS_COLORS.get(status or "")
    stream = stream or sys.stdout
    if not color or os.environ.get("NO_COLOR") or not stream.isatty():
        return text
    return f"{color}{text}{RESET}"


def error(message: str) -> None:
    print(colorize(message, "failed", sys.stderr), file=sys.stderr)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="WebLogic host provisioning and build pipeline runner")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Path to config file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    apply = sub.add_parser("apply", help="Provision hosts from a plan")
    apply.add_argument("plan", nargs="?", default=None, type=Path, help="Plan file (default from config)")
    apply.add_argument("--dry-run", action="store_true", help="Calculate changes without executing")
    apply.add_argument("--state-file", type=Path, help="Write a JSON report of the run here")
    apply.add_argument(
        "-e",
        "--extra-var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a plan variable (repeatable)",
    )
    apply.add_argument(
        "--fail-on-change",
        action="store_true",
        help="Exit non-zero if anything changed (idempotence check)",
    )

    check = sub.add_parser("check", help="Syntax-check a plan without running it")
    check.add_argument("plan", nargs="?", default=None, type=Path, help="Plan file (default from config)")

    pipeline = sub.add_parser("pipeline", help="Run the build pipeline")
    pipeline.add_argument("definition", nargs="?", default=None, type=Path, help="Pipeline TOML file")
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(name)s - %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        cfg = load_config(args.config)
    except ValueError as exc:
        error(f"Config load failed: {exc}")
        return 1
    export_aws_settings(cfg)

    if args.command == "pipeline":
        return run_pipeline(args.definition or cfg.pipeline)

    plan_path = args.plan or cfg.plan
    try:
        plan = InventoryLoader().load(plan_path, vars_files=cfg.vars_files)
    except (OSError, ValueError) as exc:
        error(f"Plan validation failed: {exc}")
        return 1

    if args.command == "check":
        return check_plan(plan, plan_path)
    return apply_plan(plan, args, cfg)


def apply_plan(plan: Plan, args: argparse.Namespace, cfg: WlsConfig) -> int:
    try:
        extra_vars = parse_extra_vars(args.extra_var)
    except ValueError as exc:
        error(str(exc))
        return 1

    progress = ProgressLine()
    runner = TaskRunner(
        plan,
        dry_run=args.dry_run,
        extra_vars=extra_vars,
        secret_resolver=SecretResolver(region=cfg.aws_region),
        progress_callback=progress.show,
    )
    try:
        results = runner.run()
    except Exception as exc:  # noqa: BLE001
        progress.clear()
        if logging.getLogger().isEnabledFor(logging.DEBUG):
            raise
        error(f"Execution failed: {exc}")
        return 1

    effective_level = logging.getLogger().getEffectiveLevel()
    summary = Summary()
    for result in results:
        progress.clear()
        summary.add(result)
        if not should_display_result(result, effective_level):
            continue
        print(format_result(result))

    progress.clear()
    print(summary.render())

    state_path = args.state_file or cfg.state_file
    if state_path and not args.dry_run:
        write_report(state_path, results)

    if summary.failures:
        return 1
    if args.fail_on_change and summary.changes:
        error("Run was not idempotent: changes were made")
        return 2
    return 0


def check_plan(plan: Plan, plan_path: Path) -> int:
    """Construct every operation from its unrendered spec and compile every condition."""
    problems: list[str] = []
    renderer = Renderer({})
    for task in plan.tasks:
        for index, action in enumerate(task.actions, start=1):
            where = f"{task.name}[{index}] {action.type}"
            operation_cls = OPERATION_REGISTRY.get(action.type)
            if not operation_cls:
                problems.append(f"{where}: unknown operation '{action.type}'")
                continue
            if isinstance(action.when, str):
                try:
                    renderer.env.compile_expression(_strip_braces(action.when))
                except Exception as exc:  # noqa: BLE001
                    problems.append(f"{where}: invalid condition: {exc}")
            try:
                operation_cls(_placeholder_spec(action.data))
            except (TypeError, ValueError) as exc:
                problems.append(f"{where}: {exc}")
    for problem in problems:
        error(problem)
    if problems:
        return 1
    count = sum(len(t.actions) for t in plan.tasks)
    print(colorize(f"{plan_path}: {len(plan.tasks)} task(s), {count} action(s) OK", "passed"))
    return 0


def run_pipeline(path: Path) -> int:
    try:
        definition = load_pipeline(path)
    except ValueError as exc:
        error(f"Pipeline validation failed: {exc}")
        return 1
    result = PipelineRunner(definition).run()
    print(format_pipeline(result))
    return 0 if result.succeeded else 1


def format_pipeline(result: PipelineResult) -> str:
    lines = []
    for stage in [*result.stages, *result.post]:
        line = f"{result.name}::{stage.name} {stage.status}"
        if stage.details:
            line = f"{line} - {stage.details}"
        lines.append(colorize(line, stage.status))
    verdict = "SUCCESS" if result.succeeded else "FAILURE"
    lines.append(colorize(f"Pipeline {verdict}", "passed" if result.succeeded else "failed"))
    return "\n".join(lines)


def parse_extra_vars(items: Sequence[str]) -> dict[str, Any]:
    extra: dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Extra variable '{item}' must be KEY=VALUE")
        extra[key.strip()] = value
    return extra


def write_report(path: Path, results: list[ActionResult]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps([asdict(r) for r in results], indent=2))
    try:
        os.chmod(path, 0o600)
    except OSError:
        logging.debug("Unable to chmod report file %s", path, exc_info=True)


def result_status(result: ActionResult) -> str:
    if result.failed:
        return "unknown" if "unknown operation" in result.details.lower() else "failed"
    if result.skipped:
        return "skipped"
    return "changed" if result.changed else "ok"


def format_result(result: ActionResult) -> str:
    status = result_status(result)
    resource = f"[{result.resource}]" if result.resource else ""
    return colorize(f"{result.host}::{result.action}{resource} {status} - {result.details}", status)


def should_display_result(result: ActionResult, log_level: int) -> bool:
    if result.failed or result.changed:
        return True
    return log_level <= logging.DEBUG


class ProgressLine:
    """A ``pending...`` line that the next printed result overwrites."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream
        self.width = 0

    def show(self, host: HostConfig, action: ActionSpec) -> None:
        resource = action.name or action.data.get("name") or action.data.get("dest")
        suffix = f"[{resource}]" if resource else ""
        line = f"{host.name}::{action.type}{suffix} pending..."
        self.width = len(line)
        stream = self.stream or sys.stdout
        print(colorize(line, "pending", stream), end="\r", file=stream, flush=True)

    def clear(self) -> None:
        if self.width:
            print(" " * self.width, end="\r", file=self.stream or sys.stdout, flush=True)
            self.width = 0


def _strip_braces(expression: str) -> str:
    text = expression.strip()
    if text.startswith("{{") and text.endswith("}}"):
        return text[2:-2].strip()
    return text


def _placeholder_spec(data: dict[str, Any]) -> dict[str, Any]:
    # Templated values are unknown until run time; substitute something parseable.
    spec: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str) and "{{" in value:
            spec[key] = PLACEHOLDERS.get(key, "templated")
        else:
            spec[key] = value
    return spec


PLACEHOLDERS = {
    "gid": "0",
    "strip_components": "0",
    "timeout": "0",
    "state": "present",
    "update_password": "on_create",
    "remote_src": "false",
    "system": "false",
    "create_home": "true",
    "createhome": "true",
    "remove_home": "false",
    "changed": "false",
}


def export_aws_settings(cfg: WlsConfig) -> None:
    """Hand the configured AWS profile/region to boto3 and the aws CLI; the environment wins."""
    for key, value in (
        ("AWS_PROFILE", cfg.aws_profile),
        ("AWS_REGION", cfg.aws_region),
        ("AWS_DEFAULT_REGION", cfg.aws_region),
    ):
        if value:
            os.environ.setdefault(key, value)


@dataclass
class Summary:
    changes: int = 0
    skipped: int = 0
    failures: int = 0

    def add(self, result: ActionResult) -> None:
        status = result_status(result)
        if status in ("failed", "unknown"):
            self.failures += 1
        elif status == "skipped":
            self.skipped += 1
        elif status == "changed":
            self.changes += 1

    def render(self) -> str:
        text = f"Changes: {self.changes} | Skipped: {self.skipped} | Failures: {self.failures}"
        return colorize(text, "failed" if self.failures else "passed")


if __name__ == "__main__":
    raise SystemExit(main())
