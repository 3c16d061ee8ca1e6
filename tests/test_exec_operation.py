from pathlib import Path

from wls_automation.executors import LocalExecutor
from wls_automation.operations.exec import CommandOperation
from wls_automation.types import HostConfig


def test_command_runs(tmp_path: Path) -> None:
    host = HostConfig("local")
    target = tmp_path / "out.txt"
    op = CommandOperation({"name": "write-file", "command": f"echo hi > {target}"})
    result = op.apply(host, LocalExecutor(host))

    assert target.read_text().strip() == "hi"
    assert result.changed is True
    assert "ran" in result.details


def test_command_skips_when_creates_exists(tmp_path: Path) -> None:
    host = HostConfig("local")
    target = tmp_path / "exists"
    target.write_text("present")
    op = CommandOperation({"command": "echo should-not-run", "creates": str(target)})
    result = op.apply(host, LocalExecutor(host))

    assert result.changed is False
    assert "creates" in result.details


def test_command_only_if_and_unless_guards() -> None:
    host = HostConfig("local")
    result_only_if = CommandOperation({"command": "echo skip", "only_if": "false"}).apply(host, LocalExecutor(host))
    result_unless = CommandOperation({"command": "echo skip", "unless": "true"}).apply(host, LocalExecutor(host))

    assert result_only_if.changed is False
    assert "only_if" in result_only_if.details
    assert result_unless.changed is False
    assert "unless" in result_unless.details


def test_command_respects_allowed_returns() -> None:
    host = HostConfig("local")
    ok = CommandOperation({"command": "exit 3", "returns": [0, 3]}).apply(host, LocalExecutor(host))
    fail = CommandOperation({"command": "echo broken >&2; exit 5"}).apply(host, LocalExecutor(host))

    assert ok.changed is True
    assert ok.failed is False
    assert fail.failed is True
    assert fail.details == "rc=5: broken"


def test_command_passes_env() -> None:
    host = HostConfig("local")
    op = CommandOperation({"command": 'test "$FOO" = bar', "env": ["FOO=bar"]})
    result = op.apply(host, LocalExecutor(host))

    assert result.failed is False


def test_probe_reports_no_change_and_checks_stderr() -> None:
    host = HostConfig("local")
    ok = CommandOperation(
        {"command": "echo 'version \"1.8.0_202\"' >&2", "changed": False, "stderr_contains": '"1.8.0'}
    ).apply(host, LocalExecutor(host))
    bad = CommandOperation(
        {"command": "echo 'version \"17.0.2\"' >&2", "changed": False, "stderr_contains": '"1.8.0'}
    ).apply(host, LocalExecutor(host))

    assert ok.changed is False
    assert ok.failed is False
    assert bad.failed is True
    assert "stderr missing" in bad.details


def test_probe_still_runs_in_dry_run(tmp_path: Path) -> None:
    host = HostConfig("local")
    op = CommandOperation({"command": "echo probe", "changed": "no", "stdout_contains": "probe"})
    result = op.apply(host, LocalExecutor(host, dry_run=True))

    assert result.failed is False
    assert result.changed is False


def test_dry_run_skips_mutating_command(tmp_path: Path) -> None:
    host = HostConfig("local")
    target = tmp_path / "out.txt"
    result = CommandOperation({"command": f"touch {target}"}).apply(host, LocalExecutor(host, dry_run=True))

    assert result.details == "dry-run"
    assert not target.exists()
