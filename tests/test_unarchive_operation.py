import io
import subprocess
import tarfile
from pathlib import Path

import pytest

from wls_automation.executors import CommandResult, LocalExecutor
from wls_automation.operations import unarchive as unarchive_mod
from wls_automation.operations.java_version import JavaVersionOperation
from wls_automation.operations.unarchive import UnarchiveOperation
from wls_automation.types import HostConfig


class RecordingExecutor(LocalExecutor):
    def __init__(self, dry_run: bool = False):
        super().__init__(HostConfig(name="local"), dry_run=dry_run)
        self.commands: list[tuple[str, ...]] = []

    def run(self, command, *, check=True, mutable=True, **kwargs):  # type: ignore[override]
        self.commands.append(tuple(command))
        return CommandResult(list(command), "", "", 0)


def _make_jdk_tarball(path: Path) -> None:
    with tarfile.open(path, "w:gz") as tar:
        payload = b"#!/bin/sh\necho 'java version \"1.8.0_202\"' >&2\n"
        info = tarfile.TarInfo("jdk1.8.0_202/bin/java")
        info.size = len(payload)
        info.mode = 0o755
        tar.addfile(info, io.BytesIO(payload))


def test_builds_tar_command_with_strip_components(tmp_path: Path):
    archive = tmp_path / "jdk.tar.gz"
    archive.write_bytes(b"")
    dest = tmp_path / "jdk"
    executor = RecordingExecutor()
    op = UnarchiveOperation(
        {"src": str(archive), "dest": str(dest), "remote_src": True, "extra_opts": ["--strip-components=1"]}
    )

    result = op.apply(HostConfig("local"), executor)

    assert result.changed is True
    assert dest.is_dir()
    assert executor.commands == [("tar", "-xf", str(archive), "-C", str(dest), "--strip-components=1")]


def test_extracts_with_top_level_directory_stripped(tmp_path: Path):
    archive = tmp_path / "jdk.tar.gz"
    _make_jdk_tarball(archive)
    dest = tmp_path / "oracle" / "jdk"
    host = HostConfig("local")
    op = UnarchiveOperation({"src": str(archive), "dest": str(dest), "strip_components": 1})

    result = op.apply(host, LocalExecutor(host))

    assert result.changed is True
    assert (dest / "bin" / "java").exists()
    assert not (dest / "jdk1.8.0_202").exists()


def test_skips_when_creates_exists(tmp_path: Path):
    dest = tmp_path / "jdk"
    (dest / "bin").mkdir(parents=True)
    (dest / "bin" / "java").write_text("")
    executor = RecordingExecutor()
    op = UnarchiveOperation(
        {"src": "https://example.invalid/jdk.tar.gz", "dest": str(dest), "creates": str(dest / "bin" / "java")}
    )

    result = op.apply(HostConfig("local"), executor)

    assert result.changed is False
    assert "skipped (creates" in result.details
    assert executor.commands == []


def test_downloads_remote_source_and_cleans_up(tmp_path: Path, monkeypatch):
    downloaded: list[Path] = []

    class StubFetcher:
        def __init__(self, executor):  # noqa: ARG002
            pass

        def fetch(self, source: str):
            assert source == "https://example.invalid/jdk.tar.gz"
            path = tmp_path / "download.tar.gz"
            path.write_bytes(b"data")
            downloaded.append(path)
            return path, True

        @staticmethod
        def cleanup(path: Path) -> None:
            path.unlink()

    monkeypatch.setattr(unarchive_mod, "ArchiveFetcher", StubFetcher)
    executor = RecordingExecutor()
    op = UnarchiveOperation(
        {"src": "https://example.invalid/jdk.tar.gz", "remote_src": True, "dest": str(tmp_path / "jdk")}
    )

    result = op.apply(HostConfig("local"), executor)

    assert result.changed is True
    assert executor.commands[0][:3] == ("tar", "-xf", str(downloaded[0]))
    assert not downloaded[0].exists()


def test_fetcher_uses_curl_for_http(tmp_path: Path):
    executor = RecordingExecutor()
    fetcher = unarchive_mod.ArchiveFetcher(executor)

    path, temporary = fetcher.fetch("https://example.invalid/jdk-8u202.tar.gz")
    try:
        assert temporary is True
        assert path.name.endswith(".tar.gz")
        assert executor.commands == [("curl", "-fsSL", "https://example.invalid/jdk-8u202.tar.gz", "-o", str(path))]
    finally:
        unarchive_mod.ArchiveFetcher.cleanup(path)


def test_relative_source_resolves_against_plan_dir(tmp_path: Path):
    (tmp_path / "files").mkdir()
    archive = tmp_path / "files" / "jdk.tar.gz"
    archive.write_bytes(b"")
    executor = RecordingExecutor()
    op = UnarchiveOperation({"src": "files/jdk.tar.gz", "dest": str(tmp_path / "jdk"), "_plan_dir": str(tmp_path)})

    op.apply(HostConfig("local"), executor)

    assert executor.commands[0][2] == str(archive)


def test_sets_ownership_when_requested(tmp_path: Path):
    archive = tmp_path / "jdk.tar.gz"
    archive.write_bytes(b"")
    dest = tmp_path / "jdk"
    executor = RecordingExecutor()
    op = UnarchiveOperation({"src": str(archive), "dest": str(dest), "owner": "oracle", "group": "oinstall"})

    result = op.apply(HostConfig("local"), executor)

    assert ("chown", "-R", "oracle:oinstall", str(dest)) in executor.commands
    assert "owner->oracle:oinstall" in result.details


def test_dry_run_does_not_extract(tmp_path: Path):
    executor = RecordingExecutor(dry_run=True)
    dest = tmp_path / "jdk"
    op = UnarchiveOperation({"src": "https://example.invalid/jdk.tar.gz", "dest": str(dest)})

    result = op.apply(HostConfig("local"), executor)

    assert result.changed is True
    assert "dry-run" in result.details
    assert executor.commands == []
    assert not dest.exists()


def test_missing_local_archive_raises(tmp_path: Path):
    op = UnarchiveOperation({"src": str(tmp_path / "missing.tar.gz"), "dest": str(tmp_path / "jdk")})
    with pytest.raises(FileNotFoundError):
        op.apply(HostConfig("local"), RecordingExecutor())


def test_requires_src_and_dest():
    with pytest.raises(ValueError):
        UnarchiveOperation({"dest": "/tmp/jdk"})
    with pytest.raises(ValueError):
        UnarchiveOperation({"src": "/tmp/jdk.tar.gz"})


def test_scenario_stub_jdk_extracts_and_passes_version_check(tmp_path: Path):
    script = Path(__file__).resolve().parent / "fixtures" / "make_stub_jdk.sh"
    archive = tmp_path / "jdk-stub.tar.gz"
    subprocess.run(["sh", str(script), str(archive)], check=True)
    dest = tmp_path / "oracle" / "jdk"
    host = HostConfig("local")
    executor = LocalExecutor(host)
    unarchive = UnarchiveOperation(
        {
            "src": f"file://{archive}",
            "dest": str(dest),
            "remote_src": True,
            "extra_opts": ["--strip-components=1"],
            "creates": str(dest / "bin" / "java"),
        }
    )

    first = unarchive.apply(host, executor)
    version = JavaVersionOperation({"java_home": str(dest), "version": "1.8.0"}).apply(host, executor)
    second = unarchive.apply(host, executor)

    assert first.changed is True
    assert version.failed is False
    assert second.changed is False
