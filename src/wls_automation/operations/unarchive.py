from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

from .base import Operation
from ..executors import Executor
from ..templating import to_bool
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)

STRIP_RE = re.compile(r"^--strip-components=(\d+)$")


class ArchiveFetcher:
    """Brings an archive onto the host so ``tar`` can read it."""

    def __init__(self, executor: Executor):
        self.executor = executor

    def fetch(self, source: str) -> tuple[Path, bool]:
        """Return the local archive path and whether it is a temporary download."""
        if source.startswith("file://"):
            return self._local(source[7:]), False
        if not source.startswith(("http://", "https://", "s3://")):
            return self._local(source), False

        suffix = "".join(Path(source.split("?", 1)[0]).suffixes[-2:])
        tmp_fd, tmp_name = tempfile.mkstemp(prefix="wls-fetch-", suffix=suffix)
        os.close(tmp_fd)
        tmp_path = Path(tmp_name)
        logger.debug("Fetching %s into %s", source, tmp_path)
        try:
            if source.startswith("s3://"):
                self.executor.run(["aws", "s3", "cp", source, str(tmp_path)])
            else:
                self.executor.run(["curl", "-fsSL", source, "-o", str(tmp_path)])
        except BaseException:
            self.cleanup(tmp_path)
            raise
        return tmp_path, True

    @staticmethod
    def _local(path: str) -> Path:
        local = Path(path)
        if not local.exists():
            raise FileNotFoundError(f"Archive {path} not found")
        return local

    @staticmethod
    def cleanup(path: Path) -> None:
        path.unlink(missing_ok=True)


class UnarchiveOperation(Operation):
    """Extract a tarball into ``dest``, optionally dropping leading path components."""

    action = "unarchive"

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        self.src = self._require(spec, "src", "unarchive")
        self.dest = Path(self._require(spec, "dest", "unarchive"))
        self.remote_src = to_bool(spec.get("remote_src", False))
        self.creates = Path(str(spec["creates"])) if spec.get("creates") else None
        self.owner = self._optional_str(spec.get("owner"))
        self.group = self._optional_str(spec.get("group"))
        self.plan_dir = Path(str(spec["_plan_dir"])) if spec.get("_plan_dir") else None

        raw_opts = spec.get("extra_opts") or []
        if isinstance(raw_opts, str):
            raw_opts = raw_opts.split()
        self.extra_opts: list[str] = []
        strip_from_opts: Optional[int] = None
        for opt in raw_opts:
            match = STRIP_RE.match(str(opt))
            if match:
                strip_from_opts = int(match.group(1))
            else:
                self.extra_opts.append(str(opt))

        raw_strip = spec.get("strip_components")
        if raw_strip is not None:
            self.strip_components = int(raw_strip)
        else:
            self.strip_components = strip_from_opts or 0
        if self.strip_components < 0:
            raise ValueError("unarchive strip_components must not be negative")

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        if self.creates and executor.path_exists(self.creates):
            return self.result(host, changed=False, details=f"skipped (creates {self.creates})")

        _, dest_detail = executor.ensure_directory(self.dest)
        if executor.dry_run:
            return self.result(host, changed=True, details=f"dry-run (extract {self.source} -> {self.dest})")

        fetcher = ArchiveFetcher(executor)
        archive, temporary = fetcher.fetch(self.source)
        try:
            executor.run(self.tar_command(archive))
        finally:
            if temporary:
                ArchiveFetcher.cleanup(archive)

        details = [f"extracted {self.source}"]
        if dest_detail == "created":
            details.insert(0, f"created {self.dest}")
        if self.owner or self.group:
            owner = f"{self.owner or ''}:{self.group or ''}"
            executor.run(["chown", "-R", owner, str(self.dest)])
            details.append(f"owner->{owner}")
        return self.result(host, changed=True, details=", ".join(details))

    @property
    def source(self) -> str:
        if self.remote_src or "://" in self.src:
            return self.src
        path = Path(self.src).expanduser()
        if not path.is_absolute() and self.plan_dir is not None:
            path = self.plan_dir / path
        return str(path)

    def tar_command(self, archive: Path) -> list[str]:
        cmd = ["tar", "-xf", str(archive), "-C", str(self.dest)]
        if self.strip_components:
            cmd.append(f"--strip-components={self.strip_components}")
        cmd.extend(self.extra_opts)
        return cmd
