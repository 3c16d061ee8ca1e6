from __future__ import annotations

from pathlib import Path
from typing import Any
import logging

from .base import Operation
from .exec import summarize_output
from ..executors import Executor
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_VERSION = "1.8.0"


def version_matches(output: str, required: str) -> bool:
    """True when ``output`` reports a quoted version starting with ``required``.

    ``java -version`` prints e.g. ``openjdk version "1.8.0_292"``; matching on the
    opening quote keeps ``"11.8.0"`` from satisfying ``1.8.0``.
    """
    return f'"{required}' in output


class JavaVersionOperation(Operation):
    """Assert the installed JDK reports the required version. Never changes the host."""

    action = "java_version"

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        java = spec.get("java")
        java_home = spec.get("java_home")
        if java:
            self.java = Path(str(java))
        elif java_home:
            self.java = Path(str(java_home)) / "bin" / "java"
        else:
            raise ValueError("java_version operation requires java or java_home")
        self.required = str(spec.get("version") or DEFAULT_REQUIRED_VERSION)

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        try:
            result = executor.run([str(self.java), "-version"], check=False, mutable=False)
        except FileNotFoundError:
            return self.result(host, changed=False, details=f"{self.java} not found", failed=True)

        if result.returncode != 0:
            summary = summarize_output(result) or "no output"
            return self.result(host, changed=False, details=f"rc={result.returncode}: {summary}", failed=True)

        # The JVM reports on stderr; some wrappers echo it to stdout instead.
        for stream in (result.stderr, result.stdout):
            if stream and version_matches(stream, self.required):
                logger.debug("java=%s matches %s", self.java, self.required)
                return self.result(host, changed=False, details=f"version {self.required}")

        reported = summarize_output(result) or "no version output"
        return self.result(
            host,
            changed=False,
            details=f"expected {self.required}, got: {reported}",
            failed=True,
        )
