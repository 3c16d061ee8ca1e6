from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG = Path("/etc/wls-provisioner/main.conf")
DEFAULT_PLAN = Path("/etc/wls-provisioner/plan.toml")
DEFAULT_PIPELINE = Path("pipeline.toml")


@dataclass
class WlsConfig:
    plan: Path = DEFAULT_PLAN
    state_file: Optional[Path] = None
    vars_files: list[Path] = field(default_factory=list)
    pipeline: Path = DEFAULT_PIPELINE
    aws_region: Optional[str] = None
    aws_profile: Optional[str] = None


def load_config(path: Path) -> WlsConfig:
    if not path.exists():
        return WlsConfig()
    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"{path}: {exc}") from None
    defaults = data.get("defaults", {})
    state_file = defaults.get("state_file")
    raw_vars_files = defaults.get("vars_files", [])
    if isinstance(raw_vars_files, str):
        raw_vars_files = [raw_vars_files]
    aws_region = defaults.get("aws_region")
    aws_profile = defaults.get("aws_profile")
    return WlsConfig(
        plan=Path(defaults.get("plan", DEFAULT_PLAN)),
        state_file=Path(state_file) if state_file else None,
        vars_files=[Path(p) for p in raw_vars_files],
        pipeline=Path(defaults.get("pipeline", DEFAULT_PIPELINE)),
        aws_region=str(aws_region) if aws_region else None,
        aws_profile=str(aws_profile) if aws_profile else None,
    )
