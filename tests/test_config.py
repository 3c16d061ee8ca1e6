from pathlib import Path

import pytest

from wls_automation.config import WlsConfig, load_config


def test_load_config_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "missing.conf")
    assert isinstance(config, WlsConfig)
    assert config.plan == Path("/etc/wls-provisioner/plan.toml")
    assert config.vars_files == []
    assert config.state_file is None


def test_load_config_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "main.conf"
    cfg_path.write_text(
        """
        [defaults]
        plan = "/opt/wls/plan.toml"
        state_file = "/var/lib/wls/last-run.json"
        vars_files = ["/etc/wls/site.toml", "/etc/wls/secrets.toml"]
        pipeline = "/opt/wls/pipeline.toml"
        aws_region = "ap-southeast-2"
        aws_profile = "provisioning"
        """
    )

    config = load_config(cfg_path)
    assert config.plan == Path("/opt/wls/plan.toml")
    assert config.state_file == Path("/var/lib/wls/last-run.json")
    assert config.vars_files == [Path("/etc/wls/site.toml"), Path("/etc/wls/secrets.toml")]
    assert config.pipeline == Path("/opt/wls/pipeline.toml")
    assert config.aws_region == "ap-southeast-2"
    assert config.aws_profile == "provisioning"


def test_single_vars_file_string(tmp_path: Path) -> None:
    cfg_path = tmp_path / "main.conf"
    cfg_path.write_text('[defaults]\nvars_files = "/etc/wls/site.toml"\n')

    assert load_config(cfg_path).vars_files == [Path("/etc/wls/site.toml")]


def test_invalid_config_raises(tmp_path: Path) -> None:
    cfg_path = tmp_path / "main.conf"
    cfg_path.write_text("[defaults\n")

    with pytest.raises(ValueError):
        load_config(cfg_path)
