"""Tests for configuration loading utilities."""

import json
import math
import os
from unittest import mock

import pytest


def test_get_default_config_has_required_keys():
    """Test that default config has all required sections."""
    from pendulum_control.utils import get_default_config

    config = get_default_config()

    for section in (
        "simulation",
        "pendulum",
        "initial_state",
        "pid",
        "lqr",
        "history",
        "logging",
    ):
        assert section in config


def test_get_default_config_values():
    """Test that default config reproduces the reference scenario."""
    from pendulum_control.utils import get_default_config

    config = get_default_config()

    assert config["simulation"]["dt"] == 0.05
    assert config["simulation"]["gravity"] == 9.8
    assert config["pendulum"]["length"] == 10.0
    assert config["pendulum"]["friction"] == 0.0
    assert config["pendulum"]["control_power"] == 5.0
    assert config["initial_state"]["angle"] == pytest.approx(math.pi + 0.5)
    assert config["pid"]["proportional_gain"] == -8.0
    assert config["pid"]["integral_gain"] == -5.5
    assert config["pid"]["derivative_gain"] == -4.0
    assert config["lqr"]["control_cost"] == 1.0
    assert config["history"]["capacity"] == 12000


def test_load_config_without_file():
    """Test config loading with defaults only."""
    from pendulum_control.utils import load_config

    config = load_config(config_path=None, load_env=False)

    assert config["simulation"]["dt"] == 0.05
    assert config["lqr"]["method"] == "iterative"


def test_load_config_yaml_merges_sections(tmp_path):
    """Test a YAML file overrides only the keys it names."""
    from pendulum_control.utils import load_config

    path = tmp_path / "scenario.yaml"
    path.write_text("pendulum:\n  friction: 0.3\npid:\n  integral_gain: -2.0\n")

    config = load_config(path, load_env=False)

    assert config["pendulum"]["friction"] == 0.3
    assert config["pendulum"]["length"] == 10.0
    assert config["pid"]["integral_gain"] == -2.0
    assert config["pid"]["proportional_gain"] == -8.0


def test_load_config_json(tmp_path):
    """Test JSON configuration files are accepted."""
    from pendulum_control.utils import load_config

    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({"lqr": {"position_cost": 4.0}}))

    config = load_config(path, load_env=False)
    assert config["lqr"]["position_cost"] == 4.0


def test_load_config_missing_file(tmp_path):
    """Test a missing file raises FileNotFoundError."""
    from pendulum_control.utils import load_config

    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml", load_env=False)


def test_load_config_unsupported_format(tmp_path):
    """Test unknown suffixes are rejected."""
    from pendulum_control.utils import load_config

    path = tmp_path / "scenario.toml"
    path.write_text("[pendulum]\nlength = 2.0\n")

    with pytest.raises(ValueError, match="Unsupported config format"):
        load_config(path, load_env=False)


def test_load_config_malformed_yaml(tmp_path):
    """Test malformed YAML raises ValueError."""
    from pendulum_control.utils import load_config

    path = tmp_path / "broken.yaml"
    path.write_text("pendulum: [unclosed\n")

    with pytest.raises(ValueError, match="Malformed"):
        load_config(path, load_env=False)


def test_load_config_requires_mapping(tmp_path):
    """Test a top-level list is rejected."""
    from pendulum_control.utils import load_config

    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")

    with pytest.raises(ValueError, match="mapping"):
        load_config(path, load_env=False)


def test_load_config_env_override():
    """Test that environment variables override defaults."""
    from pendulum_control.utils import load_config

    with mock.patch.dict(
        os.environ,
        {"PENDULUM_LENGTH": "2.5", "PENDULUM_HISTORY_CAPACITY": "100"},
    ):
        config = load_config(config_path=None, load_env=True)
        assert config["pendulum"]["length"] == 2.5
        assert config["history"]["capacity"] == 100


def test_load_config_env_overrides_file(tmp_path):
    """Test environment variables take precedence over the file."""
    from pendulum_control.utils import load_config

    path = tmp_path / "scenario.yaml"
    path.write_text("lqr:\n  set_point: 3.0\n")

    with mock.patch.dict(os.environ, {"PENDULUM_LQR_SET_POINT": "3.2"}):
        config = load_config(path, load_env=True)
        assert config["lqr"]["set_point"] == 3.2


def test_load_config_invalid_env_value_ignored():
    """Test a non-numeric override keeps the default."""
    from pendulum_control.utils import load_config

    with mock.patch.dict(os.environ, {"PENDULUM_DT": "fast"}):
        config = load_config(config_path=None, load_env=True)
        assert config["simulation"]["dt"] == 0.05


def test_env_config_round_trip():
    """Test EnvConfig.to_dict feeds back into from_dict unchanged."""
    from pendulum_control.env import EnvConfig

    original = EnvConfig.from_dict(
        {"pendulum": {"friction": 0.2}, "lqr": {"method": "scipy"}}
    )
    restored = EnvConfig.from_dict(original.to_dict())

    assert restored == original
    assert restored.pendulum.friction == 0.2
    assert restored.lqr.method == "scipy"


def test_env_config_flat_simulation_keys():
    """Test top-level dt and gravity are read into the simulation section."""
    from pendulum_control.env import EnvConfig

    config = EnvConfig.from_dict({"dt": 0.01, "gravity": 1.62})

    assert config.simulation.dt == 0.01
    assert config.simulation.gravity == 1.62


def test_env_config_validates_pendulum():
    """Test non-physical parameters are rejected."""
    from pendulum_control.env import EnvConfig

    with pytest.raises(ValueError, match="length"):
        EnvConfig.from_dict({"pendulum": {"length": -1.0}})
    with pytest.raises(ValueError, match="friction"):
        EnvConfig.from_dict({"pendulum": {"friction": -0.1}})
