"""
Pendulum Control Utilities Package

This package provides shared utilities for the pendulum control project:
- Configuration loading (YAML/JSON with environment variable overrides)
- JSON export of history and reports
- Plotting utilities for history visualization
- Evaluation metrics

Design Philosophy:
- Utilities are stateless where possible
- Configuration supports both file-based and environment variable sources
- Plots are produced from history buffers only
"""

import datetime
import json
import logging
import math
import os
from pathlib import Path

import numpy as np
import yaml
from dotenv import load_dotenv

from .metrics import (
    EpisodeMetrics,
    SuccessCriteria,
    compute_control_effort,
    compute_episode_metrics,
    compute_saturation_ratio,
    compute_settling_tick,
    format_metrics_report,
)

__all__ = [
    "load_config",
    "get_default_config",
    "save_json",
    "Plotter",
    # Metrics
    "EpisodeMetrics",
    "SuccessCriteria",
    "compute_settling_tick",
    "compute_control_effort",
    "compute_saturation_ratio",
    "compute_episode_metrics",
    "format_metrics_report",
]

logger = logging.getLogger(__name__)


def get_default_config() -> dict:
    """
    Get default configuration values.

    These reproduce the reference scenario: a 10 m frictionless pendulum
    released 0.5 rad past upright, controlled toward pi.

    Returns:
        Dictionary with default configuration values.
    """
    return {
        "simulation": {
            "dt": 0.05,  # seconds, fixed tick
            "gravity": 9.8,  # m/s^2
        },
        "pendulum": {
            "length": 10.0,  # m
            "friction": 0.0,
            "control_power": 5.0,
        },
        "initial_state": {
            "angle": math.pi + 0.5,  # rad
            "angular_velocity": 0.1,  # rad/s
        },
        "pid": {
            "set_point": math.pi,
            "proportional_gain": -8.0,
            "integral_gain": -5.5,
            "derivative_gain": -4.0,
            "enable_threshold": 0.05,
        },
        "lqr": {
            "set_point": math.pi,
            "position_cost": 1.0,
            "velocity_cost": 1.0,
            "control_cost": 1.0,
            "tolerance": 1e-7,
            "max_iterations": 10000,
            "method": "iterative",
            "cache_gain": False,
        },
        "history": {
            "capacity": 12000,  # ticks, ten minutes at 20 Hz
        },
        "logging": {
            "level": "INFO",
            "output_dir": "reports",
        },
    }


def load_config(
    config_path: str | Path | None = None,
    load_env: bool = True,
) -> dict:
    """
    Build the scenario configuration for a pendulum run.

    A scenario file usually only names what it changes, e.g. a longer rod
    or retuned PID gains; every other key keeps its default. Sources, from
    highest to lowest priority:
    1. PENDULUM_* environment variables (a .env file is read first)
    2. Scenario file (YAML or JSON)
    3. get_default_config()

    Environment variables override config file values:
    - PENDULUM_DT -> config["simulation"]["dt"]
    - PENDULUM_GRAVITY -> config["simulation"]["gravity"]
    - PENDULUM_LENGTH -> config["pendulum"]["length"]
    - PENDULUM_FRICTION -> config["pendulum"]["friction"]
    - PENDULUM_CONTROL_POWER -> config["pendulum"]["control_power"]
    - PENDULUM_PID_SET_POINT -> config["pid"]["set_point"]
    - PENDULUM_LQR_SET_POINT -> config["lqr"]["set_point"]
    - PENDULUM_HISTORY_CAPACITY -> config["history"]["capacity"]

    Args:
        config_path: Path to YAML or JSON configuration file.
                    If None, only defaults and env vars are used.
        load_env: Whether to load .env file and apply env var overrides.

    Returns:
        Merged configuration dictionary.

    Raises:
        FileNotFoundError: If config_path is specified but file doesn't exist.
        PermissionError: If config file cannot be read.
        ValueError: If config file format is unsupported or malformed.
    """
    config = get_default_config()

    if config_path is not None:
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if not config_path.is_file():
            raise ValueError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path) as f:
                if config_path.suffix in (".yaml", ".yml"):
                    file_config = yaml.safe_load(f)
                elif config_path.suffix == ".json":
                    file_config = json.load(f)
                else:
                    raise ValueError(f"Unsupported config format: {config_path.suffix}")
        except PermissionError as e:
            raise PermissionError(
                f"Cannot read configuration file: {config_path}"
            ) from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValueError(f"Malformed configuration file: {config_path}") from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ValueError(
                    f"Configuration file must contain a mapping: {config_path}"
                )
            config = _deep_merge(config, file_config)
            logger.debug(
                "Scenario %s overrides sections: %s",
                config_path,
                ", ".join(sorted(map(str, file_config))),
            )

    if load_env:
        load_dotenv()
        config = _apply_env_overrides(config)

    return config


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Overlay a partial scenario on top of a full configuration.

    Sections such as "pid" or "lqr" merge key by key, so a file setting only
    lqr.position_cost keeps the remaining LQR defaults. Non-dict values,
    including full Q/R matrices given as nested lists, replace wholesale.

    Args:
        base: Complete configuration.
        override: Partial configuration whose values win.

    Returns:
        New merged dictionary; neither input is modified.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _json_serializer(obj):
    """
    JSON fallback for history dumps and metrics reports.

    Handles:
    - numpy arrays (gain and Riccati matrices, state errors) -> nested lists
    - numpy scalars (float64 angles, bool_ flags) -> Python numbers
    - datetime objects -> ISO format strings
    - Path objects (plot and report locations) -> strings

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError("Object is not JSON serializable")


def save_json(data, path: str | Path) -> Path:
    """
    Write data as indented JSON, creating parent directories.

    Args:
        data: JSON-compatible data (numpy arrays allowed).
        path: Output file path.

    Returns:
        Path to the written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2, default=_json_serializer)
    return path


# (env var, section, key, type)
_ENV_OVERRIDES = (
    ("PENDULUM_DT", "simulation", "dt", float),
    ("PENDULUM_GRAVITY", "simulation", "gravity", float),
    ("PENDULUM_LENGTH", "pendulum", "length", float),
    ("PENDULUM_FRICTION", "pendulum", "friction", float),
    ("PENDULUM_CONTROL_POWER", "pendulum", "control_power", float),
    ("PENDULUM_PID_SET_POINT", "pid", "set_point", float),
    ("PENDULUM_LQR_SET_POINT", "lqr", "set_point", float),
    ("PENDULUM_HISTORY_CAPACITY", "history", "capacity", int),
)


def _apply_env_overrides(config: dict) -> dict:
    """
    Apply environment variable overrides to configuration.

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with env var overrides applied.
    """
    for env_var, section, key, type_fn in _ENV_OVERRIDES:
        value = os.getenv(env_var)
        if value is None:
            continue
        try:
            config.setdefault(section, {})[key] = type_fn(value)
        except ValueError:
            logger.warning("Invalid value for %s: '%s', using default", env_var, value)

    return config


class Plotter:
    """
    Plotting utility for history visualization.

    Provides standardized plots for pendulum runs:
    - Angle against the set point over time
    - Applied control over time
    - PID error and accumulator over time

    Attributes:
        figsize (tuple): Default figure size.
        style (str): Matplotlib style to use.
    """

    def __init__(self, figsize: tuple[int, int] = (10, 6), style: str = "default"):
        """
        Initialize plotter.

        Args:
            figsize: Default figure size (width, height) in inches.
            style: Matplotlib style name.
        """
        self.figsize = figsize
        self.style = style

    def plot_history(
        self,
        history,
        set_point: float | None = None,
        title: str = "Pendulum History",
        save_path: str | Path | None = None,
    ):
        """
        Plot angle, control and (when present) PID series over time.

        Args:
            history: HistoryRecorder to plot.
            set_point: Optional set point drawn as a reference line.
            title: Figure title.
            save_path: Optional path to save figure.

        Returns:
            Tuple of (figure, axes array).
        """
        import matplotlib.pyplot as plt

        with plt.style.context(self.style):
            fig, axes = plt.subplots(2, 1, figsize=self.figsize, sharex=True)

            ax = axes[0]
            ax.plot(history.times("angle"), history.get("angle"), label="Angle")
            if set_point is not None:
                ax.axhline(set_point, color="k", linestyle="--", label="Set point")
            ax.set_ylabel("Angle (rad)")
            ax.set_title(title)
            ax.legend()
            ax.grid(True)

            ax = axes[1]
            ax.plot(history.times("control"), history.control, label="Control")
            if len(history.error) > 0:
                ax.plot(history.times("error"), history.error, label="Error")
                ax.plot(
                    history.times("accumulator"),
                    history.accumulator,
                    label="Accumulator",
                )
            ax.set_xlabel("Time (s)")
            ax.set_ylabel("Value")
            ax.legend()
            ax.grid(True)

            fig.tight_layout()

        if save_path:
            fig.savefig(save_path)
        return fig, axes
