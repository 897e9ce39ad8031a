"""
Pendulum Control Research Package

A Python sandbox for stabilizing a single-degree-of-freedom inverted pendulum
with PID and LQR feedback controllers.

Subpackages:
- env: Pendulum dynamics, fixed-step integrator and history buffers
- controllers: PID and Riccati-LQR controllers
- simulation: Per-tick orchestration of pendulum entities
- utils: Configuration, plotting, and metrics utilities
- eval: Headless controller evaluation pipeline
"""

import importlib.metadata

try:
    # Retrieve the version from installed package metadata
    __version__ = importlib.metadata.version("pendulum-control")
except importlib.metadata.PackageNotFoundError:
    # Fallback for when the package is not installed
    __version__ = "0.0.0-dev"

from pendulum_control.controllers import (
    BaseController,
    DidNotConvergeError,
    LQRController,
    PIDController,
    SingularGainMatrixError,
    solve_dare,
)
from pendulum_control.env import (
    EnvConfig,
    HistoryRecorder,
    PendulumModel,
    PendulumParams,
    PendulumState,
)
from pendulum_control.simulation import PendulumEntity, Simulation
from pendulum_control.utils import (
    EpisodeMetrics,
    Plotter,
    SuccessCriteria,
    compute_episode_metrics,
    get_default_config,
    load_config,
)

__all__ = [
    "Simulation",
    "PendulumEntity",
    "PendulumModel",
    "PendulumState",
    "PendulumParams",
    "HistoryRecorder",
    "EnvConfig",
    "BaseController",
    "LQRController",
    "PIDController",
    "solve_dare",
    "DidNotConvergeError",
    "SingularGainMatrixError",
    "load_config",
    "get_default_config",
    "Plotter",
    # Metrics
    "EpisodeMetrics",
    "SuccessCriteria",
    "compute_episode_metrics",
]
