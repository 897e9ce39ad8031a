"""
Inverted Pendulum Environment Package

This package provides the physical side of the pendulum sandbox: parameters,
state, the nonlinear dynamics, the fixed-step integrator and the per-entity
history buffers consumed by plotting.

Angle Convention:
    - angle = 0: pendulum hangs straight down (stable equilibrium)
    - angle = pi: pendulum points straight up (unstable equilibrium)
    - Cartesian bob position: x = L*sin(angle), y = -L*cos(angle)

State Vector Layout:
    angle:            radians
    angular_velocity: rad/s

Control:
    A scalar clamped to [-1, 1]; it adds control * control_power to the
    angular acceleration.

Integration:
    Semi-implicit (symplectic) Euler with a fixed tick dt = 0.05 s and
    gravity g = 9.8 m/s^2. The same constants feed the LQR linearization.
"""

from .config import (
    EnvConfig,
    HistoryParams,
    InitialState,
    LoggingParams,
    LQRParams,
    PendulumParams,
    PIDParams,
    SimulationParams,
)
from .history import HistoryRecorder
from .pendulum import (
    CONTROL_MAX,
    CONTROL_MIN,
    PendulumModel,
    PendulumState,
    acceleration,
    clamp_control,
    mechanical_energy,
    semi_implicit_euler_step,
    to_cartesian,
)

__all__ = [
    # Main classes
    "PendulumModel",
    "PendulumState",
    "HistoryRecorder",
    # Dynamics
    "acceleration",
    "semi_implicit_euler_step",
    "to_cartesian",
    "mechanical_energy",
    "clamp_control",
    "CONTROL_MIN",
    "CONTROL_MAX",
    # Configuration
    "EnvConfig",
    "PendulumParams",
    "SimulationParams",
    "InitialState",
    "PIDParams",
    "LQRParams",
    "HistoryParams",
    "LoggingParams",
]
