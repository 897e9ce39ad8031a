"""
Pendulum Dynamics Module

Single-degree-of-freedom pendulum with viscous friction and a saturated
actuator, advanced by a fixed-step semi-implicit (symplectic) Euler scheme.

State Layout:
    angle:            radians, 0 hangs straight down, pi is upright
    angular_velocity: rad/s

Dynamics:
    angular_acceleration = -g * sin(angle) / length - friction * angular_velocity
                           + control * control_power

The control signal is always clamped to [-1, 1] before it reaches the
integrator.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np

from .config import PendulumParams, SimulationParams

logger = logging.getLogger(__name__)

# Actuator saturation interval
CONTROL_MIN = -1.0
CONTROL_MAX = 1.0


def clamp_control(value: float) -> float:
    """Clamp a control value to [CONTROL_MIN, CONTROL_MAX]."""
    return float(np.clip(value, CONTROL_MIN, CONTROL_MAX))


@dataclass
class PendulumState:
    """Angular position and velocity of the pendulum."""

    angle: float = math.pi + 0.5
    angular_velocity: float = 0.1

    def copy(self) -> "PendulumState":
        """Return an independent copy of the state."""
        return PendulumState(self.angle, self.angular_velocity)


def acceleration(state: PendulumState, params: PendulumParams, gravity: float) -> float:
    """
    Uncontrolled angular acceleration of the pendulum.

    Args:
        state: Current pendulum state.
        params: Physical parameters.
        gravity: Gravitational acceleration in m/s^2.

    Returns:
        Angular acceleration in rad/s^2.
    """
    return (
        -gravity * math.sin(state.angle) / params.length
        - params.friction * state.angular_velocity
    )


def semi_implicit_euler_step(
    state: PendulumState,
    params: PendulumParams,
    control: float,
    dt: float,
    gravity: float,
) -> PendulumState:
    """
    Advance the state by one tick.

    Velocity is updated first and the updated velocity advances the angle.

    Args:
        state: Pre-tick state.
        params: Physical parameters.
        control: Already clamped control signal in [-1, 1].
        dt: Time step in seconds.
        gravity: Gravitational acceleration in m/s^2.

    Returns:
        Post-tick state.
    """
    angular_velocity = state.angular_velocity + (
        acceleration(state, params, gravity) + control * params.control_power
    ) * dt
    angle = state.angle + angular_velocity * dt
    return PendulumState(angle=angle, angular_velocity=angular_velocity)


def to_cartesian(length: float, angle: float) -> tuple[float, float]:
    """
    Convert a pendulum angle to the bob position relative to the pivot.

    Args:
        length: Pendulum length.
        angle: Pendulum angle in radians.

    Returns:
        Tuple (x, y), with y pointing up.
    """
    x = length * math.sin(angle)
    y = -length * math.cos(angle)
    return x, y


def mechanical_energy(
    state: PendulumState, params: PendulumParams, gravity: float
) -> float:
    """
    Total mechanical energy per unit mass.

    E = 0.5 * L^2 * da^2 + g * L * (1 - cos(angle))
    """
    length = params.length
    return 0.5 * length**2 * state.angular_velocity**2 + gravity * length * (
        1.0 - math.cos(state.angle)
    )


class PendulumModel:
    """
    Physical pendulum: state, parameters and the applied control signal.

    The model is the single point where saturation is enforced. Anything
    written through set_control is clamped before step() integrates it.

    Attributes:
        state: Current PendulumState.
        params: Physical parameters, adjustable between ticks.
        simulation: Shared dt and gravity constants.
        control: Last applied (clamped) control signal.
    """

    def __init__(
        self,
        params: PendulumParams | None = None,
        simulation: SimulationParams | None = None,
        state: PendulumState | None = None,
    ):
        self.params = params or PendulumParams()
        self.simulation = simulation or SimulationParams()
        self.state = state.copy() if state is not None else PendulumState()
        self.control = 0.0

    def set_control(self, value: float) -> float:
        """
        Clamp and store the control signal.

        Args:
            value: Raw control value.

        Returns:
            The clamped value now held by the model.
        """
        clamped = clamp_control(value)
        if clamped != value:
            logger.debug("Control saturated: raw=%.4f, clamped=%.1f", value, clamped)
        self.control = clamped
        return clamped

    def acceleration(self) -> float:
        """Uncontrolled angular acceleration at the current state."""
        return acceleration(self.state, self.params, self.simulation.gravity)

    def step(self, dt: float | None = None) -> PendulumState:
        """
        Integrate one tick using the held control signal.

        Args:
            dt: Time step. Only the shared simulation dt is accepted, since
                the LQR linearization and history timestamps are built on it.

        Returns:
            The new state.

        Raises:
            ValueError: If dt differs from the shared simulation dt.
        """
        if dt is None:
            dt = self.simulation.dt
        elif dt != self.simulation.dt:
            raise ValueError(
                f"dt={dt} differs from the shared simulation dt={self.simulation.dt}"
            )
        self.state = semi_implicit_euler_step(
            self.state, self.params, self.control, dt, self.simulation.gravity
        )
        return self.state

    def to_cartesian(self) -> tuple[float, float]:
        """Bob position relative to the pivot."""
        return to_cartesian(self.params.length, self.state.angle)

    def energy(self) -> float:
        """Current mechanical energy per unit mass."""
        return mechanical_energy(self.state, self.params, self.simulation.gravity)

    def reset(self, state: PendulumState) -> None:
        """Restore the given state and zero the control signal."""
        self.state = state.copy()
        self.control = 0.0
