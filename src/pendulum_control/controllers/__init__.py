"""
Pendulum Controllers Package

This package provides feedback controllers that drive the inverted pendulum
to a commanded angle. Controllers read the pre-tick state and return a raw
control value; the pendulum model clamps it to [-1, 1].

Controller Types:
- PID: Proportional-Integral-Derivative control with a gated, headroom-based
  anti-windup accumulator
- LQR: State feedback with the gain solved from the discrete algebraic
  Riccati equation every tick

Sign Conventions:
    - error = angle - set_point
    - +control -> +angular acceleration
    - practical PID gains are negative so that positive error produces
      negative corrective control
"""

import logging
from dataclasses import dataclass

import numpy as np

from .base import (
    DEFAULT_CONTROL_LIMITS,
    BaseController,
    ControlLimits,
    clamp_control,
)
from .riccati_lqr import (
    DidNotConvergeError,
    LQRController,
    RiccatiError,
    SingularGainMatrixError,
    build_cost_matrices,
    build_linearized_system,
    compute_gain,
    riccati_residual,
    solve_dare,
)

__all__ = [
    "BaseController",
    "PIDController",
    "LQRController",
    "PIDOutput",
    "pid_update",
    "ControlLimits",
    "DEFAULT_CONTROL_LIMITS",
    "clamp_control",
    "RiccatiError",
    "DidNotConvergeError",
    "SingularGainMatrixError",
    "solve_dare",
    "compute_gain",
    "riccati_residual",
    "build_linearized_system",
    "build_cost_matrices",
    "create_controller",
    "VALID_CONTROLLER_TYPES",
]

logger = logging.getLogger(__name__)

# Valid controller type names for config validation
# Used by the simulation scene builder and eval.py
VALID_CONTROLLER_TYPES = ("pid", "lqr", "none")

# |error| below which the integral gate arms
DEFAULT_ENABLE_THRESHOLD = 0.05


@dataclass
class PIDOutput:
    """Result of one PID update."""

    control: float
    accumulator: float
    accumulator_enabled: bool
    error: float
    proportional: float
    derivative: float
    lower_bound: float
    upper_bound: float


def pid_update(
    angle: float,
    angular_velocity: float,
    set_point: float,
    proportional_gain: float,
    integral_gain: float,
    derivative_gain: float,
    accumulator: float,
    accumulator_enabled: bool,
    dt: float,
    enable_threshold: float = DEFAULT_ENABLE_THRESHOLD,
) -> PIDOutput:
    """
    Pure PID step with a gated, headroom-clamped integral.

    The integral is armed the first time |error| drops below
    enable_threshold and stays armed. While armed the accumulator
    integrates error * Ki * dt and is clamped to the headroom left by the
    proportional and derivative terms:

        [min(-1 - (P + D), 0), max(1 - (P + D), 0)]

    The interval always contains 0.

    Args:
        angle: Pre-tick angle in radians.
        angular_velocity: Pre-tick angular velocity in rad/s.
        set_point: Target angle in radians.
        proportional_gain: Kp.
        integral_gain: Ki.
        derivative_gain: Kd.
        accumulator: Accumulator value from the previous tick.
        accumulator_enabled: Integral gate from the previous tick.
        dt: Tick duration in seconds.
        enable_threshold: Arming threshold on |error|.

    Returns:
        PIDOutput with the raw control, the new accumulator and gate, and
        the intermediate terms.
    """
    error = angle - set_point
    proportional = error * proportional_gain
    derivative = angular_velocity * derivative_gain
    pd = proportional + derivative

    lower = min(-1.0 - pd, 0.0)
    upper = max(1.0 - pd, 0.0)

    if abs(error) < enable_threshold:
        accumulator_enabled = True

    if accumulator_enabled:
        accumulator += error * integral_gain * dt
        accumulator = float(np.clip(accumulator, lower, upper))

    return PIDOutput(
        control=proportional + accumulator + derivative,
        accumulator=accumulator,
        accumulator_enabled=accumulator_enabled,
        error=error,
        proportional=proportional,
        derivative=derivative,
        lower_bound=lower,
        upper_bound=upper,
    )


class PIDController(BaseController):
    """
    PID controller for the inverted pendulum.

    The derivative term acts on the measured angular velocity rather than a
    finite difference of the error. The integral term is gated: it stays
    frozen at zero until the pendulum first comes within enable_threshold of
    the set point, then integrates with headroom-based anti-windup.

    Changing set_point to a different value, or calling reset(), clears the
    accumulator and disarms the gate.

    Attributes:
        proportional_gain (float): Kp.
        integral_gain (float): Ki.
        derivative_gain (float): Kd.
        enable_threshold (float): |error| that arms the integral gate.
        accumulator (float): Integral accumulator.
        accumulator_enabled (bool): Integral gate latch.
        last_error (float | None): Error of the last computation.
        last_control_components (dict | None): P/I/D terms for diagnostics.
    """

    def __init__(self, config: dict | None = None):
        """
        Initialize PID controller.

        Args:
            config: Configuration with PID parameters:
                - set_point: Target angle in radians (default: pi)
                - proportional_gain: Kp (default: -8.0)
                - integral_gain: Ki (default: -5.5)
                - derivative_gain: Kd (default: -4.0)
                - enable_threshold: Integral arming threshold in radians
                  (default: 0.05)
        """
        config = config or {}
        super().__init__(name="pid", set_point=config.get("set_point", np.pi))

        self.proportional_gain = float(config.get("proportional_gain", -8.0))
        self.integral_gain = float(config.get("integral_gain", -5.5))
        self.derivative_gain = float(config.get("derivative_gain", -4.0))
        self.enable_threshold = float(
            config.get("enable_threshold", DEFAULT_ENABLE_THRESHOLD)
        )

        self.accumulator = 0.0
        self.accumulator_enabled = False
        self.last_error: float | None = None
        self.last_control_components: dict | None = None

    @property
    def set_point(self) -> float:
        """Target angle in radians."""
        return self._set_point

    @set_point.setter
    def set_point(self, value: float) -> None:
        value = float(value)
        if value != self._set_point:
            # A relocated target re-arms the integral from scratch
            self.accumulator = 0.0
            self.accumulator_enabled = False
            logger.debug("PID set point moved to %.4f, integral cleared", value)
        self._set_point = value

    def compute_control(self, state, dt: float) -> float:
        """
        Compute the PID control from the pre-tick state.

        Updates the accumulator and the integral gate in place.

        Args:
            state: PendulumState before integration.
            dt: Tick duration in seconds.

        Returns:
            Raw control value (P + I + D).
        """
        was_enabled = self.accumulator_enabled
        output = pid_update(
            angle=state.angle,
            angular_velocity=state.angular_velocity,
            set_point=self.set_point,
            proportional_gain=self.proportional_gain,
            integral_gain=self.integral_gain,
            derivative_gain=self.derivative_gain,
            accumulator=self.accumulator,
            accumulator_enabled=self.accumulator_enabled,
            dt=dt,
            enable_threshold=self.enable_threshold,
        )
        if output.accumulator_enabled and not was_enabled:
            logger.debug("PID integral armed at error %.4f", output.error)

        self.accumulator = output.accumulator
        self.accumulator_enabled = output.accumulator_enabled
        self.last_error = output.error

        self.last_control_components = {
            "error": output.error,
            "p_term": output.proportional,
            "i_term": output.accumulator,
            "d_term": output.derivative,
            "accumulator_bounds": (output.lower_bound, output.upper_bound),
            "raw_control": output.control,
            "is_saturated": DEFAULT_CONTROL_LIMITS.is_saturated(output.control),
        }
        return output.control

    def get_control_components(self) -> dict | None:
        """
        Get the last computed control term components for diagnostics.

        Returns:
            Dictionary with error, P, I, D terms and accumulator bounds,
            or None if compute_control hasn't been called yet.
        """
        return self.last_control_components

    def reset(self) -> None:
        """Reset accumulator, integral gate, and diagnostics."""
        self.accumulator = 0.0
        self.accumulator_enabled = False
        self.last_error = None
        self.last_control_components = None


def create_controller(
    controller_type: str,
    config: dict | None = None,
    params=None,
    simulation=None,
) -> BaseController | None:
    """
    Build a controller by type name.

    Args:
        controller_type: One of VALID_CONTROLLER_TYPES.
        config: Controller configuration dictionary.
        params: PendulumParams for the LQR linearization.
        simulation: SimulationParams for the LQR linearization.

    Returns:
        The controller, or None for 'none'.

    Raises:
        ValueError: If controller_type is unknown.
    """
    if controller_type == "pid":
        return PIDController(config=config)
    elif controller_type == "lqr":
        return LQRController(params=params, simulation=simulation, config=config)
    elif controller_type == "none":
        return None
    else:
        raise ValueError(
            f"Unknown controller type: '{controller_type}', "
            f"expected one of {VALID_CONTROLLER_TYPES}"
        )
