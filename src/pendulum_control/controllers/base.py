"""
Base Controller Module

Provides the saturation limits and the abstract base class shared by all
pendulum controllers.

Control Schema:
    Every controller returns a single float, the raw control signal. The
    pendulum model clamps it to [-1, 1] before integration.

Sign Conventions:
    - +control -> +angular acceleration (scaled by control_power)
    - error = angle - set_point, so controllers with negative gains drive a
      positive error back with negative control
"""

from dataclasses import dataclass

import numpy as np

from ..env.pendulum import CONTROL_MAX, CONTROL_MIN, clamp_control


@dataclass
class ControlLimits:
    """Saturation interval of the actuator."""

    min_control: float = CONTROL_MIN
    max_control: float = CONTROL_MAX

    def clip(self, value: float) -> float:
        """
        Clip a control value to the actuator range.

        Args:
            value: Raw control value.

        Returns:
            Clipped value as a Python float.
        """
        return float(np.clip(value, self.min_control, self.max_control))

    def is_saturated(self, value: float) -> bool:
        """Whether a raw value lies outside the actuator range."""
        return value < self.min_control or value > self.max_control


# Default control limits instance
DEFAULT_CONTROL_LIMITS = ControlLimits()

__all__ = [
    "BaseController",
    "ControlLimits",
    "DEFAULT_CONTROL_LIMITS",
    "clamp_control",
]


class BaseController:
    """
    Abstract base class for pendulum controllers.

    All controllers should inherit from this class and implement
    the compute_control method.

    Attributes:
        name (str): Controller identifier for logging/comparison.
        set_point (float): Target angle in radians.
    """

    def __init__(self, name: str = "base", set_point: float = np.pi):
        """
        Initialize the controller.

        Args:
            name: Human-readable controller name.
            set_point: Target angle in radians.
        """
        self.name = name
        self._set_point = float(set_point)

    @property
    def set_point(self) -> float:
        """Target angle in radians."""
        return self._set_point

    @set_point.setter
    def set_point(self, value: float) -> None:
        self._set_point = float(value)

    def compute_control(self, state, dt: float) -> float:
        """
        Compute the raw control signal from the pre-tick state.

        Args:
            state: PendulumState before integration.
            dt: Tick duration in seconds.

        Returns:
            Raw (unclamped) control value.

        Raises:
            NotImplementedError: Must be implemented by subclasses.
        """
        raise NotImplementedError("Subclasses must implement compute_control")

    def reset(self) -> None:
        """Reset controller state (for stateful controllers)."""
        pass
