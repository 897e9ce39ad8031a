"""
History Recording Module

Per-entity time series of the values produced each tick, consumed by the
plotting surface. Buffers are ring buffers with a caller-specified capacity
so long sessions cannot grow without bound; capacity=None keeps everything.

Tracked Quantities:
    control:          applied (clamped) control, always recorded
    angle:            post-tick angle, always recorded
    angular_velocity: post-tick angular velocity, always recorded
    error:            PID error (angle - set_point), only with a PID attached
    accumulator:      PID integral accumulator, only with a PID attached
"""

from collections import deque

import numpy as np

ALWAYS_TRACKED = ("control", "angle", "angular_velocity")
PID_TRACKED = ("error", "accumulator")


class HistoryRecorder:
    """
    Append-only, bounded per-tick history.

    Ticks are indexed implicitly: the n-th value ever appended belongs to
    tick n. When the buffer is full the oldest values are evicted and
    first_tick advances accordingly.

    Attributes:
        capacity (int | None): Maximum number of ticks kept.
        dt (float): Tick duration used to convert indices to time.
    """

    def __init__(self, capacity: int | None = 12000, dt: float = 0.05):
        if capacity is not None and capacity <= 0:
            raise ValueError(f"capacity must be positive or None, got {capacity}")
        self.capacity = capacity
        self.dt = dt
        self._buffers: dict[str, deque] = {}
        self._total_ticks = 0
        self.clear()

    def clear(self) -> None:
        """Drop all recorded values and restart tick numbering."""
        self._buffers = {
            key: deque(maxlen=self.capacity) for key in ALWAYS_TRACKED + PID_TRACKED
        }
        self._total_ticks = 0

    def record(
        self,
        control: float,
        angle: float,
        angular_velocity: float,
        error: float | None = None,
        accumulator: float | None = None,
    ) -> None:
        """
        Append one tick of values.

        Args:
            control: Applied control signal.
            angle: Post-tick angle.
            angular_velocity: Post-tick angular velocity.
            error: PID error for this tick, None without a PID.
            accumulator: PID accumulator after this tick, None without a PID.
        """
        self._buffers["control"].append(float(control))
        self._buffers["angle"].append(float(angle))
        self._buffers["angular_velocity"].append(float(angular_velocity))
        if error is not None:
            self._buffers["error"].append(float(error))
        if accumulator is not None:
            self._buffers["accumulator"].append(float(accumulator))
        self._total_ticks += 1

    def __len__(self) -> int:
        return len(self._buffers["control"])

    @property
    def total_ticks(self) -> int:
        """Number of ticks recorded since the last clear, evicted ones included."""
        return self._total_ticks

    @property
    def first_tick(self) -> int:
        """Tick index of the oldest value still held."""
        return self._total_ticks - len(self)

    def get(self, key: str) -> np.ndarray:
        """
        Get a copy of one series.

        Args:
            key: One of control, angle, angular_velocity, error, accumulator.

        Returns:
            1-D float array, oldest value first.

        Raises:
            KeyError: If key is not a tracked quantity.
        """
        if key not in self._buffers:
            raise KeyError(f"Unknown history series: '{key}'")
        return np.array(self._buffers[key], dtype=float)

    @property
    def control(self) -> np.ndarray:
        return self.get("control")

    @property
    def error(self) -> np.ndarray:
        return self.get("error")

    @property
    def accumulator(self) -> np.ndarray:
        return self.get("accumulator")

    def times(self, key: str = "control") -> np.ndarray:
        """
        Plot times (tick_index * dt) aligned with a series.

        PID series may start later than the control series when a PID is
        attached mid-run, so alignment is taken from the series end.
        """
        count = len(self._buffers[key])
        last_tick = self._total_ticks
        ticks = np.arange(last_tick - count, last_tick)
        return ticks * self.dt

    def to_dict(self) -> dict:
        """Export all series and their time axes as lists."""
        result = {"dt": self.dt, "first_tick": self.first_tick}
        for key, buffer in self._buffers.items():
            result[key] = list(buffer)
        result["time"] = self.times().tolist()
        return result
