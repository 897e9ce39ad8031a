"""
Evaluation Metrics for Pendulum Controllers

This module provides metrics computation utilities for evaluating controller
performance from recorded history:
- Settling tick (when the angle enters and stays within a tolerance band)
- Angle error statistics (max, final, RMS)
- Control effort and saturation ratio
- Success criteria evaluation

Design Philosophy:
- Stateless functions over numpy arrays
- History buffers are the single input; nothing reaches into controllers
- Configurable success criteria thresholds
"""

import logging
from dataclasses import dataclass

import numpy as np

from ..env.pendulum import CONTROL_MAX, CONTROL_MIN

logger = logging.getLogger(__name__)


@dataclass
class SuccessCriteria:
    """
    Configuration for success criteria evaluation.

    Attributes:
        settle_tolerance: |angle - set_point| band in radians.
        max_settling_ticks: Latest tick by which the angle must settle.
        max_saturation_ratio: Largest allowed fraction of saturated ticks.
    """

    settle_tolerance: float = 0.05
    max_settling_ticks: int = 500
    max_saturation_ratio: float = 1.0


@dataclass
class EpisodeMetrics:
    """
    Computed metrics for a single run.

    Attributes:
        ticks: Number of simulated ticks, evicted ones included.
        duration: Simulated time span in seconds.
        first_tick: Absolute tick of the oldest retained sample; statistics
            below are computed from that tick on.
        settling_tick: First tick after which the error stays in band,
            or None if it never settles.
        settling_time: settling_tick * dt, or None.
        settling_evicted: The run is in band but entered it before the
            retained window, so the settling tick is unknown.
        max_abs_error: Largest |angle - set_point|.
        final_abs_error: |angle - set_point| at the last tick.
        rms_error: Root mean square angle error.
        total_control_effort: Sum of |control|.
        mean_control_effort: Mean |control| per tick.
        saturation_ratio: Fraction of ticks with |control| at the limit.
        solver_failures: Riccati failures absorbed (LQR only).
        success: Whether the run met the success criteria.
    """

    ticks: int = 0
    duration: float = 0.0
    first_tick: int = 0
    settling_tick: int | None = None
    settling_time: float | None = None
    settling_evicted: bool = False
    max_abs_error: float = 0.0
    final_abs_error: float = 0.0
    rms_error: float = 0.0
    total_control_effort: float = 0.0
    mean_control_effort: float = 0.0
    saturation_ratio: float = 0.0
    solver_failures: int = 0
    success: bool = False

    def to_dict(self) -> dict:
        """Convert metrics to dictionary."""
        return {
            "ticks": self.ticks,
            "duration": self.duration,
            "first_tick": self.first_tick,
            "settling_tick": self.settling_tick,
            "settling_time": self.settling_time,
            "settling_evicted": self.settling_evicted,
            "max_abs_error": self.max_abs_error,
            "final_abs_error": self.final_abs_error,
            "rms_error": self.rms_error,
            "total_control_effort": self.total_control_effort,
            "mean_control_effort": self.mean_control_effort,
            "saturation_ratio": self.saturation_ratio,
            "solver_failures": self.solver_failures,
            "success": self.success,
        }


def compute_settling_tick(abs_errors: np.ndarray, tolerance: float) -> int | None:
    """
    First tick from which every later error stays below tolerance.

    Args:
        abs_errors: Array of |angle - set_point| per tick.
        tolerance: Band half-width in radians.

    Returns:
        Tick index, or None if the last sample is outside the band.
    """
    if len(abs_errors) == 0:
        return None
    outside = np.nonzero(abs_errors >= tolerance)[0]
    if len(outside) == 0:
        return 0
    last_outside = int(outside[-1])
    if last_outside == len(abs_errors) - 1:
        return None
    return last_outside + 1


def compute_control_effort(controls: np.ndarray) -> tuple[float, float]:
    """
    Compute total and mean control effort.

    Args:
        controls: Applied control per tick.

    Returns:
        Tuple of (total_effort, mean_effort_per_tick).
    """
    if len(controls) == 0:
        return 0.0, 0.0
    magnitudes = np.abs(controls)
    return float(np.sum(magnitudes)), float(np.mean(magnitudes))


def compute_saturation_ratio(controls: np.ndarray) -> float:
    """
    Fraction of ticks where the applied control sits on a limit.

    Args:
        controls: Applied (clamped) control per tick.

    Returns:
        Ratio in [0, 1].
    """
    if len(controls) == 0:
        return 0.0
    saturated = (controls <= CONTROL_MIN) | (controls >= CONTROL_MAX)
    return float(np.mean(saturated))


def compute_episode_metrics(
    angles: np.ndarray,
    controls: np.ndarray,
    set_point: float,
    dt: float,
    criteria: SuccessCriteria | None = None,
    solver_failures: int = 0,
    first_tick: int = 0,
    total_ticks: int | None = None,
) -> EpisodeMetrics:
    """
    Compute all metrics for a single run.

    The arrays may be the retained window of a ring buffer whose oldest ticks
    were evicted. Settling ticks are then reported in absolute tick numbers,
    and a window that is in band from its first sample yields an unknown
    (None) settling tick, since the settling moment is no longer held. Error,
    effort and saturation statistics cover the retained window only.

    Args:
        angles: Post-tick angle per tick.
        controls: Applied control per tick.
        set_point: Target angle in radians.
        dt: Tick duration in seconds.
        criteria: Success criteria configuration.
        solver_failures: Riccati failures reported by the controller.
        first_tick: Absolute tick index of the first sample.
        total_ticks: Ticks simulated in the run, evicted ones included
            (defaults to first_tick + len(angles)).

    Returns:
        EpisodeMetrics with computed values.
    """
    if criteria is None:
        criteria = SuccessCriteria()

    angles = np.asarray(angles, dtype=float)
    controls = np.asarray(controls, dtype=float)
    if angles.shape != controls.shape:
        raise ValueError(
            f"Shape mismatch: angles {angles.shape} vs controls {controls.shape}"
        )

    if total_ticks is None:
        total_ticks = first_tick + len(angles)

    if len(angles) == 0:
        return EpisodeMetrics(
            ticks=total_ticks,
            duration=total_ticks * dt,
            first_tick=first_tick,
            success=False,
            solver_failures=solver_failures,
        )

    abs_errors = np.abs(angles - set_point)
    settling_tick = compute_settling_tick(abs_errors, criteria.settle_tolerance)
    settling_evicted = False
    if settling_tick is not None:
        if settling_tick == 0 and first_tick > 0:
            # Entered the band before the retained window
            settling_tick = None
            settling_evicted = True
        else:
            settling_tick += first_tick
    total_effort, mean_effort = compute_control_effort(controls)
    saturation_ratio = compute_saturation_ratio(controls)

    success = (
        settling_tick is not None
        and settling_tick <= criteria.max_settling_ticks
        and saturation_ratio <= criteria.max_saturation_ratio
    )

    return EpisodeMetrics(
        ticks=total_ticks,
        duration=total_ticks * dt,
        first_tick=first_tick,
        settling_tick=settling_tick,
        settling_time=settling_tick * dt if settling_tick is not None else None,
        settling_evicted=settling_evicted,
        max_abs_error=float(np.max(abs_errors)),
        final_abs_error=float(abs_errors[-1]),
        rms_error=float(np.sqrt(np.mean(abs_errors**2))),
        total_control_effort=total_effort,
        mean_control_effort=mean_effort,
        saturation_ratio=saturation_ratio,
        solver_failures=solver_failures,
        success=success,
    )


def format_metrics_report(name: str, metrics: EpisodeMetrics) -> str:
    """
    Format run metrics as a human-readable report.

    Args:
        name: Entity or controller name.
        metrics: EpisodeMetrics to format.

    Returns:
        Formatted string report.
    """
    if metrics.settling_tick is not None:
        settling = f"{metrics.settling_time:.2f}s (tick {metrics.settling_tick})"
    elif metrics.settling_evicted:
        settling = f"unknown (history starts at tick {metrics.first_tick})"
    else:
        settling = "not settled"
    lines = [
        "=" * 60,
        f"EVALUATION SUMMARY: {name}",
        "=" * 60,
        "",
        f"Ticks: {metrics.ticks} ({metrics.duration:.2f}s)",
        f"Retained From Tick: {metrics.first_tick}",
        f"Settling: {settling}",
        "",
        "Angle Error:",
        f"  Max: {metrics.max_abs_error:.4f} rad",
        f"  Final: {metrics.final_abs_error:.4f} rad",
        f"  RMS: {metrics.rms_error:.4f} rad",
        "",
        "Control:",
        f"  Mean Effort: {metrics.mean_control_effort:.3f}",
        f"  Saturation Ratio: {metrics.saturation_ratio:.1%}",
        f"  Solver Failures: {metrics.solver_failures}",
        "",
        f"SUCCESS CRITERIA MET: {'YES' if metrics.success else 'NO'}",
        "=" * 60,
    ]
    return "\n".join(lines)
