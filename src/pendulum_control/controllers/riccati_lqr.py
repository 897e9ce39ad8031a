"""
Riccati-LQR Controller Module

Implements an LQR controller whose state-feedback gain comes from the
discrete-time algebraic Riccati equation (DARE), solved by fixed-point
iteration of the Riccati recursion:

    P_{k+1} = Q + A'P_kA - A'P_kB (R + B'P_kB)^{-1} B'P_kA,    P_0 = Q

Iteration stops once max|P_{k+1} - P_k| (elementwise infinity norm) drops
below the tolerance. The optimal feedback gain is then:

    K = (R + B'PB)^{-1} B'PA

Failure Contract:
    - DidNotConvergeError: the recursion did not settle within max_iterations
      (or produced non-finite values).
    - SingularGainMatrixError: R + B'PB could not be inverted.

    LQRController absorbs both by holding the previous tick's control, so a
    numerical hiccup never reaches the simulation loop.

Linearized Pendulum (discrete time, tick dt, built once at construction):
    A = [[1 + g/(2L)*dt^2,  dt - friction/2*dt^2],
         [g/L*dt,           1 - friction*dt     ]]
    B = [[control_power/2*dt^2],
         [control_power*dt    ]]

Usage:
    controller = LQRController(params=PendulumParams(), config={
        'set_point': np.pi,
        'position_cost': 1.0,
        'velocity_cost': 1.0,
        'control_cost': 1.0,
    })
    control = controller.compute_control(state, dt)
"""

import logging

import numpy as np

from ..env.config import PendulumParams, SimulationParams
from .base import DEFAULT_CONTROL_LIMITS, BaseController

logger = logging.getLogger(__name__)

VALID_DARE_METHODS = ("iterative", "scipy")


class RiccatiError(RuntimeError):
    """Base class for Riccati solver failures."""


class DidNotConvergeError(RiccatiError):
    """The Riccati recursion did not reach the tolerance."""

    def __init__(self, iterations: int, difference: float):
        self.iterations = iterations
        self.difference = difference
        super().__init__(
            f"DARE did not converge after {iterations} iterations "
            f"(last difference {difference:.3e})"
        )


class SingularGainMatrixError(RiccatiError):
    """R + B'PB is singular."""


def _is_positive_semidefinite(matrix: np.ndarray, name: str = "matrix") -> bool:
    """
    Check if a matrix is positive semi-definite.

    Args:
        matrix: Square matrix to check.
        name: Name for log messages.

    Returns:
        True if positive semi-definite, False otherwise.
    """
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return False

    if not np.allclose(matrix, matrix.T, atol=1e-8):
        logger.warning("%s is not symmetric", name)
        return False

    eigenvalues = np.linalg.eigvalsh(matrix)
    if np.any(eigenvalues < -1e-10):
        logger.warning("%s has negative eigenvalues: %s", name, eigenvalues)
        return False

    return True


def _is_positive_definite(matrix: np.ndarray, name: str = "matrix") -> bool:
    """
    Check if a matrix is positive definite.

    Args:
        matrix: Square matrix to check.
        name: Name for log messages.

    Returns:
        True if positive definite, False otherwise.
    """
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return False

    if not np.allclose(matrix, matrix.T, atol=1e-8):
        logger.warning("%s is not symmetric", name)
        return False

    eigenvalues = np.linalg.eigvalsh(matrix)
    if np.any(eigenvalues <= 1e-10):
        logger.warning(
            "%s is not positive definite, eigenvalues: %s", name, eigenvalues
        )
        return False

    return True


def _validate_dimensions(
    A: np.ndarray, B: np.ndarray, Q: np.ndarray, R: np.ndarray
) -> None:
    """
    Validate that system and cost matrices have compatible shapes.

    Raises:
        ValueError: If any shape is inconsistent.
    """
    n = A.shape[0]
    if B.ndim != 2:
        raise ValueError(f"B must be 2-D, got shape {B.shape}")
    m = B.shape[1]

    if A.shape != (n, n):
        raise ValueError(f"A must be square, got shape {A.shape}")
    if B.shape != (n, m):
        raise ValueError(f"B must have shape ({n}, m), got {B.shape}")
    if Q.shape != (n, n):
        raise ValueError(f"Q must have shape ({n}, {n}), got {Q.shape}")
    if R.shape != (m, m):
        raise ValueError(f"R must have shape ({m}, {m}), got {R.shape}")


def _innovation_solve(
    S: np.ndarray, rhs: np.ndarray
) -> np.ndarray:
    """
    Compute S^{-1} @ rhs for S = R + B'PB.

    The single-input case is a scalar reciprocal.

    Raises:
        SingularGainMatrixError: If S is singular.
    """
    if S.shape == (1, 1):
        if S[0, 0] == 0.0:
            raise SingularGainMatrixError("R + B'PB is zero")
        return rhs / S[0, 0]
    try:
        return np.linalg.solve(S, rhs)
    except np.linalg.LinAlgError as e:
        raise SingularGainMatrixError(f"R + B'PB is singular: {e}") from e


def compute_gain(
    A: np.ndarray, B: np.ndarray, P: np.ndarray, R: np.ndarray
) -> np.ndarray:
    """
    Derive the state-feedback gain K = (R + B'PB)^{-1} B'PA.

    Args:
        A: State transition matrix (n x n).
        B: Control input matrix (n x m).
        P: DARE solution (n x n).
        R: Control cost matrix (m x m).

    Returns:
        Gain matrix K (m x n).

    Raises:
        SingularGainMatrixError: If R + B'PB is singular.
    """
    BtP = B.T @ P
    return _innovation_solve(R + BtP @ B, BtP @ A)


def riccati_residual(
    A: np.ndarray, B: np.ndarray, Q: np.ndarray, R: np.ndarray, P: np.ndarray
) -> float:
    """
    Largest absolute entry of Q + A'PA - A'PB(R + B'PB)^{-1}B'PA - P.

    Zero for an exact DARE solution.
    """
    BtP = B.T @ P
    correction = (A.T @ P @ B) @ _innovation_solve(R + BtP @ B, BtP @ A)
    residual = Q + A.T @ P @ A - correction - P
    return float(np.max(np.abs(residual)))


def _solve_dare_iterative(
    A: np.ndarray,
    B: np.ndarray,
    Q: np.ndarray,
    R: np.ndarray,
    tolerance: float,
    max_iterations: int,
) -> np.ndarray:
    """Fixed-point iteration of the Riccati recursion starting from P = Q."""
    P = Q.copy()
    difference = float("inf")
    for iteration in range(1, max_iterations + 1):
        BtP = B.T @ P
        gain = _innovation_solve(R + BtP @ B, BtP @ A)
        P_next = Q + A.T @ P @ A - (A.T @ P @ B) @ gain

        if not np.all(np.isfinite(P_next)):
            raise DidNotConvergeError(iteration, float("inf"))

        difference = float(np.max(np.abs(P_next - P)))
        P = P_next
        if difference < tolerance:
            logger.debug("DARE converged in %d iterations", iteration)
            return P

    raise DidNotConvergeError(max_iterations, difference)


def _solve_dare_scipy(
    A: np.ndarray, B: np.ndarray, Q: np.ndarray, R: np.ndarray
) -> np.ndarray:
    """Solve the DARE with scipy, mapping its failures onto RiccatiError."""
    try:
        from scipy.linalg import solve_discrete_are
    except ImportError as e:
        raise ImportError(
            "scipy is required for method='scipy'. "
            "Install it with: pip install scipy>=1.11.0"
        ) from e

    try:
        P = solve_discrete_are(A, B, Q, R)
    except (np.linalg.LinAlgError, ValueError) as e:
        logger.warning("scipy DARE solver failed: %s", e)
        raise DidNotConvergeError(0, float("nan")) from e

    if not np.all(np.isfinite(P)):
        raise DidNotConvergeError(0, float("inf"))
    return P


def solve_dare(
    A: np.ndarray,
    B: np.ndarray,
    Q: np.ndarray,
    R: np.ndarray,
    tolerance: float = 1e-7,
    max_iterations: int = 10000,
    method: str = "iterative",
) -> np.ndarray:
    """
    Solve the discrete-time algebraic Riccati equation (DARE).

    Args:
        A: State transition matrix (n x n).
        B: Control input matrix (n x m).
        Q: State cost matrix (n x n).
        R: Control cost matrix (m x m).
        tolerance: Convergence threshold on max|P_{k+1} - P_k|.
        max_iterations: Iteration bound for the iterative method.
        method: 'iterative' (fixed-point recursion) or 'scipy'.

    Returns:
        The DARE solution P (n x n).

    Raises:
        ValueError: If shapes are incompatible or the method is unknown.
        DidNotConvergeError: If the solution was not reached.
        SingularGainMatrixError: If R + B'PB became singular.
    """
    A = np.asarray(A, dtype=float)
    B = np.asarray(B, dtype=float)
    Q = np.asarray(Q, dtype=float)
    R = np.asarray(R, dtype=float)
    _validate_dimensions(A, B, Q, R)

    if method == "iterative":
        return _solve_dare_iterative(A, B, Q, R, tolerance, max_iterations)
    elif method == "scipy":
        return _solve_dare_scipy(A, B, Q, R)
    else:
        raise ValueError(
            f"Unknown DARE method: '{method}', expected one of {VALID_DARE_METHODS}"
        )


def build_linearized_system(
    params: PendulumParams,
    simulation: SimulationParams | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Build the discrete-time linearized pendulum matrices A and B.

    The state vector is [angle_error, angular_velocity] and the control is
    the normalized actuator command. dt and gravity must be the same values
    the nonlinear integrator uses.

    Args:
        params: Physical pendulum parameters.
        simulation: Shared dt and gravity (defaults to SimulationParams()).

    Returns:
        Tuple of (A, B) with shapes (2, 2) and (2, 1).
    """
    simulation = simulation or SimulationParams()
    dt = simulation.dt
    g = simulation.gravity
    length = params.length
    friction = params.friction
    dt2 = dt**2

    A = np.array(
        [
            [1.0 + g / (2.0 * length) * dt2, dt - friction / 2.0 * dt2],
            [g / length * dt, 1.0 - friction * dt],
        ]
    )
    B = np.array(
        [
            [params.control_power / 2.0 * dt2],
            [params.control_power * dt],
        ]
    )
    return A, B


def build_cost_matrices(
    position_cost: float, velocity_cost: float, control_cost: float
) -> tuple[np.ndarray, np.ndarray]:
    """
    Build diagonal Q (2x2) and R (1x1) from scalar weights.

    Raises:
        ValueError: If Q is not positive semi-definite or R is not positive.
    """
    Q = np.diag([float(position_cost), float(velocity_cost)])
    R = np.array([[float(control_cost)]])
    if not _is_positive_semidefinite(Q, "Q"):
        raise ValueError("Q matrix must be positive semi-definite")
    if not _is_positive_definite(R, "R"):
        raise ValueError("R matrix must be positive definite")
    return Q, R


class LQRController(BaseController):
    """
    State-feedback controller with a DARE-derived gain.

    The linearized model (A, B) is derived once from the pendulum parameters
    given at construction. Later changes to length, friction or
    control_power are not picked up unless relinearize() is called.

    The gain is re-solved every tick from (A, B, Q, R), so edits to Q and R
    take effect on the next tick. With cache_gain=True the previous gain is
    reused while all four matrices are unchanged.

    State vector (2 dimensions):
        [angle - set_point, angular_velocity - 0]

    Attributes:
        A (ndarray): Discrete-time state transition matrix (2x2).
        B (ndarray): Discrete-time control input matrix (2x1).
        Q (ndarray): State cost matrix (2x2).
        R (ndarray): Control cost matrix (1x1).
        K (ndarray | None): Last solved feedback gain (1x2).
        P (ndarray | None): Last DARE solution (2x2).
        tolerance (float): DARE convergence threshold.
        max_iterations (int): DARE iteration bound.
        method (str): DARE backend, 'iterative' or 'scipy'.
        cache_gain (bool): Reuse K while (A, B, Q, R) are unchanged.
        last_control (float): Clamped control of the previous tick.
        failure_count (int): Riccati failures absorbed since the last reset.
        last_control_components (dict | None): Terms of the last computation.
    """

    def __init__(
        self,
        params: PendulumParams | None = None,
        simulation: SimulationParams | None = None,
        config: dict | None = None,
    ):
        """
        Initialize the LQR controller.

        Args:
            params: Pendulum parameters used for the one-time linearization.
            simulation: Shared dt and gravity.
            config: Configuration dictionary with parameters:
                - set_point: Target angle in radians (default: pi)
                - position_cost: Q[0, 0] (default: 1.0)
                - velocity_cost: Q[1, 1] (default: 1.0)
                - control_cost: R[0, 0] (default: 1.0)
                - Q: Full 2x2 state cost matrix (overrides the weights)
                - R: Full 1x1 control cost matrix (overrides control_cost)
                - tolerance: DARE convergence threshold (default: 1e-7)
                - max_iterations: DARE iteration bound (default: 10000)
                - method: 'iterative' or 'scipy' (default: 'iterative')
                - cache_gain: Reuse the gain while matrices are unchanged
                  (default: False)

        Raises:
            ValueError: If the cost matrices or method are invalid.
        """
        config = config or {}
        super().__init__(name="lqr", set_point=config.get("set_point", np.pi))

        self.tolerance = float(config.get("tolerance", 1e-7))
        self.max_iterations = int(config.get("max_iterations", 10000))
        self.method = config.get("method", "iterative")
        if self.method not in VALID_DARE_METHODS:
            raise ValueError(
                f"Unknown DARE method: '{self.method}', "
                f"expected one of {VALID_DARE_METHODS}"
            )
        self.cache_gain = bool(config.get("cache_gain", False))

        self.relinearize(params or PendulumParams(), simulation)

        self.Q, self.R = build_cost_matrices(
            config.get("position_cost", 1.0),
            config.get("velocity_cost", 1.0),
            config.get("control_cost", 1.0),
        )
        Q = config.get("Q")
        R = config.get("R")
        if Q is not None or R is not None:
            self.set_cost_matrices(
                self.Q if Q is None else Q, self.R if R is None else R
            )

        self.P: np.ndarray | None = None
        self.K: np.ndarray | None = None
        self._cache_key: bytes | None = None

        self.last_control = 0.0
        self.failure_count = 0
        self.last_control_components: dict | None = None

    def relinearize(
        self,
        params: PendulumParams,
        simulation: SimulationParams | None = None,
    ) -> None:
        """
        Rebuild A and B from the given parameters.

        Args:
            params: Pendulum parameters.
            simulation: Shared dt and gravity.
        """
        self.A, self.B = build_linearized_system(params, simulation)
        logger.info(
            "LQR linearized: A=%s, B=%s", self.A.tolist(), self.B.ravel().tolist()
        )

    def set_costs(
        self, position_cost: float, velocity_cost: float, control_cost: float
    ) -> None:
        """
        Replace Q and R with diagonal weights.

        Raises:
            ValueError: If the weights are invalid.
        """
        self.Q, self.R = build_cost_matrices(position_cost, velocity_cost, control_cost)

    def set_cost_matrices(self, Q, R) -> None:
        """
        Replace Q and R with full matrices.

        Raises:
            ValueError: If Q is not 2x2 positive semi-definite or R is not 1x1
                positive definite.
        """
        Q = np.array(Q, dtype=float)
        R = np.atleast_2d(np.array(R, dtype=float))
        if Q.shape != (2, 2):
            raise ValueError(f"Q matrix must have shape (2, 2), got {Q.shape}")
        if R.shape != (1, 1):
            raise ValueError(f"R matrix must have shape (1, 1), got {R.shape}")
        if not _is_positive_semidefinite(Q, "Q"):
            raise ValueError("Q matrix must be positive semi-definite")
        if not _is_positive_definite(R, "R"):
            raise ValueError("R matrix must be positive definite")
        self.Q = Q
        self.R = R

    def _matrix_key(self) -> bytes:
        return b"".join(
            np.ascontiguousarray(m, dtype=float).tobytes()
            for m in (self.A, self.B, self.Q, self.R)
        )

    def solve_gain(self) -> np.ndarray:
        """
        Solve the DARE for the current (A, B, Q, R) and derive K.

        Returns:
            Feedback gain K (1x2).

        Raises:
            DidNotConvergeError: If the DARE did not converge.
            SingularGainMatrixError: If R + B'PB is singular.
        """
        if self.cache_gain and self.K is not None:
            key = self._matrix_key()
            if key == self._cache_key:
                logger.debug("Reusing cached LQR gain")
                return self.K

        P = solve_dare(
            self.A,
            self.B,
            self.Q,
            self.R,
            tolerance=self.tolerance,
            max_iterations=self.max_iterations,
            method=self.method,
        )
        K = compute_gain(self.A, self.B, P, self.R)

        if self.K is None:
            logger.info("LQR gain solved: K=%s", K.ravel().tolist())
        self.P = P
        self.K = K
        self._cache_key = self._matrix_key() if self.cache_gain else None
        return K

    def compute_control(self, state, dt: float | None = None) -> float:
        """
        Compute u = -K x from the pre-tick state.

        On a Riccati failure the previous tick's control is held (0.0 before
        any successful tick).

        Args:
            state: PendulumState before integration.
            dt: Unused; the tick is baked into the linearization.

        Returns:
            Raw control value.
        """
        try:
            K = self.solve_gain()
        except RiccatiError as e:
            self.failure_count += 1
            logger.warning(
                "LQR gain unavailable (%s), holding control at %.4f",
                e,
                self.last_control,
            )
            self.last_control_components = {
                "state_error": None,
                "raw_control": self.last_control,
                "failed": True,
            }
            return self.last_control

        state_error = np.array(
            [state.angle - self.set_point, state.angular_velocity - 0.0]
        )
        u = float(-(K @ state_error)[0])

        self.last_control = DEFAULT_CONTROL_LIMITS.clip(u)
        self.last_control_components = {
            "state_error": state_error,
            "raw_control": u,
            "K_matrix": K.copy(),
            "is_saturated": DEFAULT_CONTROL_LIMITS.is_saturated(u),
            "failed": False,
        }
        return u

    def get_control_components(self) -> dict | None:
        """
        Get the last computed control components for diagnostics.

        Returns:
            Dictionary with the state error, raw control, gain, saturation
            and failure flags, or None if compute_control hasn't been
            called since construction or the last reset.
        """
        return self.last_control_components

    def get_gain_matrix(self) -> np.ndarray | None:
        """Last solved feedback gain, or None before the first solve."""
        return self.K

    def get_riccati_solution(self) -> np.ndarray | None:
        """Last DARE solution, or None before the first solve."""
        return self.P

    def reset(self) -> None:
        """Forget the held control and diagnostics."""
        self.last_control = 0.0
        self.failure_count = 0
        self.last_control_components = None
