"""
Environment Configuration Module

Defines physical parameters, simulation settings, controller defaults and
history limits for the inverted pendulum environment.
"""

import math
from dataclasses import dataclass, field


@dataclass
class PendulumParams:
    """Physical parameters of the pendulum."""

    length: float = 10.0  # m, must be > 0
    friction: float = 0.0  # viscous damping coefficient, >= 0
    control_power: float = 5.0  # actuator gain (rad/s^2 per unit control)

    def validate(self) -> None:
        """
        Check the parameter domain.

        Raises:
            ValueError: If length is not positive or friction/control_power
                are negative.
        """
        if not self.length > 0:
            raise ValueError(f"length must be > 0, got {self.length}")
        if self.friction < 0:
            raise ValueError(f"friction must be >= 0, got {self.friction}")
        if self.control_power < 0:
            raise ValueError(f"control_power must be >= 0, got {self.control_power}")


@dataclass
class SimulationParams:
    """Simulation parameters shared by the integrator and the LQR model."""

    dt: float = 0.05  # fixed tick in seconds
    gravity: float = 9.8  # m/s^2


@dataclass
class InitialState:
    """Spawn and reset values for the pendulum state."""

    angle: float = math.pi + 0.5  # rad, pi is the upright equilibrium
    angular_velocity: float = 0.1  # rad/s


@dataclass
class PIDParams:
    """PID controller defaults."""

    set_point: float = math.pi
    proportional_gain: float = -8.0
    integral_gain: float = -5.5
    derivative_gain: float = -4.0
    enable_threshold: float = 0.05  # rad, |error| below this arms the integral


@dataclass
class LQRParams:
    """LQR controller defaults."""

    set_point: float = math.pi
    position_cost: float = 1.0  # Q[0, 0]
    velocity_cost: float = 1.0  # Q[1, 1]
    control_cost: float = 1.0  # R[0, 0]
    tolerance: float = 1e-7
    max_iterations: int = 10000
    method: str = "iterative"  # 'iterative' or 'scipy'
    cache_gain: bool = False


@dataclass
class HistoryParams:
    """History buffer limits."""

    capacity: int | None = 12000  # ticks, None for unbounded


@dataclass
class LoggingParams:
    """Logging configuration."""

    level: str = "INFO"
    output_dir: str = "reports"


@dataclass
class EnvConfig:
    """Complete environment configuration."""

    pendulum: PendulumParams = field(default_factory=PendulumParams)
    simulation: SimulationParams = field(default_factory=SimulationParams)
    initial_state: InitialState = field(default_factory=InitialState)
    pid: PIDParams = field(default_factory=PIDParams)
    lqr: LQRParams = field(default_factory=LQRParams)
    history: HistoryParams = field(default_factory=HistoryParams)
    logging: LoggingParams = field(default_factory=LoggingParams)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "EnvConfig":
        """
        Create EnvConfig from a dictionary (e.g., from load_config).

        Args:
            config_dict: Configuration dictionary.

        Returns:
            EnvConfig instance.

        Raises:
            ValueError: If the pendulum parameters are outside their domain.
        """
        pend_dict = config_dict.get("pendulum", {})
        sim_dict = config_dict.get("simulation", {}).copy()
        init_dict = config_dict.get("initial_state", {})
        pid_dict = config_dict.get("pid", {})
        lqr_dict = config_dict.get("lqr", {})
        history_dict = config_dict.get("history", {})
        logging_dict = config_dict.get("logging", {})

        # Flat legacy keys
        for key in ("dt", "gravity"):
            if key in config_dict and key not in sim_dict:
                sim_dict[key] = config_dict[key]

        pendulum = PendulumParams(
            length=float(pend_dict.get("length", 10.0)),
            friction=float(pend_dict.get("friction", 0.0)),
            control_power=float(pend_dict.get("control_power", 5.0)),
        )
        pendulum.validate()

        return cls(
            pendulum=pendulum,
            simulation=SimulationParams(
                dt=float(sim_dict.get("dt", 0.05)),
                gravity=float(sim_dict.get("gravity", 9.8)),
            ),
            initial_state=InitialState(
                angle=float(init_dict.get("angle", math.pi + 0.5)),
                angular_velocity=float(init_dict.get("angular_velocity", 0.1)),
            ),
            pid=PIDParams(
                set_point=float(pid_dict.get("set_point", math.pi)),
                proportional_gain=float(pid_dict.get("proportional_gain", -8.0)),
                integral_gain=float(pid_dict.get("integral_gain", -5.5)),
                derivative_gain=float(pid_dict.get("derivative_gain", -4.0)),
                enable_threshold=float(pid_dict.get("enable_threshold", 0.05)),
            ),
            lqr=LQRParams(
                set_point=float(lqr_dict.get("set_point", math.pi)),
                position_cost=float(lqr_dict.get("position_cost", 1.0)),
                velocity_cost=float(lqr_dict.get("velocity_cost", 1.0)),
                control_cost=float(lqr_dict.get("control_cost", 1.0)),
                tolerance=float(lqr_dict.get("tolerance", 1e-7)),
                max_iterations=int(lqr_dict.get("max_iterations", 10000)),
                method=lqr_dict.get("method", "iterative"),
                cache_gain=bool(lqr_dict.get("cache_gain", False)),
            ),
            history=HistoryParams(
                capacity=history_dict.get("capacity", 12000),
            ),
            logging=LoggingParams(
                level=logging_dict.get("level", "INFO"),
                output_dir=logging_dict.get("output_dir", "reports"),
            ),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "pendulum": {
                "length": self.pendulum.length,
                "friction": self.pendulum.friction,
                "control_power": self.pendulum.control_power,
            },
            "simulation": {
                "dt": self.simulation.dt,
                "gravity": self.simulation.gravity,
            },
            "initial_state": {
                "angle": self.initial_state.angle,
                "angular_velocity": self.initial_state.angular_velocity,
            },
            "pid": {
                "set_point": self.pid.set_point,
                "proportional_gain": self.pid.proportional_gain,
                "integral_gain": self.pid.integral_gain,
                "derivative_gain": self.pid.derivative_gain,
                "enable_threshold": self.pid.enable_threshold,
            },
            "lqr": {
                "set_point": self.lqr.set_point,
                "position_cost": self.lqr.position_cost,
                "velocity_cost": self.lqr.velocity_cost,
                "control_cost": self.lqr.control_cost,
                "tolerance": self.lqr.tolerance,
                "max_iterations": self.lqr.max_iterations,
                "method": self.lqr.method,
                "cache_gain": self.lqr.cache_gain,
            },
            "history": {
                "capacity": self.history.capacity,
            },
            "logging": {
                "level": self.logging.level,
                "output_dir": self.logging.output_dir,
            },
        }
