"""
Simulation Module

Fixed-tick orchestration of one or more independent pendulum entities.

Each entity owns a PendulumModel, at most one controller (PID, LQR or none)
and a HistoryRecorder. Per tick, for every entity, strictly in order:

    1. controller computes a raw control from the pre-tick state
    2. PendulumModel.set_control clamps it to [-1, 1]
    3. PendulumModel.step integrates one tick
    4. HistoryRecorder appends the tick (error/accumulator only with a PID)

Entities share no mutable state. Configuration writes (gains, set points,
physical parameters) are expected strictly between calls to advance().
"""

import logging
from dataclasses import dataclass, field, replace

from .controllers import (
    VALID_CONTROLLER_TYPES,
    LQRController,
    PIDController,
    create_controller,
)
from .env import (
    EnvConfig,
    HistoryRecorder,
    PendulumModel,
    PendulumParams,
    PendulumState,
)

logger = logging.getLogger(__name__)

# Closed set of controller variants an entity may carry
Controller = PIDController | LQRController | None


@dataclass
class PendulumEntity:
    """
    One simulated pendulum with its optional controller and history.

    Attributes:
        name: Identifier used for lookups and reports.
        model: Physical model (state, params, applied control).
        controller: PIDController, LQRController or None.
        history: Per-tick history buffers.
        initial_state: Spawn state, restored by reset().
    """

    name: str
    model: PendulumModel
    history: HistoryRecorder
    controller: Controller = None
    initial_state: PendulumState = field(default_factory=PendulumState)

    @property
    def state(self) -> PendulumState:
        return self.model.state

    @property
    def control(self) -> float:
        return self.model.control

    @property
    def controller_type(self) -> str:
        match self.controller:
            case PIDController():
                return "pid"
            case LQRController():
                return "lqr"
            case _:
                return "none"

    @property
    def set_point(self) -> float | None:
        """Set point of the attached controller, None without one."""
        match self.controller:
            case PIDController() | LQRController() as controller:
                return controller.set_point
            case _:
                return None

    def tick(self, dt: float) -> None:
        """
        Run the four ordered tick steps for this entity.

        Args:
            dt: Tick duration in seconds.
        """
        pre_tick = self.model.state

        match self.controller:
            case PIDController() as pid:
                raw = pid.compute_control(pre_tick, dt)
            case LQRController() as lqr:
                raw = lqr.compute_control(pre_tick, dt)
            case None:
                # Uncontrolled: keep whatever the settings surface applied
                raw = self.model.control
            case other:
                raise TypeError(f"Unsupported controller: {type(other).__name__}")

        applied = self.model.set_control(raw)
        state = self.model.step(dt)

        match self.controller:
            case PIDController() as pid:
                self.history.record(
                    applied,
                    state.angle,
                    state.angular_velocity,
                    error=pid.last_error,
                    accumulator=pid.accumulator,
                )
            case _:
                self.history.record(applied, state.angle, state.angular_velocity)

    def reset(self) -> None:
        """
        Restore the spawn state and clear history and controller state.

        Gains, set points and physical parameters are kept.
        """
        self.model.reset(self.initial_state)
        self.history.clear()
        if self.controller is not None:
            self.controller.reset()

    def snapshot(self) -> dict:
        """Read-only view of the current state for the visualization surface."""
        x, y = self.model.to_cartesian()
        return {
            "name": self.name,
            "controller": self.controller_type,
            "angle": self.state.angle,
            "angular_velocity": self.state.angular_velocity,
            "control": self.control,
            "set_point": self.set_point,
            "position": (x, y),
            "tick": self.history.total_ticks,
        }


class Simulation:
    """
    Fixed-step simulation of independent pendulum entities.

    Attributes:
        config: Environment configuration.
        entities: Simulated entities in insertion order.
        tick_count: Ticks advanced since construction or the last reset.
    """

    def __init__(self, config: dict | EnvConfig | None = None):
        """
        Initialize an empty simulation.

        Args:
            config: EnvConfig or a dict accepted by EnvConfig.from_dict.
        """
        if config is None:
            self.config = EnvConfig()
        elif isinstance(config, dict):
            self.config = EnvConfig.from_dict(config)
        else:
            self.config = config

        self.entities: list[PendulumEntity] = []
        self.tick_count = 0

    @property
    def dt(self) -> float:
        return self.config.simulation.dt

    @property
    def time(self) -> float:
        return self.tick_count * self.dt

    def add_entity(
        self,
        name: str,
        controller_type: str = "none",
        params: PendulumParams | None = None,
        initial_state: PendulumState | None = None,
        controller_config: dict | None = None,
    ) -> PendulumEntity:
        """
        Spawn a pendulum entity.

        Args:
            name: Unique entity name.
            controller_type: 'pid', 'lqr' or 'none'.
            params: Physical parameters (defaults to a copy of the config's).
            initial_state: Spawn state (defaults to the config's).
            controller_config: Controller options, defaults from the config.

        Returns:
            The new entity.

        Raises:
            ValueError: If the name is taken or the controller type is unknown.
        """
        if controller_type not in VALID_CONTROLLER_TYPES:
            raise ValueError(
                f"Unknown controller type: '{controller_type}', "
                f"expected one of {VALID_CONTROLLER_TYPES}"
            )
        if any(entity.name == name for entity in self.entities):
            raise ValueError(f"Entity '{name}' already exists")

        params = replace(params or self.config.pendulum)
        params.validate()

        if initial_state is None:
            initial_state = PendulumState(
                angle=self.config.initial_state.angle,
                angular_velocity=self.config.initial_state.angular_velocity,
            )

        if controller_config is None:
            controller_config = self._default_controller_config(controller_type)

        controller = create_controller(
            controller_type,
            config=controller_config,
            params=params,
            simulation=self.config.simulation,
        )

        entity = PendulumEntity(
            name=name,
            model=PendulumModel(
                params=params,
                simulation=self.config.simulation,
                state=initial_state,
            ),
            history=HistoryRecorder(
                capacity=self.config.history.capacity, dt=self.dt
            ),
            controller=controller,
            initial_state=initial_state.copy(),
        )
        self.entities.append(entity)
        logger.info("Spawned entity '%s' with controller '%s'", name, controller_type)
        return entity

    def _default_controller_config(self, controller_type: str) -> dict:
        if controller_type == "pid":
            pid = self.config.pid
            return {
                "set_point": pid.set_point,
                "proportional_gain": pid.proportional_gain,
                "integral_gain": pid.integral_gain,
                "derivative_gain": pid.derivative_gain,
                "enable_threshold": pid.enable_threshold,
            }
        elif controller_type == "lqr":
            lqr = self.config.lqr
            return {
                "set_point": lqr.set_point,
                "position_cost": lqr.position_cost,
                "velocity_cost": lqr.velocity_cost,
                "control_cost": lqr.control_cost,
                "tolerance": lqr.tolerance,
                "max_iterations": lqr.max_iterations,
                "method": lqr.method,
                "cache_gain": lqr.cache_gain,
            }
        return {}

    def get_entity(self, name: str) -> PendulumEntity:
        """
        Look up an entity by name.

        Raises:
            KeyError: If no entity has that name.
        """
        for entity in self.entities:
            if entity.name == name:
                return entity
        raise KeyError(f"No entity named '{name}'")

    def remove_entity(self, name: str) -> None:
        """Remove an entity and everything it owns."""
        self.entities.remove(self.get_entity(name))

    def advance(self, dt: float | None = None) -> None:
        """
        Advance every entity by one fixed tick.

        Args:
            dt: Tick duration (defaults to config.simulation.dt).

        Raises:
            ValueError: If dt differs from config.simulation.dt; the LQR
                models and history time axes are fixed to that tick.
        """
        if dt is None:
            dt = self.dt
        elif dt != self.dt:
            raise ValueError(
                f"dt={dt} differs from the configured tick dt={self.dt}"
            )
        for entity in self.entities:
            entity.tick(dt)
        self.tick_count += 1

    def run(self, ticks: int, dt: float | None = None) -> None:
        """Advance the simulation by a number of ticks."""
        for _ in range(ticks):
            self.advance(dt)

    def reset(self) -> None:
        """Reset every entity to its spawn state and restart the tick count."""
        for entity in self.entities:
            entity.reset()
        self.tick_count = 0

    @classmethod
    def build_default_scene(
        cls, config: dict | EnvConfig | None = None
    ) -> "Simulation":
        """
        Build the side-by-side comparison scene: one PID and one LQR pendulum.

        Args:
            config: Environment configuration.

        Returns:
            Simulation with entities 'pid' and 'lqr'.
        """
        simulation = cls(config)
        simulation.add_entity("pid", controller_type="pid")
        simulation.add_entity("lqr", controller_type="lqr")
        return simulation
