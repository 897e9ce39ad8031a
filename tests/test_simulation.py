"""Tests for the per-tick simulation loop and closed-loop scenarios."""

import math

import numpy as np
import pytest

from pendulum_control.controllers import LQRController, PIDController, pid_update
from pendulum_control.env import (
    EnvConfig,
    PendulumParams,
    PendulumState,
    semi_implicit_euler_step,
)
from pendulum_control.simulation import Simulation

SETTLE_BAND = 0.05


@pytest.fixture
def simulation():
    """Empty simulation with default configuration."""
    return Simulation()


class TestTickOrder:
    """Tests for the controller -> clamp -> integrate -> record sequence."""

    def test_pid_tick_uses_pre_tick_state(self, simulation):
        """Test one tick matches the manual four-step sequence."""
        initial = PendulumState(math.pi + 0.5, 0.1)
        entity = simulation.add_entity("pid", "pid", initial_state=initial)
        params = entity.model.params

        expected = pid_update(
            angle=initial.angle,
            angular_velocity=initial.angular_velocity,
            set_point=math.pi,
            proportional_gain=-8.0,
            integral_gain=-5.5,
            derivative_gain=-4.0,
            accumulator=0.0,
            accumulator_enabled=False,
            dt=0.05,
        )
        applied = max(-1.0, min(1.0, expected.control))
        expected_state = semi_implicit_euler_step(initial, params, applied, 0.05, 9.8)

        simulation.advance()

        assert entity.control == pytest.approx(applied)
        assert entity.state.angle == pytest.approx(expected_state.angle)
        assert entity.state.angular_velocity == pytest.approx(
            expected_state.angular_velocity
        )
        assert entity.history.control[-1] == pytest.approx(applied)
        assert entity.history.get("angle")[-1] == pytest.approx(expected_state.angle)
        assert entity.history.error[-1] == pytest.approx(0.5)

    def test_history_lengths(self, simulation):
        """Test PID series are recorded only for PID entities."""
        pid = simulation.add_entity("pid", "pid")
        lqr = simulation.add_entity("lqr", "lqr")
        simulation.run(10)

        assert len(pid.history) == 10
        assert len(pid.history.error) == 10
        assert len(pid.history.accumulator) == 10
        assert len(lqr.history) == 10
        assert len(lqr.history.error) == 0

    def test_history_times(self, simulation):
        """Test history timestamps are tick_index * dt."""
        entity = simulation.add_entity("free")
        simulation.run(5)

        assert np.allclose(entity.history.times(), np.arange(5) * 0.05)
        assert simulation.time == pytest.approx(0.25)

    def test_uncontrolled_entity_holds_external_control(self, simulation):
        """Test an entity without controller keeps the externally set control."""
        entity = simulation.add_entity("free", initial_state=PendulumState(0.0, 0.0))
        entity.model.set_control(0.3)
        simulation.run(3)

        assert np.allclose(entity.history.control, [0.3, 0.3, 0.3])
        assert entity.state.angular_velocity > 0
        assert entity.set_point is None
        assert entity.controller_type == "none"


class TestSaturation:
    """Tests for the [-1, 1] actuator limit in closed loop."""

    def test_applied_control_never_exceeds_limits(self, simulation):
        """Test huge gains still yield clamped applied controls."""
        entity = simulation.add_entity(
            "hot",
            "pid",
            controller_config={
                "proportional_gain": -1000.0,
                "integral_gain": -1000.0,
                "derivative_gain": -1000.0,
            },
        )
        simulation.run(200)

        controls = entity.history.control
        assert np.all(controls <= 1.0)
        assert np.all(controls >= -1.0)
        assert controls[0] == -1.0

    def test_anti_windup_bound_holds_every_tick(self, simulation):
        """Test the accumulator stays in its headroom interval each tick."""
        entity = simulation.add_entity("pid", "pid")
        pid = entity.controller

        for _ in range(600):
            simulation.advance()
            lower, upper = pid.get_control_components()["accumulator_bounds"]
            assert lower <= 0.0 <= upper
            assert lower - 1e-12 <= pid.accumulator <= upper + 1e-12


class TestScenarios:
    """Closed-loop stabilization scenarios."""

    def test_pid_settles_from_default_spawn(self, simulation):
        """Test PID brings pi+0.5 into the band within 500 ticks and stays."""
        entity = simulation.add_entity(
            "pid", "pid", initial_state=PendulumState(math.pi + 0.5, 0.1)
        )
        simulation.run(1000)

        errors = np.abs(entity.history.get("angle") - math.pi)
        inside = np.nonzero(errors < SETTLE_BAND)[0]
        assert inside.size > 0
        assert inside[0] < 500
        assert np.all(errors[-200:] < SETTLE_BAND)
        assert entity.controller.accumulator_enabled

    def test_lqr_holds_small_perturbation(self, simulation):
        """Test LQR keeps (pi, 0.1) close to upright without saturating."""
        entity = simulation.add_entity(
            "lqr", "lqr", initial_state=PendulumState(math.pi, 0.1)
        )
        simulation.run(600)

        errors = np.abs(entity.history.get("angle") - math.pi)
        assert np.max(errors) < SETTLE_BAND
        assert errors[-1] < 1e-3
        assert np.all(np.abs(entity.history.control) < 1.0)
        assert entity.controller.failure_count == 0

    def test_default_scene_both_settle(self):
        """Test the side-by-side scene stabilizes both pendulums."""
        simulation = Simulation.build_default_scene()
        simulation.run(1000)

        for name in ("pid", "lqr"):
            entity = simulation.get_entity(name)
            errors = np.abs(entity.history.get("angle") - math.pi)
            assert np.all(errors[-200:] < SETTLE_BAND), name

    def test_lqr_with_friction(self):
        """Test LQR linearized with friction still stabilizes."""
        simulation = Simulation({"pendulum": {"friction": 0.5}})
        entity = simulation.add_entity("lqr", "lqr")
        simulation.run(800)

        assert abs(entity.state.angle - math.pi) < SETTLE_BAND


class TestIsolation:
    """Tests for independence between entities."""

    def test_failing_lqr_does_not_affect_neighbors(self):
        """Test a non-converging LQR entity leaves the PID entity untouched."""
        alone = Simulation()
        pid_alone = alone.add_entity("pid", "pid")
        alone.run(300)

        mixed = Simulation()
        pid_mixed = mixed.add_entity("pid", "pid")
        broken = mixed.add_entity(
            "lqr",
            "lqr",
            controller_config={"max_iterations": 1, "tolerance": 1e-12},
        )
        mixed.run(300)

        assert np.array_equal(pid_alone.history.control, pid_mixed.history.control)
        assert np.array_equal(
            pid_alone.history.get("angle"), pid_mixed.history.get("angle")
        )
        assert broken.controller.failure_count == 300
        assert np.all(broken.history.control == 0.0)

    def test_params_are_copied_per_entity(self, simulation):
        """Test editing one entity's parameters does not leak to another."""
        first = simulation.add_entity("a")
        second = simulation.add_entity("b")
        first.model.params.length = 2.0

        assert second.model.params.length == 10.0
        assert simulation.config.pendulum.length == 10.0


class TestLifecycle:
    """Tests for entity management and reset."""

    def test_reset_is_idempotent(self):
        """Test a reset run reproduces the first run exactly."""
        simulation = Simulation.build_default_scene()
        simulation.run(150)
        first = {
            e.name: (e.history.control, e.history.get("angle"))
            for e in simulation.entities
        }

        simulation.reset()
        assert simulation.tick_count == 0
        for entity in simulation.entities:
            assert len(entity.history) == 0
            assert entity.state == entity.initial_state
            assert entity.control == 0.0

        simulation.run(150)
        for entity in simulation.entities:
            controls, angles = first[entity.name]
            assert np.array_equal(entity.history.control, controls)
            assert np.array_equal(entity.history.get("angle"), angles)

    def test_double_reset_equals_single_reset(self):
        """Test resetting twice leaves the same state as resetting once."""
        simulation = Simulation.build_default_scene()
        simulation.run(80)
        simulation.reset()
        once = [e.snapshot() for e in simulation.entities]
        pid = simulation.get_entity("pid").controller
        once_integral = (pid.accumulator, pid.accumulator_enabled)

        simulation.reset()
        assert [e.snapshot() for e in simulation.entities] == once
        assert (pid.accumulator, pid.accumulator_enabled) == once_integral
        assert simulation.tick_count == 0

        simulation.run(80)
        assert len(simulation.get_entity("lqr").history) == 80

    def test_mismatched_dt_rejected(self, simulation):
        """Test a tick length other than the configured dt is refused."""
        entity = simulation.add_entity("lqr", "lqr")

        with pytest.raises(ValueError, match="dt"):
            simulation.run(10, dt=0.01)

        assert simulation.tick_count == 0
        assert len(entity.history) == 0

        simulation.advance(dt=0.05)
        assert simulation.time == pytest.approx(0.05)

    def test_reset_keeps_tuning(self):
        """Test reset restores state but keeps gains and set points."""
        simulation = Simulation.build_default_scene()
        pid = simulation.get_entity("pid").controller
        pid.proportional_gain = -12.0
        pid.set_point = 3.0
        simulation.run(10)
        simulation.reset()

        assert pid.proportional_gain == -12.0
        assert pid.set_point == 3.0
        assert pid.accumulator == 0.0

    def test_unknown_controller_type(self, simulation):
        """Test unknown controller types are rejected."""
        with pytest.raises(ValueError, match="Unknown controller type"):
            simulation.add_entity("x", "mpc")

    def test_duplicate_name(self, simulation):
        """Test entity names must be unique."""
        simulation.add_entity("x")
        with pytest.raises(ValueError, match="already exists"):
            simulation.add_entity("x")

    def test_invalid_params(self, simulation):
        """Test non-physical parameters are rejected at spawn."""
        with pytest.raises(ValueError):
            simulation.add_entity("x", params=PendulumParams(length=0.0))

    def test_get_and_remove_entity(self, simulation):
        """Test lookup by name and removal."""
        simulation.add_entity("x")
        assert simulation.get_entity("x").name == "x"

        simulation.remove_entity("x")
        with pytest.raises(KeyError):
            simulation.get_entity("x")

    def test_controller_variants(self):
        """Test the default scene carries one PID and one LQR."""
        simulation = Simulation.build_default_scene(EnvConfig())
        assert isinstance(simulation.get_entity("pid").controller, PIDController)
        assert isinstance(simulation.get_entity("lqr").controller, LQRController)
        assert simulation.get_entity("lqr").controller_type == "lqr"

    def test_snapshot(self, simulation):
        """Test snapshot exposes state, control and bob position."""
        entity = simulation.add_entity("pid", "pid")
        simulation.advance()
        snap = entity.snapshot()

        assert snap["name"] == "pid"
        assert snap["controller"] == "pid"
        assert snap["tick"] == 1
        x, y = snap["position"]
        assert x == pytest.approx(10.0 * math.sin(entity.state.angle))
        assert y == pytest.approx(-10.0 * math.cos(entity.state.angle))
