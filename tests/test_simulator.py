"""
Tests for the Simulator Orchestration

These tests drive DieselGeneratorSimulator through complete operating
sequences with noise disabled.

Run with: pytest tests/test_simulator.py -v
"""

import math
from dataclasses import FrozenInstanceError

import pytest

from control.pid import PidConfig
from core.errors import ConfigurationError, InvalidInputError, InvalidTimeStepError
from core.lifecycle import EngineState, PreStartItem
from core.noise import NoiseSource
from core.simulator import CascadeMode, ControlLoop, DieselGeneratorSimulator
from core.state import HistoryKind, SetpointKind


def quiet_simulator(**kwargs) -> DieselGeneratorSimulator:
    return DieselGeneratorSimulator(noise=NoiseSource(enabled=False), **kwargs)


def run(sim: DieselGeneratorSimulator, seconds: float, dt: float = 0.1):
    for _ in range(int(round(seconds / dt))):
        sim.advance(dt)
    return sim.get_state()


def started(**kwargs) -> DieselGeneratorSimulator:
    sim = quiet_simulator(**kwargs)
    sim.checklist.complete_all()
    sim.start()
    return sim


class TestConstruction:

    def test_initial_state(self):
        sim = quiet_simulator()
        state = sim.get_state()

        assert sim.engine_state == EngineState.IDLE
        assert state.rpm == 0.0
        assert state.temperature == 25.0

    def test_invalid_history_interval(self):
        with pytest.raises(ConfigurationError):
            quiet_simulator(history_interval=0.0)

    def test_snapshots_are_immutable(self):
        sim = quiet_simulator()

        with pytest.raises(FrozenInstanceError):
            sim.get_state().rpm = 100.0
        with pytest.raises(FrozenInstanceError):
            sim.get_setpoints().fuel_target = 0.0


class TestTick:

    def test_invalid_dt_rejected_before_any_change(self):
        sim = started()
        run(sim, 1.0)
        before = sim.get_state()

        for dt in (-0.1, math.nan, math.inf):
            with pytest.raises(InvalidTimeStepError):
                sim.advance(dt)

        assert sim.get_state() == before

    def test_zero_dt_keeps_time(self):
        sim = quiet_simulator()

        state = sim.advance(0.0)

        assert state.time == 0.0

    def test_idle_engine_stays_cold(self):
        sim = quiet_simulator()
        state = run(sim, 10.0)

        assert state.rpm == 0.0
        assert state.temperature == pytest.approx(25.0)
        assert state.fuel_flow == 0.0


class TestStartup:

    def test_start_requires_prestart_checks(self):
        sim = quiet_simulator()

        result = sim.start()

        assert not result.accepted
        assert sim.engine_state == EngineState.IDLE

    def test_start_after_individual_checks(self):
        sim = quiet_simulator()
        for item in PreStartItem:
            sim.set_prestart_check(item)

        assert sim.start().accepted
        assert sim.engine_state == EngineState.STARTING

    def test_reaches_running_after_startup_duration(self):
        sim = started()

        state = run(sim, 10.0)

        assert sim.engine_state == EngineState.RUNNING
        assert state.rpm == pytest.approx(600.0, rel=0.05)

    def test_fuel_limited_while_starting(self):
        sim = started()
        run(sim, 5.0)

        assert sim.get_commands().fuel == pytest.approx(75.0 * 0.5)
        assert sim.get_commands().load == 0.0

    def test_battery_drains_while_cranking(self):
        sim = started()
        state = run(sim, 5.0)

        assert state.battery_voltage < 24.0

    def test_start_rejected_while_running(self):
        sim = started()
        run(sim, 10.0)

        result = sim.start()

        assert not result.accepted
        assert result.state == EngineState.RUNNING


class TestShutdown:

    def test_normal_stop_runs_down_to_idle(self):
        sim = started()
        run(sim, 30.0)

        assert sim.stop().accepted
        assert sim.engine_state == EngineState.STOPPING
        run(sim, 12.0)

        assert sim.engine_state == EngineState.IDLE
        assert sim.get_state().rpm < 20.0

    def test_emergency_stop_preempts_start(self):
        sim = started()
        run(sim, 5.0)

        result = sim.emergency_stop()

        assert result.accepted
        assert sim.engine_state == EngineState.STOPPING
        run(sim, 12.0)
        assert sim.engine_state == EngineState.IDLE

    def test_emergency_stop_is_idempotent(self):
        sim = started()
        run(sim, 20.0)
        sim.emergency_stop()

        assert sim.emergency_stop().accepted
        assert sim.engine_state == EngineState.STOPPING

    def test_fuel_cut_while_stopping(self):
        sim = started()
        run(sim, 20.0)
        sim.stop()
        sim.advance(0.1)

        assert sim.get_commands().fuel == 0.0
        assert sim.get_setpoints().fuel_target == 75.0


class TestProtection:

    def test_loss_of_coolant_trips_engine(self):
        sim = started()
        for kind, value in ((SetpointKind.FUEL, 100.0), (SetpointKind.LOAD, 100.0), (SetpointKind.COOLANT, 95.0)):
            sim.set_setpoint(kind, value)
        run(sim, 30.0)
        sim.set_setpoint(SetpointKind.COOLANT, 0.0)

        run(sim, 150.0)

        assert sim.engine_state == EngineState.FAULT
        assert "E003" in [c.code for c in sim.get_fault_codes()]

    def test_fault_zeroes_actuators(self):
        sim = started()
        sim.set_setpoint(SetpointKind.LOAD, 100.0)
        sim.set_setpoint(SetpointKind.FUEL, 100.0)
        sim.set_setpoint(SetpointKind.COOLANT, 0.0)
        run(sim, 200.0)

        assert sim.engine_state == EngineState.FAULT
        commands = sim.get_commands()
        assert commands.fuel == 0.0
        assert commands.coolant == 0.0
        assert commands.ventilation == 0.0

    def test_clear_faults_returns_to_idle(self):
        sim = started()
        sim.set_setpoint(SetpointKind.LOAD, 100.0)
        sim.set_setpoint(SetpointKind.FUEL, 100.0)
        sim.set_setpoint(SetpointKind.COOLANT, 0.0)
        run(sim, 200.0)

        result = sim.clear_faults()

        assert result.accepted
        assert sim.engine_state == EngineState.IDLE
        assert sim.get_fault_codes() == ()

    def test_clear_faults_rejected_when_not_faulted(self):
        sim = quiet_simulator()

        assert not sim.clear_faults().accepted

    def test_nominal_full_load_does_not_trip(self):
        sim = started()
        sim.set_setpoint(SetpointKind.FUEL, 100.0)
        sim.set_setpoint(SetpointKind.LOAD, 100.0)
        sim.set_setpoint(SetpointKind.COOLANT, 95.0)

        state = run(sim, 180.0)

        assert sim.engine_state == EngineState.RUNNING
        assert sim.get_fault_codes() == ()
        assert state.temperature < 80.0
        assert state.power > 2000.0


class TestSetpoints:

    def test_clamped(self):
        sim = quiet_simulator()

        assert sim.set_setpoint(SetpointKind.FUEL, 150.0) == 100.0
        assert sim.set_setpoint(SetpointKind.LOAD, -5.0) == 0.0
        assert sim.set_setpoint(SetpointKind.SPEED, 5000.0) == 1800.0

    def test_non_finite_rejected(self):
        sim = quiet_simulator()

        with pytest.raises(InvalidInputError):
            sim.set_setpoint(SetpointKind.FUEL, math.nan)

    def test_maintenance_clamped(self):
        sim = quiet_simulator()

        assert sim.set_maintenance_status(140.0) == 100.0
        assert sim.set_maintenance_status(-1.0) == 0.0


class TestHistory:

    def test_sampled_once_per_interval(self):
        sim = started()
        run(sim, 5.0)

        samples = sim.get_history(HistoryKind.RPM)

        assert len(samples) == 5
        assert samples[0].time == pytest.approx(1.0)

    def test_capped_at_100(self):
        sim = started()
        run(sim, 150.0, dt=0.5)

        samples = sim.get_history(HistoryKind.TEMPERATURE)

        assert len(samples) == 100
        assert samples[-1].time == pytest.approx(150.0)

    def test_history_by_name(self):
        sim = started()
        run(sim, 2.0)

        assert len(sim.get_history("battery_voltage")) == 2


class TestReset:

    def test_reset_restores_cold_engine(self):
        sim = started()
        run(sim, 30.0)
        sim.set_setpoint(SetpointKind.FUEL, 20.0)

        result = sim.reset()

        assert result.accepted
        assert sim.engine_state == EngineState.IDLE
        assert sim.get_state().rpm == 0.0
        assert sim.get_state().time == 0.0
        assert sim.get_setpoints().fuel_target == 75.0
        assert not sim.checklist.complete
        assert sim.get_history(HistoryKind.RPM) == ()

    def test_seeded_runs_reproducible(self):
        def trace(seed):
            sim = DieselGeneratorSimulator(seed=seed)
            sim.checklist.complete_all()
            sim.start()
            return [sim.advance(0.1).rpm for _ in range(200)]

        assert trace(11) == trace(11)


class TestNonFiniteRepair:

    def test_non_finite_values_replaced_by_prior(self, caplog):
        sim = started()
        run(sim, 12.0)
        prior = sim.get_state()

        original = sim.physics.calculate_efficiency
        sim.physics.calculate_efficiency = lambda *args, **kwargs: math.nan
        try:
            with caplog.at_level("ERROR"):
                state = sim.advance(0.1)
        finally:
            sim.physics.calculate_efficiency = original

        assert state.efficiency == prior.efficiency
        assert all(math.isfinite(v) for v in state.to_dict().values() if isinstance(v, float))
        assert any("Non-finite" in r.message for r in caplog.records)


class TestControlLoops:

    def test_loops_disabled_by_default(self):
        sim = quiet_simulator()

        status = sim.get_controller_status()

        assert all(not loop["enabled"] for loop in status["loops"].values())
        assert status["cascade"]["enabled"] is False

    def test_manual_to_auto_is_bumpless(self):
        sim = started()
        run(sim, 15.0)
        manual = sim.get_setpoints().coolant_target

        sim.set_auto_control(ControlLoop.TEMPERATURE, True, target=75.0)
        sim.advance(0.1)

        assert sim.get_commands().coolant == pytest.approx(manual, abs=1.0)

    def test_auto_to_manual_keeps_last_output(self):
        sim = started()
        run(sim, 15.0)
        sim.set_auto_control(ControlLoop.TEMPERATURE, True, target=75.0)
        run(sim, 20.0)
        last = sim.get_controller(ControlLoop.TEMPERATURE).runtime.last_output

        sim.set_auto_control(ControlLoop.TEMPERATURE, False)

        assert sim.get_setpoints().coolant_target == pytest.approx(last)

    def test_temperature_loop_holds_target(self):
        sim = started()
        sim.set_setpoint(SetpointKind.FUEL, 100.0)
        sim.set_setpoint(SetpointKind.LOAD, 100.0)
        sim.set_auto_control(ControlLoop.TEMPERATURE, True, target=75.0)

        state = run(sim, 400.0)

        assert sim.engine_state == EngineState.RUNNING
        assert state.temperature == pytest.approx(75.0, abs=3.0)

    def test_loops_idle_outside_running(self):
        sim = started()
        sim.set_auto_control(ControlLoop.VOLTAGE, True)
        run(sim, 5.0)

        assert sim.get_controller(ControlLoop.VOLTAGE).get_history() == ()

    def test_cascade_disables_conflicting_loop(self):
        sim = quiet_simulator()
        sim.set_auto_control(ControlLoop.TEMPERATURE, True)

        sim.set_cascade_enabled(True, mode=CascadeMode.TEMPERATURE_COOLANT)

        assert sim.cascade.enabled
        assert not sim.get_controller(ControlLoop.TEMPERATURE).enabled

    def test_loop_disables_conflicting_cascade(self):
        sim = quiet_simulator()
        sim.set_cascade_enabled(True, mode=CascadeMode.SPEED_FUEL)

        sim.set_auto_control(ControlLoop.SPEED, True)

        assert not sim.cascade.enabled
        assert sim.get_controller(ControlLoop.SPEED).enabled

    def test_cascade_drives_coolant(self):
        sim = started()
        sim.set_setpoint(SetpointKind.FUEL, 100.0)
        sim.set_setpoint(SetpointKind.LOAD, 100.0)
        sim.set_cascade_enabled(True, mode=CascadeMode.TEMPERATURE_COOLANT)
        sim.set_cascade_setpoint(75.0)

        run(sim, 300.0)

        assert sim.engine_state == EngineState.RUNNING
        assert sim.get_fault_codes() == ()
        assert len(sim.cascade.get_history()) > 0

    def test_update_controller_parameters(self):
        sim = quiet_simulator()

        config = sim.update_controller_parameters(ControlLoop.VOLTAGE, kp=3.0)

        assert config.kp == 3.0
        assert sim.get_controller(ControlLoop.VOLTAGE).config.kp == 3.0

    def test_configure_controller(self):
        sim = quiet_simulator()

        sim.configure_controller(ControlLoop.SPEED, PidConfig(kp=0.2, ki=0.0, kd=0.0))

        assert sim.get_controller(ControlLoop.SPEED).config.ki == 0.0

    def test_speed_loop_follows_speed_setpoint(self):
        sim = quiet_simulator()
        sim.set_setpoint(SetpointKind.SPEED, 1400.0)

        assert sim.loop_target(ControlLoop.SPEED) == 1400.0

    def test_restart_clears_loop_memory(self):
        sim = started()
        sim.set_setpoint(SetpointKind.FUEL, 100.0)
        sim.set_setpoint(SetpointKind.LOAD, 100.0)
        sim.set_auto_control(ControlLoop.TEMPERATURE, True, target=60.0)
        run(sim, 120.0)
        sim.stop()
        run(sim, 60.0)
        assert sim.engine_state == EngineState.IDLE

        assert sim.start().accepted
        while sim.engine_state != EngineState.RUNNING:
            sim.advance(0.1)

        entry = sim.get_controller(ControlLoop.TEMPERATURE).get_history()[-1]
        assert sim.get_commands().coolant == pytest.approx(sim.get_setpoints().coolant_target)
        assert entry.d == 0.0
        assert len(sim.get_controller(ControlLoop.TEMPERATURE).get_history()) == 1

    def test_restart_clears_cascade_memory(self):
        sim = started()
        sim.set_cascade_enabled(True, mode=CascadeMode.TEMPERATURE_COOLANT)
        run(sim, 30.0)
        sim.stop()
        run(sim, 30.0)

        sim.start()
        while sim.engine_state != EngineState.RUNNING:
            sim.advance(0.1)

        assert len(sim.cascade.get_history()) == 1
        assert sim.cascade.primary.runtime.primed is True
        assert sim.cascade.primary.get_history()[-1].d == 0.0
