"""
Tests for the Generator Physics Model

These tests verify that the physics calculations are correct
and handle edge cases appropriately. Noise is disabled so that
results are deterministic.

Run with: pytest tests/test_physics.py -v
"""

import math

import pytest

from core.constants import EngineConstants
from core.errors import ConfigurationError
from core.lifecycle import EngineState, LifecyclePhase
from core.noise import NoiseSource
from core.physics import ActuatorCommands, PhysicsModel, steady_state_temperature
from core.state import SimulationState

RUNNING = LifecyclePhase(engine_state=EngineState.RUNNING, startup_progress=1.0)
IDLE = LifecyclePhase(engine_state=EngineState.IDLE)


class TestEngineConstants:
    """Test constants are reasonable and validated."""

    def test_defaults(self):
        c = EngineConstants()

        assert c.RATED_RPM == 1500.0
        assert c.IDLE_RPM == 600.0
        assert c.poles == pytest.approx(4.0)

    def test_negative_time_constant_rejected(self):
        with pytest.raises(ConfigurationError):
            EngineConstants(RPM_TIME_CONSTANT=-1.0)

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ConfigurationError):
            EngineConstants(STARTUP_DURATION=0.0)

    def test_non_finite_rejected(self):
        with pytest.raises(ConfigurationError):
            EngineConstants(ENGINE_THERMAL_MASS=math.nan)

    def test_idle_above_rated_rejected(self):
        with pytest.raises(ConfigurationError):
            EngineConstants(IDLE_RPM=2000.0)


class TestNoiseSource:

    def test_disabled_returns_midpoint(self):
        noise = NoiseSource(enabled=False)

        assert noise.uniform(0.98, 1.02) == pytest.approx(1.0)
        assert noise.chance(1.0) is False

    def test_seeded_is_reproducible(self):
        a = NoiseSource(seed=7)
        b = NoiseSource(seed=7)

        assert [a.uniform(0, 1) for _ in range(5)] == [b.uniform(0, 1) for _ in range(5)]

    def test_reseed_restarts_sequence(self):
        noise = NoiseSource(seed=3)
        first = noise.uniform(0, 1)
        noise.reseed()

        assert noise.uniform(0, 1) == first


class TestLag:

    def test_first_order_step(self):
        assert PhysicsModel.lag(0.0, 100.0, 1.0, 0.1) == pytest.approx(10.0)

    def test_never_overshoots(self):
        assert PhysicsModel.lag(0.0, 100.0, 1.0, 5.0) == pytest.approx(100.0)

    def test_zero_time_constant_is_instant(self):
        assert PhysicsModel.lag(0.0, 100.0, 0.0, 0.1) == pytest.approx(100.0)


class TestEngineSpeed:

    def setup_method(self):
        self.model = PhysicsModel(noise=NoiseSource(enabled=False))

    def test_target_rpm(self):
        assert self.model.calculate_target_rpm(100.0, 0.0) == pytest.approx(1500.0)
        assert self.model.calculate_target_rpm(100.0, 100.0) == pytest.approx(1455.0)

    def test_target_never_below_idle(self):
        assert self.model.calculate_target_rpm(0.0, 100.0) == pytest.approx(600.0)

    def test_load_slows_acceleration(self):
        light = self.model.calculate_rpm(600.0, 100.0, 0.0, RUNNING, 0.1)
        heavy = self.model.calculate_rpm(600.0, 100.0, 100.0, RUNNING, 0.1)

        assert 600.0 < heavy < light

    def test_ramp_dictates_speed_in_transition(self):
        phase = LifecyclePhase(engine_state=EngineState.STARTING, startup_progress=0.5, ramp_rpm=300.0)

        assert self.model.calculate_rpm(0.0, 100.0, 0.0, phase, 0.1) == 300.0

    def test_coasts_down_when_idle(self):
        rpm = self.model.calculate_rpm(100.0, 75.0, 0.0, IDLE, 0.1)

        assert rpm < 100.0


class TestThermal:

    def setup_method(self):
        self.model = PhysicsModel(noise=NoiseSource(enabled=False))

    def test_heats_under_load_without_cooling(self):
        temp = self.model.calculate_temperature(70.0, 100.0, 0.0, 0.0, 100.0, 1455.0, RUNNING, 1.0)

        assert temp > 70.0
        assert temp - 70.0 == pytest.approx(0.66, abs=0.05)

    def test_no_heat_when_stopped(self):
        temp = self.model.calculate_temperature(25.0, 100.0, 0.0, 0.0, 100.0, 0.0, IDLE, 1.0)

        assert temp == pytest.approx(25.0)

    def test_clamped_to_range(self):
        hot = self.model.calculate_temperature(150.0, 100.0, 0.0, 0.0, 100.0, 1500.0, RUNNING, 100.0)

        assert hot <= 150.0

    def test_nominal_equilibrium_below_warning(self):
        equilibrium = steady_state_temperature(fuel=100.0, load=100.0, coolant=95.0, rpm=1455.0)

        assert 60.0 < equilibrium < 80.0

    def test_no_cooling_overheats(self):
        assert steady_state_temperature(fuel=100.0, load=100.0, coolant=0.0) == pytest.approx(150.0)


class TestEfficiencyAndFuel:

    def setup_method(self):
        self.model = PhysicsModel(noise=NoiseSource(enabled=False))

    def test_zero_when_stopped(self):
        assert self.model.calculate_efficiency(85.0, 80.0, 80.0, 0.0, 100.0, RUNNING) == 0.0
        assert self.model.calculate_fuel_consumption(80.0, 0.0, 30.0, RUNNING) == 0.0

    def test_bounded(self):
        eff = self.model.calculate_efficiency(85.0, 80.0, 80.0, 1500.0, 100.0, RUNNING)

        assert 20.0 <= eff <= 45.0
        assert eff == pytest.approx(42.0)

    def test_poor_maintenance_lowers_efficiency(self):
        good = self.model.calculate_efficiency(85.0, 80.0, 80.0, 1500.0, 100.0, RUNNING)
        poor = self.model.calculate_efficiency(85.0, 80.0, 80.0, 1500.0, 40.0, RUNNING)

        assert poor < good

    def test_fuel_consumption_scales_with_rack(self):
        low = self.model.calculate_fuel_consumption(40.0, 1350.0, 35.0, RUNNING)
        high = self.model.calculate_fuel_consumption(80.0, 1350.0, 35.0, RUNNING)

        assert high == pytest.approx(2 * low)

    def test_transition_emissions_are_higher(self):
        steady = self.model.calculate_emissions(50.0, 0.0, 60.0, 600.0, 30.0, RUNNING)
        ramp = self.model.calculate_emissions(
            50.0, 0.0, 60.0, 600.0, 30.0,
            LifecyclePhase(engine_state=EngineState.STARTING, startup_progress=0.25, ramp_rpm=150.0),
        )

        assert ramp.co2 > steady.co2
        assert ramp.particulates > steady.particulates


class TestElectrical:

    def setup_method(self):
        self.model = PhysicsModel(noise=NoiseSource(enabled=False))

    def test_power_only_while_running(self):
        assert self.model.calculate_power(1500.0, 100.0, RUNNING) == pytest.approx(2500.0)
        assert self.model.calculate_power(1500.0, 100.0, IDLE) == 0.0

    def test_governed_frequency_near_rated(self):
        assert self.model.calculate_frequency(1500.0) == pytest.approx(50.0)
        assert self.model.calculate_frequency(0.0) == 0.0

    def test_avr_regulates_voltage(self):
        voltage = self.model.calculate_voltage(1500.0, 50.0, RUNNING)

        assert voltage == pytest.approx(400.0)

    def test_current_from_power(self):
        current = PhysicsModel.calculate_current(2500.0, 400.0)

        assert current == pytest.approx(2500.0 * 1000 / (math.sqrt(3) * 400.0))
        assert PhysicsModel.calculate_current(100.0, 0.0) == 0.0


class TestIntegrate:

    def test_returns_new_state(self):
        model = PhysicsModel(noise=NoiseSource(enabled=False))
        prior = SimulationState.initial(model.constants)

        state = model.integrate(0.1, ActuatorCommands(fuel=50.0), prior, IDLE)

        assert state is not prior
        assert state.time == pytest.approx(0.1)
        assert prior.time == 0.0

    def test_actuators_lag_commands(self):
        model = PhysicsModel(noise=NoiseSource(enabled=False))
        prior = SimulationState.initial(model.constants)

        state = model.integrate(0.1, ActuatorCommands(coolant=100.0), prior, IDLE)

        assert 0.0 < state.coolant_flow < 100.0
