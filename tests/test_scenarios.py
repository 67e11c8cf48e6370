"""
Tests for the Scenario Library and Runner

Scenario runs use noise disabled so outcomes are deterministic.

Run with: pytest tests/test_scenarios.py -v
"""

import json

import pytest

from core.errors import ConfigurationError, InvalidTimeStepError
from core.lifecycle import EngineState
from core.noise import NoiseSource
from core.simulator import DieselGeneratorSimulator
from scenarios import runner as runner_module
from scenarios.library import ScenarioLibrary, ScenarioType
from scenarios.runner import (
    ScenarioRunner,
    SimulationDriver,
    get_available_scenarios,
    run_scenario,
)


def started_driver(**kwargs) -> SimulationDriver:
    sim = DieselGeneratorSimulator(noise=NoiseSource(enabled=False))
    sim.checklist.complete_all()
    sim.start()
    return SimulationDriver(sim, **kwargs)


class TestScenarioLibrary:
    """Test scenario library functions."""

    def test_get_all_scenarios(self):
        scenarios = ScenarioLibrary.get_all_scenarios()

        assert len(scenarios) == len(ScenarioType)
        assert {s.scenario_type for s in scenarios} == set(ScenarioType)

    def test_get_scenario_by_type(self):
        scenario = ScenarioLibrary.get_scenario_by_type(ScenarioType.LOSS_OF_COOLANT)

        assert scenario.expected_state == EngineState.FAULT
        assert scenario.expected_fault_codes == ["E003"]

    def test_duration_override(self):
        scenario = ScenarioLibrary.get_scenario_by_type("normal_start", duration=15.0)

        assert scenario.duration == 15.0
        assert scenario.scenario_type == ScenarioType.NORMAL_START

    def test_timeline_sorted(self):
        scenario = ScenarioLibrary.normal_shutdown()
        times = [a.at for a in scenario.timeline()]

        assert times == sorted(times)
        assert times[-1] == 40.0

    def test_to_dict(self):
        data = ScenarioLibrary.full_load().to_dict(include_story=True)

        assert data["type"] == "full_load"
        assert data["expected_state"] == "running"
        assert "story" in data
        assert all("description" in a for a in data["actions"])

    def test_available_scenarios(self):
        available = get_available_scenarios()

        assert len(available) == len(ScenarioType)
        assert "story" not in available[0]


class TestScenarioRuns:
    """Each drill ends where its story says it should."""

    def setup_method(self):
        self.runner = ScenarioRunner(noise_enabled=False)

    def test_loss_of_coolant_trips(self):
        result = self.runner.run(ScenarioLibrary.loss_of_coolant())

        assert result.engine_state == EngineState.FAULT
        assert "E003" in result.fault_codes
        assert result.passed

    def test_normal_shutdown_ends_idle(self):
        result = self.runner.run(ScenarioLibrary.normal_shutdown())

        assert result.engine_state == EngineState.IDLE
        assert result.passed

    def test_emergency_stop_during_start(self):
        result = self.runner.run(ScenarioLibrary.emergency_stop_during_start())

        assert result.passed
        assert result.final_state.rpm < 20.0

    def test_full_load_runs_clean(self):
        result = self.runner.run(ScenarioLibrary.full_load())

        assert result.passed
        assert result.fault_codes == []
        assert "load_high" in result.alarms

    def test_degraded_maintenance_is_advisory(self):
        result = self.runner.run(ScenarioLibrary.degraded_maintenance())

        assert result.passed
        assert "maintenance_due" in result.alarms

    def test_result_exports(self):
        result = self.runner.run(ScenarioLibrary.normal_start(duration=20.0))

        df = result.to_dataframe()
        assert df.index.name == "time"
        assert df["engine_state"].iloc[-1] == "running"
        assert "rpm" in result.summary

        data = result.to_dict(include_records=False)
        assert data["passed"] is True
        assert "records" not in data

    def test_runs_are_isolated(self):
        first = self.runner.run(ScenarioLibrary.normal_start(duration=20.0))
        second = self.runner.run(ScenarioLibrary.normal_start(duration=20.0))

        assert first.final_state == second.final_state

    def test_invalid_dt(self):
        with pytest.raises(InvalidTimeStepError):
            self.runner.run(ScenarioLibrary.normal_start(), dt=0.0)

    def test_run_scenario_convenience(self):
        result = run_scenario(ScenarioType.NORMAL_START, duration=15.0, noise_enabled=False)

        assert result.engine_state == EngineState.RUNNING


class TestSimulationDriver:

    def test_invalid_settings(self):
        with pytest.raises(ConfigurationError):
            SimulationDriver(simulation_speed=0.0)
        with pytest.raises(ConfigurationError):
            SimulationDriver(record_interval=-1.0)

    def test_run_records_at_interval(self):
        driver = started_driver()

        records = driver.run(duration=5.0, dt=0.1)

        assert len(records) == 6
        assert records[0]["time"] == pytest.approx(0.1)
        assert records[-1]["time"] == pytest.approx(5.0)
        assert records[-1]["engine_state"] == "starting"
        assert "emissions_co2" in records[-1]

    def test_to_dataframe_and_summary(self):
        driver = started_driver()
        driver.run(duration=20.0)

        df = driver.to_dataframe()
        stats = driver.summary()

        assert df.index.name == "time"
        assert stats["rpm"]["max"] >= stats["rpm"]["mean"] >= stats["rpm"]["min"]
        assert "engine_state" not in stats

    def test_to_csv(self, tmp_path):
        driver = started_driver()
        driver.run(duration=2.0)
        path = tmp_path / "run.csv"

        text = driver.to_csv(str(path))

        header = text.splitlines()[0].split(",")
        assert header[0] == "time"
        assert "engine_state" in header
        with open(path, newline="") as f:
            assert f.read() == text

    def test_to_json(self, tmp_path):
        driver = started_driver()
        driver.run(duration=2.0)
        path = tmp_path / "run.json"

        driver.to_json(str(path))

        assert json.loads(path.read_text()) == driver.to_list()

    def test_empty_exports(self):
        driver = SimulationDriver(DieselGeneratorSimulator(noise=NoiseSource(enabled=False)))

        assert driver.to_csv() == ""
        assert driver.to_dataframe().empty

    def test_wall_clock_scaled_by_speed(self, monkeypatch):
        ticks = iter([100.0, 100.5])
        monkeypatch.setattr(runner_module.time, "monotonic", lambda: next(ticks))
        driver = started_driver(simulation_speed=2.0)

        first = driver.step_wall_clock()
        second = driver.step_wall_clock()

        assert first.time == 0.0
        assert second.time == pytest.approx(1.0)

    def test_reset(self):
        driver = started_driver()
        driver.run(duration=3.0)

        driver.reset()

        assert driver.records == []
        assert driver.simulator.get_state().time == 0.0
        assert driver.simulator.engine_state == EngineState.IDLE
