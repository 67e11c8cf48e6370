"""
Simulation Driver and Scenario Runner

The simulator core only knows advance(dt). This module owns the clock:

- SimulationDriver runs fixed-step (run(duration, dt)) or follows the
  wall clock (step_wall_clock(), using time.monotonic()), scaling real
  time by a simulation_speed multiplier.
- ScenarioRunner plays an OperatingScenario's action timeline against a
  fresh simulator and collects the resulting time series.

Recorded series export to:
- Python lists of flat dictionaries
- JSON and CSV (optionally written to a file)
- pandas DataFrame, with numpy summary statistics
"""

import csv
import io
import json
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from core.constants import EngineConstants
from core.errors import ConfigurationError, InvalidTimeStepError
from core.lifecycle import EngineState
from core.noise import NoiseSource
from core.simulator import DieselGeneratorSimulator
from core.state import SimulationState

from .library import OperatingScenario, ScenarioLibrary, ScenarioType

logger = logging.getLogger(__name__)

TIME_EPSILON = 1e-9


def flatten_state(state: SimulationState, engine_state: EngineState) -> Dict[str, Any]:
    """Flat record of one state (emissions become emissions_* columns)."""
    record = state.to_dict()
    emissions = record.pop("emissions")
    for name, value in emissions.items():
        record[f"emissions_{name}"] = value
    record["engine_state"] = engine_state.value
    return record


class SimulationDriver:
    """
    Clock for a DieselGeneratorSimulator.

    Example:
        driver = SimulationDriver(simulation_speed=10.0)
        driver.simulator.checklist.complete_all()
        driver.simulator.start()
        records = driver.run(duration=60.0, dt=0.1)
        df = driver.to_dataframe()
    """

    def __init__(
        self,
        simulator: Optional[DieselGeneratorSimulator] = None,
        simulation_speed: float = 1.0,
        record_interval: float = 1.0
    ):
        """
        Initialize the driver.

        Args:
            simulator: Simulator to drive. If None, a default one is created.
            simulation_speed: Simulated seconds per real second
            record_interval: Simulated seconds between recorded samples
        """
        if not math.isfinite(simulation_speed) or simulation_speed <= 0:
            raise ConfigurationError(f"simulation_speed must be positive (got {simulation_speed!r})")
        if not math.isfinite(record_interval) or record_interval <= 0:
            raise ConfigurationError(f"record_interval must be positive (got {record_interval!r})")

        self.simulator = simulator or DieselGeneratorSimulator()
        self.simulation_speed = simulation_speed
        self.record_interval = record_interval
        self.records: List[Dict[str, Any]] = []
        self._last_wall: Optional[float] = None
        self._next_record = 0.0

    def set_speed(self, simulation_speed: float) -> None:
        if not math.isfinite(simulation_speed) or simulation_speed <= 0:
            raise ConfigurationError(f"simulation_speed must be positive (got {simulation_speed!r})")
        self.simulation_speed = simulation_speed

    def step(self, dt: float) -> SimulationState:
        """Advance by dt simulated seconds and record if a sample is due."""
        state = self.simulator.advance(dt)
        if state.time + TIME_EPSILON >= self._next_record:
            self.records.append(flatten_state(state, self.simulator.engine_state))
            while self._next_record <= state.time + TIME_EPSILON:
                self._next_record += self.record_interval
        return state

    def run(self, duration: float, dt: float = 0.1) -> List[Dict[str, Any]]:
        """
        Run fixed-step for `duration` simulated seconds.

        Args:
            duration: Simulated seconds to run
            dt: Step size in seconds

        Returns:
            All records collected so far
        """
        if not math.isfinite(dt) or dt <= 0:
            raise InvalidTimeStepError(dt)
        steps = int(round(duration / dt))
        for _ in range(steps):
            self.step(dt)
        return self.records

    def step_wall_clock(self) -> SimulationState:
        """
        Advance by the real time elapsed since the previous call.

        The first call only starts the clock (dt = 0).
        """
        now = time.monotonic()
        elapsed = 0.0 if self._last_wall is None else now - self._last_wall
        self._last_wall = now
        return self.step(elapsed * self.simulation_speed)

    def reset(self) -> None:
        """Reset the simulator and drop recorded samples."""
        self.simulator.reset()
        self.records = []
        self._last_wall = None
        self._next_record = 0.0

    # =========================================
    # Export
    # =========================================

    def to_list(self) -> List[Dict[str, Any]]:
        return list(self.records)

    def to_json(self, filepath: Optional[str] = None, indent: int = 2) -> str:
        """
        Records as JSON.

        Args:
            filepath: Optional file path to save JSON
            indent: JSON indentation (default 2)
        """
        json_str = json.dumps(self.records, indent=indent, default=str)
        if filepath:
            with open(filepath, 'w') as f:
                f.write(json_str)
        return json_str

    def to_csv(self, filepath: Optional[str] = None) -> str:
        """Records as CSV text (also written to filepath if given)."""
        if not self.records:
            return ""

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=list(self.records[0].keys()))
        writer.writeheader()
        writer.writerows(self.records)
        text = buffer.getvalue()

        if filepath:
            with open(filepath, 'w', newline='') as f:
                f.write(text)
        return text

    def to_dataframe(self) -> pd.DataFrame:
        """Records as a DataFrame indexed by simulated time."""
        df = pd.DataFrame(self.records)
        if not df.empty:
            df = df.set_index("time")
        return df

    def summary(self) -> Dict[str, Dict[str, float]]:
        """
        Min / max / mean / std of every numeric column.

        Returns:
            {column: {"min", "max", "mean", "std"}}
        """
        df = self.to_dataframe()
        stats: Dict[str, Dict[str, float]] = {}
        for column in df.select_dtypes(include=[np.number]).columns:
            values = df[column].to_numpy(dtype=float)
            stats[column] = {
                "min": float(np.min(values)),
                "max": float(np.max(values)),
                "mean": float(np.mean(values)),
                "std": float(np.std(values)),
            }
        return stats


@dataclass
class ScenarioResult:
    """
    Outcome of one scenario run.

    Attributes:
        scenario: The drill that was run
        final_state: Plant state at the end
        engine_state: Lifecycle state at the end
        fault_codes: Latched fault codes at the end
        alarms: Active alarm rule names at the end
        records: Sampled time series
        summary: numpy statistics per numeric column
    """
    scenario: OperatingScenario
    final_state: SimulationState
    engine_state: EngineState
    fault_codes: List[str] = field(default_factory=list)
    alarms: List[str] = field(default_factory=list)
    records: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        """True when the run ended in the expected state with the expected codes."""
        return (
            self.engine_state == self.scenario.expected_state
            and set(self.scenario.expected_fault_codes) <= set(self.fault_codes)
            and (bool(self.scenario.expected_fault_codes) or not self.fault_codes)
        )

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(self.records)
        if not df.empty:
            df = df.set_index("time")
        return df

    def to_dict(self, include_records: bool = True) -> Dict[str, Any]:
        data = {
            "scenario": self.scenario.to_dict(),
            "passed": self.passed,
            "engine_state": self.engine_state.value,
            "fault_codes": list(self.fault_codes),
            "alarms": list(self.alarms),
            "final_state": self.final_state.to_dict(),
            "summary": self.summary,
        }
        if include_records:
            data["records"] = list(self.records)
        return data


class ScenarioRunner:
    """
    Plays scenarios against fresh simulators.

    Example:
        runner = ScenarioRunner(seed=42)
        result = runner.run(ScenarioLibrary.loss_of_coolant())
        assert result.passed
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        noise_enabled: bool = True,
        constants: Optional[EngineConstants] = None,
        record_interval: float = 1.0
    ):
        self.seed = seed
        self.noise_enabled = noise_enabled
        self.constants = constants
        self.record_interval = record_interval

    def create_simulator(self) -> DieselGeneratorSimulator:
        return DieselGeneratorSimulator(
            constants=self.constants,
            noise=NoiseSource(seed=self.seed, enabled=self.noise_enabled),
        )

    def run(self, scenario: OperatingScenario, dt: float = 0.1) -> ScenarioResult:
        """
        Run a scenario to completion.

        Each action is applied before the first tick that starts at or
        after its time.

        Args:
            scenario: Drill to run
            dt: Fixed step in seconds

        Returns:
            ScenarioResult with the end state and recorded series
        """
        if not math.isfinite(dt) or dt <= 0:
            raise InvalidTimeStepError(dt)

        driver = SimulationDriver(self.create_simulator(), record_interval=self.record_interval)
        sim = driver.simulator
        pending = scenario.timeline()
        steps = int(round(scenario.duration / dt))

        logger.info(f"Running scenario '{scenario.name}' for {scenario.duration}s (dt={dt})")

        for _ in range(steps):
            now = sim.get_state().time
            while pending and pending[0].at <= now + TIME_EPSILON:
                action = pending.pop(0)
                logger.debug(f"t={now:.1f}s: {action.description}")
                action.apply(sim)
            driver.step(dt)

        result = ScenarioResult(
            scenario=scenario,
            final_state=sim.get_state(),
            engine_state=sim.engine_state,
            fault_codes=[c.code for c in sim.get_fault_codes()],
            alarms=[a.rule_name for a in sim.get_alarms()],
            records=driver.to_list(),
            summary=driver.summary(),
        )

        if result.passed:
            logger.info(f"Scenario '{scenario.name}' ended {result.engine_state.value} as expected")
        else:
            logger.warning(
                f"Scenario '{scenario.name}' ended {result.engine_state.value} "
                f"(expected {scenario.expected_state.value}), codes={result.fault_codes}"
            )
        return result


# =========================================
# Convenience Functions
# =========================================

def run_scenario(
    scenario_type: ScenarioType,
    duration: Optional[float] = None,
    dt: float = 0.1,
    seed: Optional[int] = None,
    noise_enabled: bool = True
) -> ScenarioResult:
    """
    Quick function to run a library scenario.

    Args:
        scenario_type: Which drill
        duration: Optional duration override
        dt: Step size
        seed: Random seed for reproducibility
        noise_enabled: Disable for fully deterministic runs

    Returns:
        ScenarioResult
    """
    scenario = ScenarioLibrary.get_scenario_by_type(scenario_type, duration)
    return ScenarioRunner(seed=seed, noise_enabled=noise_enabled).run(scenario, dt)


def get_available_scenarios() -> List[Dict[str, Any]]:
    """Get list of available scenarios with descriptions."""
    return [s.to_dict() for s in ScenarioLibrary.get_all_scenarios()]
