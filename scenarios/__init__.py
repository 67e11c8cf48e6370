"""
Scenarios Module - Operator Drills and Simulation Clock

Provides:
- ScenarioLibrary: scripted operator drills with expected outcomes
- SimulationDriver: fixed-step and wall-clock driving of the simulator
- ScenarioRunner: plays a drill and collects the time series
"""

from .library import OperatingScenario, ScenarioAction, ScenarioLibrary, ScenarioType
from .runner import (
    ScenarioResult,
    ScenarioRunner,
    SimulationDriver,
    get_available_scenarios,
    run_scenario,
)

__all__ = [
    "OperatingScenario",
    "ScenarioAction",
    "ScenarioLibrary",
    "ScenarioType",
    "ScenarioResult",
    "ScenarioRunner",
    "SimulationDriver",
    "get_available_scenarios",
    "run_scenario",
]

__version__ = "0.1.0"
