"""
Core Module - Diesel Plant Simulator

This module contains the plant side of the simulator:
- Engine constants and validated configuration
- Physics model (speed, thermal, electrical, emissions)
- Lifecycle state machine (idle/starting/running/stopping/fault)
- Fault monitor (alarms and latched fault codes)

The tick orchestrator lives in core.simulator and is imported from there
directly (it depends on the control package, which depends on core).
"""

from .errors import ConfigurationError, InvalidInputError, InvalidTimeStepError, SimulationError
from .constants import EngineConstants
from .noise import NoiseSource
from .state import Emissions, HistoryKind, HistorySample, SetpointKind, Setpoints, SimulationState
from .lifecycle import (
    EngineState,
    LifecycleEvent,
    LifecycleStateMachine,
    PreStartChecklist,
    PreStartItem,
    TransitionResult,
)
from .physics import ActuatorCommands, PhysicsModel, steady_state_temperature
from .faults import Alarm, AlarmSeverity, FaultCode, FaultMonitor, FaultThresholds

__all__ = [
    # Errors
    "SimulationError",
    "ConfigurationError",
    "InvalidTimeStepError",
    "InvalidInputError",

    # Configuration
    "EngineConstants",
    "NoiseSource",

    # State
    "SimulationState",
    "Setpoints",
    "SetpointKind",
    "HistoryKind",
    "HistorySample",
    "Emissions",

    # Lifecycle
    "EngineState",
    "LifecycleEvent",
    "LifecycleStateMachine",
    "PreStartChecklist",
    "PreStartItem",
    "TransitionResult",

    # Physics
    "PhysicsModel",
    "ActuatorCommands",
    "steady_state_temperature",

    # Faults
    "FaultMonitor",
    "FaultThresholds",
    "Alarm",
    "AlarmSeverity",
    "FaultCode",
]

__version__ = "0.1.0"
