"""
Simulation Data Model

Immutable value objects exchanged between the simulation core and its
collaborators:

- Setpoints: operator intent (targets), clamped on the way in
- SimulationState: the full plant state produced by one tick
- HistorySample: one point of a bounded display history

SimulationState is Markovian: the previous tick's state (including the
lagged actuator positions) is the only input the physics needs to
compute the next one.
"""

import math
from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Dict, Any

from .constants import EngineConstants


# =========================================
# Enums
# =========================================

class SetpointKind(str, Enum):
    """Operator-adjustable targets."""
    FUEL = "fuel"
    SPEED = "speed"
    LOAD = "load"
    COOLANT = "coolant"
    VENTILATION = "ventilation"
    EXCITATION = "excitation"

    @property
    def field_name(self) -> str:
        return f"{self.value}_target"


class HistoryKind(str, Enum):
    """Quantities recorded in the display history."""
    RPM = "rpm"
    TEMPERATURE = "temperature"
    FUEL_FLOW = "fuel_flow"
    LOAD = "load"
    OIL_PRESSURE = "oil_pressure"
    VIBRATION = "vibration"
    EXHAUST_TEMP = "exhaust_temp"
    BATTERY_VOLTAGE = "battery_voltage"
    VOLTAGE = "voltage"
    FREQUENCY = "frequency"
    CURRENT = "current"
    POWER = "power"
    EFFICIENCY = "efficiency"
    FUEL_CONSUMPTION = "fuel_consumption"


# =========================================
# Setpoints
# =========================================

@dataclass(frozen=True)
class Setpoints:
    """
    Operator targets.

    Percentages are clamped to [0, 100]; the speed target is clamped to
    [0, MAX_SPEED_SETPOINT]. Out-of-range requests are clamped, never
    rejected.
    """
    fuel_target: float = 75.0
    speed_target: float = 1500.0
    load_target: float = 50.0
    coolant_target: float = 80.0
    ventilation_target: float = 60.0
    excitation_target: float = 80.0

    def with_value(
        self,
        kind: SetpointKind,
        value: float,
        constants: EngineConstants
    ) -> "Setpoints":
        """Return a copy with one target replaced by its clamped value."""
        upper = constants.MAX_SPEED_SETPOINT if kind == SetpointKind.SPEED else 100.0
        return replace(self, **{kind.field_name: clamp(value, 0.0, upper)})

    def get(self, kind: SetpointKind) -> float:
        return getattr(self, kind.field_name)

    def zeroed(self) -> "Setpoints":
        return Setpoints(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


# =========================================
# Plant State
# =========================================

@dataclass(frozen=True)
class Emissions:
    """Exhaust emissions: CO2 (g/kWh), NOx and particulates (mg/Nm³)."""
    co2: float = 0.0
    nox: float = 0.0
    particulates: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class SimulationState:
    """
    Complete plant state at a tick boundary.

    Attributes:
        time: Simulated seconds since the last reset
        rpm: Engine speed
        temperature: Engine (coolant jacket) temperature in °C
        fuel_flow: Actual fuel rack position (%), lags the command
        load: Actual electrical load (%), lags the command
        oil_pressure: Lubrication pressure in bar
        vibration: Vibration velocity in mm/s RMS
        exhaust_temp: Exhaust gas temperature in °C
        battery_voltage: Starter battery voltage
        voltage: Generator line-to-line voltage
        frequency: Generator frequency in Hz
        current: Line current in A
        power: Electrical output in kW
        efficiency: Thermal efficiency in %
        emissions: Exhaust emissions
        fuel_consumption: Fuel burn in L/h
        coolant_flow: Actual coolant pump output (%)
        ventilation: Actual ventilation fan output (%)
        excitation: Actual generator excitation (%)
    """
    time: float = 0.0
    rpm: float = 0.0
    temperature: float = 25.0
    fuel_flow: float = 0.0
    load: float = 0.0
    oil_pressure: float = 0.0
    vibration: float = 0.0
    exhaust_temp: float = 25.0
    battery_voltage: float = 24.0
    voltage: float = 0.0
    frequency: float = 0.0
    current: float = 0.0
    power: float = 0.0
    efficiency: float = 0.0
    emissions: Emissions = Emissions()
    fuel_consumption: float = 0.0
    coolant_flow: float = 0.0
    ventilation: float = 0.0
    excitation: float = 0.0

    @classmethod
    def initial(cls, constants: EngineConstants) -> "SimulationState":
        """Cold, stopped engine at ambient temperature."""
        return cls(
            temperature=constants.AMBIENT_TEMP,
            exhaust_temp=constants.AMBIENT_TEMP,
            battery_voltage=constants.BATTERY_NOMINAL,
        )

    def value_of(self, kind: HistoryKind) -> float:
        return getattr(self, kind.value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


@dataclass(frozen=True)
class HistorySample:
    """A single (time, value) point of the display history."""
    time: float
    value: float

    def to_dict(self) -> Dict[str, float]:
        return {"time": self.time, "value": self.value}


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def is_finite(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)
