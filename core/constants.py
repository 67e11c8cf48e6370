"""
Plant Constants for the Diesel Generator Model

These values describe a medium-size, 4-pole, 50 Hz diesel generator set
(about 2.5 MW electrical). They are representative, not the nameplate of
any particular unit, and can be overridden for a different machine by
passing a customised EngineConstants to the simulator.

Groups:
- Speed: rated/idle RPM and the load-induced speed droop
- Thermal: heat generation, cooling capacity, thermal mass
- Electrical: rated power, nominal voltage and frequency
- Dynamics: first-order time constants of every lagged quantity
- Lifecycle: startup/shutdown durations and stop threshold
"""

import math
from dataclasses import dataclass, fields

from .errors import ConfigurationError


@dataclass(frozen=True)
class EngineConstants:
    """
    Physical constants used by the physics model and lifecycle.

    All time constants are in seconds, temperatures in °C, powers in kW.
    """

    # Speed
    RATED_RPM: float = 1500.0             # Synchronous speed for 50 Hz with 4 poles
    IDLE_RPM: float = 600.0               # Stable idle speed after cranking
    LOAD_RPM_PENALTY: float = 45.0        # Speed droop at 100% load without governor action
    MAX_SPEED_SETPOINT: float = 1800.0    # Upper bound of the speed setpoint
    MIN_FUEL_RPM: float = 10.0            # Below this the engine burns no fuel

    # Thermal
    AMBIENT_TEMP: float = 25.0
    OPTIMAL_TEMP: float = 85.0
    THERMAL_DANGER: float = 98.0
    MAX_ENGINE_TEMP: float = 150.0        # Clamp ceiling for the energy balance
    ENGINE_THERMAL_MASS: float = 3570.0   # kJ/°C, block + fluids
    MAX_HEAT_GENERATION: float = 3500.0   # kW of waste heat at full fuel, load and speed
    MAX_COOLING_POWER: float = 4000.0     # kW removed at 100% coolant flow
    AMBIENT_HEAT_TRANSFER: float = 0.05   # kW/°C radiated/convected with ventilation off

    # Electrical
    RATED_POWER_KW: float = 2500.0
    NOMINAL_VOLTAGE: float = 400.0        # Line-to-line
    NOMINAL_FREQUENCY: float = 50.0

    # Fuel
    NOMINAL_FUEL_RATE: float = 600.0      # L/h at 100% fuel rack

    # Dynamics (first-order time constants)
    RPM_TIME_CONSTANT: float = 3.5
    FUEL_FLOW_TIME_CONSTANT: float = 1.2
    LOAD_TIME_CONSTANT: float = 2.0
    COOLANT_TIME_CONSTANT: float = 1.0
    VENTILATION_TIME_CONSTANT: float = 0.8
    EXCITATION_TIME_CONSTANT: float = 1.0
    OIL_PRESSURE_TIME_CONSTANT: float = 1.5
    EXHAUST_TIME_CONSTANT: float = 8.0
    VIBRATION_TIME_CONSTANT: float = 0.8

    # Starter battery (V, V/s)
    BATTERY_NOMINAL: float = 24.0
    BATTERY_MIN: float = 21.0
    BATTERY_MAX: float = 25.2
    BATTERY_CRANK_DRAIN: float = 0.1
    BATTERY_CHARGE_RATE: float = 0.05

    # Lifecycle
    STARTUP_DURATION: float = 10.0
    SHUTDOWN_DURATION: float = 8.0
    STOP_RPM_THRESHOLD: float = 20.0
    STARTUP_FUEL_LIMIT: float = 0.5       # Fraction of the fuel target allowed while cranking

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not math.isfinite(value):
                raise ConfigurationError(f"{f.name} must be finite (got {value!r})")
            if f.name.endswith("_TIME_CONSTANT") and value < 0:
                raise ConfigurationError(f"{f.name} must not be negative (got {value})")

        for name in ("STARTUP_DURATION", "SHUTDOWN_DURATION", "ENGINE_THERMAL_MASS", "RATED_RPM", "NOMINAL_VOLTAGE"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive (got {getattr(self, name)})")

        if not 0 < self.IDLE_RPM < self.RATED_RPM:
            raise ConfigurationError("IDLE_RPM must lie between 0 and RATED_RPM")

    @property
    def poles(self) -> float:
        """Number of generator poles giving the nominal frequency at rated speed."""
        return self.NOMINAL_FREQUENCY * 120.0 / self.RATED_RPM
