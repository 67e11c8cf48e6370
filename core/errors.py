"""
Exception Taxonomy for the Simulation Core

Only programmer/configuration mistakes and corrupted time steps are
raised as exceptions. Operational faults (overheat, overspeed, low oil
pressure...) are never exceptions: they surface as Alarm and FaultCode
values through the simulator read API.

Hierarchy:
- SimulationError: base class for everything raised by the core
  - ConfigurationError: invalid controller bounds, non-finite gains,
    negative time constants (also a ValueError)
  - InvalidTimeStepError: negative or non-finite dt handed to advance()
  - InvalidInputError: non-finite setpoint or measurement fed to a loop
"""


class SimulationError(Exception):
    """Base class for errors raised by the simulation core."""


class ConfigurationError(SimulationError, ValueError):
    """Raised when a controller or plant configuration is invalid."""


class InvalidTimeStepError(SimulationError, ValueError):
    """Raised when a time step is negative, NaN or infinite."""

    def __init__(self, dt: float):
        self.dt = dt
        super().__init__(f"Time step must be a finite, non-negative number of seconds (got {dt!r})")


class InvalidInputError(SimulationError, ValueError):
    """Raised when a controller receives a non-finite setpoint or measurement."""
