"""
Cascade Controller

Two PID loops in series. The primary (outer) loop compares the slow
process variable with the operator setpoint; its output is mapped
through a fixed linear transform into the setpoint of the secondary
(inner) loop, which drives the actuator:

    secondary_setpoint = primary_output * scale + offset

The inner loop corrects actuator disturbances (pump output, fuel rack
position...) before they reach the slow process, which improves
disturbance rejection for plants with multiple time constants.

Switching the cascade on or off is never a soft transition: any change
of the enabled flag fully resets both inner controllers. While disabled,
update() is a true bypass and returns 0 without touching either loop.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Deque, Dict, Optional, Tuple

from core.errors import ConfigurationError
from .pid import PidConfig, PidController

logger = logging.getLogger(__name__)


class CascadeLoop(str, Enum):
    """Inner controllers of a cascade."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class CascadeConfig:
    """
    Cascade configuration.

    Attributes:
        primary: Outer loop configuration
        secondary: Inner loop configuration
        secondary_setpoint_offset: Added to the scaled primary output
        secondary_setpoint_scale: Multiplies the primary output
    """
    primary: PidConfig
    secondary: PidConfig
    secondary_setpoint_offset: float = 0.0
    secondary_setpoint_scale: float = 1.0

    def __post_init__(self):
        if not isinstance(self.primary, PidConfig) or not isinstance(self.secondary, PidConfig):
            raise ConfigurationError("Cascade loops must be configured with PidConfig instances")
        for name in ("secondary_setpoint_offset", "secondary_setpoint_scale"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ConfigurationError(f"{name} must be finite (got {value!r})")

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class CascadeHistoryEntry:
    """One cascade update, recorded for diagnostic consumers."""
    time: float
    primary_setpoint: float
    primary_measurement: float
    primary_output: float
    secondary_setpoint: float
    secondary_measurement: float
    secondary_output: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class CascadeSnapshot:
    """Read-only view of the cascade signals after the last update."""
    enabled: bool
    primary_setpoint: float
    primary_measurement: float
    primary_output: float
    secondary_setpoint: float
    secondary_measurement: float
    secondary_output: float

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


class CascadeController:
    """
    Primary/secondary PID cascade.

    Example:
        cascade = CascadeController(
            CascadeConfig(
                primary=PidConfig(kp=-1.5, ki=-0.05, kd=-0.3),
                secondary=PidConfig(kp=3.0, ki=0.1, kd=0.5),
            ),
            primary_setpoint=75.0,
            enabled=True,
        )
        coolant_command = cascade.update(engine_temp, coolant_flow, dt=0.1)
    """

    HISTORY_LENGTH = 100

    def __init__(
        self,
        config: CascadeConfig,
        primary_setpoint: float = 0.0,
        enabled: bool = False
    ):
        if not isinstance(config, CascadeConfig):
            raise ConfigurationError(f"Expected CascadeConfig, got {type(config).__name__}")
        self._config = config
        self._primary = PidController(config.primary)
        self._secondary = PidController(config.secondary)
        self._enabled = enabled
        self._primary_setpoint = primary_setpoint
        self._history: Deque[CascadeHistoryEntry] = deque(maxlen=self.HISTORY_LENGTH)
        self._clear_signals()

    # =========================================
    # Configuration
    # =========================================

    @property
    def config(self) -> CascadeConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def primary(self) -> PidController:
        return self._primary

    @property
    def secondary(self) -> PidController:
        return self._secondary

    @property
    def primary_setpoint(self) -> float:
        return self._primary_setpoint

    @property
    def secondary_setpoint(self) -> float:
        return self._secondary_setpoint

    def configure(self, config: CascadeConfig) -> None:
        """Replace the whole configuration and reset both loops."""
        if not isinstance(config, CascadeConfig):
            raise ConfigurationError(f"Expected CascadeConfig, got {type(config).__name__}")
        self._config = config
        self._primary.configure(config.primary)
        self._secondary.configure(config.secondary)
        self.reset()

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable the cascade; any change fully resets both loops."""
        if enabled != self._enabled:
            self._enabled = enabled
            self.reset()
            logger.info(f"Cascade control {'enabled' if enabled else 'disabled'}")

    def set_primary_setpoint(self, setpoint: float) -> None:
        if not math.isfinite(setpoint):
            raise ConfigurationError(f"Primary setpoint must be finite (got {setpoint!r})")
        self._primary_setpoint = setpoint

    def set_secondary_setpoint_parameters(self, offset: float, scale: float) -> None:
        """Change the primary-output to secondary-setpoint map."""
        self._config = CascadeConfig(
            primary=self._config.primary,
            secondary=self._config.secondary,
            secondary_setpoint_offset=offset,
            secondary_setpoint_scale=scale,
        )

    def update_parameters(
        self,
        loop: CascadeLoop,
        kp: Optional[float] = None,
        ki: Optional[float] = None,
        kd: Optional[float] = None
    ) -> PidConfig:
        """Retune one inner loop live, without resetting its memory."""
        loop = CascadeLoop(loop)
        controller = self._primary if loop == CascadeLoop.PRIMARY else self._secondary
        updated = controller.update_parameters(kp, ki, kd)

        if loop == CascadeLoop.PRIMARY:
            self._config = CascadeConfig(updated, self._config.secondary,
                                         self._config.secondary_setpoint_offset,
                                         self._config.secondary_setpoint_scale)
        else:
            self._config = CascadeConfig(self._config.primary, updated,
                                         self._config.secondary_setpoint_offset,
                                         self._config.secondary_setpoint_scale)
        return updated

    def reset(self) -> None:
        """Reset both loops, the cascade signals and the history."""
        self._primary.reset()
        self._secondary.reset()
        self._history.clear()
        self._clear_signals()

    # =========================================
    # Control
    # =========================================

    def update(self, primary_measurement: float, secondary_measurement: float, dt: float) -> float:
        """
        Run one cascade step.

        Args:
            primary_measurement: Slow process variable (e.g. temperature)
            secondary_measurement: Fast actuator variable (e.g. coolant flow)
            dt: Seconds since the previous update

        Returns:
            Secondary loop output, or 0.0 when the cascade is disabled
        """
        if not self._enabled:
            return 0.0

        primary_output = self._primary.update(self._primary_setpoint, primary_measurement, dt)
        secondary_setpoint = (
            primary_output * self._config.secondary_setpoint_scale
            + self._config.secondary_setpoint_offset
        )
        secondary_output = self._secondary.update(secondary_setpoint, secondary_measurement, dt)

        self._time += dt
        self._primary_measurement = primary_measurement
        self._primary_output = primary_output
        self._secondary_setpoint = secondary_setpoint
        self._secondary_measurement = secondary_measurement
        self._secondary_output = secondary_output

        self._history.append(CascadeHistoryEntry(
            time=self._time,
            primary_setpoint=self._primary_setpoint,
            primary_measurement=primary_measurement,
            primary_output=primary_output,
            secondary_setpoint=secondary_setpoint,
            secondary_measurement=secondary_measurement,
            secondary_output=secondary_output,
        ))
        return secondary_output

    def get_state(self) -> CascadeSnapshot:
        return CascadeSnapshot(
            enabled=self._enabled,
            primary_setpoint=self._primary_setpoint,
            primary_measurement=self._primary_measurement,
            primary_output=self._primary_output,
            secondary_setpoint=self._secondary_setpoint,
            secondary_measurement=self._secondary_measurement,
            secondary_output=self._secondary_output,
        )

    def get_history(self) -> Tuple[CascadeHistoryEntry, ...]:
        return tuple(self._history)

    def get_parameters(self) -> Dict[str, Dict[str, float]]:
        """Current gains of both loops."""
        return {
            CascadeLoop.PRIMARY.value: {
                "kp": self._config.primary.kp,
                "ki": self._config.primary.ki,
                "kd": self._config.primary.kd,
            },
            CascadeLoop.SECONDARY.value: {
                "kp": self._config.secondary.kp,
                "ki": self._config.secondary.ki,
                "kd": self._config.secondary.kd,
            },
        }

    def _clear_signals(self) -> None:
        self._time = 0.0
        self._primary_measurement = 0.0
        self._primary_output = 0.0
        self._secondary_setpoint = 0.0
        self._secondary_measurement = 0.0
        self._secondary_output = 0.0
