"""
Single-Loop PID Controller

A PID (Proportional-Integral-Derivative) controller continuously computes
the error between a setpoint and a measured process variable and applies
a correction made of three terms:

    output = kp * error + ki * ∫error dt + kd * d(-measurement)/dt

Behaviour:
- Output is always clamped to [output_min, output_max]
- Derivative on measurement: the derivative acts on the measured value,
  not on the error, so setpoint steps do not produce a derivative kick
- Anti-windup by conditional integration: the integral only accumulates
  while the un-clamped output stays inside the output range (or while
  accumulating moves a saturated output back toward the range)
- Bumpless re-enable: after set_mode(False) / set_mode(True, bumpless=True)
  the integral is re-seeded so the first output equals the last output
  produced before the controller was disabled

Reverse-acting loops (e.g. more cooling when temperature rises) are
expressed with negative gains.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, asdict, replace
from typing import Deque, Dict, Optional, Tuple

from core.errors import ConfigurationError, InvalidInputError, InvalidTimeStepError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PidConfig:
    """
    Immutable controller configuration.

    Raises:
        ConfigurationError: If a gain or bound is not finite, or if
            output_min > output_max.
    """
    kp: float
    ki: float
    kd: float
    output_min: float = 0.0
    output_max: float = 100.0

    def __post_init__(self):
        for name in ("kp", "ki", "kd", "output_min", "output_max"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ConfigurationError(f"PID {name} must be a finite number (got {value!r})")
        if self.output_min > self.output_max:
            raise ConfigurationError(
                f"PID output_min ({self.output_min}) must not exceed output_max ({self.output_max})"
            )

    def with_gains(
        self,
        kp: Optional[float] = None,
        ki: Optional[float] = None,
        kd: Optional[float] = None
    ) -> "PidConfig":
        """Return a copy with some gains replaced (validated again)."""
        return replace(
            self,
            kp=self.kp if kp is None else kp,
            ki=self.ki if ki is None else ki,
            kd=self.kd if kd is None else kd,
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class PidRuntime:
    """Private controller memory."""
    integral: float = 0.0
    previous_error: float = 0.0
    previous_measurement: float = 0.0
    last_output: float = 0.0
    primed: bool = False


@dataclass(frozen=True)
class PidHistoryEntry:
    """Diagnostic record of one controller update."""
    time: float
    setpoint: float
    measurement: float
    error: float
    p: float
    i: float
    d: float
    output: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class PidController:
    """
    PID controller with clamped output, anti-windup and bumpless transfer.

    Example:
        pid = PidController(PidConfig(kp=2.0, ki=0.1, kd=0.5))
        output = pid.update(setpoint=75.0, measurement=70.0, dt=0.1)
    """

    HISTORY_LENGTH = 100

    def __init__(self, config: PidConfig, enabled: bool = True):
        """
        Initialize the controller.

        Args:
            config: Gains and output bounds
            enabled: Initial mode; a disabled controller holds its output
        """
        if not isinstance(config, PidConfig):
            raise ConfigurationError(f"Expected PidConfig, got {type(config).__name__}")
        self._config = config
        self._enabled = enabled
        self._seed_pending = False
        self._time = 0.0
        self._history: Deque[PidHistoryEntry] = deque(maxlen=self.HISTORY_LENGTH)
        self._runtime = self._fresh_runtime()

    # =========================================
    # Configuration
    # =========================================

    @property
    def config(self) -> PidConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def runtime(self) -> PidRuntime:
        """Copy of the controller memory (for diagnostics and tests)."""
        return replace(self._runtime)

    def configure(self, config: PidConfig) -> None:
        """
        Replace the whole configuration.

        This is a hard reconfiguration: runtime memory is reset. Use
        update_parameters() to retune gains without losing the integral.
        """
        if not isinstance(config, PidConfig):
            raise ConfigurationError(f"Expected PidConfig, got {type(config).__name__}")
        self._config = config
        self.reset()

    def update_parameters(
        self,
        kp: Optional[float] = None,
        ki: Optional[float] = None,
        kd: Optional[float] = None
    ) -> PidConfig:
        """Change gains live, keeping the integral and derivative memory."""
        self._config = self._config.with_gains(kp, ki, kd)
        logger.debug(f"PID gains updated: kp={self._config.kp} ki={self._config.ki} kd={self._config.kd}")
        return self._config

    def set_mode(self, enabled: bool, bumpless: bool = True) -> None:
        """
        Enable or disable the controller.

        Disabling freezes the integral and previous measurement; update()
        then returns the frozen last output. Re-enabling with bumpless=True
        seeds the integral on the next update so that its output equals
        that last output.
        """
        if enabled == self._enabled:
            return
        self._enabled = enabled
        if enabled:
            self._seed_pending = bumpless
            # Measurement drifted while disabled; skip one derivative sample
            self._runtime.primed = False

    def track(self, output: float) -> None:
        """
        Follow a manual output while disabled.

        The next bumpless re-enable then starts from this value instead of
        the last automatic output (manual-to-auto transfer).
        """
        if self._enabled:
            return
        cfg = self._config
        self._runtime.last_output = min(cfg.output_max, max(cfg.output_min, output))

    def reset(self) -> None:
        """Zero all runtime memory and clear the diagnostic history."""
        self._runtime = self._fresh_runtime()
        self._seed_pending = False
        self._time = 0.0
        self._history.clear()

    # =========================================
    # Control Law
    # =========================================

    def update(self, setpoint: float, measurement: float, dt: float) -> float:
        """
        Compute the next controller output.

        Args:
            setpoint: Desired value
            measurement: Current process value
            dt: Seconds since the previous update (0 is allowed)

        Returns:
            Output clamped to [output_min, output_max]

        Raises:
            InvalidTimeStepError: dt is negative or not finite
            InvalidInputError: setpoint or measurement is not finite
        """
        if not isinstance(dt, (int, float)) or not math.isfinite(dt) or dt < 0:
            raise InvalidTimeStepError(dt)
        if not (math.isfinite(setpoint) and math.isfinite(measurement)):
            raise InvalidInputError(
                f"PID inputs must be finite (setpoint={setpoint!r}, measurement={measurement!r})"
            )

        rt = self._runtime
        if not self._enabled:
            return rt.last_output

        cfg = self._config
        error = setpoint - measurement

        if rt.primed and dt > 0:
            derivative = -(measurement - rt.previous_measurement) / dt
        else:
            derivative = 0.0

        p_term = cfg.kp * error
        d_term = cfg.kd * derivative

        if self._seed_pending:
            if cfg.ki != 0:
                rt.integral = (rt.last_output - p_term - d_term) / cfg.ki
            self._seed_pending = False
        else:
            rt.integral = self._integrate(rt.integral, error * dt, p_term, d_term)

        i_term = cfg.ki * rt.integral
        output = min(cfg.output_max, max(cfg.output_min, p_term + i_term + d_term))

        rt.previous_error = error
        rt.previous_measurement = measurement
        rt.last_output = output
        rt.primed = True

        self._time += dt
        self._history.append(PidHistoryEntry(
            time=self._time,
            setpoint=setpoint,
            measurement=measurement,
            error=error,
            p=p_term,
            i=i_term,
            d=d_term,
            output=output,
        ))
        return output

    def get_history(self) -> Tuple[PidHistoryEntry, ...]:
        return tuple(self._history)

    # =========================================
    # Internals
    # =========================================

    def _integrate(self, integral: float, increment: float, p_term: float, d_term: float) -> float:
        """Conditional integration: keep the new integral only if it does not wind up."""
        cfg = self._config
        current = p_term + cfg.ki * integral + d_term
        candidate = p_term + cfg.ki * (integral + increment) + d_term

        if cfg.output_min <= candidate <= cfg.output_max:
            return integral + increment
        if candidate > cfg.output_max and candidate < current:
            return integral + increment
        if candidate < cfg.output_min and candidate > current:
            return integral + increment
        if cfg.ki != 0 and cfg.output_min <= current <= cfg.output_max:
            # Integrate only up to the limit the output would cross
            bound = cfg.output_max if candidate > cfg.output_max else cfg.output_min
            return (bound - p_term - d_term) / cfg.ki
        return integral

    def _fresh_runtime(self) -> PidRuntime:
        resting = min(self._config.output_max, max(self._config.output_min, 0.0))
        return PidRuntime(last_output=resting)
