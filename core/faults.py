"""
Fault Monitor - Protection and Alarm Rules

This module evaluates the generator state against a fixed table of
protection rules every tick.

Philosophy:
- Alarms are advisory and stateless: they are recomputed from scratch
  every tick, so an alarm disappears as soon as its condition clears
- Fault codes are latched: a code is recorded once (deduplicated) and
  stays until the operator explicitly clears it, even if the triggering
  condition has gone away
- A critical rule firing while the engine is running requests a
  transition to Fault; the lifecycle state machine performs it

Rule table:
    E001 temperature     advisory > 95 °C, critical > 105 °C
    E002 overload        advisory load > 90 %, critical power > 105 % rated
    E003 cooling         advisory coolant < 40 % at load > 60 %,
                         critical when additionally temperature > 90 °C
    E004 overspeed       advisory > 1700 rpm, critical > 1800 rpm
         voltage band    advisory outside 380-440 V while generating
         frequency band  advisory outside 48-52 Hz while generating
    E005 oil pressure    critical < 1.5 bar above 700 rpm
    E006 vibration       advisory > 8 mm/s, critical > 12 mm/s
         maintenance     advisory condition < 30 %
         NOx             advisory above the emission limit
         efficiency      advisory below 22 % while generating
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Any

from .lifecycle import EngineState
from .state import SimulationState

logger = logging.getLogger(__name__)


class AlarmSeverity(str, Enum):
    """Severity levels for alarms."""
    ADVISORY = "advisory"      # Operator attention; no protective action
    CRITICAL = "critical"      # Protective trip; latches a fault code


FAULT_DESCRIPTIONS: Dict[str, str] = {
    "E001": "Critical engine overheating",
    "E002": "Generator overload protection",
    "E003": "Insufficient cooling flow",
    "E004": "Engine overspeed protection",
    "E005": "Low oil pressure protection",
    "E006": "Excessive vibration detected",
}


@dataclass(frozen=True)
class FaultThresholds:
    """Protection limits. Values outside these raise alarms or trips."""
    temp_warning: float = 95.0
    temp_critical: float = 105.0
    load_warning: float = 90.0
    overload_power_fraction: float = 1.05
    low_coolant: float = 40.0
    low_coolant_load: float = 60.0
    low_coolant_temp: float = 90.0
    overspeed_warning: float = 1700.0
    overspeed_critical: float = 1800.0
    voltage_min: float = 380.0
    voltage_max: float = 440.0
    frequency_min: float = 48.0
    frequency_max: float = 52.0
    oil_pressure_min: float = 1.5
    oil_pressure_min_rpm: float = 700.0
    vibration_warning: float = 8.0
    vibration_critical: float = 12.0
    maintenance_warning: float = 30.0
    nox_limit: float = 800.0
    efficiency_warning: float = 22.0


@dataclass(frozen=True)
class Alarm:
    """
    A single alarm raised during one evaluation.

    Attributes:
        message: Human-readable description
        severity: Advisory or critical
        rule_name: Identifier of the rule that fired
        metric_name: Which state field triggered it
        actual_value: The offending value
        fault_code: Latched code for critical rules
    """
    message: str
    severity: AlarmSeverity
    rule_name: str
    metric_name: Optional[str] = None
    actual_value: Optional[float] = None
    fault_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "message": self.message,
            "severity": self.severity.value,
            "rule_name": self.rule_name,
            "metric_name": self.metric_name,
            "actual_value": self.actual_value,
            "fault_code": self.fault_code,
        }


@dataclass(frozen=True)
class FaultCode:
    """A latched fault code and when (simulated seconds) it was first raised."""
    code: str
    first_raised_at: float
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "first_raised_at": self.first_raised_at,
            "description": self.description,
        }


@dataclass
class FaultEvaluation:
    """
    Result of evaluating one state.

    Attributes:
        alarms: All alarms for this tick
        new_codes: Codes latched for the first time this tick
        critical: Whether any critical rule fired
        fault_requested: Critical rule fired while the engine was running
    """
    alarms: List[Alarm] = field(default_factory=list)
    new_codes: List[FaultCode] = field(default_factory=list)
    critical: bool = False
    fault_requested: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alarms": [a.to_dict() for a in self.alarms],
            "new_codes": [c.to_dict() for c in self.new_codes],
            "critical": self.critical,
            "fault_requested": self.fault_requested,
        }


class FaultMonitor:
    """
    Threshold-based protection for the generator set.

    Example:
        monitor = FaultMonitor(rated_power_kw=2500)
        result = monitor.evaluate(state, EngineState.RUNNING)
        if result.fault_requested:
            machine.dispatch(LifecycleEvent.CRITICAL_FAULT)
    """

    def __init__(self, rated_power_kw: float = 2500.0, thresholds: Optional[FaultThresholds] = None):
        """
        Initialize the monitor.

        Args:
            rated_power_kw: Rated electrical output, for the overload rule
            thresholds: Protection limits. If None, uses defaults.
        """
        self.rated_power_kw = rated_power_kw
        self.thresholds = thresholds or FaultThresholds()
        self._codes: "OrderedDict[str, FaultCode]" = OrderedDict()
        self._alarms: Tuple[Alarm, ...] = ()

    @property
    def alarms(self) -> Tuple[Alarm, ...]:
        return self._alarms

    @property
    def fault_codes(self) -> Tuple[FaultCode, ...]:
        return tuple(self._codes.values())

    def has_code(self, code: str) -> bool:
        return code in self._codes

    def evaluate(
        self,
        state: SimulationState,
        engine_state: EngineState,
        maintenance: float = 100.0
    ) -> FaultEvaluation:
        """
        Evaluate every rule against a state.

        Args:
            state: Plant state after integration
            engine_state: Current lifecycle state
            maintenance: Engine condition 0-100%

        Returns:
            FaultEvaluation with this tick's alarms and newly latched codes
        """
        alarms: List[Alarm] = []
        alarms.extend(self._check_temperature(state))
        alarms.extend(self._check_load(state))
        alarms.extend(self._check_cooling(state))
        alarms.extend(self._check_speed(state))
        alarms.extend(self._check_electrical(state, engine_state))
        alarms.extend(self._check_oil_pressure(state))
        alarms.extend(self._check_vibration(state))
        alarms.extend(self._check_condition(state, engine_state, maintenance))

        new_codes: List[FaultCode] = []
        for alarm in alarms:
            if alarm.fault_code and alarm.fault_code not in self._codes:
                code = FaultCode(
                    code=alarm.fault_code,
                    first_raised_at=state.time,
                    description=FAULT_DESCRIPTIONS.get(alarm.fault_code, ""),
                )
                self._codes[code.code] = code
                new_codes.append(code)
                logger.warning(f"Fault code {code.code} raised at t={state.time:.1f}s: {code.description}")

        critical = any(a.severity == AlarmSeverity.CRITICAL for a in alarms)
        self._alarms = tuple(alarms)

        return FaultEvaluation(
            alarms=alarms,
            new_codes=new_codes,
            critical=critical,
            fault_requested=critical and engine_state == EngineState.RUNNING,
        )

    def clear(self) -> None:
        """Remove every latched fault code and the current alarms."""
        if self._codes:
            logger.info(f"Clearing fault codes: {', '.join(self._codes)}")
        self._codes.clear()
        self._alarms = ()

    # =========================================
    # Rules
    # =========================================

    def _check_temperature(self, state: SimulationState) -> List[Alarm]:
        t = self.thresholds
        if state.temperature > t.temp_critical:
            return [Alarm(
                message="CRITICAL: Engine overheating",
                severity=AlarmSeverity.CRITICAL,
                rule_name="temperature_critical",
                metric_name="temperature",
                actual_value=state.temperature,
                fault_code="E001",
            )]
        if state.temperature > t.temp_warning:
            return [Alarm(
                message="High engine temperature",
                severity=AlarmSeverity.ADVISORY,
                rule_name="temperature_high",
                metric_name="temperature",
                actual_value=state.temperature,
            )]
        return []

    def _check_load(self, state: SimulationState) -> List[Alarm]:
        t = self.thresholds
        if state.power > self.rated_power_kw * t.overload_power_fraction:
            return [Alarm(
                message="CRITICAL: Generator overload",
                severity=AlarmSeverity.CRITICAL,
                rule_name="overload",
                metric_name="power",
                actual_value=state.power,
                fault_code="E002",
            )]
        if state.load > t.load_warning:
            return [Alarm(
                message="High load warning",
                severity=AlarmSeverity.ADVISORY,
                rule_name="load_high",
                metric_name="load",
                actual_value=state.load,
            )]
        return []

    def _check_cooling(self, state: SimulationState) -> List[Alarm]:
        t = self.thresholds
        if state.coolant_flow >= t.low_coolant or state.load <= t.low_coolant_load:
            return []
        if state.temperature > t.low_coolant_temp:
            return [Alarm(
                message="CRITICAL: Insufficient cooling at high temperature",
                severity=AlarmSeverity.CRITICAL,
                rule_name="cooling_insufficient",
                metric_name="coolant_flow",
                actual_value=state.coolant_flow,
                fault_code="E003",
            )]
        return [Alarm(
            message="Low coolant flow",
            severity=AlarmSeverity.ADVISORY,
            rule_name="coolant_low",
            metric_name="coolant_flow",
            actual_value=state.coolant_flow,
        )]

    def _check_speed(self, state: SimulationState) -> List[Alarm]:
        t = self.thresholds
        if state.rpm > t.overspeed_critical:
            return [Alarm(
                message="CRITICAL: Engine overspeed protection",
                severity=AlarmSeverity.CRITICAL,
                rule_name="overspeed",
                metric_name="rpm",
                actual_value=state.rpm,
                fault_code="E004",
            )]
        if state.rpm > t.overspeed_warning:
            return [Alarm(
                message="Engine overspeed warning",
                severity=AlarmSeverity.ADVISORY,
                rule_name="speed_high",
                metric_name="rpm",
                actual_value=state.rpm,
            )]
        return []

    def _check_electrical(self, state: SimulationState, engine_state: EngineState) -> List[Alarm]:
        """Voltage and frequency bands only apply while the generator is producing."""
        t = self.thresholds
        if engine_state != EngineState.RUNNING or state.voltage <= 0:
            return []

        alarms = []
        if not t.voltage_min <= state.voltage <= t.voltage_max:
            alarms.append(Alarm(
                message="Voltage out of range",
                severity=AlarmSeverity.ADVISORY,
                rule_name="voltage_band",
                metric_name="voltage",
                actual_value=state.voltage,
            ))
        if not t.frequency_min <= state.frequency <= t.frequency_max:
            alarms.append(Alarm(
                message="Frequency out of range",
                severity=AlarmSeverity.ADVISORY,
                rule_name="frequency_band",
                metric_name="frequency",
                actual_value=state.frequency,
            ))
        return alarms

    def _check_oil_pressure(self, state: SimulationState) -> List[Alarm]:
        t = self.thresholds
        if state.rpm > t.oil_pressure_min_rpm and state.oil_pressure < t.oil_pressure_min:
            return [Alarm(
                message="CRITICAL: Low oil pressure",
                severity=AlarmSeverity.CRITICAL,
                rule_name="oil_pressure_low",
                metric_name="oil_pressure",
                actual_value=state.oil_pressure,
                fault_code="E005",
            )]
        return []

    def _check_vibration(self, state: SimulationState) -> List[Alarm]:
        t = self.thresholds
        if state.vibration > t.vibration_critical:
            return [Alarm(
                message="CRITICAL: Excessive vibration",
                severity=AlarmSeverity.CRITICAL,
                rule_name="vibration_critical",
                metric_name="vibration",
                actual_value=state.vibration,
                fault_code="E006",
            )]
        if state.vibration > t.vibration_warning:
            return [Alarm(
                message="High vibration warning",
                severity=AlarmSeverity.ADVISORY,
                rule_name="vibration_high",
                metric_name="vibration",
                actual_value=state.vibration,
            )]
        return []

    def _check_condition(
        self,
        state: SimulationState,
        engine_state: EngineState,
        maintenance: float
    ) -> List[Alarm]:
        """Maintenance, emissions and efficiency advisories."""
        t = self.thresholds
        alarms = []

        if maintenance < t.maintenance_warning:
            alarms.append(Alarm(
                message="Maintenance required",
                severity=AlarmSeverity.ADVISORY,
                rule_name="maintenance_due",
                metric_name="maintenance",
                actual_value=maintenance,
            ))

        if state.emissions.nox > t.nox_limit:
            alarms.append(Alarm(
                message="NOx emissions exceeding limits",
                severity=AlarmSeverity.ADVISORY,
                rule_name="nox_limit",
                metric_name="nox",
                actual_value=state.emissions.nox,
            ))

        if engine_state == EngineState.RUNNING and state.power > 0 and state.efficiency < t.efficiency_warning:
            alarms.append(Alarm(
                message="Low efficiency warning",
                severity=AlarmSeverity.ADVISORY,
                rule_name="efficiency_low",
                metric_name="efficiency",
                actual_value=state.efficiency,
            ))

        return alarms
