"""
Pydantic Models for API Request/Response Validation

This module defines all the data models used by the API for:
- Request body validation
- Response serialization
- Documentation generation (OpenAPI/Swagger)

All models use Pydantic v2 syntax for validation and serialization.
Domain enums (engine state, setpoint kinds, control loops, scenario types)
are re-used from the core packages so that path parameters are validated
against the same values the simulator accepts.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.lifecycle import EngineState
from core.faults import AlarmSeverity
from core.simulator import CascadeMode
from scenarios.library import ScenarioType


# =========================================
# Enums
# =========================================

class CommandType(str, Enum):
    """Operator commands."""
    START = "start"
    STOP = "stop"
    EMERGENCY_STOP = "emergency_stop"
    CLEAR_FAULTS = "clear_faults"
    RESET = "reset"


# =========================================
# Plant State Models
# =========================================

class EmissionsModel(BaseModel):
    """Exhaust emissions."""
    co2: float = Field(..., description="CO2 (g/kWh)")
    nox: float = Field(..., description="NOx (mg/Nm³)")
    particulates: float = Field(..., description="Particulates (mg/Nm³)")


class PlantState(BaseModel):
    """Snapshot of the simulated plant."""
    time: float = Field(..., description="Simulated time (s)")
    rpm: float = Field(..., description="Engine speed (rpm)")
    temperature: float = Field(..., description="Engine temperature (°C)")
    fuel_flow: float = Field(..., description="Actual fuel rack position (%)")
    load: float = Field(..., description="Actual electrical load (%)")
    oil_pressure: float = Field(..., description="Oil pressure (bar)")
    vibration: float = Field(..., description="Vibration (mm/s)")
    exhaust_temp: float = Field(..., description="Exhaust temperature (°C)")
    battery_voltage: float = Field(..., description="Starter battery (V)")
    voltage: float = Field(..., description="Generator voltage (V)")
    frequency: float = Field(..., description="Generator frequency (Hz)")
    current: float = Field(..., description="Line current (A)")
    power: float = Field(..., description="Electrical power (kW)")
    efficiency: float = Field(..., description="Thermal efficiency (%)")
    emissions: EmissionsModel
    fuel_consumption: float = Field(..., description="Fuel consumption (L/h)")
    coolant_flow: float = Field(..., description="Actual coolant flow (%)")
    ventilation: float = Field(..., description="Actual ventilation (%)")
    excitation: float = Field(..., description="Actual excitation (%)")


class SetpointsModel(BaseModel):
    """Operator targets."""
    fuel_target: float
    speed_target: float
    load_target: float
    coolant_target: float
    ventilation_target: float
    excitation_target: float


class ProgressModel(BaseModel):
    """Startup/shutdown ramp progress."""
    startup_progress: float = Field(..., ge=0, le=1)
    shutdown_progress: float = Field(..., ge=0, le=1)
    elapsed_in_phase: float
    shutdown_start_rpm: float


class AlarmModel(BaseModel):
    """A currently active alarm."""
    message: str
    severity: AlarmSeverity
    rule_name: str
    metric_name: Optional[str] = None
    actual_value: Optional[float] = None
    fault_code: Optional[str] = None


class FaultCodeModel(BaseModel):
    """A latched fault code."""
    code: str
    first_raised_at: float = Field(..., description="Simulated time when first raised (s)")
    description: str = ""


class SimulatorStatus(BaseModel):
    """Full simulator status returned by state/advance endpoints."""
    engine_state: EngineState
    state: PlantState
    setpoints: SetpointsModel
    progress: ProgressModel
    alarms: List[AlarmModel]
    fault_codes: List[FaultCodeModel]
    prestart: Dict[str, bool]
    maintenance_status: float


# =========================================
# Command Models
# =========================================

class AdvanceRequest(BaseModel):
    """Request to advance the simulation."""
    dt: float = Field(default=0.1, ge=0, le=60, description="Step size (s)")
    steps: int = Field(default=1, ge=1, le=36000, description="Number of steps")

    model_config = ConfigDict(json_schema_extra={"example": {"dt": 0.1, "steps": 100}})


class CommandResponse(BaseModel):
    """Outcome of an operator command."""
    accepted: bool
    command: str
    state: EngineState
    reason: Optional[str] = None


class SetpointRequest(BaseModel):
    value: float = Field(..., description="Requested target (clamped to its range)")


class SetpointResponse(BaseModel):
    kind: str
    requested: float
    value: float = Field(..., description="Value actually stored")
    clamped: bool


class PreStartRequest(BaseModel):
    done: bool = Field(default=True, description="Mark the item done or not done")


class MaintenanceRequest(BaseModel):
    value: float = Field(..., ge=0, le=100, description="Engine condition (%)")


class HistoryPoint(BaseModel):
    time: float
    value: float


class HistoryResponse(BaseModel):
    kind: str
    samples: List[HistoryPoint]


# =========================================
# Controller Models
# =========================================

class PidConfigModel(BaseModel):
    """PID gains and output bounds."""
    kp: float
    ki: float
    kd: float
    output_min: float = 0.0
    output_max: float = 100.0

    @model_validator(mode="after")
    def check_bounds(self):
        if self.output_min > self.output_max:
            raise ValueError("output_min must not exceed output_max")
        return self

    model_config = ConfigDict(
        json_schema_extra={"example": {"kp": 2.0, "ki": 0.1, "kd": 0.5, "output_min": 0, "output_max": 100}}
    )


class GainUpdate(BaseModel):
    """Live retune: only the given gains change."""
    kp: Optional[float] = None
    ki: Optional[float] = None
    kd: Optional[float] = None


class LoopModeRequest(BaseModel):
    enabled: bool
    target: Optional[float] = Field(default=None, description="New loop target")


class CascadeConfigModel(BaseModel):
    primary: PidConfigModel
    secondary: PidConfigModel
    secondary_setpoint_offset: float = 0.0
    secondary_setpoint_scale: float = Field(default=1.0, description="Multiplier on the primary output")


class CascadeModeRequest(BaseModel):
    enabled: bool
    mode: Optional[CascadeMode] = Field(default=None, description="Cascade arrangement")
    setpoint: Optional[float] = Field(default=None, description="Primary setpoint")


# =========================================
# Scenario Models
# =========================================

class ScenarioInfo(BaseModel):
    """Information about a scenario."""
    name: str
    type: str
    description: str
    duration: float
    actions: List[Dict[str, Any]]
    expected_state: str
    expected_fault_codes: List[str]
    story: Optional[str] = None


class ScenarioListResponse(BaseModel):
    scenarios: List[ScenarioInfo]


class ScenarioRunRequest(BaseModel):
    """Request to run a scenario on a fresh simulator."""
    scenario_type: ScenarioType = Field(..., description="Type of drill")
    duration: Optional[float] = Field(
        default=None,
        description="Duration in seconds (uses scenario default if not specified)",
        ge=1, le=3600
    )
    dt: float = Field(default=0.1, gt=0, le=1)
    seed: Optional[int] = Field(default=None, description="Random seed for reproducibility")
    noise: bool = Field(default=True, description="Disable for deterministic runs")
    include_records: bool = Field(default=False, description="Return the sampled time series")

    model_config = ConfigDict(
        json_schema_extra={"example": {"scenario_type": "loss_of_coolant", "seed": 42, "include_records": False}}
    )


class ScenarioRunResponse(BaseModel):
    success: bool
    passed: bool
    scenario: ScenarioInfo
    engine_state: EngineState
    fault_codes: List[str]
    alarms: List[str]
    final_state: PlantState
    summary: Dict[str, Dict[str, float]]
    records: Optional[List[Dict[str, Any]]] = None
    message: str


# =========================================
# System Models
# =========================================

class SystemHealth(BaseModel):
    """System health check response."""
    status: str = Field(..., description="ok or degraded")
    version: str
    timestamp: datetime
    engine_state: EngineState
    components: Dict[str, str]


class ErrorResponse(BaseModel):
    """Standard error envelope."""
    error: bool = True
    message: str
    status_code: int
    timestamp: datetime
    detail: Optional[str] = None
