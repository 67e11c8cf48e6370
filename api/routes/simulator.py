"""
Simulator Endpoints

Drive and inspect the application's simulator:
- Advance the simulated clock
- Operator commands (start, stop, emergency stop, clear faults, reset)
- Setpoints, pre-start checklist and maintenance condition
- Alarms, latched fault codes and display history

Commands that are not allowed in the current engine state are not
errors: the response says accepted=false with a reason.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from api.dependencies import get_simulator
from api.models import (
    AdvanceRequest,
    AlarmModel,
    CommandResponse,
    CommandType,
    FaultCodeModel,
    HistoryResponse,
    MaintenanceRequest,
    PreStartRequest,
    SetpointRequest,
    SetpointResponse,
    SetpointsModel,
    SimulatorStatus,
)
from core.lifecycle import PreStartItem
from core.simulator import DieselGeneratorSimulator
from core.state import HistoryKind, SetpointKind

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/simulator", tags=["Simulator"])


def build_status(sim: DieselGeneratorSimulator) -> SimulatorStatus:
    """Assemble the full status response from simulator snapshots."""
    return SimulatorStatus(
        engine_state=sim.engine_state,
        state=sim.get_state().to_dict(),
        setpoints=sim.get_setpoints().to_dict(),
        progress=sim.get_progress().to_dict(),
        alarms=[a.to_dict() for a in sim.get_alarms()],
        fault_codes=[c.to_dict() for c in sim.get_fault_codes()],
        prestart=sim.checklist.to_dict(),
        maintenance_status=sim.maintenance_status,
    )


# =========================================
# State & Clock
# =========================================

@router.get(
    "/state",
    response_model=SimulatorStatus,
    summary="Current simulator status"
)
async def get_state(sim: DieselGeneratorSimulator = Depends(get_simulator)):
    return build_status(sim)


@router.post(
    "/advance",
    response_model=SimulatorStatus,
    summary="Advance the simulation",
    description="Run `steps` ticks of `dt` seconds each and return the resulting status."
)
async def advance(
    request: AdvanceRequest,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    for _ in range(request.steps):
        sim.advance(request.dt)
    return build_status(sim)


# =========================================
# Commands
# =========================================

@router.post(
    "/commands/{command}",
    response_model=CommandResponse,
    summary="Issue an operator command"
)
async def issue_command(
    command: CommandType,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    handlers = {
        CommandType.START: sim.start,
        CommandType.STOP: sim.stop,
        CommandType.EMERGENCY_STOP: sim.emergency_stop,
        CommandType.CLEAR_FAULTS: sim.clear_faults,
        CommandType.RESET: sim.reset,
    }
    result = handlers[command]()
    return CommandResponse(**result.to_dict())


# =========================================
# Setpoints
# =========================================

@router.get("/setpoints", response_model=SetpointsModel, summary="Operator targets")
async def get_setpoints(sim: DieselGeneratorSimulator = Depends(get_simulator)):
    return sim.get_setpoints().to_dict()


@router.put(
    "/setpoints/{kind}",
    response_model=SetpointResponse,
    summary="Change an operator target",
    description="Out-of-range values are clamped; the stored value is returned."
)
async def set_setpoint(
    kind: SetpointKind,
    request: SetpointRequest,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    stored = sim.set_setpoint(kind, request.value)
    return SetpointResponse(
        kind=kind.value,
        requested=request.value,
        value=stored,
        clamped=stored != request.value,
    )


# =========================================
# Pre-start & Condition
# =========================================

@router.get("/prestart", summary="Pre-start checklist")
async def get_prestart(sim: DieselGeneratorSimulator = Depends(get_simulator)):
    return {"items": sim.checklist.to_dict(), "complete": sim.checklist.complete}


@router.post("/prestart", summary="Complete every pre-start check")
async def complete_prestart(sim: DieselGeneratorSimulator = Depends(get_simulator)):
    sim.checklist.complete_all()
    return {"items": sim.checklist.to_dict(), "complete": sim.checklist.complete}


@router.post("/prestart/{item}", summary="Mark one pre-start check")
async def mark_prestart(
    item: PreStartItem,
    request: PreStartRequest,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    checklist = sim.set_prestart_check(item, request.done)
    return {"items": checklist.to_dict(), "complete": checklist.complete}


@router.put("/maintenance", summary="Set engine condition")
async def set_maintenance(
    request: MaintenanceRequest,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    return {"maintenance_status": sim.set_maintenance_status(request.value)}


# =========================================
# Alarms & History
# =========================================

@router.get("/alarms", response_model=List[AlarmModel], summary="Active alarms")
async def get_alarms(sim: DieselGeneratorSimulator = Depends(get_simulator)):
    return [a.to_dict() for a in sim.get_alarms()]


@router.get("/fault-codes", response_model=List[FaultCodeModel], summary="Latched fault codes")
async def get_fault_codes(sim: DieselGeneratorSimulator = Depends(get_simulator)):
    return [c.to_dict() for c in sim.get_fault_codes()]


@router.get(
    "/history/{kind}",
    response_model=HistoryResponse,
    summary="Display history",
    description="Up to the last 100 samples of one quantity, oldest first."
)
async def get_history(
    kind: HistoryKind,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    return HistoryResponse(
        kind=kind.value,
        samples=[s.to_dict() for s in sim.get_history(kind)],
    )
