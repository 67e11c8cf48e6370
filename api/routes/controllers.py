"""
Controller Endpoints

Configure and switch the automatic control loops:
- Single loops (temperature -> coolant, speed -> fuel, voltage -> excitation)
- The cascade controller (primary loop feeding a secondary actuator loop)

Full configuration (PUT) resets a controller's memory; gain updates
(PATCH) are applied live and keep it.
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import get_simulator
from api.models import (
    CascadeConfigModel,
    CascadeModeRequest,
    GainUpdate,
    LoopModeRequest,
    PidConfigModel,
)
from control.cascade import CascadeConfig, CascadeLoop
from control.pid import PidConfig
from core.simulator import ControlLoop, DieselGeneratorSimulator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/controllers", tags=["Control Loops"])


def to_pid_config(model: PidConfigModel) -> PidConfig:
    return PidConfig(**model.model_dump())


@router.get("", summary="All control loops")
async def get_controllers(sim: DieselGeneratorSimulator = Depends(get_simulator)):
    return sim.get_controller_status()


# =========================================
# Cascade
# =========================================

@router.get("/cascade", summary="Cascade controller status")
async def get_cascade(sim: DieselGeneratorSimulator = Depends(get_simulator)):
    return sim.get_controller_status()["cascade"]


@router.put("/cascade", summary="Replace cascade configuration")
async def configure_cascade(
    request: CascadeConfigModel,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    sim.configure_cascade(CascadeConfig(
        primary=to_pid_config(request.primary),
        secondary=to_pid_config(request.secondary),
        secondary_setpoint_offset=request.secondary_setpoint_offset,
        secondary_setpoint_scale=request.secondary_setpoint_scale,
    ))
    logger.info("Cascade reconfigured via API")
    return sim.get_controller_status()["cascade"]


@router.post("/cascade/mode", summary="Enable or disable the cascade")
async def set_cascade_mode(
    request: CascadeModeRequest,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    sim.set_cascade_enabled(request.enabled, mode=request.mode)
    if request.setpoint is not None:
        sim.set_cascade_setpoint(request.setpoint)
    return sim.get_controller_status()


@router.patch("/cascade/{loop}", summary="Retune one cascade loop")
async def update_cascade_gains(
    loop: CascadeLoop,
    request: GainUpdate,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    config = sim.update_cascade_parameters(loop, request.kp, request.ki, request.kd)
    return {"loop": loop.value, "config": config.to_dict()}


# =========================================
# Single Loops
# =========================================

@router.put("/{loop}", summary="Replace a loop's configuration")
async def configure_loop(
    loop: ControlLoop,
    request: PidConfigModel,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    sim.configure_controller(loop, to_pid_config(request))
    logger.info(f"Loop {loop.value} reconfigured via API")
    return sim.get_controller_status()["loops"][loop.value]


@router.post("/{loop}/mode", summary="Switch a loop between manual and automatic")
async def set_loop_mode(
    loop: ControlLoop,
    request: LoopModeRequest,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    sim.set_auto_control(loop, request.enabled, target=request.target)
    return sim.get_controller_status()


@router.patch("/{loop}", summary="Retune a loop live")
async def update_loop_gains(
    loop: ControlLoop,
    request: GainUpdate,
    sim: DieselGeneratorSimulator = Depends(get_simulator)
):
    config = sim.update_controller_parameters(loop, request.kp, request.ki, request.kd)
    return {"loop": loop.value, "config": config.to_dict()}
