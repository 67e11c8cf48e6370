"""
FastAPI Dependencies

The simulator instance is created in the application lifespan and kept on
app.state; routes receive it through get_simulator.
"""

import os
import logging
from typing import Optional

from fastapi import Request

from core.noise import NoiseSource
from core.simulator import DieselGeneratorSimulator

logger = logging.getLogger(__name__)


def create_simulator_from_env() -> DieselGeneratorSimulator:
    """
    Build a simulator from environment variables.

    SIM_SEED: integer seed (unset = random)
    SIM_NOISE: "false" disables noise
    SIM_HISTORY_INTERVAL: seconds between history samples (default 1.0)
    """
    seed_env = os.getenv("SIM_SEED")
    seed: Optional[int] = int(seed_env) if seed_env else None
    noise_enabled = os.getenv("SIM_NOISE", "true").lower() == "true"
    interval = float(os.getenv("SIM_HISTORY_INTERVAL", "1.0"))

    logger.info(f"Creating simulator (seed={seed}, noise={noise_enabled}, history_interval={interval}s)")
    return DieselGeneratorSimulator(
        noise=NoiseSource(seed=seed, enabled=noise_enabled),
        history_interval=interval,
    )


def get_simulator(request: Request) -> DieselGeneratorSimulator:
    """
    Dependency that provides the application's simulator.

    Usage in FastAPI:
        @router.get("/state")
        def get_state(sim: DieselGeneratorSimulator = Depends(get_simulator)):
            return sim.get_state().to_dict()
    """
    simulator = getattr(request.app.state, "simulator", None)
    if simulator is None:
        simulator = create_simulator_from_env()
        request.app.state.simulator = simulator
    return simulator
