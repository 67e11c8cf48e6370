"""
Scenario Endpoints

List the operator drills and run them on a fresh, isolated simulator.
Running a scenario never touches the application's live simulator.

Key Features:
- List available drills with their action timelines
- Detailed drill information including the narrative "story"
- Seeded runs for reproducible results, with optional time series
"""

import logging

from fastapi import APIRouter

from api.models import (
    ScenarioInfo,
    ScenarioListResponse,
    ScenarioRunRequest,
    ScenarioRunResponse,
)
from scenarios.library import ScenarioLibrary, ScenarioType
from scenarios.runner import ScenarioRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scenarios", tags=["Scenarios"])


# =========================================
# Scenario Information Endpoints
# =========================================

@router.get(
    "",
    response_model=ScenarioListResponse,
    summary="List available scenarios"
)
async def list_scenarios():
    """List all available scenarios (without stories)."""
    return ScenarioListResponse(
        scenarios=[ScenarioInfo(**s.to_dict()) for s in ScenarioLibrary.get_all_scenarios()]
    )


@router.get(
    "/{scenario_type}",
    response_model=ScenarioInfo,
    summary="Get scenario details",
    description="Full drill description including the narrative story."
)
async def get_scenario_details(scenario_type: ScenarioType):
    scenario = ScenarioLibrary.get_scenario_by_type(scenario_type)
    return ScenarioInfo(**scenario.to_dict(include_story=True))


# =========================================
# Scenario Execution
# =========================================

@router.post(
    "/run",
    response_model=ScenarioRunResponse,
    summary="Run a scenario",
    description="""
    Run a drill to completion on a new simulator and report whether it
    reached its expected end state, with numpy summary statistics and,
    optionally, the sampled time series.
    """
)
def run_scenario(request: ScenarioRunRequest):
    scenario = ScenarioLibrary.get_scenario_by_type(request.scenario_type, request.duration)
    runner = ScenarioRunner(seed=request.seed, noise_enabled=request.noise)
    result = runner.run(scenario, dt=request.dt)

    data = result.to_dict(include_records=request.include_records)
    message = (
        f"Scenario '{scenario.name}' ended {result.engine_state.value}"
        + ("" if result.passed else f" (expected {scenario.expected_state.value})")
    )
    logger.info(message)

    return ScenarioRunResponse(
        success=True,
        passed=result.passed,
        scenario=ScenarioInfo(**data["scenario"]),
        engine_state=result.engine_state,
        fault_codes=data["fault_codes"],
        alarms=data["alarms"],
        final_state=data["final_state"],
        summary=data["summary"],
        records=data.get("records"),
        message=message,
    )
