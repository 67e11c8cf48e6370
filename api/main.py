"""
Diesel Plant Simulator - FastAPI Application

This is the main entry point for the FastAPI backend.
It combines all route modules and provides system-wide endpoints.

Features:
- Tick-driven diesel generator simulation (advance, commands, setpoints)
- Automatic control loops and cascade control
- Alarm and fault-code monitoring with display history
- Scripted operator drills run on isolated simulators
- Interactive API documentation (Swagger/OpenAPI)

Access Points:
- API Root: http://localhost:8000
- Swagger Docs: http://localhost:8000/docs
- ReDoc: http://localhost:8000/redoc
- OpenAPI JSON: http://localhost:8000/openapi.json
"""

import os
import logging
from datetime import datetime, timezone
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.dependencies import create_simulator_from_env, get_simulator
from api.routes import simulator_router, controllers_router, scenarios_router
from api.models import SystemHealth
from core.errors import SimulationError

# =========================================
# Logging Configuration
# =========================================

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# =========================================
# Application Lifespan
# =========================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Creates the simulator on startup; it lives on app.state for the
    lifetime of the process.
    """
    logger.info("Starting Diesel Plant Simulator API...")
    app.state.simulator = create_simulator_from_env()
    logger.info("Diesel Plant Simulator API started successfully")
    logger.info("API Documentation: http://localhost:8000/docs")

    yield

    logger.info("Shutting down Diesel Plant Simulator API...")


# =========================================
# FastAPI Application
# =========================================

app = FastAPI(
    title="Diesel Plant Simulator API",
    description="""
## Diesel Generator Simulation & Control

This API drives a simulated diesel generator set: engine speed, thermal
balance, generator electrics, fuel and emissions, with a start/stop
lifecycle and protective trips.

### Core Concepts

#### Lifecycle
`idle -> starting -> running -> stopping -> idle`, with `fault` entered on
a critical alarm while running. Start requires a complete pre-start
checklist.

#### Control
Temperature, speed and voltage can each be handed to a PID loop, or the
temperature/coolant pair to a cascade controller.

#### Protection
Alarms are recomputed every tick; critical alarms latch fault codes
(E001-E006) and trip the engine.

### Quick Start

1. **Complete pre-start checks**: `POST /api/v1/simulator/prestart`
2. **Start the engine**: `POST /api/v1/simulator/commands/start`
3. **Advance time**: `POST /api/v1/simulator/advance` with `{"dt": 0.1, "steps": 100}`
4. **Run a drill**: `POST /api/v1/scenarios/run` with `{"scenario_type": "loss_of_coolant"}`
    """,
    version=VERSION,
    license_info={
        "name": "MIT",
        "url": "https://opensource.org/licenses/MIT"
    },
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# =========================================
# CORS Middleware
# =========================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "*"
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =========================================
# Exception Handlers
# =========================================

def error_content(message: str, status_code: int, detail=None) -> dict:
    return {
        "error": True,
        "message": message,
        "status_code": status_code,
        "detail": detail,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_content(exc.detail, exc.status_code)
    )


@app.exception_handler(SimulationError)
async def simulation_exception_handler(request: Request, exc: SimulationError):
    """Invalid time steps, inputs and configurations are client errors."""
    logger.warning(f"{type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=422,
        content=error_content(str(exc), 422, type(exc).__name__)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_content(
            "An unexpected error occurred",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            str(exc) if os.getenv("DEBUG", "false").lower() == "true" else None
        )
    )


# =========================================
# Include Routers
# =========================================

app.include_router(simulator_router, prefix="/api/v1")
app.include_router(controllers_router, prefix="/api/v1")
app.include_router(scenarios_router, prefix="/api/v1")


# =========================================
# Root Endpoints
# =========================================

@app.get(
    "/",
    tags=["System"],
    summary="API Root",
    description="Welcome endpoint with API information"
)
async def root():
    """API root endpoint."""
    return {
        "name": "Diesel Plant Simulator API",
        "version": VERSION,
        "description": "Diesel generator simulation with PID and cascade control",
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1"
    }


@app.get(
    "/health",
    response_model=SystemHealth,
    tags=["System"],
    summary="System Health Check",
    description="Check the health of the API and the simulator"
)
async def health_check(request: Request):
    """System health check endpoint."""
    sim = get_simulator(request)
    fault_codes = sim.get_fault_codes()

    return SystemHealth(
        status="degraded" if fault_codes else "ok",
        version=VERSION,
        timestamp=datetime.now(timezone.utc),
        engine_state=sim.engine_state,
        components={
            "api": "ok",
            "simulator": "ok",
            "protection": "tripped" if fault_codes else "ok",
        }
    )


@app.get(
    "/live",
    tags=["System"],
    summary="Liveness Check",
    description="Check if the API process is alive"
)
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}


# =========================================
# Run with Uvicorn (for development)
# =========================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", 8000)),
        reload=os.getenv("API_RELOAD", "true").lower() == "true",
        log_level=os.getenv("LOG_LEVEL", "info").lower()
    )
