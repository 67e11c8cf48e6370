"""
API Routes Module

This module contains all API endpoint implementations organized by function:
- simulator.py: clock, operator commands, setpoints, alarms and history
- controllers.py: single-loop and cascade controller configuration
- scenarios.py: operator drills

All routers are combined in main.py to create the complete API.
"""

from .simulator import router as simulator_router
from .controllers import router as controllers_router
from .scenarios import router as scenarios_router

__all__ = [
    "simulator_router",
    "controllers_router",
    "scenarios_router",
]
