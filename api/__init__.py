"""
API Module - FastAPI Backend

This module provides the REST API for the diesel plant simulator.

Key Components:
- main.py: FastAPI application and root endpoints
- models.py: Pydantic schemas for request/response validation
- dependencies.py: Simulator instance management
- routes/: API endpoint implementations

Endpoints:
- POST /api/v1/simulator/advance: Advance the simulation
- POST /api/v1/simulator/commands/{command}: Start, stop, emergency stop...
- PUT /api/v1/simulator/setpoints/{kind}: Change an operator target
- POST /api/v1/controllers/{loop}/mode: Manual/automatic switch
- POST /api/v1/scenarios/run: Run an operator drill
"""

__version__ = "0.1.0"
