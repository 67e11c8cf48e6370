"""
Test Suite for the Diesel Plant Simulator

This module contains tests for:
- PID and cascade controllers (test_pid.py, test_cascade.py)
- Lifecycle state machine (test_lifecycle.py)
- Physics model (test_physics.py)
- Fault monitor (test_faults.py)
- Simulator orchestration (test_simulator.py)
- Scenario library and runner (test_scenarios.py)
- API endpoints (test_api.py)

Run tests with:
    pytest tests/ -v
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
