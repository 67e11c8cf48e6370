"""
Control Module - Feedback Controllers

Framework-agnostic feedback controllers used by the simulator:
- PidController: single loop with clamped output, anti-windup,
  derivative on measurement and bumpless re-enable
- CascadeController: two PID loops in series with a fixed linear
  primary-output to secondary-setpoint map
"""

from .pid import PidConfig, PidController, PidRuntime, PidHistoryEntry
from .cascade import (
    CascadeConfig,
    CascadeController,
    CascadeHistoryEntry,
    CascadeLoop,
    CascadeSnapshot,
)

__all__ = [
    # Single loop
    "PidConfig",
    "PidController",
    "PidRuntime",
    "PidHistoryEntry",

    # Cascade
    "CascadeConfig",
    "CascadeController",
    "CascadeHistoryEntry",
    "CascadeLoop",
    "CascadeSnapshot",
]

__version__ = "0.1.0"
