"""
Engine Lifecycle State Machine

The engine is always in exactly one of five states:

    idle ──start──▶ starting ──startup complete──▶ running
      ▲                │                              │
      │          emergency stop                  stop / e-stop
      │                ▼                              ▼
      └──run-down── stopping ◀────────────────────────┘
      ▲
      └──clear faults── fault ◀──critical fault── running

All transitions are listed in a single table consumed by the pure
function `transition(state, event)`. Anything not in the table is
rejected with a reason; nothing is ever raised for an invalid command.

Startup and shutdown follow a normalized sigmoid ramp instead of a
linear one, so the engine speed eases in and out:

    progress = (σ(12x - 6) - σ(-6)) / (σ(6) - σ(-6)),  x = min(1, t / T)

While starting, the speed follows IDLE_RPM * progress. While stopping,
it decays from the speed captured when the stop began (not from rated
speed), so there is no discontinuity at the start of deceleration.
Noise is suppressed during both ramps.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .constants import EngineConstants

logger = logging.getLogger(__name__)

# Startup completes when the accumulated time is within this of the duration
TIME_EPSILON = 1e-9


# =========================================
# States, Events and Side Effects
# =========================================

class EngineState(str, Enum):
    """Engine lifecycle states."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAULT = "fault"


class LifecycleEvent(str, Enum):
    """Events that may move the engine between states."""
    START = "start"
    STARTUP_COMPLETE = "startup_complete"
    STOP = "stop"
    EMERGENCY_STOP = "emergency_stop"
    CRITICAL_FAULT = "critical_fault"
    RUN_DOWN_COMPLETE = "run_down_complete"
    CLEAR_FAULTS = "clear_faults"
    RESET = "reset"


class SideEffect(str, Enum):
    """Effects that accompany a transition."""
    RESET_STARTUP = "reset_startup"
    COMPLETE_STARTUP = "complete_startup"
    BEGIN_SHUTDOWN = "begin_shutdown"
    ZERO_FUEL = "zero_fuel"
    ZERO_SETPOINTS = "zero_setpoints"
    RESET_PROGRESS = "reset_progress"
    CLEAR_FAULT_CODES = "clear_fault_codes"


TRANSITIONS: Dict[Tuple[EngineState, LifecycleEvent], Tuple[EngineState, Tuple[SideEffect, ...]]] = {
    (EngineState.IDLE, LifecycleEvent.START):
        (EngineState.STARTING, (SideEffect.RESET_STARTUP,)),
    (EngineState.STARTING, LifecycleEvent.STARTUP_COMPLETE):
        (EngineState.RUNNING, (SideEffect.COMPLETE_STARTUP,)),
    (EngineState.STARTING, LifecycleEvent.EMERGENCY_STOP):
        (EngineState.STOPPING, (SideEffect.ZERO_FUEL, SideEffect.BEGIN_SHUTDOWN)),
    (EngineState.RUNNING, LifecycleEvent.STOP):
        (EngineState.STOPPING, (SideEffect.ZERO_FUEL, SideEffect.BEGIN_SHUTDOWN)),
    (EngineState.RUNNING, LifecycleEvent.EMERGENCY_STOP):
        (EngineState.STOPPING, (SideEffect.ZERO_FUEL, SideEffect.BEGIN_SHUTDOWN)),
    (EngineState.STOPPING, LifecycleEvent.EMERGENCY_STOP):
        (EngineState.STOPPING, (SideEffect.ZERO_FUEL,)),
    (EngineState.RUNNING, LifecycleEvent.CRITICAL_FAULT):
        (EngineState.FAULT, (SideEffect.ZERO_SETPOINTS,)),
    (EngineState.STOPPING, LifecycleEvent.RUN_DOWN_COMPLETE):
        (EngineState.IDLE, (SideEffect.RESET_PROGRESS,)),
    (EngineState.FAULT, LifecycleEvent.CLEAR_FAULTS):
        (EngineState.IDLE, (SideEffect.CLEAR_FAULT_CODES, SideEffect.RESET_PROGRESS)),
}

# Reset is accepted from every state
for _state in EngineState:
    TRANSITIONS[(_state, LifecycleEvent.RESET)] = (
        EngineState.IDLE,
        (SideEffect.RESET_PROGRESS, SideEffect.CLEAR_FAULT_CODES),
    )


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of applying an event to a state.

    Attributes:
        accepted: Whether the (state, event) pair is a valid transition
        event: The event that was applied
        previous_state: State before the event
        new_state: State after the event (unchanged when rejected)
        side_effects: Effects to perform (empty when rejected)
        reason: Why the event was rejected, if it was
    """
    accepted: bool
    event: LifecycleEvent
    previous_state: EngineState
    new_state: EngineState
    side_effects: Tuple[SideEffect, ...] = ()
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "accepted": self.accepted,
            "event": self.event.value,
            "previous_state": self.previous_state.value,
            "new_state": self.new_state.value,
            "side_effects": [e.value for e in self.side_effects],
            "reason": self.reason,
        }


def transition(state: EngineState, event: LifecycleEvent) -> TransitionResult:
    """
    Pure transition function over the TRANSITIONS table.

    Returns an accepted result with the target state and side effects,
    or a rejected result that leaves the state unchanged.
    """
    entry = TRANSITIONS.get((state, event))
    if entry is None:
        return TransitionResult(
            accepted=False,
            event=event,
            previous_state=state,
            new_state=state,
            reason=f"'{event.value}' is not permitted while {state.value}",
        )
    new_state, effects = entry
    return TransitionResult(
        accepted=True,
        event=event,
        previous_state=state,
        new_state=new_state,
        side_effects=effects,
    )


# =========================================
# Ramps
# =========================================

def sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def normalized_sigmoid(linear: float) -> float:
    """Map linear progress in [0, 1] onto an ease-in/ease-out curve in [0, 1]."""
    x = min(1.0, max(0.0, linear))
    return (sigmoid(12.0 * x - 6.0) - sigmoid(-6.0)) / (sigmoid(6.0) - sigmoid(-6.0))


# =========================================
# Lifecycle State Object
# =========================================

@dataclass
class TransitionProgress:
    """
    Ramp bookkeeping owned by one state machine.

    Attributes:
        startup_progress: Sigmoid startup progress [0, 1]
        shutdown_progress: Sigmoid shutdown progress [0, 1]
        elapsed_in_phase: Seconds spent in the current ramp
        shutdown_start_rpm: Engine speed when the stop began
    """
    startup_progress: float = 0.0
    shutdown_progress: float = 0.0
    elapsed_in_phase: float = 0.0
    shutdown_start_rpm: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "startup_progress": self.startup_progress,
            "shutdown_progress": self.shutdown_progress,
            "elapsed_in_phase": self.elapsed_in_phase,
            "shutdown_start_rpm": self.shutdown_start_rpm,
        }


@dataclass
class LifecycleState:
    """Mutable lifecycle state, passed into (and owned by) one machine."""
    engine_state: EngineState = EngineState.IDLE
    progress: TransitionProgress = field(default_factory=TransitionProgress)


@dataclass(frozen=True)
class LifecyclePhase:
    """
    Immutable view of the lifecycle handed to the physics model.

    ramp_rpm is the speed imposed by the startup/shutdown ramp, or None
    outside of a transition.
    """
    engine_state: EngineState
    startup_progress: float = 0.0
    shutdown_progress: float = 0.0
    ramp_rpm: Optional[float] = None

    @property
    def in_transition(self) -> bool:
        return self.engine_state in (EngineState.STARTING, EngineState.STOPPING)

    @property
    def ramp_progress(self) -> float:
        """Progress of the active ramp (1.0 outside of transitions)."""
        if self.engine_state == EngineState.STARTING:
            return self.startup_progress
        if self.engine_state == EngineState.STOPPING:
            return self.shutdown_progress
        return 1.0


# =========================================
# Pre-Start Checklist
# =========================================

class PreStartItem(str, Enum):
    """Walk-around checks required before cranking."""
    FUEL = "fuel"
    OIL = "oil"
    COOLANT = "coolant"
    BATTERY = "battery"
    AIR_FILTER = "air_filter"


class PreStartChecklist:
    """
    Operator pre-start checks. start() is only accepted once all are done.

    Example:
        checklist = PreStartChecklist()
        checklist.mark(PreStartItem.FUEL)
        checklist.pending  # (OIL, COOLANT, BATTERY, AIR_FILTER)
    """

    def __init__(self):
        self._done: Dict[PreStartItem, bool] = {item: False for item in PreStartItem}

    def mark(self, item: PreStartItem, done: bool = True) -> None:
        self._done[PreStartItem(item)] = done

    def complete_all(self) -> None:
        for item in self._done:
            self._done[item] = True

    def reset(self) -> None:
        for item in self._done:
            self._done[item] = False

    @property
    def complete(self) -> bool:
        return all(self._done.values())

    @property
    def pending(self) -> Tuple[PreStartItem, ...]:
        return tuple(item for item, done in self._done.items() if not done)

    def to_dict(self) -> Dict[str, bool]:
        return {item.value: done for item, done in self._done.items()}


# =========================================
# State Machine
# =========================================

class LifecycleStateMachine:
    """
    Drives the engine lifecycle and its startup/shutdown ramps.

    Side effects that concern the machine itself (progress bookkeeping)
    are applied here; effects on setpoints and fault codes are returned
    in the TransitionResult for the owner to apply.

    Example:
        machine = LifecycleStateMachine(EngineConstants())
        machine.start(checks_complete=True)
        for _ in range(100):
            machine.advance(0.1, measured_rpm=0.0)
        assert machine.state == EngineState.RUNNING
    """

    def __init__(self, constants: EngineConstants, state: Optional[LifecycleState] = None):
        self.constants = constants
        self._state = state if state is not None else LifecycleState()

    # =========================================
    # Queries
    # =========================================

    @property
    def state(self) -> EngineState:
        return self._state.engine_state

    @property
    def progress(self) -> TransitionProgress:
        """Copy of the ramp bookkeeping."""
        return replace(self._state.progress)

    @property
    def is_starting(self) -> bool:
        return self._state.engine_state == EngineState.STARTING

    @property
    def is_shutting_down(self) -> bool:
        return self._state.engine_state == EngineState.STOPPING

    @property
    def steady_state(self) -> bool:
        return not (self.is_starting or self.is_shutting_down)

    @property
    def in_transition(self) -> bool:
        return not self.steady_state

    def phase(self) -> LifecyclePhase:
        """Snapshot for the physics model, including the ramp-imposed speed."""
        p = self._state.progress
        ramp_rpm = None
        if self.is_starting:
            ramp_rpm = self.constants.IDLE_RPM * p.startup_progress
        elif self.is_shutting_down:
            ramp_rpm = p.shutdown_start_rpm * (1.0 - p.shutdown_progress)
        return LifecyclePhase(
            engine_state=self._state.engine_state,
            startup_progress=p.startup_progress,
            shutdown_progress=p.shutdown_progress,
            ramp_rpm=ramp_rpm,
        )

    # =========================================
    # Commands
    # =========================================

    def start(self, checks_complete: bool) -> TransitionResult:
        """Request a start; rejected unless the pre-start checks are complete."""
        if self.state == EngineState.IDLE and not checks_complete:
            return TransitionResult(
                accepted=False,
                event=LifecycleEvent.START,
                previous_state=self.state,
                new_state=self.state,
                reason="pre-start checks are not complete",
            )
        return self.dispatch(LifecycleEvent.START)

    def dispatch(self, event: LifecycleEvent, current_rpm: float = 0.0) -> TransitionResult:
        """
        Apply an event.

        Args:
            event: The lifecycle event
            current_rpm: Engine speed now (the shutdown ramp starts from it)

        Returns:
            The TransitionResult; rejected events leave the state untouched
        """
        result = transition(self._state.engine_state, event)
        if not result.accepted:
            logger.warning(f"Lifecycle event rejected: {result.reason}")
            return result

        self._apply(result.side_effects, current_rpm)
        self._state.engine_state = result.new_state

        if result.previous_state != result.new_state:
            logger.info(
                f"Engine state {result.previous_state.value} -> {result.new_state.value} "
                f"({event.value})"
            )
        return result

    def advance(self, dt: float, measured_rpm: float) -> List[TransitionResult]:
        """
        Advance the active ramp by dt seconds.

        Fires STARTUP_COMPLETE once the startup duration has elapsed and
        RUN_DOWN_COMPLETE once the measured speed falls below the stop
        threshold.

        Returns:
            Automatic transitions that fired during this step
        """
        fired: List[TransitionResult] = []
        p = self._state.progress
        c = self.constants

        if self.is_starting:
            p.elapsed_in_phase += dt
            p.startup_progress = normalized_sigmoid(p.elapsed_in_phase / c.STARTUP_DURATION)
            if p.elapsed_in_phase >= c.STARTUP_DURATION - TIME_EPSILON:
                fired.append(self.dispatch(LifecycleEvent.STARTUP_COMPLETE))

        elif self.is_shutting_down:
            if measured_rpm < c.STOP_RPM_THRESHOLD:
                fired.append(self.dispatch(LifecycleEvent.RUN_DOWN_COMPLETE))
            else:
                p.elapsed_in_phase += dt
                p.shutdown_progress = normalized_sigmoid(p.elapsed_in_phase / c.SHUTDOWN_DURATION)

        return fired

    # =========================================
    # Internals
    # =========================================

    def _apply(self, effects: Tuple[SideEffect, ...], current_rpm: float) -> None:
        p = self._state.progress
        for effect in effects:
            if effect == SideEffect.RESET_STARTUP:
                p.startup_progress = 0.0
                p.shutdown_progress = 0.0
                p.elapsed_in_phase = 0.0
            elif effect == SideEffect.COMPLETE_STARTUP:
                p.startup_progress = 1.0
                p.elapsed_in_phase = 0.0
            elif effect == SideEffect.BEGIN_SHUTDOWN:
                p.shutdown_progress = 0.0
                p.elapsed_in_phase = 0.0
                p.shutdown_start_rpm = max(0.0, current_rpm)
            elif effect == SideEffect.RESET_PROGRESS:
                self._state.progress = TransitionProgress()
                p = self._state.progress
