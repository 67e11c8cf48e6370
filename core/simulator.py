"""
Diesel Generator Simulator - Tick Orchestration

This is the single entry point collaborators talk to. It owns the plant
state, the lifecycle, the control loops and the fault monitor, and
exposes only immutable snapshots.

Per tick (advance(dt)):
    1. Validate dt (finite, >= 0) before touching anything
    2. Lifecycle advances its ramps and may fire automatic transitions
    3. Setpoints are gated by the lifecycle
       (idle/stopping: no fuel, starting: 50% fuel, load only when running,
       fault: everything zero)
    4. Enabled control loops (single PIDs or the cascade) overwrite the
       actuator they own
    5. The physics model integrates the next state
    6. Non-finite values are replaced by the prior value and logged
    7. The fault monitor recomputes alarms, latches fault codes and may
       trip the engine into Fault
    8. The bounded display history is sampled

Commands (start, stop, emergency_stop, clear_faults, reset, setpoints)
are applied between ticks and never raise for an operational reason:
they return a CommandResult saying whether they were accepted.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Deque, Dict, Optional, Set, Tuple, Any

from control.cascade import CascadeConfig, CascadeController, CascadeLoop
from control.pid import PidConfig, PidController
from .constants import EngineConstants
from .errors import ConfigurationError, InvalidInputError, InvalidTimeStepError
from .faults import Alarm, FaultCode, FaultMonitor, FaultThresholds
from .lifecycle import (
    EngineState,
    LifecycleEvent,
    LifecycleStateMachine,
    PreStartChecklist,
    PreStartItem,
    SideEffect,
    TransitionProgress,
    TransitionResult,
)
from .noise import NoiseSource
from .physics import ActuatorCommands, PhysicsModel
from .state import (
    Emissions,
    HistoryKind,
    HistorySample,
    SetpointKind,
    Setpoints,
    SimulationState,
    clamp,
)

logger = logging.getLogger(__name__)

TIME_EPSILON = 1e-9


# =========================================
# Control Loop Definitions
# =========================================

class ControlLoop(str, Enum):
    """Single-loop automatic controls and the actuator each one drives."""
    TEMPERATURE = "temperature"    # engine temperature -> coolant pump
    SPEED = "speed"                # engine speed -> fuel rack
    VOLTAGE = "voltage"            # generator voltage -> excitation


class CascadeMode(str, Enum):
    """Cascade arrangements: primary variable -> secondary actuator."""
    TEMPERATURE_COOLANT = "temperature_coolant"
    SPEED_FUEL = "speed_fuel"
    VOLTAGE_EXCITATION = "voltage_excitation"


LOOP_ACTUATORS: Dict[ControlLoop, SetpointKind] = {
    ControlLoop.TEMPERATURE: SetpointKind.COOLANT,
    ControlLoop.SPEED: SetpointKind.FUEL,
    ControlLoop.VOLTAGE: SetpointKind.EXCITATION,
}

CASCADE_LOOPS: Dict[CascadeMode, ControlLoop] = {
    CascadeMode.TEMPERATURE_COOLANT: ControlLoop.TEMPERATURE,
    CascadeMode.SPEED_FUEL: ControlLoop.SPEED,
    CascadeMode.VOLTAGE_EXCITATION: ControlLoop.VOLTAGE,
}

# Cooling is reverse-acting: a temperature above target must raise coolant flow
DEFAULT_LOOP_CONFIGS: Dict[ControlLoop, PidConfig] = {
    ControlLoop.TEMPERATURE: PidConfig(kp=-4.0, ki=-0.2, kd=-2.0, output_min=0.0, output_max=100.0),
    ControlLoop.SPEED: PidConfig(kp=0.1, ki=0.05, kd=0.0, output_min=0.0, output_max=100.0),
    ControlLoop.VOLTAGE: PidConfig(kp=1.0, ki=0.5, kd=0.0, output_min=0.0, output_max=100.0),
}

DEFAULT_LOOP_TARGETS: Dict[ControlLoop, float] = {
    ControlLoop.TEMPERATURE: 75.0,
    ControlLoop.VOLTAGE: 400.0,
}

DEFAULT_CASCADE_CONFIGS: Dict[CascadeMode, CascadeConfig] = {
    CascadeMode.TEMPERATURE_COOLANT: CascadeConfig(
        primary=PidConfig(kp=-4.0, ki=-0.2, kd=-2.0, output_min=0.0, output_max=100.0),
        secondary=PidConfig(kp=3.0, ki=0.5, kd=0.0, output_min=0.0, output_max=100.0),
    ),
    CascadeMode.SPEED_FUEL: CascadeConfig(
        primary=PidConfig(kp=0.1, ki=0.05, kd=0.0, output_min=0.0, output_max=100.0),
        secondary=PidConfig(kp=2.0, ki=0.5, kd=0.0, output_min=0.0, output_max=100.0),
    ),
    CascadeMode.VOLTAGE_EXCITATION: CascadeConfig(
        primary=PidConfig(kp=1.0, ki=0.5, kd=0.0, output_min=0.0, output_max=100.0),
        secondary=PidConfig(kp=2.0, ki=0.5, kd=0.0, output_min=0.0, output_max=100.0),
    ),
}


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of an operator command.

    Attributes:
        accepted: Whether the command took effect
        command: Command name
        state: Engine state after the command
        reason: Why it was rejected, if it was
    """
    accepted: bool
    command: str
    state: EngineState
    reason: Optional[str] = None

    @classmethod
    def from_transition(cls, command: str, result: TransitionResult) -> "CommandResult":
        return cls(
            accepted=result.accepted,
            command=command,
            state=result.new_state,
            reason=result.reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "command": self.command,
            "state": self.state.value,
            "reason": self.reason,
        }


# =========================================
# Simulator
# =========================================

class DieselGeneratorSimulator:
    """
    Tick-driven diesel generator simulation.

    Example:
        sim = DieselGeneratorSimulator(noise=NoiseSource(enabled=False))
        sim.checklist.complete_all()
        sim.start()
        for _ in range(100):
            state = sim.advance(0.1)
        print(sim.engine_state, state.rpm)
    """

    HISTORY_LENGTH = 100

    def __init__(
        self,
        constants: Optional[EngineConstants] = None,
        noise: Optional[NoiseSource] = None,
        thresholds: Optional[FaultThresholds] = None,
        history_interval: float = 1.0,
        seed: Optional[int] = None
    ):
        """
        Initialize the simulator.

        Args:
            constants: Plant constants. If None, uses defaults.
            noise: Random source. If None, one is created from `seed`.
            thresholds: Protection limits. If None, uses defaults.
            history_interval: Simulated seconds between history samples
            seed: Seed for the default random source
        """
        if not math.isfinite(history_interval) or history_interval <= 0:
            raise ConfigurationError(f"history_interval must be positive (got {history_interval!r})")

        self.constants = constants or EngineConstants()
        self.noise = noise or NoiseSource(seed=seed)
        self.physics = PhysicsModel(self.constants, self.noise)
        self.lifecycle = LifecycleStateMachine(self.constants)
        self.monitor = FaultMonitor(self.constants.RATED_POWER_KW, thresholds)
        self.checklist = PreStartChecklist()
        self.history_interval = history_interval

        self._setpoints = Setpoints()
        self._state = SimulationState.initial(self.constants)
        self._commands = ActuatorCommands()
        self._maintenance = 100.0
        self._forced_zero: Set[SetpointKind] = set()
        self._history: Dict[HistoryKind, Deque[HistorySample]] = {
            kind: deque(maxlen=self.HISTORY_LENGTH) for kind in HistoryKind
        }

        self._loops: Dict[ControlLoop, PidController] = {
            loop: PidController(config, enabled=False) for loop, config in DEFAULT_LOOP_CONFIGS.items()
        }
        self._loop_targets: Dict[ControlLoop, float] = dict(DEFAULT_LOOP_TARGETS)

        self._cascade_mode = CascadeMode.TEMPERATURE_COOLANT
        self._cascade = CascadeController(
            DEFAULT_CASCADE_CONFIGS[self._cascade_mode],
            primary_setpoint=self.loop_target(ControlLoop.TEMPERATURE),
            enabled=False,
        )

    # =========================================
    # Read API
    # =========================================

    @property
    def engine_state(self) -> EngineState:
        return self.lifecycle.state

    @property
    def maintenance_status(self) -> float:
        return self._maintenance

    @property
    def cascade(self) -> CascadeController:
        return self._cascade

    @property
    def cascade_mode(self) -> CascadeMode:
        return self._cascade_mode

    def get_state(self) -> SimulationState:
        return self._state

    def get_setpoints(self) -> Setpoints:
        return self._setpoints

    def get_commands(self) -> ActuatorCommands:
        """Effective actuator commands applied during the last tick."""
        return self._commands

    def get_progress(self) -> TransitionProgress:
        return self.lifecycle.progress

    def get_alarms(self) -> Tuple[Alarm, ...]:
        return self.monitor.alarms

    def get_fault_codes(self) -> Tuple[FaultCode, ...]:
        return self.monitor.fault_codes

    def get_history(self, kind: HistoryKind) -> Tuple[HistorySample, ...]:
        """Last (at most 100) samples of one quantity, oldest first."""
        return tuple(self._history[HistoryKind(kind)])

    def get_controller(self, loop: ControlLoop) -> PidController:
        return self._loops[ControlLoop(loop)]

    def loop_target(self, loop: ControlLoop) -> float:
        """Setpoint of a single loop (the speed loop follows the speed setpoint)."""
        loop = ControlLoop(loop)
        if loop == ControlLoop.SPEED:
            return self._setpoints.speed_target
        return self._loop_targets[loop]

    def get_controller_status(self) -> Dict[str, Any]:
        """Configuration and mode of every control loop."""
        return {
            "loops": {
                loop.value: {
                    "enabled": pid.enabled,
                    "target": self.loop_target(loop),
                    "actuator": LOOP_ACTUATORS[loop].value,
                    "config": pid.config.to_dict(),
                    "last_output": pid.runtime.last_output,
                }
                for loop, pid in self._loops.items()
            },
            "cascade": {
                "mode": self._cascade_mode.value,
                "config": self._cascade.config.to_dict(),
                **self._cascade.get_state().to_dict(),
            },
        }

    # =========================================
    # Tick
    # =========================================

    def advance(self, dt: float) -> SimulationState:
        """
        Advance the simulation by dt seconds.

        Args:
            dt: Time step in seconds; 0 is a valid no-time tick

        Returns:
            The new (immutable) SimulationState

        Raises:
            InvalidTimeStepError: dt is negative, NaN or infinite
        """
        if isinstance(dt, bool) or not isinstance(dt, (int, float)) or not math.isfinite(dt) or dt < 0:
            raise InvalidTimeStepError(dt)

        prior = self._state

        for result in self.lifecycle.advance(dt, prior.rpm):
            self._apply_side_effects(result)

        commands = self._gate(self._apply_control(self._requested_commands(), prior, dt))
        candidate = self.physics.integrate(dt, commands, prior, self.lifecycle.phase(), self._maintenance)
        state = self._repair(candidate, prior)

        evaluation = self.monitor.evaluate(state, self.lifecycle.state, self._maintenance)
        if evaluation.fault_requested:
            self._dispatch(LifecycleEvent.CRITICAL_FAULT)

        self._state = state
        self._commands = commands
        self._record_history(prior.time, state)

        logger.debug(
            f"t={state.time:.2f}s state={self.lifecycle.state.value} rpm={state.rpm:.1f} "
            f"temp={state.temperature:.2f} power={state.power:.1f}"
        )
        return state

    # =========================================
    # Commands
    # =========================================

    def start(self) -> CommandResult:
        """Begin the startup sequence (requires Idle and a complete checklist)."""
        result = self.lifecycle.start(self.checklist.complete)
        if not result.accepted:
            logger.warning(f"Start rejected: {result.reason}")
        self._apply_side_effects(result)
        return CommandResult.from_transition("start", result)

    def stop(self) -> CommandResult:
        """Normal stop: cut fuel and run down from the current speed."""
        return CommandResult.from_transition("stop", self._dispatch(LifecycleEvent.STOP))

    def emergency_stop(self) -> CommandResult:
        """Idempotent emergency stop; pre-empts an in-progress start."""
        return CommandResult.from_transition("emergency_stop", self._dispatch(LifecycleEvent.EMERGENCY_STOP))

    def clear_faults(self) -> CommandResult:
        """Acknowledge a trip: clear latched codes and return to Idle."""
        return CommandResult.from_transition("clear_faults", self._dispatch(LifecycleEvent.CLEAR_FAULTS))

    def reset(self) -> CommandResult:
        """
        Return to a cold, stopped engine.

        Clears plant state, fault codes, history, controller memory, the
        pre-start checklist and setpoints; controller configuration and
        enabled flags are kept. The noise source restarts its sequence.
        """
        result = self._dispatch(LifecycleEvent.RESET)

        self._state = SimulationState.initial(self.constants)
        self._setpoints = Setpoints()
        self._commands = ActuatorCommands()
        self._maintenance = 100.0
        self._forced_zero.clear()
        self.checklist.reset()
        self.noise.reseed()
        for samples in self._history.values():
            samples.clear()
        for pid in self._loops.values():
            pid.reset()
        self._cascade.reset()

        logger.info("Simulator reset")
        return CommandResult.from_transition("reset", result)

    def set_setpoint(self, kind: SetpointKind, value: float) -> float:
        """
        Change an operator target.

        Out-of-range values are clamped, not rejected.

        Returns:
            The value actually stored

        Raises:
            InvalidInputError: value is NaN or infinite
        """
        kind = SetpointKind(kind)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise InvalidInputError(f"Setpoint {kind.value} must be a finite number (got {value!r})")
        self._setpoints = self._setpoints.with_value(kind, value, self.constants)
        stored = self._setpoints.get(kind)
        if stored != value:
            logger.info(f"Setpoint {kind.value} clamped from {value} to {stored}")
        return stored

    def set_prestart_check(self, item: PreStartItem, done: bool = True) -> PreStartChecklist:
        self.checklist.mark(item, done)
        return self.checklist

    def set_maintenance_status(self, value: float) -> float:
        """Set engine condition (0-100%); degrades efficiency and raises an advisory below 30%."""
        if not math.isfinite(value):
            raise InvalidInputError(f"Maintenance status must be finite (got {value!r})")
        self._maintenance = clamp(value, 0.0, 100.0)
        return self._maintenance

    # =========================================
    # Controller Configuration
    # =========================================

    def set_auto_control(self, loop: ControlLoop, enabled: bool, target: Optional[float] = None) -> None:
        """
        Switch a single loop between manual and automatic.

        Manual-to-auto is bumpless: the loop starts from the current manual
        setpoint. Auto-to-manual leaves the last automatic output as the
        manual setpoint. Enabling a loop whose actuator is driven by the active
        cascade disables the cascade.
        """
        loop = ControlLoop(loop)
        pid = self._loops[loop]
        actuator = LOOP_ACTUATORS[loop]

        if target is not None:
            self.set_loop_target(loop, target)

        if enabled and not pid.enabled:
            if self._cascade.enabled and CASCADE_LOOPS[self._cascade_mode] == loop:
                self.set_cascade_enabled(False)
            pid.track(self._setpoints.get(actuator))
            pid.set_mode(True, bumpless=True)
            logger.info(f"Automatic {loop.value} control enabled (target {self.loop_target(loop)})")

        elif not enabled and pid.enabled:
            pid.set_mode(False)
            self._setpoints = self._setpoints.with_value(actuator, pid.runtime.last_output, self.constants)
            logger.info(f"Automatic {loop.value} control disabled")

    def set_loop_target(self, loop: ControlLoop, target: float) -> float:
        loop = ControlLoop(loop)
        if not math.isfinite(target):
            raise InvalidInputError(f"Loop target must be finite (got {target!r})")
        if loop == ControlLoop.SPEED:
            return self.set_setpoint(SetpointKind.SPEED, target)
        self._loop_targets[loop] = target
        return target

    def configure_controller(self, loop: ControlLoop, config: PidConfig) -> None:
        """Replace a loop's configuration (resets its memory)."""
        self._loops[ControlLoop(loop)].configure(config)

    def update_controller_parameters(
        self,
        loop: ControlLoop,
        kp: Optional[float] = None,
        ki: Optional[float] = None,
        kd: Optional[float] = None
    ) -> PidConfig:
        """Retune a loop live without resetting its memory."""
        return self._loops[ControlLoop(loop)].update_parameters(kp, ki, kd)

    def set_cascade_enabled(self, enabled: bool, mode: Optional[CascadeMode] = None) -> None:
        """
        Enable/disable the cascade, optionally switching its arrangement.

        Switching mode loads the default configuration of that mode.
        Enabling disables the single loop that drives the same actuator.
        """
        if mode is not None and CascadeMode(mode) != self._cascade_mode:
            self._cascade_mode = CascadeMode(mode)
            self._cascade.configure(DEFAULT_CASCADE_CONFIGS[self._cascade_mode])
            self._cascade.set_primary_setpoint(self.loop_target(CASCADE_LOOPS[self._cascade_mode]))

        if enabled:
            conflicting = CASCADE_LOOPS[self._cascade_mode]
            if self._loops[conflicting].enabled:
                self.set_auto_control(conflicting, False)
            if not self._cascade.enabled:
                self._cascade.set_primary_setpoint(self.loop_target(conflicting))

        self._cascade.set_enabled(enabled)

    def configure_cascade(self, config: CascadeConfig) -> None:
        self._cascade.configure(config)

    def set_cascade_setpoint(self, setpoint: float) -> None:
        self._cascade.set_primary_setpoint(setpoint)

    def update_cascade_parameters(
        self,
        loop: CascadeLoop,
        kp: Optional[float] = None,
        ki: Optional[float] = None,
        kd: Optional[float] = None
    ) -> PidConfig:
        return self._cascade.update_parameters(loop, kp, ki, kd)

    # =========================================
    # Internals
    # =========================================

    def _dispatch(self, event: LifecycleEvent) -> TransitionResult:
        result = self.lifecycle.dispatch(event, current_rpm=self._state.rpm)
        self._apply_side_effects(result)
        return result

    def _apply_side_effects(self, result: TransitionResult) -> None:
        for effect in result.side_effects:
            if effect == SideEffect.ZERO_FUEL:
                self._forced_zero.add(SetpointKind.FUEL)
            elif effect == SideEffect.ZERO_SETPOINTS:
                self._forced_zero.update(SetpointKind)
            elif effect == SideEffect.RESET_PROGRESS:
                self._forced_zero.clear()
            elif effect == SideEffect.CLEAR_FAULT_CODES:
                self.monitor.clear()
            elif effect == SideEffect.COMPLETE_STARTUP:
                self._restart_controllers()

    def _restart_controllers(self) -> None:
        """
        Clear controller memory left over from a previous run.

        Enabled loops restart bumpless from the operator's current setpoint
        for their actuator; the cascade starts from zero memory.
        """
        for loop, pid in self._loops.items():
            if not pid.enabled:
                continue
            pid.set_mode(False)
            pid.reset()
            pid.track(self._setpoints.get(LOOP_ACTUATORS[loop]))
            pid.set_mode(True, bumpless=True)
        if self._cascade.enabled:
            self._cascade.reset()
        logger.debug("Controller memory cleared for a new run")

    def _requested_commands(self) -> ActuatorCommands:
        sp = self._setpoints
        return ActuatorCommands(
            fuel=sp.fuel_target,
            load=sp.load_target,
            coolant=sp.coolant_target,
            ventilation=sp.ventilation_target,
            excitation=sp.excitation_target,
        )

    def _measure(self, loop: ControlLoop, state: SimulationState) -> Tuple[float, float]:
        """(primary measurement, actual actuator position) for a loop."""
        if loop == ControlLoop.TEMPERATURE:
            return state.temperature, state.coolant_flow
        if loop == ControlLoop.SPEED:
            return state.rpm, state.fuel_flow
        return state.voltage, state.excitation

    def _apply_control(self, commands: ActuatorCommands, prior: SimulationState, dt: float) -> ActuatorCommands:
        """Let enabled loops overwrite their actuators (running only)."""
        if self.lifecycle.state != EngineState.RUNNING:
            return commands

        overrides: Dict[str, float] = {}

        if self._cascade.enabled:
            loop = CASCADE_LOOPS[self._cascade_mode]
            primary, secondary = self._measure(loop, prior)
            overrides[LOOP_ACTUATORS[loop].value] = self._cascade.update(primary, secondary, dt)

        for loop, pid in self._loops.items():
            actuator = LOOP_ACTUATORS[loop].value
            if pid.enabled and actuator not in overrides:
                measurement, _ = self._measure(loop, prior)
                overrides[actuator] = pid.update(self.loop_target(loop), measurement, dt)

        return replace(commands, **{k: clamp(v, 0.0, 100.0) for k, v in overrides.items()})

    def _gate(self, commands: ActuatorCommands) -> ActuatorCommands:
        """Apply lifecycle restrictions to the commands."""
        state = self.lifecycle.state
        fuel = commands.fuel
        load = commands.load if state == EngineState.RUNNING else 0.0

        if state == EngineState.STARTING:
            fuel *= self.constants.STARTUP_FUEL_LIMIT
        elif state != EngineState.RUNNING:
            fuel = 0.0

        gated = replace(commands, fuel=fuel, load=load)
        if self._forced_zero:
            gated = replace(gated, **{kind.value: 0.0 for kind in self._forced_zero if kind != SetpointKind.SPEED})
        return gated

    def _repair(self, candidate: SimulationState, prior: SimulationState) -> SimulationState:
        """Replace non-finite fields by their prior value."""
        repairs: Dict[str, Any] = {}
        for f in fields(SimulationState):
            value = getattr(candidate, f.name)
            if isinstance(value, Emissions):
                bad = {e.name for e in fields(Emissions) if not math.isfinite(getattr(value, e.name))}
                if bad:
                    repairs[f.name] = replace(value, **{name: getattr(prior.emissions, name) for name in bad})
                    logger.error(f"Non-finite emissions {sorted(bad)} replaced by prior values")
            elif not math.isfinite(value):
                repairs[f.name] = getattr(prior, f.name)
                logger.error(f"Non-finite {f.name} ({value}) replaced by prior value {repairs[f.name]}")

        return replace(candidate, **repairs) if repairs else candidate

    def _record_history(self, previous_time: float, state: SimulationState) -> None:
        interval = self.history_interval
        if math.floor(state.time / interval + TIME_EPSILON) <= math.floor(previous_time / interval + TIME_EPSILON):
            return
        for kind, samples in self._history.items():
            samples.append(HistorySample(time=state.time, value=state.value_of(kind)))
