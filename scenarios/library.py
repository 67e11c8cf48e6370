"""
Operating Scenario Definitions

Each scenario is a scripted operator drill: a timeline of actions
(pre-start checks, setpoint changes, start/stop commands, switching
controllers to automatic) applied to a DieselGeneratorSimulator at given
simulated times, together with the end state a healthy model must reach.

Scenarios serve as:
- Regression drills for the physics and protection logic
- Demonstrations through the REST API
- Reproducible data sets (seeded) for analysis

Every scenario carries a short "story" explaining what the operator does
and what the plant should do in response.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from control.cascade import CascadeLoop
from core.lifecycle import EngineState
from core.simulator import CascadeMode, ControlLoop, DieselGeneratorSimulator
from core.state import SetpointKind


class ScenarioType(str, Enum):
    """Available operator drills."""
    NORMAL_START = "normal_start"
    FULL_LOAD = "full_load"
    NORMAL_SHUTDOWN = "normal_shutdown"
    LOSS_OF_COOLANT = "loss_of_coolant"
    EMERGENCY_STOP_DURING_START = "emergency_stop_during_start"
    AUTO_TEMPERATURE_CONTROL = "auto_temperature_control"
    CASCADE_TEMPERATURE_CONTROL = "cascade_temperature_control"
    DEGRADED_MAINTENANCE = "degraded_maintenance"


@dataclass(frozen=True)
class ScenarioAction:
    """
    One scripted operator action.

    Attributes:
        at: Simulated time (s) at which the action is applied
        description: What the operator does
        apply: Callable receiving the simulator
    """
    at: float
    description: str
    apply: Callable[[DieselGeneratorSimulator], Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"at": self.at, "description": self.description}


@dataclass
class OperatingScenario:
    """
    Definition of an operator drill.

    Attributes:
        name: Human-readable scenario name
        scenario_type: Which drill this is
        description: Technical summary
        duration: Simulated seconds to run
        story: Narrative explanation for demos/documentation
        actions: Timeline of operator actions
        expected_state: Engine state at the end of a healthy run
        expected_fault_codes: Codes that must be latched at the end
    """
    name: str
    scenario_type: ScenarioType
    description: str
    duration: float
    story: str
    actions: List[ScenarioAction] = field(default_factory=list)
    expected_state: EngineState = EngineState.RUNNING
    expected_fault_codes: List[str] = field(default_factory=list)

    def timeline(self) -> List[ScenarioAction]:
        """Actions ordered by time (stable for equal times)."""
        return sorted(self.actions, key=lambda a: a.at)

    def to_dict(self, include_story: bool = False) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "type": self.scenario_type.value,
            "description": self.description,
            "duration": self.duration,
            "actions": [a.to_dict() for a in self.timeline()],
            "expected_state": self.expected_state.value,
            "expected_fault_codes": list(self.expected_fault_codes),
        }
        if include_story:
            data["story"] = self.story
        return data


# =========================================
# Reusable Actions
# =========================================

def _prestart(at: float = 0.0) -> ScenarioAction:
    return ScenarioAction(at, "Complete pre-start checklist", lambda sim: sim.checklist.complete_all())


def _start(at: float = 0.0) -> ScenarioAction:
    return ScenarioAction(at, "Press START", lambda sim: sim.start())


def _setpoint(at: float, kind: SetpointKind, value: float) -> ScenarioAction:
    return ScenarioAction(
        at,
        f"Set {kind.value} target to {value:g}",
        lambda sim: sim.set_setpoint(kind, value),
    )


def _full_load_setpoints(at: float = 0.0) -> List[ScenarioAction]:
    return [
        _setpoint(at, SetpointKind.FUEL, 100.0),
        _setpoint(at, SetpointKind.LOAD, 100.0),
        _setpoint(at, SetpointKind.COOLANT, 95.0),
    ]


class ScenarioLibrary:
    """
    Library of pre-defined operator drills.

    Usage:
        scenario = ScenarioLibrary.loss_of_coolant()
        all_scenarios = ScenarioLibrary.get_all_scenarios()
        scenario = ScenarioLibrary.get_scenario_by_type(ScenarioType.FULL_LOAD)
    """

    @staticmethod
    def normal_start(duration: float = 60.0) -> OperatingScenario:
        """Cold start with default setpoints."""
        return OperatingScenario(
            name="Normal Start",
            scenario_type=ScenarioType.NORMAL_START,
            description="Pre-start checks, start, and settle at default setpoints",
            duration=duration,
            story="""
            The operator walks the pre-start checklist (fuel, oil, coolant,
            battery, air filter) and presses START. The starter cranks the
            engine along a smooth S-curve to idle speed over 10 seconds,
            drawing the battery down. Once running, the governor takes the
            engine up toward the speed set by the fuel rack and the
            generator builds voltage.

            Expected: RUNNING, no fault codes.
            """,
            actions=[_prestart(), _start()],
        )

    @staticmethod
    def full_load(duration: float = 180.0) -> OperatingScenario:
        """Nominal full-load operation."""
        return OperatingScenario(
            name="Full Load",
            scenario_type=ScenarioType.FULL_LOAD,
            description="Run at 100% fuel and 100% load with strong cooling",
            duration=duration,
            story="""
            With fuel and load both at 100% and the coolant pump at 95%,
            the set produces its rated output. Temperature climbs toward an
            equilibrium well below the high-temperature warning and stays
            there. A high-load advisory is expected; nothing trips.

            Expected: RUNNING, no fault codes.
            """,
            actions=[*_full_load_setpoints(), _prestart(), _start()],
        )

    @staticmethod
    def normal_shutdown(duration: float = 90.0) -> OperatingScenario:
        """Run, then normal stop and run-down to idle."""
        return OperatingScenario(
            name="Normal Shutdown",
            scenario_type=ScenarioType.NORMAL_SHUTDOWN,
            description="Start, run for 40 s, then press STOP",
            duration=duration,
            story="""
            After a normal start the operator presses STOP at t=40 s. Fuel
            is cut and the speed runs down along the shutdown curve from
            wherever it was. Once the speed falls below 20 rpm the engine is
            back at IDLE and ready for the next start.

            Expected: IDLE, no fault codes.
            """,
            actions=[_prestart(), _start(), ScenarioAction(40.0, "Press STOP", lambda sim: sim.stop())],
            expected_state=EngineState.IDLE,
        )

    @staticmethod
    def loss_of_coolant(duration: float = 300.0) -> OperatingScenario:
        """Coolant pump failure at full load."""
        return OperatingScenario(
            name="Loss of Coolant",
            scenario_type=ScenarioType.LOSS_OF_COOLANT,
            description="Coolant flow drops to zero at full load",
            duration=duration,
            story="""
            The set is at full load when the coolant pump fails (t=30 s).
            Without forced cooling the engine heats at roughly 0.7 C/s.
            A low-coolant advisory appears first; once temperature passes
            90 C with coolant below 40% and load above 60%, the protection
            trips the engine with E003 (insufficient cooling).

            Expected: FAULT with E003 latched.
            """,
            actions=[
                *_full_load_setpoints(),
                _prestart(),
                _start(),
                _setpoint(30.0, SetpointKind.COOLANT, 0.0),
            ],
            expected_state=EngineState.FAULT,
            expected_fault_codes=["E003"],
        )

    @staticmethod
    def emergency_stop_during_start(duration: float = 30.0) -> OperatingScenario:
        """Emergency stop pre-empting a start."""
        return OperatingScenario(
            name="Emergency Stop During Start",
            scenario_type=ScenarioType.EMERGENCY_STOP_DURING_START,
            description="Emergency stop pressed half-way through cranking",
            duration=duration,
            story="""
            The operator hits EMERGENCY STOP at t=5 s while the starter is
            still cranking. The start is abandoned, fuel is cut, and the
            engine runs down from its partial speed. It never reaches
            RUNNING; it ends stopped at IDLE.

            Expected: IDLE, no fault codes.
            """,
            actions=[
                _prestart(),
                _start(),
                ScenarioAction(5.0, "Press EMERGENCY STOP", lambda sim: sim.emergency_stop()),
            ],
            expected_state=EngineState.IDLE,
        )

    @staticmethod
    def auto_temperature_control(duration: float = 300.0, target: float = 75.0) -> OperatingScenario:
        """Single-loop automatic coolant control."""
        return OperatingScenario(
            name="Automatic Temperature Control",
            scenario_type=ScenarioType.AUTO_TEMPERATURE_CONTROL,
            description=f"PID drives the coolant pump to hold {target:g} C at full load",
            duration=duration,
            story="""
            At full load the operator hands the coolant pump to the
            temperature controller. While the engine is cold the controller
            holds the pump near closed; as temperature approaches the target
            it opens the pump and settles. The transfer from manual is
            bumpless.

            Expected: RUNNING, no fault codes.
            """,
            actions=[
                *_full_load_setpoints(),
                _prestart(),
                _start(),
                ScenarioAction(
                    15.0,
                    f"Enable automatic temperature control at {target:g} C",
                    lambda sim: sim.set_auto_control(ControlLoop.TEMPERATURE, True, target=target),
                ),
            ],
        )

    @staticmethod
    def cascade_temperature_control(duration: float = 300.0, target: float = 75.0) -> OperatingScenario:
        """Temperature -> coolant flow cascade."""
        return OperatingScenario(
            name="Cascade Temperature Control",
            scenario_type=ScenarioType.CASCADE_TEMPERATURE_CONTROL,
            description="Temperature loop sets the coolant flow loop's setpoint",
            duration=duration,
            story="""
            The outer loop watches engine temperature and asks for a coolant
            flow; the inner loop drives the pump until the measured flow
            matches. Pump lag is handled by the inner loop, so the outer
            loop sees a faster, cleaner actuator. The secondary gains are
            softened once at t=60 s to show live retuning.

            Expected: RUNNING, no fault codes.
            """,
            actions=[
                *_full_load_setpoints(),
                _prestart(),
                _start(),
                ScenarioAction(
                    15.0,
                    f"Enable temperature/coolant cascade at {target:g} C",
                    lambda sim: (
                        sim.set_cascade_enabled(True, mode=CascadeMode.TEMPERATURE_COOLANT),
                        sim.set_cascade_setpoint(target),
                    ),
                ),
                ScenarioAction(
                    60.0,
                    "Retune secondary loop",
                    lambda sim: sim.update_cascade_parameters(CascadeLoop.SECONDARY, kp=2.0),
                ),
            ],
        )

    @staticmethod
    def degraded_maintenance(duration: float = 90.0, condition: float = 20.0) -> OperatingScenario:
        """Overdue maintenance."""
        return OperatingScenario(
            name="Degraded Maintenance",
            scenario_type=ScenarioType.DEGRADED_MAINTENANCE,
            description=f"Engine condition at {condition:g}% lowers efficiency",
            duration=duration,
            story="""
            The engine is overdue for service. Worn injectors and dirty
            filters cost efficiency, so each kWh burns more fuel. The
            monitor raises a maintenance advisory but the engine keeps
            running: condition is an advisory, never a trip.

            Expected: RUNNING, no fault codes, maintenance advisory active.
            """,
            actions=[
                ScenarioAction(0.0, f"Set engine condition to {condition:g}%",
                               lambda sim: sim.set_maintenance_status(condition)),
                _prestart(),
                _start(),
            ],
        )

    @classmethod
    def get_all_scenarios(cls) -> List[OperatingScenario]:
        """Return all available scenarios with default durations."""
        return [
            cls.normal_start(),
            cls.full_load(),
            cls.normal_shutdown(),
            cls.loss_of_coolant(),
            cls.emergency_stop_during_start(),
            cls.auto_temperature_control(),
            cls.cascade_temperature_control(),
            cls.degraded_maintenance(),
        ]

    @classmethod
    def get_scenario_by_type(
        cls,
        scenario_type: ScenarioType,
        duration: Optional[float] = None
    ) -> OperatingScenario:
        """
        Get a scenario by its type.

        Args:
            scenario_type: Type of drill
            duration: Optional duration override (seconds)

        Returns:
            OperatingScenario instance
        """
        scenario_map = {
            ScenarioType.NORMAL_START: cls.normal_start,
            ScenarioType.FULL_LOAD: cls.full_load,
            ScenarioType.NORMAL_SHUTDOWN: cls.normal_shutdown,
            ScenarioType.LOSS_OF_COOLANT: cls.loss_of_coolant,
            ScenarioType.EMERGENCY_STOP_DURING_START: cls.emergency_stop_during_start,
            ScenarioType.AUTO_TEMPERATURE_CONTROL: cls.auto_temperature_control,
            ScenarioType.CASCADE_TEMPERATURE_CONTROL: cls.cascade_temperature_control,
            ScenarioType.DEGRADED_MAINTENANCE: cls.degraded_maintenance,
        }
        factory = scenario_map[ScenarioType(scenario_type)]
        return factory() if duration is None else factory(duration=duration)
