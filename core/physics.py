"""
Physics Model for the Diesel Generator Set

This module evolves the plant state over one time step. Every function
takes an explicit dt (seconds) and the prior state; none of them keep
their own clock. The previous state is the only memory the model needs.

Sub-models:
- Actuators: fuel rack, load bank, coolant pump, ventilation fan and
  excitation all follow their commands through first-order lags
- Engine speed: first-order lag toward a fuel/load-derived target with
  asymmetric response (load resists acceleration, engine braking speeds
  up deceleration), replaced by the lifecycle ramp while starting/stopping
- Temperature: energy balance of generated heat, coolant heat removal
  (saturating with temperature) and linear loss to ambient
- Fuel consumption, efficiency and emissions
- Electrical outputs with governor/AVR regulation near rated speed
- Oil pressure, exhaust temperature, vibration and starter battery

First-order lag:
    x_next = x + (target - x) * min(1, dt / tau)

The step fraction is capped at 1 so an oversized dt lands on the target
instead of overshooting it.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from .constants import EngineConstants
from .lifecycle import EngineState, LifecyclePhase
from .noise import NoiseSource
from .state import Emissions, SimulationState, clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActuatorCommands:
    """
    Effective actuator commands for one tick (all in %).

    These are the setpoints after lifecycle gating and after any enabled
    control loop has overwritten the actuator it owns.
    """
    fuel: float = 0.0
    load: float = 0.0
    coolant: float = 0.0
    ventilation: float = 0.0
    excitation: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class PhysicsModel:
    """
    Coupled first-order model of a diesel generator set.

    Example:
        model = PhysicsModel(EngineConstants(), NoiseSource(enabled=False))
        state = SimulationState.initial(model.constants)
        state = model.integrate(
            dt=0.1,
            commands=ActuatorCommands(fuel=80, load=60, coolant=80),
            prior=state,
            phase=LifecyclePhase(EngineState.RUNNING),
        )
    """

    def __init__(
        self,
        constants: Optional[EngineConstants] = None,
        noise: Optional[NoiseSource] = None
    ):
        """
        Initialize the physics model.

        Args:
            constants: Plant constants. If None, uses defaults.
            noise: Random source for stochastic terms. If None, a fresh
                unseeded source is created.
        """
        self.constants = constants or EngineConstants()
        self.noise = noise or NoiseSource()

    # =========================================
    # Helpers
    # =========================================

    @staticmethod
    def lag(current: float, target: float, time_constant: float, dt: float) -> float:
        """Advance a first-order lag by dt."""
        if time_constant <= 0:
            return target
        return current + (target - current) * min(1.0, dt / time_constant)

    # =========================================
    # Engine Speed
    # =========================================

    def calculate_target_rpm(self, fuel_flow: float, load: float) -> float:
        """
        Steady-state speed for a fuel rack position and load.

        Formula:
            target = IDLE + fuel% * (RATED - IDLE) - load% * LOAD_RPM_PENALTY

        Never below idle: the idle governor holds the engine there.
        """
        c = self.constants
        target = (
            c.IDLE_RPM
            + (fuel_flow / 100.0) * (c.RATED_RPM - c.IDLE_RPM)
            - (load / 100.0) * c.LOAD_RPM_PENALTY
        )
        return max(c.IDLE_RPM, target)

    def calculate_rpm(
        self,
        current_rpm: float,
        fuel_flow: float,
        load: float,
        phase: LifecyclePhase,
        dt: float
    ) -> float:
        """
        Engine speed after dt.

        While starting or stopping the lifecycle ramp dictates the speed
        and no roughness is added. While running, speed lags toward the
        target; acceleration is slowed by load resistance (1 + 0.5*load)
        and deceleration is 20% faster from engine braking. In idle and
        fault the engine coasts down toward 0.
        """
        c = self.constants

        if phase.in_transition and phase.ramp_rpm is not None:
            return max(0.0, phase.ramp_rpm)

        target = self.calculate_target_rpm(fuel_flow, load) if phase.engine_state == EngineState.RUNNING else 0.0
        difference = target - current_rpm
        fraction = min(1.0, dt / c.RPM_TIME_CONSTANT) if c.RPM_TIME_CONSTANT > 0 else 1.0

        if difference > 0:
            load_resistance = 1.0 + (load / 100.0) * 0.5
            new_rpm = current_rpm + difference * fraction / load_resistance
        else:
            new_rpm = current_rpm + difference * min(1.0, fraction * 1.2)

        if phase.engine_state == EngineState.RUNNING:
            new_rpm += self.noise.uniform(-0.5, 0.5) * min(5.0, current_rpm / 50.0)

        return max(0.0, new_rpm)

    # =========================================
    # Thermal
    # =========================================

    def calculate_temperature(
        self,
        current_temp: float,
        fuel_flow: float,
        coolant_flow: float,
        ventilation: float,
        load: float,
        rpm: float,
        phase: LifecyclePhase,
        dt: float
    ) -> float:
        """
        Engine temperature after dt from an energy balance.

        Formula:
            ΔT = (Q_gen - Q_cool - Q_amb) * dt / thermal_mass

            Q_gen  = MAX_HEAT * fuel * load * rpm_factor * 0.7
                     (+ MAX_HEAT * fuel * rpm_factor * 0.05 near no-load)
            Q_cool = MAX_COOLING * coolant * min(1, (T - amb) / (OPT - amb + 10))
            Q_amb  = (T - amb) * h_amb * (1 + ventilation)

        Heat is only generated above half idle speed. Coolant removal
        saturates once the engine approaches its optimal temperature.
        The result is clamped to [ambient, MAX_ENGINE_TEMP].
        """
        c = self.constants
        rpm_factor = min(1.0, rpm / c.RATED_RPM)
        fuel_factor = fuel_flow / 100.0
        load_factor = load / 100.0

        heat_generated = 0.0
        if rpm > c.IDLE_RPM * 0.5:
            heat_generated = c.MAX_HEAT_GENERATION * fuel_factor * load_factor * rpm_factor * 0.7
            if load_factor < 0.1:
                heat_generated += c.MAX_HEAT_GENERATION * fuel_factor * rpm_factor * 0.05

        above_ambient = max(0.0, current_temp - c.AMBIENT_TEMP)
        saturation = min(1.0, above_ambient / (c.OPTIMAL_TEMP - c.AMBIENT_TEMP + 10.0))
        heat_removed = c.MAX_COOLING_POWER * (coolant_flow / 100.0) * saturation

        heat_lost = (current_temp - c.AMBIENT_TEMP) * c.AMBIENT_HEAT_TRANSFER * (1.0 + ventilation / 100.0)

        net_heat = heat_generated - heat_removed - heat_lost
        new_temp = current_temp + net_heat * dt / c.ENGINE_THERMAL_MASS

        if phase.engine_state == EngineState.RUNNING:
            new_temp *= self.noise.uniform(0.999, 1.001)

        return clamp(new_temp, c.AMBIENT_TEMP, c.MAX_ENGINE_TEMP)

    # =========================================
    # Fuel, Efficiency and Emissions
    # =========================================

    def calculate_efficiency(
        self,
        temperature: float,
        fuel_flow: float,
        load: float,
        rpm: float,
        maintenance: float,
        phase: LifecyclePhase
    ) -> float:
        """
        Thermal efficiency (%).

        Baseline 42% multiplied by:
        - speed factor: 1 - 0.5 * (rpm/rated - 1)²
        - temperature factor: 1 - (|T - 85| / 60)²
        - fuel factor: lean below 50%, rich above 90%
        - load factor: peaks at 80% load
        - maintenance factor: 0.7 .. 1.0

        Clamped to [20, 45] while the engine turns, 0 when stopped.
        """
        c = self.constants
        if rpm < c.MIN_FUEL_RPM:
            return 0.0

        rpm_ratio = rpm / c.RATED_RPM
        rpm_factor = 1.0 - 0.5 * (rpm_ratio - 1.0) ** 2
        temp_factor = max(0.0, 1.0 - (abs(temperature - c.OPTIMAL_TEMP) / 60.0) ** 2)

        if fuel_flow < 50:
            fuel_factor = 0.8 + fuel_flow / 150.0
        elif fuel_flow > 90:
            fuel_factor = 1.0 - (fuel_flow - 90) / 70.0
        else:
            fuel_factor = 1.0

        if load <= 40:
            load_factor = 0.8
        elif load <= 80:
            load_factor = 0.8 + (load - 40) / 200.0
        else:
            load_factor = 1.0 - (load - 80) / 100.0

        maintenance_factor = 0.7 + (maintenance / 100.0) * 0.3

        efficiency = 42.0 * rpm_factor * temp_factor * fuel_factor * load_factor * maintenance_factor
        if not phase.in_transition:
            efficiency *= self.noise.uniform(0.99, 1.01)

        return clamp(efficiency, 20.0, 45.0)

    def calculate_fuel_consumption(
        self,
        fuel_flow: float,
        rpm: float,
        efficiency: float,
        phase: LifecyclePhase
    ) -> float:
        """
        Fuel burn in L/h.

        Nominal rate scaled by rack position, penalised away from 90% of
        rated speed and discounted by efficiency. Zero below MIN_FUEL_RPM.
        """
        c = self.constants
        if rpm < c.MIN_FUEL_RPM:
            return 0.0

        rpm_factor = rpm / c.RATED_RPM
        base = (fuel_flow / 100.0) * c.NOMINAL_FUEL_RATE
        efficiency_adjustment = 1.0 - (efficiency / 100.0) * 0.2
        rpm_penalty = 1.0 + (rpm_factor - 0.9) ** 2 * 0.3

        consumption = base * rpm_penalty * efficiency_adjustment
        if not phase.in_transition:
            consumption *= self.noise.uniform(0.98, 1.02)
        return max(0.0, consumption)

    def calculate_emissions(
        self,
        fuel_flow: float,
        load: float,
        temperature: float,
        rpm: float,
        efficiency: float,
        phase: LifecyclePhase
    ) -> Emissions:
        """
        Exhaust emissions.

        - CO2 (g/kWh) = 650 * 42 / max(20, efficiency)
        - NOx (mg/Nm³) = 600 * (T / 85)^1.5 * (0.5 + fuel/400 + load/400), floor 100
        - Particulates (mg/Nm³) = 30 + (100 - efficiency) * 0.8 * f(T), floor 10,
          where f rises for cold engines and away from 85 °C

        While starting or stopping combustion is incomplete: all three are
        multiplied by 1 + (1 - ramp progress), NOx by a further 0.8 and
        particulates by a further 1.5.
        """
        c = self.constants
        if rpm < c.MIN_FUEL_RPM:
            return Emissions()

        co2 = 650.0 * 42.0 / max(20.0, efficiency)
        nox = 600.0 * (temperature / c.OPTIMAL_TEMP) ** 1.5 * (0.5 + fuel_flow / 400.0 + load / 400.0)

        if temperature < 70:
            temp_effect = 1.5 - temperature / 100.0
        else:
            temp_effect = 0.5 + ((temperature - 85.0) / 50.0) ** 2
        particulates = 30.0 + (100.0 - efficiency) * 0.8 * temp_effect

        if phase.in_transition:
            multiplier = 1.0 + (1.0 - phase.ramp_progress)
            return Emissions(
                co2=co2 * multiplier,
                nox=max(100.0, nox * multiplier * 0.8),
                particulates=max(10.0, particulates * multiplier * 1.5),
            )

        jitter = self.noise.uniform(0.96, 1.04)
        return Emissions(
            co2=co2 * jitter,
            nox=max(100.0, nox * jitter),
            particulates=max(10.0, particulates * jitter),
        )

    # =========================================
    # Electrical
    # =========================================

    def calculate_power(self, rpm: float, load: float, phase: LifecyclePhase) -> float:
        """
        Electrical output in kW.

        Formula:
            P = speed_ratio * load% * RATED_POWER * speed_efficiency
            speed_efficiency = 1 - 0.5 * (speed_ratio - 1)²

        Only produced while running above 90% of idle speed.
        """
        c = self.constants
        if phase.engine_state != EngineState.RUNNING or rpm < c.IDLE_RPM * 0.9:
            return 0.0

        speed_ratio = rpm / c.RATED_RPM
        speed_efficiency = max(0.0, 1.0 - 0.5 * (speed_ratio - 1.0) ** 2)
        power = speed_ratio * (load / 100.0) * c.RATED_POWER_KW * speed_efficiency
        return max(0.0, power * self.noise.uniform(0.99, 1.01))

    def calculate_frequency(self, rpm: float) -> float:
        """
        Generator frequency in Hz.

        f = rpm * poles / 120, with poles chosen so rated speed gives the
        nominal frequency. Within ±5% of rated speed the governor holds
        f = 50 + (ratio - 1) * 2.5, clamped to [47.5, 52.5]. Below 80% of
        idle speed the generator is not synchronised and f = 0.
        """
        c = self.constants
        if rpm < c.IDLE_RPM * 0.8:
            return 0.0

        ratio = rpm / c.RATED_RPM
        if 0.95 < ratio < 1.05 and rpm > c.IDLE_RPM:
            return clamp(c.NOMINAL_FREQUENCY + (ratio - 1.0) * 2.5, 47.5, 52.5)
        return rpm * c.poles / 120.0

    def calculate_voltage(self, rpm: float, excitation: float, phase: LifecyclePhase) -> float:
        """
        Generator line voltage.

        Away from rated speed: V = V_nom * ratio * (0.5 + 0.6 * excitation%).
        Within ±5% of rated speed the AVR regulates to
        V_nom * (0.98 + 0.04 * excitation%), clamped to ±10% of nominal.
        During startup/shutdown the voltage builds with ramp progress and
        sags most in the middle of the ramp. Zero below 70% of idle.
        """
        c = self.constants
        if rpm < c.IDLE_RPM * 0.7:
            return 0.0

        ratio = rpm / c.RATED_RPM
        voltage = c.NOMINAL_VOLTAGE * ratio * (0.5 + (excitation / 100.0) * 0.6)

        if 0.95 < ratio < 1.05 and rpm > c.IDLE_RPM:
            voltage = c.NOMINAL_VOLTAGE * (0.98 + (excitation / 100.0) * 0.04)
            voltage = clamp(voltage, c.NOMINAL_VOLTAGE * 0.9, c.NOMINAL_VOLTAGE * 1.1)

        if phase.in_transition:
            build = phase.startup_progress if phase.engine_state == EngineState.STARTING else 1.0 - phase.shutdown_progress
            instability = 1.0 - (build - 0.5) ** 2 * 0.2
            voltage *= build * instability

        return max(0.0, voltage)

    @staticmethod
    def calculate_current(power_kw: float, voltage: float) -> float:
        """Three-phase line current: I = P / (√3 · V)."""
        if power_kw <= 0 or voltage <= 0:
            return 0.0
        return power_kw * 1000.0 / (math.sqrt(3) * voltage)

    # =========================================
    # Auxiliary Sensors
    # =========================================

    def calculate_oil_pressure(self, current: float, rpm: float, phase: LifecyclePhase, dt: float) -> float:
        """Oil pressure (bar) lags toward (rpm/250) * (1 + rpm/3000)."""
        c = self.constants
        target = (rpm / 250.0) * (1.0 + rpm / 3000.0)
        pressure = self.lag(current, target, c.OIL_PRESSURE_TIME_CONSTANT, dt)
        if phase.engine_state == EngineState.RUNNING:
            pressure += self.noise.uniform(-0.05, 0.05)
        return max(0.0, pressure)

    def calculate_exhaust_temp(self, current: float, fuel_flow: float, rpm: float, dt: float) -> float:
        """Exhaust temperature lags toward ambient + fuel * 3.5 * (rpm/rated)^1.2."""
        c = self.constants
        target = c.AMBIENT_TEMP + fuel_flow * 3.5 * (rpm / c.RATED_RPM) ** 1.2
        return max(c.AMBIENT_TEMP, self.lag(current, target, c.EXHAUST_TIME_CONSTANT, dt))

    def calculate_vibration(
        self,
        current: float,
        rpm: float,
        load: float,
        load_command: float,
        phase: LifecyclePhase,
        dt: float
    ) -> float:
        """
        Vibration velocity (mm/s RMS).

        Base level rpm/500, amplified near the crankshaft resonances at
        450 and 1200 rpm and by the imbalance between commanded and
        actual load while running. Occasional random spikes appear in
        steady running only.
        """
        c = self.constants
        base = rpm / 500.0
        resonance = (
            1.0
            + 2.0 * math.exp(-((rpm - 450.0) / 100.0) ** 2)
            + 2.0 * math.exp(-((rpm - 1200.0) / 150.0) ** 2)
        )
        imbalance = abs(load - load_command) / 100.0 if phase.engine_state == EngineState.RUNNING else 0.0
        target = base * resonance * (1.0 + imbalance)

        vibration = self.lag(current, target, c.VIBRATION_TIME_CONSTANT, dt)
        if phase.engine_state == EngineState.RUNNING and self.noise.chance(0.02):
            vibration += self.noise.uniform(0.0, 2.0)
        return max(0.0, vibration)

    def calculate_battery_voltage(self, current: float, phase: LifecyclePhase, dt: float) -> float:
        """Battery drains while cranking and recharges from the alternator while running."""
        c = self.constants
        if phase.engine_state == EngineState.STARTING:
            return max(c.BATTERY_MIN, current - c.BATTERY_CRANK_DRAIN * dt)
        if phase.engine_state == EngineState.RUNNING:
            return min(c.BATTERY_MAX, current + c.BATTERY_CHARGE_RATE * dt)
        return current

    # =========================================
    # Integration
    # =========================================

    def integrate(
        self,
        dt: float,
        commands: ActuatorCommands,
        prior: SimulationState,
        phase: LifecyclePhase,
        maintenance: float = 100.0
    ) -> SimulationState:
        """
        Produce the next state from the prior state and the commands.

        Args:
            dt: Time step in seconds (validated by the caller)
            commands: Effective actuator commands for this tick
            prior: State at the start of the tick
            phase: Lifecycle view (state, ramp progress, ramp speed)
            maintenance: Engine condition 0-100%

        Returns:
            A new SimulationState; the prior state is not modified
        """
        c = self.constants

        fuel_flow = clamp(self.lag(prior.fuel_flow, commands.fuel, c.FUEL_FLOW_TIME_CONSTANT, dt), 0.0, 100.0)
        load = clamp(self.lag(prior.load, commands.load, c.LOAD_TIME_CONSTANT, dt), 0.0, 100.0)
        coolant_flow = clamp(self.lag(prior.coolant_flow, commands.coolant, c.COOLANT_TIME_CONSTANT, dt), 0.0, 100.0)
        ventilation = clamp(self.lag(prior.ventilation, commands.ventilation, c.VENTILATION_TIME_CONSTANT, dt), 0.0, 100.0)
        excitation = clamp(self.lag(prior.excitation, commands.excitation, c.EXCITATION_TIME_CONSTANT, dt), 0.0, 100.0)

        rpm = self.calculate_rpm(prior.rpm, fuel_flow, load, phase, dt)
        temperature = self.calculate_temperature(
            prior.temperature, fuel_flow, coolant_flow, ventilation, load, rpm, phase, dt
        )
        efficiency = self.calculate_efficiency(temperature, fuel_flow, load, rpm, maintenance, phase)
        fuel_consumption = self.calculate_fuel_consumption(fuel_flow, rpm, efficiency, phase)

        power = self.calculate_power(rpm, load, phase)
        voltage = self.calculate_voltage(rpm, excitation, phase)

        return SimulationState(
            time=prior.time + dt,
            rpm=rpm,
            temperature=temperature,
            fuel_flow=fuel_flow,
            load=load,
            oil_pressure=self.calculate_oil_pressure(prior.oil_pressure, rpm, phase, dt),
            vibration=self.calculate_vibration(prior.vibration, rpm, load, commands.load, phase, dt),
            exhaust_temp=self.calculate_exhaust_temp(prior.exhaust_temp, fuel_flow, rpm, dt),
            battery_voltage=self.calculate_battery_voltage(prior.battery_voltage, phase, dt),
            voltage=voltage,
            frequency=self.calculate_frequency(rpm),
            current=self.calculate_current(power, voltage),
            power=power,
            efficiency=efficiency,
            emissions=self.calculate_emissions(fuel_flow, load, temperature, rpm, efficiency, phase),
            fuel_consumption=fuel_consumption,
            coolant_flow=coolant_flow,
            ventilation=ventilation,
            excitation=excitation,
        )


def steady_state_temperature(
    fuel: float,
    load: float,
    coolant: float,
    ventilation: float = 0.0,
    rpm: Optional[float] = None,
    constants: Optional[EngineConstants] = None
) -> float:
    """
    Closed-form equilibrium temperature of the energy balance.

    Useful for sizing cooling and for checking scenarios without running
    the integrator.

    Args:
        fuel: Fuel rack position (%)
        load: Load (%)
        coolant: Coolant flow (%)
        ventilation: Ventilation (%)
        rpm: Engine speed (defaults to rated)
        constants: Plant constants (defaults used if None)

    Returns:
        Equilibrium temperature in °C, clamped to [ambient, MAX_ENGINE_TEMP]
    """
    c = constants or EngineConstants()
    rpm = c.RATED_RPM if rpm is None else rpm
    rpm_factor = min(1.0, rpm / c.RATED_RPM)

    heat = 0.0
    if rpm > c.IDLE_RPM * 0.5:
        heat = c.MAX_HEAT_GENERATION * (fuel / 100.0) * (load / 100.0) * rpm_factor * 0.7
        if load / 100.0 < 0.1:
            heat += c.MAX_HEAT_GENERATION * (fuel / 100.0) * rpm_factor * 0.05

    saturation_span = c.OPTIMAL_TEMP - c.AMBIENT_TEMP + 10.0
    ambient_coefficient = c.AMBIENT_HEAT_TRANSFER * (1.0 + ventilation / 100.0)
    linear_coefficient = c.MAX_COOLING_POWER * (coolant / 100.0) / saturation_span + ambient_coefficient

    if linear_coefficient <= 0:
        return c.MAX_ENGINE_TEMP if heat > 0 else c.AMBIENT_TEMP

    rise = heat / linear_coefficient
    if rise > saturation_span:
        # Coolant removal saturated; only ambient loss keeps growing
        remaining = heat - c.MAX_COOLING_POWER * (coolant / 100.0)
        rise = remaining / ambient_coefficient if ambient_coefficient > 0 else float("inf")
        rise = max(rise, saturation_span)

    return clamp(c.AMBIENT_TEMP + rise, c.AMBIENT_TEMP, c.MAX_ENGINE_TEMP)
