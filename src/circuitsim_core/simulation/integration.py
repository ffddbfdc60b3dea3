# src/circuitsim_core/simulation/integration.py
"""
Companion models for capacitors and inductors.

Each reactive element is replaced, for one step of length `dt`, by a resistor
and a parallel current source built from the element's history.

    Capacitor, backward-Euler:  G = C/dt,        Ieq = Qprev/dt into n1
    Capacitor, trapezoidal:     Req = dt/(2C),   Ieq = -(Vprev/Req + Iprev)
    Inductor, backward-Euler:   Req = L/dt,      Ieq = Iprev from n1 to n2
    Inductor, trapezoidal:      Req = 2L/dt,     Ieq = Iprev + Vprev/Req

Backward-Euler stores charge rather than voltage so that a capacitance change
on an isolated capacitor conserves charge. The trapezoidal history is a
voltage, so the step after a capacitance change always falls back to
backward-Euler.
"""
import logging
import math
from typing import Mapping, Optional

from ..components.base_enums import ComponentType, IntegrationMethod
from ..constants import MIN_CAPACITANCE_FARADS, MIN_INDUCTANCE_HENRIES
from .mna import MnaSystemBuilder
from .netlist import ComponentStamp
from .state import ComponentState, SimulationState

logger = logging.getLogger(__name__)


def _finite(value, fallback: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


def capacitance_of(stamp: ComponentStamp) -> float:
    return max(MIN_CAPACITANCE_FARADS, _finite(stamp.param("capacitance"), 0.0))


def inductance_of(stamp: ComponentStamp) -> float:
    return max(MIN_INDUCTANCE_HENRIES, _finite(stamp.param("inductance"), 0.0))


def _capacitance_changed(entry: ComponentState, stamp: ComponentStamp) -> bool:
    if entry.prev_capacitance is None:
        return False
    return not math.isclose(entry.prev_capacitance, capacitance_of(stamp), rel_tol=1e-12)


class DynamicIntegrator:
    """Stamps and evaluates reactive elements against a `SimulationState`."""

    def __init__(self, state: SimulationState):
        self.state = state
        self.has_connected_switch: bool = False

    def _entry(self, stamp: ComponentStamp) -> ComponentState:
        entry = self.state.get(stamp.id)
        if entry is None:
            entry = self.state.ensure(stamp.id)
            self.state.reset_entry(entry, stamp)
        return entry

    def resolve_method(self, stamp: Optional[ComponentStamp]) -> IntegrationMethod:
        """
        Explicit backward-Euler is always honoured. Explicit trapezoidal needs
        history and is otherwise backward-Euler. Auto needs history and no
        connected switch anywhere in the circuit. A capacitor whose capacitance
        changed since the last accepted step takes one backward-Euler step.
        """
        if stamp is None:
            return IntegrationMethod.BACKWARD_EULER
        raw = str(stamp.param("integration_method", IntegrationMethod.AUTO.value)).lower()
        entry = self.state.get(stamp.id)
        history_ready = bool(entry and entry.history_ready)

        if raw == IntegrationMethod.BACKWARD_EULER.value:
            return IntegrationMethod.BACKWARD_EULER
        if not history_ready:
            return IntegrationMethod.BACKWARD_EULER
        if stamp.type == ComponentType.CAPACITOR and _capacitance_changed(entry, stamp):
            return IntegrationMethod.BACKWARD_EULER
        if raw == IntegrationMethod.TRAPEZOIDAL.value:
            return IntegrationMethod.TRAPEZOIDAL
        if self.has_connected_switch:
            return IntegrationMethod.BACKWARD_EULER
        return IntegrationMethod.TRAPEZOIDAL

    # --- Stamping ---

    def stamp(self, system: MnaSystemBuilder, stamp: ComponentStamp, dt: float):
        if stamp.type == ComponentType.CAPACITOR:
            self._stamp_capacitor(system, stamp, dt)
        elif stamp.type == ComponentType.INDUCTOR:
            self._stamp_inductor(system, stamp, dt)

    def _stamp_capacitor(self, system: MnaSystemBuilder, stamp: ComponentStamp, dt: float):
        n1, n2 = stamp.nodes[0], stamp.nodes[1]
        c = capacitance_of(stamp)
        entry = self._entry(stamp)
        if self.resolve_method(stamp) == IntegrationMethod.TRAPEZOIDAL:
            req = dt / (2.0 * c)
            ieq = -(_finite(entry.prev_voltage) / req + _finite(entry.prev_current))
            system.stamp_resistance(n1, n2, req)
            system.stamp_current_source(n1, n2, ieq)
            return
        system.stamp_resistance(n1, n2, dt / c)
        # Qprev/dt enters n1, modelled as a source flowing n2 -> n1.
        system.stamp_current_source(n2, n1, _finite(entry.prev_charge) / dt)

    def _stamp_inductor(self, system: MnaSystemBuilder, stamp: ComponentStamp, dt: float):
        n1, n2 = stamp.nodes[0], stamp.nodes[1]
        ind = inductance_of(stamp)
        entry = self._entry(stamp)
        prev_current = _finite(entry.prev_current)
        if self.resolve_method(stamp) == IntegrationMethod.TRAPEZOIDAL:
            req = 2.0 * ind / dt
            system.stamp_resistance(n1, n2, req)
            system.stamp_current_source(n1, n2, prev_current + _finite(entry.prev_voltage) / req)
            return
        system.stamp_resistance(n1, n2, ind / dt)
        system.stamp_current_source(n1, n2, prev_current)

    # --- Branch currents ---

    def current(self, stamp: ComponentStamp, dv: float, dt: float) -> float:
        entry = self._entry(stamp)
        method = self.resolve_method(stamp)
        if stamp.type == ComponentType.CAPACITOR:
            c = capacitance_of(stamp)
            if method == IntegrationMethod.TRAPEZOIDAL:
                req = dt / (2.0 * c)
                ieq = -(_finite(entry.prev_voltage) / req + _finite(entry.prev_current))
                return dv / req + ieq
            return (c * dv - _finite(entry.prev_charge)) / dt

        if stamp.type == ComponentType.INDUCTOR:
            ind = inductance_of(stamp)
            prev_current = _finite(entry.prev_current)
            if method == IntegrationMethod.TRAPEZOIDAL:
                req = 2.0 * ind / dt
                return dv / req + prev_current + _finite(entry.prev_voltage) / req
            return prev_current + (dt / ind) * dv
        return 0.0

    # --- History commit ---

    def commit(self, stamp: ComponentStamp, dv: float, dt: float, measured_current: Optional[float]):
        """Records the accepted step as history for the next one."""
        entry = self._entry(stamp)
        if stamp.type == ComponentType.CAPACITOR:
            entry.prev_voltage = dv
            c = capacitance_of(stamp)
            entry.prev_charge = c * dv
            entry.prev_capacitance = c
            if measured_current is not None and math.isfinite(measured_current):
                entry.prev_current = measured_current
            entry.history_ready = True
        elif stamp.type == ComponentType.INDUCTOR:
            if measured_current is not None and math.isfinite(measured_current):
                entry.prev_current = measured_current
            else:
                entry.prev_current = _finite(entry.prev_current) + (dt / inductance_of(stamp)) * dv
            entry.prev_voltage = dv
            entry.history_ready = True

    def commit_all(self, stamps, voltages, currents: Mapping[str, float], dt: float):
        for stamp in stamps:
            if stamp.type not in (ComponentType.CAPACITOR, ComponentType.INDUCTOR):
                continue
            n1, n2 = stamp.node(0), stamp.node(1)
            if n1 < 0 or n2 < 0:
                continue
            dv = voltages[n1] - voltages[n2]
            self.commit(stamp, dv, dt, currents.get(stamp.id))
