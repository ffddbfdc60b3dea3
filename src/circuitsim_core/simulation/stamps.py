# src/circuitsim_core/simulation/stamps.py
"""
Per-type stamp and branch-current handlers.

Each component type maps to one stamp function, which writes its linear
contribution into an `MnaSystemBuilder`, and one current function, which
reads its branch current back from the solution. Positive current flows from
terminal 0 to terminal 1 through passive parts and out of terminal 0 for
sources.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Sequence, Set

import numpy as np

from ..components.base_enums import ComponentType, RheostatMode
from ..constants import IDEAL_SOURCE_RESISTANCE_THRESHOLD, IDEAL_VOLTMETER_RESISTANCE, MIN_RESISTANCE_OHMS
from .integration import DynamicIntegrator
from .junction import JunctionLinearization
from .mna import MnaSystemBuilder
from .netlist import ComponentStamp

logger = logging.getLogger(__name__)


@dataclass
class StampContext:
    """Everything a handler needs beyond the component stamp itself."""
    dt: float
    sim_time: float
    integrator: DynamicIntegrator
    vs_index: Dict[str, int] = field(default_factory=dict)
    shorted_ids: Set[str] = field(default_factory=set)
    junctions: Dict[str, JunctionLinearization] = field(default_factory=dict)
    source_voltages: Dict[str, float] = field(default_factory=dict)


def _number(value, fallback: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if not math.isnan(number) else fallback


def _resistance(value) -> float:
    r = _number(value, 0.0)
    return r if r > 0 else MIN_RESISTANCE_OHMS


def source_instant_voltage(stamp: ComponentStamp, sim_time: float) -> float:
    """DC voltage, or the AC waveform sampled at `sim_time`."""
    if stamp.type == ComponentType.AC_VOLTAGE_SOURCE:
        rms = _number(stamp.param("rms_voltage"))
        frequency = _number(stamp.param("frequency"))
        phase = _number(stamp.param("phase"))
        offset = _number(stamp.param("offset"))
        omega = 2.0 * math.pi * frequency
        return offset + rms * math.sqrt(2.0) * math.sin(omega * sim_time + phase * math.pi / 180.0)
    return _number(stamp.param("voltage"))


def source_internal_resistance(stamp: ComponentStamp) -> float:
    return max(0.0, _number(stamp.param("internal_resistance"), 0.0))


def is_ideal_source(stamp: ComponentStamp) -> bool:
    return source_internal_resistance(stamp) <= IDEAL_SOURCE_RESISTANCE_THRESHOLD


def is_ideal_ammeter(stamp: ComponentStamp) -> bool:
    return _number(stamp.param("resistance"), 0.0) <= 0


def is_ideal_voltmeter(stamp: ComponentStamp) -> bool:
    r = stamp.param("resistance")
    if r is None:
        return True
    r = _number(r, math.inf)
    return not math.isfinite(r) or r <= 0 or r >= IDEAL_VOLTMETER_RESISTANCE


def needs_voltage_row(stamp: ComponentStamp) -> bool:
    """Elements modelled by an auxiliary current unknown."""
    if stamp.type in (ComponentType.POWER_SOURCE, ComponentType.AC_VOLTAGE_SOURCE):
        return is_ideal_source(stamp)
    if stamp.type == ComponentType.AMMETER:
        return is_ideal_ammeter(stamp)
    if stamp.type == ComponentType.SWITCH:
        return bool(stamp.param("closed", False))
    return False


def rheostat_resistances(stamp: ComponentStamp):
    min_r = _number(stamp.param("min_resistance"), 0.0)
    max_r = _number(stamp.param("max_resistance"), 100.0)
    position = _number(stamp.param("position"), 0.5)
    position = min(max(position, 0.0), 1.0)
    span = max(0.0, max_r - min_r)
    r1 = max(MIN_RESISTANCE_OHMS, min_r + span * position)
    r2 = max(MIN_RESISTANCE_OHMS, max_r - span * position)
    return r1, r2, max(MIN_RESISTANCE_OHMS, max_r)


# --- Stamp handlers ---

StampHandler = Callable[[MnaSystemBuilder, ComponentStamp, StampContext], None]


def stamp_resistor(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    system.stamp_resistance(stamp.nodes[0], stamp.nodes[1], _resistance(stamp.param("resistance")))


def stamp_source(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    n1, n2 = stamp.nodes[0], stamp.nodes[1]
    emf = source_instant_voltage(stamp, ctx.sim_time)
    ctx.source_voltages[stamp.id] = emf
    if stamp.id in ctx.vs_index:
        system.stamp_voltage_source(n1, n2, emf, ctx.vs_index[stamp.id])
        return
    r = max(source_internal_resistance(stamp), MIN_RESISTANCE_OHMS)
    # Norton equivalent: E/r pushed out of the positive terminal.
    system.stamp_conductance(n1, n2, 1.0 / r)
    system.stamp_current_source(n2, n1, emf / r)


def stamp_rheostat(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    left, right, slider = stamp.node(0), stamp.node(1), stamp.node(2)
    r1, r2, r_total = rheostat_resistances(stamp)
    mode = stamp.connection_mode
    if mode == RheostatMode.LEFT_SLIDER.value:
        system.stamp_resistance(left, slider, r1)
    elif mode == RheostatMode.RIGHT_SLIDER.value:
        system.stamp_resistance(slider, right, r2)
    elif mode == RheostatMode.LEFT_RIGHT.value:
        system.stamp_resistance(left, right, r_total)
    elif mode == RheostatMode.ALL.value:
        if left == slider and right == slider:
            return
        if left == slider:
            system.stamp_resistance(slider, right, r2)
        elif right == slider:
            system.stamp_resistance(left, slider, r1)
        elif left == right:
            system.stamp_resistance(left, slider, (r1 * r2) / (r1 + r2))
        else:
            system.stamp_resistance(left, slider, r1)
            system.stamp_resistance(slider, right, r2)


def stamp_switch(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    if stamp.id in ctx.vs_index:
        system.stamp_voltage_source(stamp.nodes[0], stamp.nodes[1], 0.0, ctx.vs_index[stamp.id])


def stamp_ammeter(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    if stamp.id in ctx.vs_index:
        system.stamp_voltage_source(stamp.nodes[0], stamp.nodes[1], 0.0, ctx.vs_index[stamp.id])
    else:
        system.stamp_resistance(stamp.nodes[0], stamp.nodes[1], _resistance(stamp.param("resistance")))


def stamp_voltmeter(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    if not is_ideal_voltmeter(stamp):
        system.stamp_resistance(stamp.nodes[0], stamp.nodes[1], _resistance(stamp.param("resistance")))


def stamp_dynamic(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    ctx.integrator.stamp(system, stamp, ctx.dt)


def stamp_junction(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    lin = ctx.junctions.get(stamp.id)
    if lin is None:
        return
    n1, n2 = stamp.nodes[0], stamp.nodes[1]
    system.stamp_conductance(n1, n2, lin.conductance)
    system.stamp_current_source(n1, n2, lin.current_offset)


def stamp_nothing(system: MnaSystemBuilder, stamp: ComponentStamp, ctx: StampContext):
    pass


STAMP_HANDLERS: Dict[ComponentType, StampHandler] = {
    ComponentType.RESISTOR: stamp_resistor,
    ComponentType.BULB: stamp_resistor,
    ComponentType.POWER_SOURCE: stamp_source,
    ComponentType.AC_VOLTAGE_SOURCE: stamp_source,
    ComponentType.RHEOSTAT: stamp_rheostat,
    ComponentType.CAPACITOR: stamp_dynamic,
    ComponentType.INDUCTOR: stamp_dynamic,
    ComponentType.DIODE: stamp_junction,
    ComponentType.LED: stamp_junction,
    ComponentType.SWITCH: stamp_switch,
    ComponentType.AMMETER: stamp_ammeter,
    ComponentType.VOLTMETER: stamp_voltmeter,
    ComponentType.GROUND: stamp_nothing,
    ComponentType.BLACK_BOX: stamp_nothing,
}


# --- Current handlers ---

CurrentHandler = Callable[[ComponentStamp, Sequence[float], np.ndarray, MnaSystemBuilder, StampContext], float]


def _dv(stamp: ComponentStamp, voltages: Sequence[float]) -> float:
    return voltages[stamp.nodes[0]] - voltages[stamp.nodes[1]]


def _aux_current(stamp: ComponentStamp, x: np.ndarray, system: MnaSystemBuilder, ctx: StampContext) -> float:
    index = ctx.vs_index.get(stamp.id)
    if index is None:
        return 0.0
    return -float(x[system.aux_row(index)])


def current_resistor(stamp, voltages, x, system, ctx) -> float:
    return _dv(stamp, voltages) / _resistance(stamp.param("resistance"))


def current_source(stamp, voltages, x, system, ctx) -> float:
    if stamp.id in ctx.vs_index:
        return _aux_current(stamp, x, system, ctx)
    emf = ctx.source_voltages.get(stamp.id, source_instant_voltage(stamp, ctx.sim_time))
    r = max(source_internal_resistance(stamp), MIN_RESISTANCE_OHMS)
    return (emf - _dv(stamp, voltages)) / r


def current_rheostat(stamp, voltages, x, system, ctx) -> float:
    def v(node: int) -> float:
        return voltages[node] if node >= 0 else 0.0

    left, right, slider = stamp.node(0), stamp.node(1), stamp.node(2)
    r1, r2, r_total = rheostat_resistances(stamp)
    mode = stamp.connection_mode
    if mode == RheostatMode.LEFT_SLIDER.value:
        return (v(left) - v(slider)) / r1
    if mode == RheostatMode.RIGHT_SLIDER.value:
        return (v(slider) - v(right)) / r2
    if mode == RheostatMode.LEFT_RIGHT.value:
        return (v(left) - v(right)) / r_total
    if mode == RheostatMode.ALL.value:
        if left == slider and right == slider:
            return 0.0
        if left == slider:
            return (v(slider) - v(right)) / r2
        if right == slider:
            return (v(left) - v(slider)) / r1
        if left == right:
            return (v(left) - v(slider)) / ((r1 * r2) / (r1 + r2))
        i1 = (v(left) - v(slider)) / r1
        i2 = (v(slider) - v(right)) / r2
        return i1 if abs(i1) > abs(i2) else i2
    return 0.0


def rheostat_segment_currents(stamp: ComponentStamp, voltages: Sequence[float]):
    """(left to slider, slider to right) currents of a fully wired rheostat."""
    left, right, slider = stamp.node(0), stamp.node(1), stamp.node(2)
    if min(left, right, slider) < 0:
        return 0.0, 0.0
    r1, r2, _ = rheostat_resistances(stamp)
    i_ls = (voltages[left] - voltages[slider]) / r1 if left != slider else 0.0
    i_sr = (voltages[slider] - voltages[right]) / r2 if right != slider else 0.0
    return i_ls, i_sr


def current_switch(stamp, voltages, x, system, ctx) -> float:
    # The auxiliary unknown already runs from terminal 0 to terminal 1.
    return -_aux_current(stamp, x, system, ctx) if stamp.id in ctx.vs_index else 0.0


def current_ammeter(stamp, voltages, x, system, ctx) -> float:
    if stamp.id in ctx.vs_index:
        return _aux_current(stamp, x, system, ctx)
    return _dv(stamp, voltages) / _resistance(stamp.param("resistance"))


def current_voltmeter(stamp, voltages, x, system, ctx) -> float:
    if is_ideal_voltmeter(stamp):
        return 0.0
    return _dv(stamp, voltages) / _resistance(stamp.param("resistance"))


def current_dynamic(stamp, voltages, x, system, ctx) -> float:
    return ctx.integrator.current(stamp, _dv(stamp, voltages), ctx.dt)


def current_junction(stamp, voltages, x, system, ctx) -> float:
    lin = ctx.junctions.get(stamp.id)
    if lin is None:
        return 0.0
    return lin.conductance * _dv(stamp, voltages) + lin.current_offset


def current_nothing(stamp, voltages, x, system, ctx) -> float:
    return 0.0


CURRENT_HANDLERS: Dict[ComponentType, CurrentHandler] = {
    ComponentType.RESISTOR: current_resistor,
    ComponentType.BULB: current_resistor,
    ComponentType.POWER_SOURCE: current_source,
    ComponentType.AC_VOLTAGE_SOURCE: current_source,
    ComponentType.RHEOSTAT: current_rheostat,
    ComponentType.CAPACITOR: current_dynamic,
    ComponentType.INDUCTOR: current_dynamic,
    ComponentType.DIODE: current_junction,
    ComponentType.LED: current_junction,
    ComponentType.SWITCH: current_switch,
    ComponentType.AMMETER: current_ammeter,
    ComponentType.VOLTMETER: current_voltmeter,
    ComponentType.GROUND: current_nothing,
    ComponentType.BLACK_BOX: current_nothing,
}


def stampable(stamp: ComponentStamp) -> bool:
    """Whether the terminals the element needs all sit on valid nodes."""
    if stamp.type in (ComponentType.GROUND, ComponentType.BLACK_BOX):
        return False
    if stamp.type == ComponentType.RHEOSTAT:
        mode = stamp.connection_mode
        left, right, slider = stamp.node(0), stamp.node(1), stamp.node(2)
        required = {
            RheostatMode.LEFT_SLIDER.value: (left, slider),
            RheostatMode.RIGHT_SLIDER.value: (slider, right),
            RheostatMode.LEFT_RIGHT.value: (left, right),
            RheostatMode.ALL.value: (left, right, slider),
        }.get(mode)
        return required is not None and all(n >= 0 for n in required)
    return stamp.node(0) >= 0 and stamp.node(1) >= 0


def get_stamp_handler(component_type: ComponentType) -> Optional[StampHandler]:
    return STAMP_HANDLERS.get(component_type)


def get_current_handler(component_type: ComponentType) -> Optional[CurrentHandler]:
    return CURRENT_HANDLERS.get(component_type)

