# src/circuitsim_core/simulation/junction.py
"""
Exponential junction model for diodes and LEDs.

The junction is the Shockley diode `I = Is (exp(Vd / (n Vt)) - 1)` in series
with an on-resistance `Rs`. `Is` is derived so that the junction carries the
reference current at the forward voltage. For the outer Newton loop the
series pair is linearized into a conductance and a parallel current source.
"""
import logging
import math
from dataclasses import dataclass
from typing import Mapping, NamedTuple

from ..components.base_enums import ComponentType
from ..constants import (
    GMIN_SIEMENS,
    JUNCTION_EXPONENT_LIMIT,
    JUNCTION_INNER_MAX_ITERATIONS,
    JUNCTION_INNER_TOLERANCE,
    THERMAL_VOLTAGE,
)

logger = logging.getLogger(__name__)

_DEFAULTS = {
    ComponentType.DIODE: {"forward_voltage": 0.7, "on_resistance": 1.0, "ideality_factor": 1.8, "reference_current": 1e-3},
    ComponentType.LED: {"forward_voltage": 2.0, "on_resistance": 2.0, "ideality_factor": 2.2, "reference_current": 0.02},
}


@dataclass(frozen=True)
class JunctionParameters:
    ideality_factor: float
    v_scale: float
    forward_voltage: float
    reference_current: float
    saturation_current: float
    series_resistance: float
    gmin: float
    vcrit: float


class JunctionLinearization(NamedTuple):
    current: float
    conductance: float
    current_offset: float
    diode_voltage: float


def _clamp_exponent(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return max(-JUNCTION_EXPONENT_LIMIT, min(JUNCTION_EXPONENT_LIMIT, value))


def _positive(value, fallback: float, allow_zero: bool = False) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    if number > 0 or (allow_zero and number == 0):
        return number
    return fallback


def resolve_junction_parameters(component_type: ComponentType, params: Mapping) -> JunctionParameters:
    """Derives the junction constants from a diode or LED parameter mapping."""
    defaults = _DEFAULTS.get(component_type, _DEFAULTS[ComponentType.DIODE])

    n = _positive(params.get("ideality_factor"), defaults["ideality_factor"])
    v_scale = max(1e-6, n * THERMAL_VOLTAGE)
    vf = _positive(params.get("forward_voltage"), defaults["forward_voltage"], allow_zero=True)
    rs = _positive(params.get("on_resistance"), defaults["on_resistance"], allow_zero=True)

    if component_type == ComponentType.LED:
        iref = _positive(params.get("rated_current"), defaults["reference_current"])
    else:
        iref = _positive(params.get("reference_current"), defaults["reference_current"])

    denom = math.exp(_clamp_exponent(vf / v_scale)) - 1.0
    if denom > 0:
        i_sat = max(1e-30, min(1.0, iref / denom))
    else:
        i_sat = 1e-12

    vcrit = v_scale * math.log(max(v_scale / (math.sqrt(2.0) * i_sat), 1.0 + 1e-12))
    return JunctionParameters(
        ideality_factor=n,
        v_scale=v_scale,
        forward_voltage=vf,
        reference_current=iref,
        saturation_current=i_sat,
        series_resistance=max(0.0, rs),
        gmin=max(GMIN_SIEMENS, 0.01 * i_sat),
        vcrit=vcrit,
    )


def shockley_current(v_diode: float, p: JunctionParameters) -> float:
    return p.saturation_current * (math.exp(_clamp_exponent(v_diode / p.v_scale)) - 1.0)


def shockley_conductance(v_diode: float, p: JunctionParameters) -> float:
    return (p.saturation_current / p.v_scale) * math.exp(_clamp_exponent(v_diode / p.v_scale))


def limit_junction_step(v_new: float, v_old: float, p: JunctionParameters) -> float:
    """
    SPICE pnjlim: above the critical voltage, a large forward jump is
    compressed logarithmically so the exponential cannot overflow the next
    iteration.
    """
    if not math.isfinite(v_new):
        return 0.0
    if not math.isfinite(v_old):
        return v_new

    v_scale = max(1e-6, p.v_scale)
    limited = v_new
    if limited > p.vcrit and abs(limited - v_old) > 2.0 * v_scale:
        if v_old > 0:
            arg = 1.0 + (limited - v_old) / v_scale
            limited = v_old + v_scale * math.log(arg) if arg > 0 else p.vcrit
        else:
            limited = v_scale * math.log(max(limited / v_scale, 1e-12))
    return limited if math.isfinite(limited) else v_old


def solve_junction_current(total_voltage: float, p: JunctionParameters, initial_current: float = 0.0) -> float:
    """Current through the series Rs + junction pair for a terminal voltage."""
    voltage = total_voltage if math.isfinite(total_voltage) else 0.0
    rs = p.series_resistance
    if not rs > 0:
        return shockley_current(voltage, p)

    current = initial_current if math.isfinite(initial_current) else 0.0
    for _ in range(JUNCTION_INNER_MAX_ITERATIONS):
        v_diode = voltage - current * rs
        f = current - shockley_current(v_diode, p)
        if abs(f) < JUNCTION_INNER_TOLERANCE:
            break
        df = 1.0 + rs * shockley_conductance(v_diode, p)
        if not abs(df) > 1e-18:
            break
        nxt = current - f / df
        if not math.isfinite(nxt):
            break
        if abs(nxt - current) < JUNCTION_INNER_TOLERANCE:
            current = nxt
            break
        current = nxt
    return current if math.isfinite(current) else 0.0


def linearize_junction_at(total_voltage: float, p: JunctionParameters, initial_current: float = 0.0) -> JunctionLinearization:
    """
    Companion model at an operating point: `I ~ G V + offset`, with
    `G = gD / (1 + Rs gD) + gmin`.
    """
    voltage = total_voltage if math.isfinite(total_voltage) else 0.0
    current = solve_junction_current(voltage, p, initial_current)
    v_diode = voltage - current * p.series_resistance
    g_diode = shockley_conductance(v_diode, p)

    conductance = g_diode
    if p.series_resistance > 0:
        conductance = g_diode / (1.0 + p.series_resistance * g_diode)
    conductance += p.gmin

    branch_current = current + p.gmin * voltage
    return JunctionLinearization(
        current=current,
        conductance=conductance,
        current_offset=branch_current - conductance * voltage,
        diode_voltage=v_diode,
    )
