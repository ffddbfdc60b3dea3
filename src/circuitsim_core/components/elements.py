# src/circuitsim_core/components/elements.py
"""
Concrete component types. Each class declares its terminals, its parameters
(attribute, persisted key, default, SI unit) and its local terminal geometry.
"""
import logging
import math
from typing import Tuple

from .base import Component, ParameterSpec, register_component
from .base_enums import ComponentType, IntegrationMethod, RheostatMode

logger = logging.getLogger(__name__)

_INTEGRATION_CHOICES = tuple(m.value for m in IntegrationMethod)


@register_component(ComponentType.POWER_SOURCE)
class PowerSource(Component):
    """DC source. Terminal 0 is positive, terminal 1 negative."""
    parameter_specs = (
        ParameterSpec("voltage", "voltage", 12.0, "volt"),
        ParameterSpec("internal_resistance", "internalResistance", 0.5, "ohm", minimum=0.0),
    )

    def reset_readouts(self):
        super().reset_readouts()
        self.instantaneous_voltage: float = float(self.voltage) if isinstance(self.voltage, (int, float)) else 0.0


@register_component(ComponentType.AC_VOLTAGE_SOURCE)
class ACVoltageSource(Component):
    """Sinusoidal source: offset + rms * sqrt(2) * sin(2 pi f t + phase)."""
    parameter_specs = (
        ParameterSpec("rms_voltage", "rmsVoltage", 12.0, "volt"),
        ParameterSpec("frequency", "frequency", 50.0, "hertz", minimum=0.0),
        ParameterSpec("phase", "phase", 0.0, "degree"),
        ParameterSpec("offset", "offset", 0.0, "volt"),
        ParameterSpec("internal_resistance", "internalResistance", 0.5, "ohm", minimum=0.0),
    )

    def reset_readouts(self):
        super().reset_readouts()
        self.instantaneous_voltage: float = 0.0


@register_component(ComponentType.RESISTOR)
class Resistor(Component):
    parameter_specs = (
        ParameterSpec("resistance", "resistance", 100.0, "ohm"),
    )


@register_component(ComponentType.BULB)
class Bulb(Component):
    """A resistive lamp. Brightness is delivered power over rated power."""
    parameter_specs = (
        ParameterSpec("resistance", "resistance", 50.0, "ohm"),
        ParameterSpec("rated_power", "ratedPower", 5.0, "watt", minimum=0.0),
    )


@register_component(ComponentType.RHEOSTAT)
class Rheostat(Component):
    """
    Three-terminal variable resistor: 0 left, 1 right, 2 slider. The slider
    splits the track so left-slider is min + range * position and
    slider-right is max - range * position.
    """
    terminal_count = 3
    parameter_specs = (
        ParameterSpec("min_resistance", "minResistance", 0.0, "ohm", minimum=0.0),
        ParameterSpec("max_resistance", "maxResistance", 100.0, "ohm", minimum=0.0),
        ParameterSpec("position", "position", 0.5),
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.connection_mode: RheostatMode = RheostatMode.NONE

    def clamped_position(self) -> float:
        try:
            pos = float(self.position)
        except (TypeError, ValueError):
            return 0.5
        if not math.isfinite(pos):
            return 0.5
        return min(max(pos, 0.0), 1.0)

    def local_terminal_offset(self, terminal_index: int) -> Tuple[float, float]:
        if terminal_index == 0:
            return -35.0, 0.0
        if terminal_index == 1:
            return 35.0, 0.0
        return math.floor(-20.0 + 40.0 * self.clamped_position() + 0.5), -28.0

    def geometry_key(self) -> Tuple:
        return super().geometry_key() + (self.clamped_position(),)


@register_component(ComponentType.CAPACITOR)
class Capacitor(Component):
    parameter_specs = (
        ParameterSpec("capacitance", "capacitance", 0.001, "farad", minimum=0.0),
        ParameterSpec("integration_method", "integrationMethod", IntegrationMethod.AUTO.value,
                      kind="choice", choices=_INTEGRATION_CHOICES),
    )


@register_component(ComponentType.INDUCTOR)
class Inductor(Component):
    parameter_specs = (
        ParameterSpec("inductance", "inductance", 0.1, "henry", minimum=0.0),
        ParameterSpec("initial_current", "initialCurrent", 0.0, "ampere"),
        ParameterSpec("integration_method", "integrationMethod", IntegrationMethod.AUTO.value,
                      kind="choice", choices=_INTEGRATION_CHOICES),
    )


@register_component(ComponentType.DIODE)
class Diode(Component):
    """Exponential junction with series resistance. Terminal 0 is the anode."""
    parameter_specs = (
        ParameterSpec("forward_voltage", "forwardVoltage", 0.7, "volt", minimum=0.0),
        ParameterSpec("on_resistance", "onResistance", 1.0, "ohm", minimum=0.0),
        ParameterSpec("ideality_factor", "idealityFactor", 1.8, minimum=0.0),
        ParameterSpec("reference_current", "referenceCurrent", 0.001, "ampere", minimum=0.0),
    )


@register_component(ComponentType.LED)
class LED(Component):
    """Light-emitting junction. Brightness is forward current over rated current."""
    parameter_specs = (
        ParameterSpec("forward_voltage", "forwardVoltage", 2.0, "volt", minimum=0.0),
        ParameterSpec("on_resistance", "onResistance", 2.0, "ohm", minimum=0.0),
        ParameterSpec("ideality_factor", "idealityFactor", 2.2, minimum=0.0),
        ParameterSpec("rated_current", "ratedCurrent", 0.02, "ampere", minimum=0.0),
        ParameterSpec("color", "color", "red", kind="text"),
    )


@register_component(ComponentType.SWITCH)
class Switch(Component):
    parameter_specs = (
        ParameterSpec("closed", "closed", False, kind="bool"),
    )


@register_component(ComponentType.AMMETER)
class Ammeter(Component):
    """Zero resistance makes the meter ideal (auxiliary current row)."""
    parameter_specs = (
        ParameterSpec("resistance", "resistance", 0.0, "ohm", minimum=0.0),
        ParameterSpec("range", "range", 3.0, "ampere"),
        ParameterSpec("self_reading", "selfReading", False, kind="bool"),
    )


@register_component(ComponentType.VOLTMETER)
class Voltmeter(Component):
    """Infinite (or very large) resistance makes the meter ideal (no stamp)."""
    parameter_specs = (
        ParameterSpec("resistance", "resistance", math.inf, "ohm", minimum=0.0),
        ParameterSpec("range", "range", 15.0, "volt"),
        ParameterSpec("self_reading", "selfReading", False, kind="bool"),
    )


@register_component(ComponentType.GROUND)
class Ground(Component):
    terminal_count = 1

    def local_terminal_offset(self, terminal_index: int) -> Tuple[float, float]:
        return 0.0, -20.0


@register_component(ComponentType.BLACK_BOX)
class BlackBox(Component):
    """
    An opaque container drawn around other parts. Electrically it only joins
    wires at its two terminals and stamps nothing.
    """
    parameter_specs = (
        ParameterSpec("box_width", "boxWidth", 180.0),
        ParameterSpec("box_height", "boxHeight", 110.0),
        ParameterSpec("view_mode", "viewMode", "transparent", kind="choice",
                      choices=("transparent", "opaque")),
    )

    def local_terminal_offset(self, terminal_index: int) -> Tuple[float, float]:
        try:
            width = float(self.box_width)
        except (TypeError, ValueError):
            width = 180.0
        if not math.isfinite(width) or width <= 0:
            width = 180.0
        half = max(80.0, width) / 2.0
        return (-half, 0.0) if terminal_index == 0 else (half, 0.0)

    def geometry_key(self) -> Tuple:
        return super().geometry_key() + (self.box_width,)
