# src/circuitsim_core/components/base_enums.py
from enum import Enum


class ComponentType(str, Enum):
    """The closed set of component types the simulator understands."""
    POWER_SOURCE = "PowerSource"
    AC_VOLTAGE_SOURCE = "ACVoltageSource"
    RESISTOR = "Resistor"
    BULB = "Bulb"
    RHEOSTAT = "Rheostat"
    CAPACITOR = "Capacitor"
    INDUCTOR = "Inductor"
    DIODE = "Diode"
    LED = "LED"
    SWITCH = "Switch"
    AMMETER = "Ammeter"
    VOLTMETER = "Voltmeter"
    GROUND = "Ground"
    BLACK_BOX = "BlackBox"

    def __str__(self):
        return self.value


class IntegrationMethod(str, Enum):
    """
    Companion-model integration rule for capacitors and inductors.
    AUTO lets the solver pick backward-Euler or trapezoidal per step.
    """
    BACKWARD_EULER = "backward-euler"
    TRAPEZOIDAL = "trapezoidal"
    AUTO = "auto"

    def __str__(self):
        return self.value


class RheostatMode(str, Enum):
    """Which rheostat terminals are wired into the circuit."""
    LEFT_SLIDER = "left-slider"
    RIGHT_SLIDER = "right-slider"
    LEFT_RIGHT = "left-right"
    ALL = "all"
    SLIDER_ONLY = "slider-only"
    NONE = "none"

    def __str__(self):
        return self.value


#: Sources that drive current out of terminal 0 when delivering power.
SOURCE_TYPES = frozenset({ComponentType.POWER_SOURCE, ComponentType.AC_VOLTAGE_SOURCE})

#: Parts that store energy and keep per-step history.
DYNAMIC_TYPES = frozenset({ComponentType.CAPACITOR, ComponentType.INDUCTOR})

#: Parts modelled by the exponential junction equation.
JUNCTION_TYPES = frozenset({ComponentType.DIODE, ComponentType.LED})
