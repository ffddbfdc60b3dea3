# src/circuitsim_core/components/__init__.py
import logging
logger = logging.getLogger(__name__)

# Import base first to define registry and decorator
from .base import (
    Component, ParameterSpec, COMPONENT_REGISTRY, register_component, create_component
)
from .base_enums import (
    ComponentType, IntegrationMethod, RheostatMode,
    SOURCE_TYPES, DYNAMIC_TYPES, JUNCTION_TYPES,
)
from .exceptions import ComponentError
from .geometry import Point, TerminalRef, normalize_point, point_key
# Import concrete elements to trigger registration
from .elements import (
    PowerSource, ACVoltageSource, Resistor, Bulb, Rheostat, Capacitor, Inductor,
    Diode, LED, Switch, Ammeter, Voltmeter, Ground, BlackBox,
)

logger.info(f"Available component types: {list(COMPONENT_REGISTRY.keys())}")

__all__ = [
    "Component",
    "ParameterSpec",
    "COMPONENT_REGISTRY",
    "register_component",
    "create_component",
    "ComponentType",
    "IntegrationMethod",
    "RheostatMode",
    "SOURCE_TYPES",
    "DYNAMIC_TYPES",
    "JUNCTION_TYPES",
    "ComponentError",
    "Point",
    "TerminalRef",
    "normalize_point",
    "point_key",
    "PowerSource", "ACVoltageSource", "Resistor", "Bulb", "Rheostat", "Capacitor",
    "Inductor", "Diode", "LED", "Switch", "Ammeter", "Voltmeter", "Ground", "BlackBox",
]
