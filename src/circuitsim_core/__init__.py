# src/circuitsim_core/__init__.py
import logging
from .log_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)
logger.info("CircuitSim Core package initialized.")

from .units import ureg, pint, Quantity, parse_magnitude
from .components import (
    Component, ComponentType, IntegrationMethod, RheostatMode, create_component, Point
)
from .wire import Wire, make_wire
from .probes import ObservationProbe, ProbeType
from .simulation import (
    MnaSolver, SimulationSettings, load_settings, SolveResult, AdaptiveStepController, RuntimeDiagnostics
)
from .validation import TopologyValidator, TopologyReport, TopologyValidationError
from .analysis import WireCurrentInfo, ShortCircuitReport
from .circuit import Circuit
from .io import load_circuit_file, save_circuit_file, CircuitFileError, CircuitSchemaError
from .errors import CircuitSimError, TopologyError, SimulationRunError

__all__ = [
    # Units
    "ureg", "pint", "Quantity", "parse_magnitude",
    # Model
    "Component", "ComponentType", "IntegrationMethod", "RheostatMode", "create_component", "Point",
    "Wire", "make_wire", "ObservationProbe", "ProbeType",
    # Aggregate
    "Circuit",
    # Simulation
    "MnaSolver", "SimulationSettings", "load_settings", "SolveResult",
    "AdaptiveStepController", "RuntimeDiagnostics",
    # Validation and analysis
    "TopologyValidator", "TopologyReport", "WireCurrentInfo", "ShortCircuitReport",
    # Persistence
    "load_circuit_file", "save_circuit_file",
    # Top-Level Errors (Actionable Diagnostics)
    "CircuitSimError", "TopologyError", "SimulationRunError", "TopologyValidationError",
    "CircuitFileError", "CircuitSchemaError",
]
