# src/circuitsim_core/simulation/__init__.py
from .exceptions import (
    SingularMatrixError,
    SolverStateError,
    SolverNotAttachedError,
)
from .config import SimulationSettings, ConfigParsingError, load_settings
from .netlist import (
    Netlist, NetlistNode, ComponentStamp, InvalidParameterIssue, NetlistBuilder
)
from .results import SolveResult, SolveMeta
from .state import SimulationState, ComponentState
from .junction import (
    JunctionParameters,
    resolve_junction_parameters,
    limit_junction_step,
    solve_junction_current,
    linearize_junction_at,
)
from .integration import DynamicIntegrator
from .mna import MnaSystemBuilder
from .solver import MnaSolver, factorize_mna_matrix, solve_mna_system
from .adaptive import AdaptiveStepController
from .diagnostics import (
    FailureCategory,
    DiagnosticSignals,
    RuntimeDiagnostics,
    collect_failure_categories,
    build_runtime_diagnostics,
)

__all__ = [
    # Exceptions
    "SingularMatrixError",
    "SolverStateError",
    "SolverNotAttachedError",
    "ConfigParsingError",
    # Configuration
    "SimulationSettings",
    "load_settings",
    # Netlist DTO
    "Netlist",
    "NetlistNode",
    "ComponentStamp",
    "InvalidParameterIssue",
    "NetlistBuilder",
    # Solver
    "MnaSolver",
    "MnaSystemBuilder",
    "SolveResult",
    "SolveMeta",
    "SimulationState",
    "ComponentState",
    "DynamicIntegrator",
    "factorize_mna_matrix",
    "solve_mna_system",
    "JunctionParameters",
    "resolve_junction_parameters",
    "limit_junction_step",
    "solve_junction_current",
    "linearize_junction_at",
    # Stepping and diagnostics
    "AdaptiveStepController",
    "FailureCategory",
    "DiagnosticSignals",
    "RuntimeDiagnostics",
    "collect_failure_categories",
    "build_runtime_diagnostics",
]
