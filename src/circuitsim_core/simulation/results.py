# src/circuitsim_core/simulation/results.py
"""
Immutable result contracts produced by the solver.

A `SolveResult` is never raised; numerical degradation is expressed through
`valid` and `meta.invalid_reason` so an interactive session can keep running.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

INVALID_FACTORIZATION = "factorization_failed"
INVALID_SOLVE = "solve_failed"
INVALID_PARAMS = "invalid_params"


@dataclass(frozen=True)
class SolveMeta:
    converged: bool = True
    iterations: int = 1
    max_iterations: int = 1
    invalid_reason: Optional[str] = None


@dataclass(frozen=True)
class SolveResult:
    """
    Attributes:
        valid: False only when no usable solution exists.
        voltages: Node voltages indexed by node, node 0 is 0 V.
        currents: Branch current per component id.
        meta: Convergence information.
        short_circuit_detected: A source is shorted, structurally or at runtime.
        source_voltages: Instantaneous EMF per source id at the solve time.
        shorted_source_ids: Sources flagged as shorted.
        runtime_diagnostics: Attached by `Circuit.step`.
    """
    valid: bool
    voltages: Tuple[float, ...] = ()
    currents: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    meta: SolveMeta = field(default_factory=SolveMeta)
    short_circuit_detected: bool = False
    source_voltages: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    shorted_source_ids: Tuple[str, ...] = ()
    sim_time: float = 0.0
    dt: float = 0.0
    runtime_diagnostics: Optional[Any] = None

    def voltage_at(self, node_index: int) -> float:
        if 0 <= node_index < len(self.voltages):
            return self.voltages[node_index]
        return 0.0

    def current_of(self, component_id: str) -> float:
        return self.currents.get(component_id, 0.0)
