# src/circuitsim_core/analysis/short_circuit.py
import logging
from typing import Any, Dict, Optional, Set

from ..components.base_enums import SOURCE_TYPES
from ..constants import SHORT_WIRE_CURRENT_RATIO, SHORT_WIRE_MIN_CURRENT
from ..simulation.results import SolveResult
from .results import ShortCircuitReport

logger = logging.getLogger(__name__)


class ShortCircuitAnalyzer:
    """
    Marks the sources, nodes and wires involved in a short circuit.

    A source is shorted when both terminals share a node, or when the solver
    flagged it at runtime. On the nodes of a shorted source a wire is part of
    the short when it carries at least `max(1e-6, 0.2 * I_short)`. When no
    short current is known the wires touching a directly shorted source
    terminal are marked instead. Without any result the whole node of a
    directly shorted source is marked.
    """

    def __init__(self, circuit: Any, flow_source: Any):
        self.circuit = circuit
        self.flow_source = flow_source
        self._cached_result: Optional[SolveResult] = None
        self._report: Optional[ShortCircuitReport] = None

    def invalidate(self):
        self._cached_result = None
        self._report = None

    def rebind_result(self, old: SolveResult, new: SolveResult):
        if self._cached_result is old:
            self._cached_result = new

    def analyze(self, result: Optional[SolveResult]) -> ShortCircuitReport:
        if result is not None and self._cached_result is result and self._report is not None:
            return self._report
        report = self._compute(result)
        if result is not None:
            self._cached_result = result
            self._report = report
        return report

    def _compute(self, result: Optional[SolveResult]) -> ShortCircuitReport:
        has_result = result is not None and result.valid
        runtime_shorted = set(result.shorted_source_ids) if has_result else set()

        shorted_sources = []
        shorted_nodes: Set[int] = set()
        node_short_current: Dict[int, float] = {}
        direct_terminal_keys: Set[str] = set()
        direct_nodes: Set[int] = set()

        netlist = self.circuit.get_analysis_netlist()
        for stamp in netlist.components:
            if stamp.type not in SOURCE_TYPES:
                continue
            n0, n1 = stamp.node(0), stamp.node(1)
            if n0 < 0 or n1 < 0:
                continue
            topological = n0 == n1
            if not topological and stamp.id not in runtime_shorted:
                continue

            shorted_sources.append(stamp.id)
            shorted_nodes.update((n0, n1))
            current = abs(result.current_of(stamp.id)) if has_result else 0.0
            if current > 0:
                for node in (n0, n1):
                    node_short_current[node] = max(node_short_current.get(node, 0.0), current)
            if topological:
                direct_nodes.add(n0)
                for index in (0, 1):
                    position = self.circuit.get_terminal_world_position(stamp.id, index)
                    if position is not None:
                        direct_terminal_keys.add(position.key)

        shorted_wires: Set[str] = set()
        wires = self.circuit.wires.values()
        if result is None:
            shorted_wires = {w.id for w in wires if w.node_index in direct_nodes}
        elif has_result:
            flows = self.flow_source.wire_flows(result)
            for wire in wires:
                if wire.node_index not in shorted_nodes:
                    continue
                expected = node_short_current.get(wire.node_index, 0.0)
                if expected > 0:
                    flow = flows.get(wire.id)
                    if flow is not None and flow.current >= max(SHORT_WIRE_MIN_CURRENT, expected * SHORT_WIRE_CURRENT_RATIO):
                        shorted_wires.add(wire.id)
                elif wire.a.key in direct_terminal_keys or wire.b.key in direct_terminal_keys:
                    shorted_wires.add(wire.id)
        else:
            shorted_wires = {
                w.id for w in wires
                if w.a.key in direct_terminal_keys or w.b.key in direct_terminal_keys
            }

        if shorted_sources:
            logger.warning(
                f"Short circuit: sources {shorted_sources}, {len(shorted_wires)} wire(s) on nodes {sorted(shorted_nodes)}."
            )
        return ShortCircuitReport(
            shorted_source_ids=tuple(shorted_sources),
            shorted_nodes=frozenset(shorted_nodes),
            shorted_wire_ids=frozenset(shorted_wires),
        )
