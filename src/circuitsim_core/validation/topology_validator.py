# src/circuitsim_core/validation/topology_validator.py
"""
Pre-flight structural checks run once before a simulation session.

The validator works on the netlist DTO and never touches live components.
It looks for ideal voltage constraints that cannot all hold, capacitor-only
loops and sub-circuits with no path to the reference node.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import networkx as nx

from ..components.base_enums import ComponentType, SOURCE_TYPES
from ..constants import SOURCE_CONFLICT_TOLERANCE
from ..simulation.netlist import ComponentStamp, Netlist
from ..simulation.stamps import (
    is_ideal_ammeter,
    is_ideal_source,
    is_ideal_voltmeter,
    source_instant_voltage,
    stampable,
)
from .exceptions import TopologyValidationError
from .issue_codes import TopologyIssueCode
from .issues import ValidationIssue, ValidationIssueLevel

logger = logging.getLogger(__name__)


@dataclass
class TopologyReport:
    """Outcome of `TopologyValidator.validate`. `ok` is False when `error` is set."""
    ok: bool = True
    error: Optional[ValidationIssue] = None
    warnings: List[ValidationIssue] = field(default_factory=list)

    def raise_for_errors(self):
        if self.error is not None:
            raise TopologyValidationError([self.error])

    def to_dict(self) -> Dict[str, Any]:
        def issue_dict(issue: ValidationIssue) -> Dict[str, Any]:
            return {"code": issue.code, "message": issue.message, "details": dict(issue.details)}
        return {
            "ok": self.ok,
            "error": issue_dict(self.error) if self.error else None,
            "warnings": [issue_dict(w) for w in self.warnings],
        }


class TopologyValidator:
    """Checks a netlist for fatal topology errors and non-fatal warnings."""

    def __init__(self):
        self.issues: List[ValidationIssue] = []

    def _add_issue(self, level: ValidationIssueLevel, code_enum: TopologyIssueCode, component_id: Optional[str] = None, **kwargs):
        """A stateless helper to create and add a ValidationIssue."""
        message = code_enum.format_message(**kwargs)
        self.issues.append(ValidationIssue(
            level=level, code=code_enum.code, message=message,
            component_id=component_id, details=kwargs
        ))

    def validate(self, netlist: Netlist, sim_time: float = 0.0) -> TopologyReport:
        self.issues = []
        stamps = [s for s in netlist.components if stampable(s) and s.node(0) != s.node(1)]

        self._check_conflicting_ideal_sources(stamps, sim_time)
        self._check_capacitor_loops(stamps)
        self._check_floating_subcircuits(netlist)

        errors = [i for i in self.issues if i.level == ValidationIssueLevel.ERROR]
        warnings = [i for i in self.issues if i.level == ValidationIssueLevel.WARNING]
        report = TopologyReport(ok=not errors, error=errors[0] if errors else None, warnings=warnings)
        logger.info(
            f"Topology validation: ok={report.ok}, "
            f"error={report.error.code if report.error else None}, {len(warnings)} warning(s)."
        )
        return report

    # --- Checks ---

    @staticmethod
    def _ideal_constraints(stamps: List[ComponentStamp], sim_time: float) -> List[Tuple[str, int, int, float]]:
        constraints = []
        for stamp in stamps:
            if stamp.type in SOURCE_TYPES and is_ideal_source(stamp):
                constraints.append((stamp.id, stamp.nodes[0], stamp.nodes[1], source_instant_voltage(stamp, sim_time)))
            elif stamp.type == ComponentType.AMMETER and is_ideal_ammeter(stamp):
                constraints.append((stamp.id, stamp.nodes[0], stamp.nodes[1], 0.0))
            elif stamp.type == ComponentType.SWITCH and stamp.param("closed", False):
                constraints.append((stamp.id, stamp.nodes[0], stamp.nodes[1], 0.0))
        return constraints

    def _check_conflicting_ideal_sources(self, stamps: List[ComponentStamp], sim_time: float):
        constraints = self._ideal_constraints(stamps, sim_time)
        if len(constraints) < 2:
            return

        graph = nx.MultiGraph()
        for cid, plus, minus, voltage in constraints:
            graph.add_edge(plus, minus, key=cid, plus=plus, minus=minus, voltage=voltage)

        for group in nx.connected_components(graph):
            root = min(group)
            potential: Dict[int, float] = {root: 0.0}
            for parent, child in nx.bfs_edges(graph, root):
                edge = next(iter(graph.get_edge_data(parent, child).values()))
                if edge["plus"] == parent:
                    potential[child] = potential[parent] - edge["voltage"]
                else:
                    potential[child] = potential[parent] + edge["voltage"]

            worst = 0.0
            for _, _, cid, data in graph.subgraph(group).edges(keys=True, data=True):
                mismatch = abs(potential[data["plus"]] - potential[data["minus"]] - data["voltage"])
                worst = max(worst, mismatch)
            if worst > SOURCE_CONFLICT_TOLERANCE:
                source_ids = [cid for cid, plus, minus, _ in constraints if plus in group]
                self._add_issue(
                    ValidationIssueLevel.ERROR,
                    TopologyIssueCode.TOPO_CONFLICTING_IDEAL_SOURCES,
                    source_ids=source_ids,
                    mismatch=worst,
                )
                logger.warning(f"Conflicting ideal constraints: {source_ids} (mismatch {worst:.6g} V)")
                return

    def _check_capacitor_loops(self, stamps: List[ComponentStamp]):
        graph = nx.Graph()
        for stamp in stamps:
            if stamp.type != ComponentType.CAPACITOR:
                continue
            n1, n2 = stamp.nodes[0], stamp.nodes[1]
            if n1 in graph and n2 in graph and nx.has_path(graph, n1, n2):
                path = nx.shortest_path(graph, n1, n2)
                loop_ids = [graph.edges[a, b]["component_id"] for a, b in zip(path, path[1:])] + [stamp.id]
                self._add_issue(
                    ValidationIssueLevel.ERROR,
                    TopologyIssueCode.TOPO_CAPACITOR_LOOP_NO_RESISTANCE,
                    component_id=stamp.id,
                    component_ids=loop_ids,
                )
                return
            graph.add_edge(n1, n2, component_id=stamp.id)

    @staticmethod
    def _conducts(stamp: ComponentStamp) -> bool:
        if stamp.type in (ComponentType.GROUND, ComponentType.BLACK_BOX):
            return False
        if stamp.type == ComponentType.SWITCH:
            return bool(stamp.param("closed", False))
        if stamp.type == ComponentType.VOLTMETER:
            return not is_ideal_voltmeter(stamp)
        return True

    def _check_floating_subcircuits(self, netlist: Netlist):
        graph = nx.Graph()
        members: Dict[int, List[str]] = {}
        for stamp in netlist.components:
            if not stamp.is_connected or not self._conducts(stamp):
                continue
            nodes = sorted({n for n in stamp.nodes if n >= 0})
            if not nodes:
                continue
            graph.add_nodes_from(nodes)
            for a, b in zip(nodes, nodes[1:]):
                graph.add_edge(a, b)
            members.setdefault(nodes[0], []).append(stamp.id)

        if 0 not in graph:
            graph.add_node(0)

        groups = []
        for group in nx.connected_components(graph):
            if 0 in group:
                continue
            component_ids = [cid for node in sorted(group) for cid in members.get(node, [])]
            if component_ids:
                groups.append({"component_ids": component_ids, "nodes": sorted(group)})

        if groups:
            self._add_issue(
                ValidationIssueLevel.WARNING,
                TopologyIssueCode.TOPO_FLOATING_SUBCIRCUIT,
                groups=groups,
                group_count=len(groups),
                component_ids=[cid for g in groups for cid in g["component_ids"]],
            )
