# src/circuitsim_core/analysis/wire_current.py
"""
Per-wire current magnitude and direction for current animation.

The solver only knows node voltages and branch currents; a node drawn as a
tree of wires needs to know how much current each individual wire carries.
Inside one electrical node the wires form a small resistive network (unit
conductance per wire, vertices at endpoint coordinates). Component terminals
inject their branch current at their coordinate, and the Laplacian of that
network is solved once per node. Series chains therefore report one
consistent current, and wires tying equipotential points report exactly 0.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

import networkx as nx
import numpy as np

from ..components.base_enums import ComponentType, RheostatMode, SOURCE_TYPES
from ..constants import TERMINAL_CURRENT_EPSILON, WIRE_CURRENT_EPSILON
from ..simulation.netlist import ComponentStamp
from ..simulation.results import SolveResult
from ..simulation.stamps import is_ideal_ammeter, is_ideal_voltmeter, rheostat_resistances
from ..wire import Wire
from .results import WireCurrentInfo, WireFlow
from .short_circuit import ShortCircuitAnalyzer

logger = logging.getLogger(__name__)


def rheostat_terminal_flows(stamp: ComponentStamp, voltages: Sequence[float]) -> List[float]:
    """Current leaving the rheostat into the circuit at each of its three terminals."""
    def v(node: int) -> float:
        return voltages[node] if 0 <= node < len(voltages) else 0.0

    flows = [0.0, 0.0, 0.0]
    v_left, v_right, v_slider = v(stamp.node(0)), v(stamp.node(1)), v(stamp.node(2))
    r1, r2, r_total = rheostat_resistances(stamp)
    mode = stamp.connection_mode
    if mode == RheostatMode.LEFT_SLIDER.value:
        current = (v_left - v_slider) / r1
        flows[0], flows[2] = -current, current
    elif mode == RheostatMode.RIGHT_SLIDER.value:
        current = (v_slider - v_right) / r2
        flows[2], flows[1] = -current, current
    elif mode == RheostatMode.LEFT_RIGHT.value:
        current = (v_left - v_right) / r_total
        flows[0], flows[1] = -current, current
    elif mode == RheostatMode.ALL.value:
        i_ls = (v_left - v_slider) / r1
        i_sr = (v_slider - v_right) / r2
        flows[0], flows[1], flows[2] = -i_ls, i_sr, i_ls - i_sr
    return flows


def is_active_element(stamp: ComponentStamp) -> bool:
    """Elements whose positive current leaves terminal 0 into the circuit."""
    if stamp.type in SOURCE_TYPES:
        return True
    return stamp.type == ComponentType.AMMETER and is_ideal_ammeter(stamp)


def terminal_current_flow(stamp: ComponentStamp, terminal_index: int, result: SolveResult) -> float:
    """
    Current injected into the terminal's node by the component. Positive
    values leave the component at that terminal.
    """
    node = stamp.node(terminal_index)
    if node < 0 or result is None:
        return 0.0
    if stamp.type == ComponentType.RHEOSTAT:
        return rheostat_terminal_flows(stamp, result.voltages)[terminal_index]
    if stamp.type == ComponentType.VOLTMETER and is_ideal_voltmeter(stamp):
        return 0.0
    if terminal_index > 1:
        return 0.0

    current = result.current_of(stamp.id)
    if abs(current) < WIRE_CURRENT_EPSILON:
        return 0.0
    if is_active_element(stamp):
        return current if terminal_index == 0 else -current
    return -current if terminal_index == 0 else current


class WireCurrentAnalyzer:
    """
    Infers the current of every wire from one `SolveResult`.

    `circuit` must expose `wires`, `get_analysis_netlist()` and
    `get_terminal_world_position(component_id, terminal_index)`. Flows are
    computed for all wires at once and cached for the identity of the result
    they came from.
    """

    def __init__(self, circuit: Any):
        self.circuit = circuit
        self.short_circuits = ShortCircuitAnalyzer(circuit, self)
        self._cached_result: Optional[SolveResult] = None
        self._flows: Dict[str, WireFlow] = {}
        self.compute_count: int = 0

    def invalidate(self):
        self._cached_result = None
        self._flows = {}
        self.short_circuits.invalidate()

    def rebind_result(self, old: SolveResult, new: SolveResult):
        """Moves cached analysis from `old` to `new`, a copy with the same solution."""
        if self._cached_result is old:
            self._cached_result = new
        self.short_circuits.rebind_result(old, new)

    def wire_flows(self, result: SolveResult) -> Dict[str, WireFlow]:
        if result is None or not result.valid:
            return {}
        if self._cached_result is result:
            return self._flows
        self._flows = self._compute_wire_flows(result)
        self._cached_result = result
        self.compute_count += 1
        return self._flows

    def get_wire_current_info(self, wire: Wire, result: Optional[SolveResult]) -> WireCurrentInfo:
        if wire is None or wire.node_index is None or wire.node_index < 0:
            return WireCurrentInfo()
        if result is None or not result.valid:
            return WireCurrentInfo()
        node_voltage = result.voltage_at(wire.node_index)
        if wire.id in self.short_circuits.analyze(result).shorted_wire_ids:
            return WireCurrentInfo(current=0.0, flow_direction=0, is_shorted=True, node_voltage=node_voltage)
        flow = self.wire_flows(result).get(wire.id, WireFlow())
        return WireCurrentInfo(
            current=flow.current,
            flow_direction=flow.flow_direction,
            is_shorted=False,
            node_voltage=node_voltage,
        )

    # --- Internals ---

    def _compute_wire_flows(self, result: SolveResult) -> Dict[str, WireFlow]:
        wires_by_node: Dict[int, List[Wire]] = defaultdict(list)
        for wire in self.circuit.wires.values():
            if wire.node_index is not None and wire.node_index >= 0:
                wires_by_node[wire.node_index].append(wire)

        injections: Dict[int, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
        netlist = self.circuit.get_analysis_netlist()
        for stamp in netlist.components:
            for index, node in enumerate(stamp.nodes):
                if node not in wires_by_node:
                    continue
                position = self.circuit.get_terminal_world_position(stamp.id, index)
                if position is None:
                    continue
                flow = terminal_current_flow(stamp, index, result)
                if abs(flow) < TERMINAL_CURRENT_EPSILON:
                    flow = 0.0
                injections[node][position.key] += flow

        flows: Dict[str, WireFlow] = {}
        for node, wires in wires_by_node.items():
            flows.update(self._node_flows(node, wires, injections.get(node, {})))
        logger.debug(f"Wire flows computed for {len(flows)} wire(s) on {len(wires_by_node)} node(s).")
        return flows

    @staticmethod
    def _node_flows(node: int, wires: List[Wire], injections: Dict[str, float]) -> Dict[str, WireFlow]:
        flows = {wire.id: WireFlow() for wire in wires}
        index_of: Dict[str, int] = {}
        edges = []
        for wire in wires:
            u = index_of.setdefault(wire.a.key, len(index_of))
            v = index_of.setdefault(wire.b.key, len(index_of))
            edges.append((wire.id, u, v))

        size = len(index_of)
        if size <= 1:
            return flows

        laplacian = np.zeros((size, size))
        graph = nx.Graph()
        graph.add_nodes_from(range(size))
        for _, u, v in edges:
            if u == v:
                continue
            laplacian[u, u] += 1.0
            laplacian[v, v] += 1.0
            laplacian[u, v] -= 1.0
            laplacian[v, u] -= 1.0
            graph.add_edge(u, v)

        injected = np.zeros(size)
        for key, flow in injections.items():
            if key in index_of:
                injected[index_of[key]] += flow

        potentials = np.zeros(size)
        for piece in nx.connected_components(graph):
            members = sorted(piece)
            if len(members) < 2:
                continue
            # Anchor at the highest-degree vertex; the first one wins a tie.
            anchor = max(members, key=lambda i: (laplacian[i, i], -i))
            free = [i for i in members if i != anchor]
            try:
                potentials[free] = np.linalg.solve(laplacian[np.ix_(free, free)], injected[free])
            except np.linalg.LinAlgError as e:
                logger.warning(f"Wire flow solve failed on node {node}: {e}")

        for wire_id, u, v in edges:
            current = float(potentials[u] - potentials[v])
            if abs(current) < WIRE_CURRENT_EPSILON:
                continue
            flows[wire_id] = WireFlow(current=abs(current), flow_direction=1 if current > 0 else -1)
        return flows
