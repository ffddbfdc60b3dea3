# src/circuitsim_core/topology/node_builder.py
"""
Electrical node assembly.

Every component terminal and every wire endpoint is a "post". Posts that share
an integer coordinate, the two ends of one wire, and a bound wire end and its
terminal are joined by edges of a networkx graph. Each connected component
that touches a wired terminal becomes one electrical node.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Hashable, List, Mapping, Optional, Tuple

import networkx as nx

from ..components.base import Component
from ..components.base_enums import ComponentType, RheostatMode, SOURCE_TYPES
from ..components.geometry import Point
from ..wire import Wire

logger = logging.getLogger(__name__)

TerminalKey = Tuple[str, int]
PositionResolver = Callable[[Component, int], Optional[Point]]


def _post_classes(graph: nx.Graph) -> Dict[Hashable, int]:
    """Maps every post to the index of its connected component."""
    classes: Dict[Hashable, int] = {}
    for index, posts in enumerate(nx.connected_components(graph)):
        for post in posts:
            classes[post] = index
    return classes


@dataclass(frozen=True)
class NodeBuildResult:
    """Outcome of one topology rebuild."""
    node_count: int
    component_nodes: Dict[str, Tuple[int, ...]]
    wire_nodes: Dict[str, int]
    terminal_connection_map: Dict[TerminalKey, int]
    rheostat_modes: Dict[str, RheostatMode] = field(default_factory=dict)
    shorted_power_nodes: FrozenSet[int] = frozenset()

    def is_terminal_wired(self, component_id: str, terminal_index: int) -> bool:
        return self.terminal_connection_map.get((component_id, terminal_index), 0) > 0


def _terminal_post(component_id: str, terminal_index: int) -> Tuple[str, str, int]:
    return ("T", component_id, terminal_index)


def _wire_post(wire_id: str, which: str) -> Tuple[str, str, str]:
    return ("W", wire_id, which)


def detect_rheostat_mode(left: bool, right: bool, slider: bool) -> RheostatMode:
    """Maps which rheostat terminals are wired to its connection mode."""
    if slider:
        if left and right:
            return RheostatMode.ALL
        if left:
            return RheostatMode.LEFT_SLIDER
        if right:
            return RheostatMode.RIGHT_SLIDER
        return RheostatMode.SLIDER_ONLY
    if left and right:
        return RheostatMode.LEFT_RIGHT
    return RheostatMode.NONE


def sync_wire_endpoints_to_terminal_refs(
    components: Mapping[str, Component],
    wires: Mapping[str, Wire],
    resolve_position: Optional[PositionResolver] = None,
) -> int:
    """
    Moves every bound wire endpoint onto its terminal's current world position.
    Returns the number of endpoints that moved.
    """
    resolve = resolve_position or (lambda comp, index: comp.terminal_world_position(index))
    moved = 0
    for wire in wires.values():
        for which in ("a", "b"):
            ref = wire.ref(which)
            if ref is None:
                continue
            comp = components.get(ref.component_id)
            if comp is None or not 0 <= ref.terminal_index < comp.terminal_count:
                continue
            position = resolve(comp, ref.terminal_index)
            if position is not None and position != wire.endpoint(which):
                wire.set_endpoint(which, position)
                moved += 1
    return moved


class NodeBuilder:
    """
    Builds electrical nodes from component terminals and wires.

    The builder is stateless; `build` is idempotent for identical inputs and
    never carries assignments over from a previous call.
    """

    def build(
        self,
        components: Mapping[str, Component],
        wires: Mapping[str, Wire],
        resolve_position: Optional[PositionResolver] = None,
    ) -> NodeBuildResult:
        resolve = resolve_position or (lambda comp, index: comp.terminal_world_position(index))
        graph = nx.Graph()

        coord_representative: Dict[str, Hashable] = {}
        coord_terminal_count: Dict[str, int] = {}
        coord_wire_endpoint_count: Dict[str, int] = {}
        terminal_coord: Dict[TerminalKey, str] = {}

        def note_coord(coord_key: str, post: Hashable):
            if coord_key not in coord_representative:
                coord_representative[coord_key] = post
            else:
                graph.add_edge(post, coord_representative[coord_key])

        # Register all terminals, isolated ones included.
        for comp_id, comp in components.items():
            for index in range(comp.terminal_count):
                position = resolve(comp, index)
                if position is None:
                    continue
                post = _terminal_post(comp_id, index)
                graph.add_node(post)
                note_coord(position.key, post)
                terminal_coord[(comp_id, index)] = position.key
                coord_terminal_count[position.key] = coord_terminal_count.get(position.key, 0) + 1

        # Wire endpoints; the two ends of a wire are one conductor.
        for wire in wires.values():
            if wire.a is None or wire.b is None:
                continue
            for which in ("a", "b"):
                post = _wire_post(wire.id, which)
                graph.add_node(post)
                key = wire.endpoint(which).key
                note_coord(key, post)
                coord_wire_endpoint_count[key] = coord_wire_endpoint_count.get(key, 0) + 1
            graph.add_edge(_wire_post(wire.id, "a"), _wire_post(wire.id, "b"))

            for which in ("a", "b"):
                ref = wire.ref(which)
                if ref is None:
                    continue
                terminal = _terminal_post(ref.component_id, ref.terminal_index)
                if terminal in graph:
                    graph.add_edge(_wire_post(wire.id, which), terminal)

        classes = _post_classes(graph)

        # Degree of each terminal: wire endpoints plus other terminals at its coordinate.
        connected: Dict[TerminalKey, int] = {}
        for comp_id, comp in components.items():
            for index in range(comp.terminal_count):
                coord_key = terminal_coord.get((comp_id, index))
                if coord_key is None:
                    continue
                degree = coord_wire_endpoint_count.get(coord_key, 0)
                degree += max(0, coord_terminal_count.get(coord_key, 0) - 1)
                if degree > 0:
                    connected[(comp_id, index)] = degree

        # Bound endpoints that sit off their terminal still wire it.
        for wire in wires.values():
            for which in ("a", "b"):
                ref = wire.ref(which)
                if ref is None:
                    continue
                key = (ref.component_id, ref.terminal_index)
                if key in terminal_coord and terminal_coord[key] != wire.endpoint(which).key:
                    connected[key] = connected.get(key, 0) + 1

        node_map: Dict[int, int] = {}

        def assign(root: int):
            if root not in node_map:
                node_map[root] = len(node_map)

        ground_root = self._select_ground_root(components, connected, classes)
        if ground_root is not None:
            assign(ground_root)

        for comp_id, index in connected:
            assign(classes[_terminal_post(comp_id, index)])

        component_nodes: Dict[str, Tuple[int, ...]] = {}
        for comp_id, comp in components.items():
            nodes: List[int] = [-1] * comp.terminal_count
            for index in range(comp.terminal_count):
                post = _terminal_post(comp_id, index)
                if post not in classes:
                    continue
                root = classes[post]
                mapped = node_map.get(root)
                is_wired = (comp_id, index) in connected
                if mapped is not None and (is_wired or root == ground_root):
                    nodes[index] = mapped
            component_nodes[comp_id] = tuple(nodes)

        wire_nodes: Dict[str, int] = {}
        for wire in wires.values():
            post = _wire_post(wire.id, "a")
            wire_nodes[wire.id] = node_map.get(classes[post], -1) if post in classes else -1

        rheostat_modes: Dict[str, RheostatMode] = {}
        for comp_id, comp in components.items():
            if comp.component_type == ComponentType.RHEOSTAT:
                rheostat_modes[comp_id] = detect_rheostat_mode(
                    (comp_id, 0) in connected,
                    (comp_id, 1) in connected,
                    (comp_id, 2) in connected,
                )

        shorted = set()
        for comp_id, comp in components.items():
            if comp.component_type not in SOURCE_TYPES:
                continue
            n0, n1 = component_nodes[comp_id][0], component_nodes[comp_id][1]
            if n0 >= 0 and n0 == n1:
                shorted.add(n0)
        if shorted:
            logger.warning(f"Sources shorted across a single node: nodes {sorted(shorted)}")

        logger.info(
            f"Node rebuild: {len(node_map)} node(s), {len(connected)} wired terminal(s), "
            f"{len(wires)} wire(s)."
        )
        return NodeBuildResult(
            node_count=len(node_map),
            component_nodes=component_nodes,
            wire_nodes=wire_nodes,
            terminal_connection_map=connected,
            rheostat_modes=rheostat_modes,
            shorted_power_nodes=frozenset(shorted),
        )

    @staticmethod
    def _select_ground_root(
        components: Mapping[str, Component],
        connected: Mapping[TerminalKey, int],
        classes: Mapping[Hashable, int],
    ) -> Optional[int]:
        """
        Reference node preference: wired Ground, wired PowerSource negative
        terminal, first wired terminal, isolated Ground, any PowerSource
        negative terminal.
        """
        fallback_ground = None
        for comp_id, comp in components.items():
            if comp.component_type != ComponentType.GROUND:
                continue
            post = _terminal_post(comp_id, 0)
            if post not in classes:
                continue
            if fallback_ground is None:
                fallback_ground = classes[post]
            if (comp_id, 0) in connected:
                return classes[post]

        for comp_id, comp in components.items():
            if comp.component_type == ComponentType.POWER_SOURCE and (comp_id, 1) in connected:
                return classes[_terminal_post(comp_id, 1)]

        for comp_id, index in connected:
            return classes[_terminal_post(comp_id, index)]

        if fallback_ground is not None:
            return fallback_ground

        for comp_id, comp in components.items():
            post = _terminal_post(comp_id, 1)
            if comp.component_type == ComponentType.POWER_SOURCE and post in classes:
                return classes[post]
        return None
