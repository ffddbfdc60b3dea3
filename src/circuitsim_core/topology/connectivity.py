# src/circuitsim_core/topology/connectivity.py
import logging
from typing import Callable, Mapping, Optional, Tuple

from ..cache.service import VersionedCache
from ..components.base import Component
from ..components.base_enums import ComponentType

logger = logging.getLogger(__name__)

TerminalKey = Tuple[str, int]
ConnectedStateFn = Callable[[Component], bool]


def compute_component_connected_state(
    component: Component,
    terminal_connection_map: Mapping[TerminalKey, int],
) -> bool:
    """
    Whether a component takes part in the circuit.

    Ground needs its terminal on a valid, wired node. A rheostat needs at least
    two wired terminals on distinct nodes. Every other part needs both
    terminals on valid nodes and both terminals wired.
    """
    nodes = component.nodes

    def wired(index: int) -> bool:
        return terminal_connection_map.get((component.id, index), 0) > 0

    def valid(index: int) -> bool:
        return index < len(nodes) and nodes[index] is not None and nodes[index] >= 0

    if component.component_type == ComponentType.GROUND:
        return valid(0) and wired(0)

    if component.component_type == ComponentType.RHEOSTAT:
        live = {nodes[i] for i in range(component.terminal_count) if valid(i) and wired(i)}
        wired_count = sum(1 for i in range(component.terminal_count) if valid(i) and wired(i))
        return wired_count >= 2 and len(live) >= 2

    if component.terminal_count < 2:
        return False
    return valid(0) and valid(1) and wired(0) and wired(1)


class ConnectivityCache:
    """
    Per-component connected flag, valid for the topology version it was
    computed at. A version mismatch triggers exactly one recomputation.
    """

    def __init__(self):
        self._cache = VersionedCache(name="connectivity")

    @property
    def entries(self):
        return self._cache.entries

    def refresh(
        self,
        components: Mapping[str, Component],
        topology_version: int,
        compute: ConnectedStateFn,
    ):
        """Recomputes every component eagerly after a rebuild."""
        for comp_id, comp in components.items():
            self._cache.put(comp_id, compute(comp), topology_version)
        stale = [key for key in self._cache.entries if key not in components]
        for key in stale:
            self._cache.invalidate(key)

    def is_component_connected(
        self,
        component: Optional[Component],
        topology_version: int,
        compute: ConnectedStateFn,
    ) -> bool:
        if component is None:
            return False
        entry = self._cache.get(component.id, topology_version)
        if entry is not None:
            return entry.value
        connected = compute(component)
        self._cache.put(component.id, connected, topology_version)
        return connected

    def invalidate(self, component_id: str):
        self._cache.invalidate(component_id)

    def clear(self):
        self._cache.clear()

    def get_stats(self):
        return self._cache.get_stats()
