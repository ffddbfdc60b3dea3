# src/circuitsim_core/topology/terminal_cache.py
import logging
from typing import Dict, Mapping, Optional, Tuple

from ..cache.keys import create_terminal_geometry_key
from ..components.base import Component
from ..components.geometry import Point

logger = logging.getLogger(__name__)


class TerminalPositionCache:
    """
    Caches terminal world positions per component. Entries stay valid while
    the component's geometry key is unchanged, so wire-only edits reuse the
    same Point objects.
    """

    def __init__(self):
        self.positions: Dict[str, Dict[int, Point]] = {}
        self.geometry_keys: Dict[str, Tuple] = {}

    def _ensure(self, component: Component) -> Dict[int, Point]:
        key = create_terminal_geometry_key(component)
        if self.geometry_keys.get(component.id) != key or component.id not in self.positions:
            self.positions[component.id] = {
                index: component.terminal_world_position(index)
                for index in range(component.terminal_count)
            }
            self.geometry_keys[component.id] = key
            logger.debug(f"Terminal positions recomputed for '{component.id}'.")
        return self.positions[component.id]

    def get(self, component: Component, terminal_index: int) -> Optional[Point]:
        if not 0 <= terminal_index < component.terminal_count:
            return None
        return self._ensure(component).get(terminal_index)

    def refresh(self, components: Mapping[str, Component]):
        for component in components.values():
            self._ensure(component)
        for stale in [cid for cid in self.positions if cid not in components]:
            self.drop(stale)

    def drop(self, component_id: str):
        self.positions.pop(component_id, None)
        self.geometry_keys.pop(component_id, None)

    def clear(self):
        self.positions.clear()
        self.geometry_keys.clear()
