# src/circuitsim_core/analysis/results.py
"""
Result contracts of the post-solve analysis services.

They are frozen so a cached entry handed to a renderer cannot be modified
behind the cache's back.
"""
from dataclasses import dataclass
from typing import FrozenSet, Tuple


@dataclass(frozen=True)
class WireFlow:
    """Current through one wire. `flow_direction` +1 means from end `a` to end `b`."""
    current: float = 0.0
    flow_direction: int = 0


@dataclass(frozen=True)
class WireCurrentInfo:
    """What the renderer needs to animate one wire."""
    current: float = 0.0
    flow_direction: int = 0
    is_shorted: bool = False
    node_voltage: float = 0.0


@dataclass(frozen=True)
class ShortCircuitReport:
    """Sources, nodes and wires taking part in a short circuit for one result."""
    shorted_source_ids: Tuple[str, ...] = ()
    shorted_nodes: FrozenSet[int] = frozenset()
    shorted_wire_ids: FrozenSet[str] = frozenset()

    @property
    def has_short(self) -> bool:
        return bool(self.shorted_source_ids)
