# src/circuitsim_core/topology/wire_compactor.py
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, MutableMapping, Optional, Set, Tuple

from ..components.base import Component
from ..components.geometry import Point
from ..wire import Wire

logger = logging.getLogger(__name__)

COLLINEAR_TOLERANCE = 1e-6


@dataclass(frozen=True)
class CompactionResult:
    changed: bool
    removed_ids: Tuple[str, ...] = ()
    replacement_by_removed_id: Dict[str, str] = field(default_factory=dict)


def _is_collinear_and_opposite(shared: Point, p1: Point, p2: Point) -> bool:
    v1x, v1y = p1.x - shared.x, p1.y - shared.y
    v2x, v2y = p2.x - shared.x, p2.y - shared.y
    cross = v1x * v2y - v1y * v2x
    if abs(cross) > COLLINEAR_TOLERANCE:
        return False
    return v1x * v2x + v1y * v2y < 0


def _other_end(which: str) -> str:
    return "b" if which == "a" else "a"


class WireCompactor:
    """
    Removes zero-length wires and merges pairs of wires that meet at a free
    point (no terminal, no terminal binding, exactly two endpoints) when they
    either run back to the same point or continue along one straight line.
    """

    def compact(
        self,
        components: Mapping[str, Component],
        wires: MutableMapping[str, Wire],
        scope_wire_ids: Optional[Iterable[str]] = None,
    ) -> CompactionResult:
        scoped: Optional[Set[str]] = set(w for w in scope_wire_ids if w) if scope_wire_ids is not None else None
        removed: List[str] = []
        replacement: Dict[str, str] = {}

        def remove(wire_id: str):
            if wire_id in wires:
                del wires[wire_id]
                removed.append(wire_id)

        for wire_id, wire in list(wires.items()):
            if scoped is not None and wire_id not in scoped:
                continue
            if wire.a is None or wire.b is None or wire.is_degenerate():
                remove(wire_id)

        terminal_keys = {
            comp.terminal_world_position(index).key
            for comp in components.values()
            for index in range(comp.terminal_count)
        }

        merged = True
        while merged:
            merged = False
            buckets: Dict[str, List[Tuple[str, str]]] = defaultdict(list)
            for wire_id, wire in wires.items():
                for which in ("a", "b"):
                    buckets[wire.endpoint(which).key].append((wire_id, which))

            for coord_key, endpoints in buckets.items():
                if len(endpoints) != 2 or coord_key in terminal_keys:
                    continue
                (id_a, end_a), (id_b, end_b) = endpoints
                if id_a == id_b:
                    continue
                if scoped is not None and id_a not in scoped and id_b not in scoped:
                    continue
                wire_a, wire_b = wires[id_a], wires[id_b]
                if wire_a.ref(end_a) is not None or wire_b.ref(end_b) is not None:
                    continue

                far_a, far_b = _other_end(end_a), _other_end(end_b)
                point_a, point_b = wire_a.endpoint(far_a), wire_b.endpoint(far_b)
                ref_a, ref_b = wire_a.ref(far_a), wire_b.ref(far_b)
                shared = wire_a.endpoint(end_a)

                if point_a == point_b:
                    if ref_a is not None and ref_b is not None and ref_a != ref_b:
                        continue
                    wire_a.set_ref(far_a, ref_a or ref_b)
                elif _is_collinear_and_opposite(shared, point_a, point_b):
                    wire_a.a, wire_a.a_ref = point_a, ref_a
                    wire_a.b, wire_a.b_ref = point_b, ref_b
                else:
                    continue

                remove(id_b)
                replacement[id_b] = id_a
                merged = True
                logger.debug(f"Merged wire '{id_b}' into '{id_a}' at {coord_key}.")
                break

        # Follow chains so every removed id maps to a surviving wire.
        resolved: Dict[str, str] = {}
        for removed_id, target in replacement.items():
            seen = {removed_id}
            while target in replacement and target not in seen:
                seen.add(target)
                target = replacement[target]
            resolved[removed_id] = target

        if removed:
            logger.info(f"Wire compaction removed {len(removed)} wire(s).")
        return CompactionResult(
            changed=bool(removed),
            removed_ids=tuple(removed),
            replacement_by_removed_id=resolved,
        )
