# src/circuitsim_core/wire.py
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .components.geometry import Point, TerminalRef, normalize_point

logger = logging.getLogger(__name__)


@dataclass
class Wire:
    """
    A straight, zero-impedance segment between points `a` and `b`. Either end
    may be bound to a component terminal, in which case it follows that
    terminal whenever nodes are rebuilt.
    """
    id: str
    a: Point
    b: Point
    a_ref: Optional[TerminalRef] = None
    b_ref: Optional[TerminalRef] = None
    node_index: int = -1
    metadata: Dict[str, Any] = field(default_factory=dict)

    def endpoint(self, which: str) -> Point:
        return self.a if which == "a" else self.b

    def ref(self, which: str) -> Optional[TerminalRef]:
        return self.a_ref if which == "a" else self.b_ref

    def set_endpoint(self, which: str, point: Point):
        if which == "a":
            self.a = point
        else:
            self.b = point

    def set_ref(self, which: str, ref: Optional[TerminalRef]):
        if which == "a":
            self.a_ref = ref
        else:
            self.b_ref = ref

    def is_degenerate(self) -> bool:
        return self.a == self.b

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "a": self.a.to_dict(), "b": self.b.to_dict()}
        if self.a_ref is not None:
            data["aRef"] = self.a_ref.to_dict()
        if self.b_ref is not None:
            data["bRef"] = self.b_ref.to_dict()
        return data


def parse_terminal_ref(raw: Any) -> Optional[TerminalRef]:
    """Accepts {"componentId", "terminalIndex"} mappings or TerminalRef objects."""
    if isinstance(raw, TerminalRef):
        return raw
    if not isinstance(raw, Mapping):
        return None
    component_id = raw.get("componentId", raw.get("component_id"))
    terminal_index = raw.get("terminalIndex", raw.get("terminal_index"))
    if component_id is None or terminal_index is None:
        return None
    try:
        index = int(terminal_index)
    except (TypeError, ValueError):
        return None
    if index < 0:
        return None
    return TerminalRef(str(component_id), index)


def make_wire(wire_id: str, a: Any, b: Any, a_ref: Any = None, b_ref: Any = None) -> Wire:
    """Builds a Wire from loose point and reference representations."""
    point_a = normalize_point(a) or Point(0, 0)
    point_b = normalize_point(b) or Point(0, 0)
    return Wire(
        id=str(wire_id),
        a=point_a,
        b=point_b,
        a_ref=parse_terminal_ref(a_ref),
        b_ref=parse_terminal_ref(b_ref),
    )
