# src/circuitsim_core/components/geometry.py
"""
Canvas geometry shared by components, wires and the topology builder.

All positions are integer canvas pixels. Terminal positions are computed from a
component's local terminal offsets, its terminal extensions and its rotation.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Point:
    x: int
    y: int

    @property
    def key(self) -> str:
        """Coordinate bucket key used to merge coinciding posts."""
        return point_key(self.x, self.y)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class TerminalRef:
    """Binding of a wire endpoint to a component terminal."""
    component_id: str
    terminal_index: int

    def to_dict(self) -> dict:
        return {"componentId": self.component_id, "terminalIndex": self.terminal_index}


def round_pixel(value: float) -> int:
    """Rounds half up, so -0.5 goes to 0 and 0.5 goes to 1."""
    return int(math.floor(value + 0.5))


def point_key(x: float, y: float) -> str:
    return f"{round_pixel(x)},{round_pixel(y)}"


def normalize_point(value: Any) -> Optional[Point]:
    """
    Coerces `value` to an integer Point. Accepts Point, (x, y) sequences and
    {"x": .., "y": ..} mappings. Returns None when the value is unusable.
    """
    if isinstance(value, Point):
        return value
    try:
        if isinstance(value, Mapping):
            x, y = float(value["x"]), float(value["y"])
        else:
            x, y = (float(v) for v in value)
    except (KeyError, TypeError, ValueError):
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return Point(round_pixel(x), round_pixel(y))


def normalize_rotation(rotation: float) -> float:
    try:
        value = float(rotation)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value % 360.0


def rotate_offset(dx: float, dy: float, rotation: float) -> Tuple[float, float]:
    """
    Rotates a local offset clockwise in screen coordinates. Quarter turns are
    exact; other angles go through trigonometry.
    """
    angle = normalize_rotation(rotation)
    if angle == 0.0:
        return dx, dy
    if angle == 90.0:
        return -dy, dx
    if angle == 180.0:
        return -dx, -dy
    if angle == 270.0:
        return dy, -dx
    rad = math.radians(angle)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    return dx * cos_a - dy * sin_a, dx * sin_a + dy * cos_a


def to_world(x: float, y: float, rotation: float, dx: float, dy: float) -> Point:
    rx, ry = rotate_offset(dx, dy, rotation)
    return Point(round_pixel(x + rx), round_pixel(y + ry))
