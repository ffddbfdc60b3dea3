# src/circuitsim_core/simulation/netlist.py
"""
The netlist DTO: an immutable snapshot of the circuit handed to the solver.

`NetlistBuilder` reads the live components once, sanitizes every declared
parameter and freezes the result, so the solver never reaches back into the
mutable component graph.
"""
import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..components.base import Component, ParameterSpec
from ..components.base_enums import ComponentType
from ..units import parse_magnitude

logger = logging.getLogger(__name__)

NETLIST_VERSION = 1

_TRUE_STRINGS = {"true", "1", "yes", "on", "closed"}
_FALSE_STRINGS = {"false", "0", "no", "off", "open"}


@dataclass(frozen=True)
class InvalidParameterIssue:
    """A parameter value that could not be used and was replaced by its default."""
    component_id: str
    parameter: str
    raw_value: Any
    fallback: Any
    reason: str

    def __str__(self):
        return (f"{self.component_id}.{self.parameter}: {self.reason} "
                f"(got {self.raw_value!r}, using {self.fallback!r})")


@dataclass(frozen=True)
class NetlistNode:
    index: int
    terminals: Tuple[Tuple[str, int], ...] = ()


@dataclass(frozen=True)
class ComponentStamp:
    """Solver-facing snapshot of one component."""
    id: str
    type: ComponentType
    nodes: Tuple[int, ...]
    params: Mapping[str, Any]
    is_connected: bool = False
    connection_mode: Optional[str] = None

    def node(self, terminal_index: int) -> int:
        if 0 <= terminal_index < len(self.nodes):
            return self.nodes[terminal_index]
        return -1

    def param(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)


@dataclass(frozen=True)
class Netlist:
    topology_version: int
    node_count: int
    nodes: Tuple[NetlistNode, ...] = ()
    components: Tuple[ComponentStamp, ...] = ()
    invalid_parameters: Tuple[InvalidParameterIssue, ...] = ()
    meta: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({"version": NETLIST_VERSION}))

    def get_component(self, component_id: str) -> Optional[ComponentStamp]:
        for stamp in self.components:
            if stamp.id == component_id:
                return stamp
        return None


def sanitize_parameter(spec: ParameterSpec, raw: Any) -> Tuple[Any, Optional[str]]:
    """
    Returns (usable value, reason) for one raw parameter value. `reason` is
    None when the raw value was accepted, otherwise the value is the default.
    """
    if spec.kind == "bool":
        if isinstance(raw, bool):
            return raw, None
        if isinstance(raw, (int, float)) and raw in (0, 1):
            return bool(raw), None
        if isinstance(raw, str) and raw.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
            return raw.strip().lower() in _TRUE_STRINGS, None
        return spec.default, "not a boolean"

    if spec.kind == "choice":
        text = str(raw).strip().lower() if raw is not None else ""
        if text in spec.choices:
            return text, None
        return spec.default, f"not one of {list(spec.choices)}"

    if spec.kind == "text":
        return ("" if raw is None else str(raw)), None

    unbounded_default = isinstance(spec.default, float) and math.isinf(spec.default)
    if raw is None and unbounded_default:
        return spec.default, None
    try:
        value = parse_magnitude(raw, spec.unit)
    except ValueError as e:
        return spec.default, str(e)
    if math.isinf(value) and not unbounded_default:
        return spec.default, "infinite value"
    if spec.minimum is not None and value < spec.minimum:
        return spec.default, f"below minimum {spec.minimum}"
    return value, None


class NetlistBuilder:
    """Snapshots live components into a frozen `Netlist`."""

    def build(
        self,
        components: Mapping[str, Component],
        node_count: int,
        topology_version: int,
        is_connected: Optional[Callable[[Component], bool]] = None,
    ) -> Netlist:
        stamps: List[ComponentStamp] = []
        issues: List[InvalidParameterIssue] = []
        terminals_by_node: Dict[int, List[Tuple[str, int]]] = {i: [] for i in range(node_count)}

        for comp_id, comp in components.items():
            params: Dict[str, Any] = {}
            for spec in comp.parameter_specs:
                raw = getattr(comp, spec.name, spec.default)
                value, reason = sanitize_parameter(spec, raw)
                params[spec.name] = value
                if reason is not None:
                    issues.append(InvalidParameterIssue(comp_id, spec.json_key, raw, spec.default, reason))

            nodes = tuple(int(n) if n is not None else -1 for n in comp.nodes)
            for index, node in enumerate(nodes):
                if node in terminals_by_node:
                    terminals_by_node[node].append((comp_id, index))

            mode = getattr(comp, "connection_mode", None)
            stamps.append(ComponentStamp(
                id=comp_id,
                type=comp.component_type,
                nodes=nodes,
                params=MappingProxyType(params),
                is_connected=bool(is_connected(comp)) if is_connected else all(n >= 0 for n in nodes),
                connection_mode=str(mode) if mode is not None else None,
            ))

        for issue in issues:
            logger.warning(f"Invalid parameter {issue}")

        return Netlist(
            topology_version=int(topology_version),
            node_count=int(node_count),
            nodes=tuple(NetlistNode(i, tuple(terminals_by_node[i])) for i in range(node_count)),
            components=tuple(stamps),
            invalid_parameters=tuple(issues),
        )
