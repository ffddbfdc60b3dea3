# src/circuitsim_core/io/serializer.py
"""
Conversion between a live circuit and its persisted JSON document.

Documents look like::

    {"meta": {"version": "2.0", "name": ...},
     "components": [{"id", "type", "label", "x", "y", "rotation",
                     "properties", "display", "terminalExtensions"}],
     "wires": [{"id", "a": {"x", "y"}, "b": {"x", "y"}, "aRef"?, "bRef"?}],
     "probes": [{"id", "type", "wireId", "label"?}]}

Older documents described a wire as a polyline between two terminal
bindings (`start`/`end` or `startComponentId`/`startTerminalIndex`, plus
`controlPoints`). Those are split into straight segments on load.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..components.base import Component, create_component
from ..components.base_enums import ComponentType, IntegrationMethod
from ..components.geometry import normalize_point, round_pixel
from ..probes import ObservationProbe, normalize_probe
from ..wire import Wire, make_wire, parse_terminal_ref
from .schema import validate_circuit_document

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = "2.0"
DEFAULT_CIRCUIT_NAME = "Circuit"


@dataclass
class CircuitDocument:
    """The live objects decoded from one document, in document order."""
    components: List[Component] = field(default_factory=list)
    wires: List[Wire] = field(default_factory=list)
    probes: List[ObservationProbe] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


def _json_value(value: Any) -> Any:
    """Non-finite floats have no JSON form and are written as null."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _number_out(value: float) -> Any:
    return int(value) if float(value).is_integer() else value


# --- Serialization ---

def serialize_component(component: Component) -> Dict[str, Any]:
    extensions = None
    if component.terminal_extensions:
        extensions = {str(i): p.to_dict() for i, p in sorted(component.terminal_extensions.items())}
    return {
        "id": component.id,
        "type": component.type,
        "label": component.label or None,
        "x": component.x,
        "y": component.y,
        "rotation": _number_out(component.rotation),
        "properties": {k: _json_value(v) for k, v in component.get_properties().items()},
        "display": dict(component.display) if component.display else None,
        "terminalExtensions": extensions,
    }


def serialize_circuit(circuit: Any, name: Optional[str] = None) -> Dict[str, Any]:
    """
    Builds the document for `circuit`, which must expose `components`,
    `wires` and `get_all_observation_probes()`. Probes whose wire no longer
    exists are left out.
    """
    wires = circuit.wires
    probes = [p for p in circuit.get_all_observation_probes() if p.target_id in wires]
    return {
        "meta": {"version": DOCUMENT_VERSION, "name": name or getattr(circuit, "name", None) or DEFAULT_CIRCUIT_NAME},
        "components": [serialize_component(c) for c in circuit.components.values()],
        "wires": [w.to_dict() for w in wires.values()],
        "probes": [p.to_dict() for p in probes],
    }


# --- Deserialization ---

def _unique_id(base_id: str, taken: Mapping[str, Any]) -> str:
    if base_id not in taken:
        return base_id
    i = 1
    while f"{base_id}_{i}" in taken:
        i += 1
    return f"{base_id}_{i}"


def deserialize_component(data: Mapping[str, Any]) -> Component:
    properties = dict(data.get("properties") or {})
    comp_type = data.get("type")
    if comp_type in (ComponentType.CAPACITOR.value, ComponentType.INDUCTOR.value) and not properties.get("integrationMethod"):
        # Documents written before the integration method was persisted ran backward-Euler.
        properties["integrationMethod"] = IntegrationMethod.BACKWARD_EULER.value

    extensions = {}
    for key, offset in (data.get("terminalExtensions") or {}).items():
        point = normalize_point(offset) if offset else None
        if point is not None:
            extensions[int(key)] = point

    return create_component(
        comp_type,
        str(data["id"]),
        x=round_pixel(float(data.get("x") or 0)),
        y=round_pixel(float(data.get("y") or 0)),
        rotation=data.get("rotation") or 0,
        label=data.get("label") or None,
        properties=properties,
        display=data.get("display") or None,
        terminal_extensions=extensions,
    )


def _legacy_binding(data: Mapping[str, Any], side: str):
    raw = data.get(side)
    if raw is None and data.get(f"{side}ComponentId") is not None:
        raw = {"componentId": data.get(f"{side}ComponentId"), "terminalIndex": data.get(f"{side}TerminalIndex")}
    return parse_terminal_ref(raw)


def _split_legacy_wire(data: Mapping[str, Any], components: Mapping[str, Component], wires: Dict[str, Wire]):
    start_ref, end_ref = _legacy_binding(data, "start"), _legacy_binding(data, "end")
    if start_ref is None or end_ref is None:
        logger.warning(f"Skipping legacy wire '{data.get('id')}' without start/end bindings.")
        return

    def terminal_point(ref):
        comp = components.get(ref.component_id)
        if comp is None or not 0 <= ref.terminal_index < comp.terminal_count:
            return None
        return comp.terminal_world_position(ref.terminal_index)

    start, end = terminal_point(start_ref), terminal_point(end_ref)
    if start is None or end is None:
        logger.warning(f"Skipping legacy wire '{data.get('id')}' bound to a missing terminal.")
        return

    control = [p for p in (normalize_point(c) for c in data.get("controlPoints") or []) if p is not None]
    polyline = [start] + control + [end]
    base_id = str(data["id"])
    last = len(polyline) - 2
    for i in range(len(polyline) - 1):
        seg_id = _unique_id(base_id if i == 0 else f"{base_id}_{i}", wires)
        wires[seg_id] = make_wire(
            seg_id, polyline[i], polyline[i + 1],
            a_ref=start_ref if i == 0 else None,
            b_ref=end_ref if i == last else None,
        )
    logger.debug(f"Legacy wire '{base_id}' split into {len(polyline) - 1} segment(s).")


def deserialize_document(document: Any, validate: bool = True) -> CircuitDocument:
    """
    Decodes a document into live components, wires and probes.

    Raises:
        CircuitSchemaError: If `validate` is set and the document is malformed.
    """
    data = validate_circuit_document(document) if validate else document

    components: Dict[str, Component] = {}
    for comp_data in data.get("components") or []:
        comp = deserialize_component(comp_data)
        components[comp.id] = comp

    wires: Dict[str, Wire] = {}
    for wire_data in data.get("wires") or []:
        if not wire_data or wire_data.get("id") is None:
            continue
        if wire_data.get("a") is not None and wire_data.get("b") is not None:
            a, b = normalize_point(wire_data["a"]), normalize_point(wire_data["b"])
            if a is None or b is None:
                continue
            wire_id = _unique_id(str(wire_data["id"]), wires)
            wires[wire_id] = make_wire(wire_id, a, b, wire_data.get("aRef"), wire_data.get("bRef"))
            continue
        _split_legacy_wire(wire_data, components, wires)

    probes: List[ObservationProbe] = []
    for probe_data in data.get("probes") or []:
        probe = normalize_probe(probe_data)
        if probe is None or probe.target_id not in wires:
            continue
        probes.append(probe)

    logger.info(
        f"Decoded circuit document: {len(components)} component(s), {len(wires)} wire(s), {len(probes)} probe(s)."
    )
    return CircuitDocument(
        components=list(components.values()),
        wires=list(wires.values()),
        probes=probes,
        meta=dict(data.get("meta") or {}),
    )
