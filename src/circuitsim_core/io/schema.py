# src/circuitsim_core/io/schema.py
"""
Structural validation of persisted circuit documents.

Cerberus checks the shape of the document (field names, types, duplicate ids).
A second, semantic pass checks what Cerberus cannot see on its own: component
types must be registered, and terminal bindings must name an existing
component and a terminal it actually has.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

import cerberus

from ..components.base import COMPONENT_REGISTRY
from ..probes import ProbeType
from .exceptions import CircuitSchemaError

logger = logging.getLogger(__name__)

LEGACY_WIRE_KEYS = (
    "start", "end", "controlPoints",
    "startComponentId", "startTerminalIndex", "endComponentId", "endTerminalIndex",
)


class CircuitDocumentValidator(cerberus.Validator):
    """Cerberus validator with the uniqueness rule used for id lists."""

    def _validate_unique_elements_by_key(self, key_for_uniqueness, field, value):
        """
        Validates that all dictionaries in a list have a unique value for a given key.
        The rule's arguments are validated against this schema:
        {'type': 'string'}
        """
        if not isinstance(value, list):
            return
        seen = set()
        duplicates = set()
        for item in value:
            if not isinstance(item, dict):
                continue
            item_key = item.get(key_for_uniqueness)
            if item_key is None:
                continue
            item_key = str(item_key)
            if item_key in seen:
                duplicates.add(item_key)
            seen.add(item_key)
        if duplicates:
            self._error(field, f"Duplicate values found for key '{key_for_uniqueness}': {sorted(duplicates)}")


_id_rule = {"type": ["string", "integer"], "required": True, "empty": False}
_point_schema = {
    "type": "dict",
    "allow_unknown": True,
    "schema": {
        "x": {"type": "number", "required": True},
        "y": {"type": "number", "required": True},
    },
}
_ref_schema = {
    "type": "dict",
    "nullable": True,
    "allow_unknown": True,
    "schema": {
        "componentId": {"type": ["string", "integer"], "required": True},
        "terminalIndex": {"type": "integer", "required": True, "min": 0},
    },
}

COMPONENT_SCHEMA = {
    "id": _id_rule,
    "type": {"type": "string", "required": True, "empty": False},
    "label": {"type": "string", "nullable": True},
    "x": {"type": "number"},
    "y": {"type": "number"},
    "rotation": {"type": "number", "nullable": True},
    "properties": {"type": "dict", "nullable": True},
    "display": {"type": "dict", "nullable": True},
    "terminalExtensions": {"type": "dict", "nullable": True, "valuesrules": {"nullable": True, **_point_schema}},
}

WIRE_SCHEMA = {
    "id": _id_rule,
    "a": _point_schema,
    "b": _point_schema,
    "aRef": _ref_schema,
    "bRef": _ref_schema,
    "start": _ref_schema,
    "end": _ref_schema,
    "controlPoints": {"type": "list", "nullable": True, "schema": _point_schema},
    "startComponentId": {"type": ["string", "integer"], "nullable": True},
    "startTerminalIndex": {"type": "integer", "nullable": True},
    "endComponentId": {"type": ["string", "integer"], "nullable": True},
    "endTerminalIndex": {"type": "integer", "nullable": True},
}

PROBE_SCHEMA = {
    "id": _id_rule,
    "type": {"type": "string", "required": True, "allowed": [t.value for t in ProbeType]},
    "wireId": {"type": ["string", "integer"], "required": True},
    "label": {"type": "string", "nullable": True},
}

CIRCUIT_DOCUMENT_SCHEMA = {
    "meta": {"type": "dict", "nullable": True, "allow_unknown": True},
    "components": {
        "type": "list",
        "required": True,
        "unique_elements_by_key": "id",
        "schema": {"type": "dict", "schema": COMPONENT_SCHEMA},
    },
    "wires": {
        "type": "list",
        "required": True,
        "unique_elements_by_key": "id",
        "schema": {"type": "dict", "schema": WIRE_SCHEMA},
    },
    "probes": {
        "type": "list",
        "nullable": True,
        "unique_elements_by_key": "id",
        "schema": {"type": "dict", "schema": PROBE_SCHEMA},
    },
}


def _legacy_ref(wire: Mapping[str, Any], side: str) -> Optional[Dict[str, Any]]:
    ref = wire.get(side)
    if isinstance(ref, Mapping):
        return dict(ref)
    component_id = wire.get(f"{side}ComponentId")
    if component_id is None:
        return None
    return {"componentId": component_id, "terminalIndex": wire.get(f"{side}TerminalIndex")}


def _semantic_problems(document: Mapping[str, Any], require_power_source: bool) -> List[str]:
    problems: List[str] = []
    terminal_counts: Dict[str, int] = {}
    has_power_source = False

    for comp in document.get("components", []):
        comp_type = comp.get("type")
        cls = COMPONENT_REGISTRY.get(comp_type)
        if cls is None:
            problems.append(f"Component '{comp.get('id')}' has unsupported type '{comp_type}'.")
            continue
        terminal_counts[str(comp.get("id"))] = cls.terminal_count
        if comp_type in ("PowerSource", "ACVoltageSource"):
            has_power_source = True

    if require_power_source and not has_power_source:
        problems.append("At least one PowerSource or ACVoltageSource is required.")

    def check_ref(ref: Optional[Mapping[str, Any]], label: str):
        if ref is None:
            return
        component_id = str(ref.get("componentId"))
        if component_id not in terminal_counts:
            problems.append(f"{label}.componentId does not exist: {component_id}")
            return
        index = ref.get("terminalIndex")
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < terminal_counts[component_id]:
            problems.append(f"{label}.terminalIndex is out of range: {index!r}")

    wire_ids = set()
    for wire in document.get("wires", []):
        wire_id = str(wire.get("id"))
        wire_ids.add(wire_id)
        if "a" in wire or "b" in wire:
            if "a" not in wire or "b" not in wire:
                problems.append(f"Wire '{wire_id}' must define both endpoints 'a' and 'b'.")
                continue
            check_ref(wire.get("aRef"), f"wire '{wire_id}'.aRef")
            check_ref(wire.get("bRef"), f"wire '{wire_id}'.bRef")
            continue
        start, end = _legacy_ref(wire, "start"), _legacy_ref(wire, "end")
        if start is None or end is None:
            problems.append(f"Wire '{wire_id}' has neither 'a'/'b' endpoints nor legacy start/end bindings.")
            continue
        check_ref(start, f"wire '{wire_id}'.start")
        check_ref(end, f"wire '{wire_id}'.end")

    for probe in document.get("probes") or []:
        if str(probe.get("wireId")) not in wire_ids:
            logger.debug(f"Probe '{probe.get('id')}' targets unknown wire '{probe.get('wireId')}'; it will be dropped.")

    return problems


def validate_circuit_document(document: Any, require_power_source: bool = False, file_path=None) -> Dict[str, Any]:
    """
    Validates a circuit document and returns the normalized copy.

    Raises:
        CircuitSchemaError: If the document is malformed.
    """
    if not isinstance(document, Mapping):
        raise CircuitSchemaError(
            errors={},
            problems=[f"The document root must be a mapping, got {type(document).__name__}."],
            file_path=file_path,
        )
    validator = CircuitDocumentValidator(CIRCUIT_DOCUMENT_SCHEMA)
    validator.allow_unknown = False
    if not validator.validate(dict(document)):
        raise CircuitSchemaError(errors=validator.errors, file_path=file_path)

    normalized = validator.document
    problems = _semantic_problems(normalized, require_power_source)
    if problems:
        raise CircuitSchemaError(errors={}, problems=problems, file_path=file_path)
    logger.debug(
        f"Circuit document valid: {len(normalized.get('components', []))} component(s), "
        f"{len(normalized.get('wires', []))} wire(s)."
    )
    return normalized
