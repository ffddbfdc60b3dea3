# src/circuitsim_core/probes.py
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class ProbeType(str, Enum):
    NODE_VOLTAGE = "NodeVoltageProbe"
    WIRE_CURRENT = "WireCurrentProbe"

    def __str__(self):
        return self.value


@dataclass
class ObservationProbe:
    """
    A measurement attached to a wire. A node-voltage probe reads the voltage
    of the wire's node, a wire-current probe reads the current through it.
    """
    id: str
    type: ProbeType
    target_id: str
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "type": self.type.value, "wireId": self.target_id}
        if self.label:
            data["label"] = self.label
        return data


def normalize_probe(raw: Any) -> Optional[ObservationProbe]:
    """Builds a probe from its persisted form, or None if it is unusable."""
    if isinstance(raw, ObservationProbe):
        return raw
    if not isinstance(raw, Mapping):
        return None
    try:
        probe_type = ProbeType(raw.get("type"))
    except ValueError:
        return None
    probe_id = raw.get("id")
    target_id = raw.get("wireId", raw.get("target_id"))
    if not probe_id or not target_id:
        return None
    label = raw.get("label")
    return ObservationProbe(
        id=str(probe_id),
        type=probe_type,
        target_id=str(target_id),
        label=label if isinstance(label, str) else None,
    )
