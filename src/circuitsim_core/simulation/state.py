# src/circuitsim_core/simulation/state.py
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from ..components.base_enums import ComponentType, JUNCTION_TYPES

logger = logging.getLogger(__name__)


@dataclass
class ComponentState:
    """Dynamic history of one component between accepted solves."""
    prev_voltage: float = 0.0
    prev_current: float = 0.0
    prev_charge: float = 0.0
    #: Capacitance that produced `prev_charge`.
    prev_capacitance: Optional[float] = None
    history_ready: bool = False
    junction_voltage: float = 0.0
    junction_current: float = 0.0
    conducting: bool = False


class SimulationState:
    """
    Per-component dynamic state keyed by component id. Owned by the solver;
    the live components never carry solver history.
    """

    def __init__(self):
        self.by_id: Dict[str, ComponentState] = {}

    def get(self, component_id: str) -> Optional[ComponentState]:
        return self.by_id.get(component_id)

    def ensure(self, component_id: str) -> ComponentState:
        if component_id not in self.by_id:
            self.by_id[component_id] = ComponentState()
        return self.by_id[component_id]

    def __contains__(self, component_id: str) -> bool:
        return component_id in self.by_id

    def reset_entry(self, entry: ComponentState, stamp) -> None:
        """Resets an entry to the initial condition of the stamp's type."""
        entry.prev_voltage = 0.0
        entry.prev_charge = 0.0
        entry.prev_capacitance = None
        entry.history_ready = False
        entry.prev_current = 0.0
        if stamp.type == ComponentType.INDUCTOR:
            entry.prev_current = float(stamp.params.get("initial_current", 0.0))
        if stamp.type in JUNCTION_TYPES:
            entry.junction_voltage = 0.0
            entry.junction_current = 0.0
            entry.conducting = False

    def reset_for_components(self, stamps: Iterable) -> None:
        for stamp in stamps:
            self.reset_entry(self.ensure(stamp.id), stamp)

    def sync_with(self, stamps: Iterable) -> None:
        """
        Creates initialised entries for new components, drops entries of
        removed ones and keeps the history of the rest, marking it stale so the
        next stamp starts from backward-Euler.
        """
        stamps = list(stamps)
        live_ids = {stamp.id for stamp in stamps}
        for stale_id in [cid for cid in self.by_id if cid not in live_ids]:
            del self.by_id[stale_id]
        for stamp in stamps:
            if stamp.id in self.by_id:
                self.by_id[stamp.id].history_ready = False
            else:
                self.reset_entry(self.ensure(stamp.id), stamp)

    def clear(self) -> None:
        self.by_id.clear()
