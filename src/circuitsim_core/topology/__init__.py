# src/circuitsim_core/topology/__init__.py
from .node_builder import (
    NodeBuilder, NodeBuildResult, detect_rheostat_mode, sync_wire_endpoints_to_terminal_refs
)
from .connectivity import ConnectivityCache, compute_component_connected_state
from .terminal_cache import TerminalPositionCache
from .wire_compactor import WireCompactor, CompactionResult

__all__ = [
    "NodeBuilder",
    "NodeBuildResult",
    "detect_rheostat_mode",
    "sync_wire_endpoints_to_terminal_refs",
    "ConnectivityCache",
    "compute_component_connected_state",
    "TerminalPositionCache",
    "WireCompactor",
    "CompactionResult",
]
