# src/circuitsim_core/analysis/__init__.py
"""
Post-solve analysis services: per-wire current inference for animation and
short-circuit marking, with their frozen result contracts.
"""
from .results import WireFlow, WireCurrentInfo, ShortCircuitReport
from .wire_current import WireCurrentAnalyzer, terminal_current_flow, rheostat_terminal_flows
from .short_circuit import ShortCircuitAnalyzer

__all__ = [
    # Result contracts
    "WireFlow",
    "WireCurrentInfo",
    "ShortCircuitReport",
    # Analysis services
    "WireCurrentAnalyzer",
    "ShortCircuitAnalyzer",
    "terminal_current_flow",
    "rheostat_terminal_flows",
]
