# src/circuitsim_core/simulation/diagnostics.py
"""
Runtime failure diagnostics.

Signals gathered during a step (topology report, solve result, invalid
parameters, short-circuit flags) are reduced to an ordered list of failure
categories and a user-facing payload with a summary, hints and the ids of the
components and wires involved.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .results import INVALID_FACTORIZATION, INVALID_PARAMS, INVALID_SOLVE

logger = logging.getLogger(__name__)


class FailureCategory(str, Enum):
    CONFLICTING_SOURCES = "CONFLICTING_SOURCES"
    SHORT_CIRCUIT = "SHORT_CIRCUIT"
    SINGULAR_MATRIX = "SINGULAR_MATRIX"
    INVALID_PARAMS = "INVALID_PARAMS"
    FLOATING_SUBCIRCUIT = "FLOATING_SUBCIRCUIT"

    def __str__(self):
        return self.value


CATEGORY_PRIORITY: Tuple[FailureCategory, ...] = (
    FailureCategory.CONFLICTING_SOURCES,
    FailureCategory.SHORT_CIRCUIT,
    FailureCategory.SINGULAR_MATRIX,
    FailureCategory.INVALID_PARAMS,
    FailureCategory.FLOATING_SUBCIRCUIT,
)

FATAL_CATEGORIES = frozenset(CATEGORY_PRIORITY[:-1])

CATEGORY_SUMMARY = {
    FailureCategory.CONFLICTING_SOURCES: "Ideal voltage sources in parallel disagree; the simulation was stopped.",
    FailureCategory.SHORT_CIRCUIT: "A source is short-circuited; check the wiring.",
    FailureCategory.SINGULAR_MATRIX: "The circuit equations have no unique solution (singular matrix); check topology and parameters.",
    FailureCategory.INVALID_PARAMS: "Invalid component parameters were found; the unstable solve was blocked.",
    FailureCategory.FLOATING_SUBCIRCUIT: "A floating sub-circuit was found; its readings depend on the chosen reference.",
}

CATEGORY_HINTS = {
    FailureCategory.CONFLICTING_SOURCES: (
        "Check whether parallel ideal sources set different voltages across the same pair of nodes.",
        "Give one of the sources an internal resistance to remove the ideal conflict.",
    ),
    FailureCategory.SHORT_CIRCUIT: (
        "Check whether a source's terminals are joined directly by a wire.",
        "Follow the highlighted wires and remove the low-resistance path.",
    ),
    FailureCategory.SINGULAR_MATRIX: (
        "Make sure the circuit has a reference (ground) and forms a closed loop.",
        "Look for sub-networks made only of ideal sources with conflicting constraints.",
    ),
    FailureCategory.INVALID_PARAMS: (
        "Check for empty, NaN or out-of-range component parameters.",
        "Restore the default parameters and run the simulation again.",
    ),
    FailureCategory.FLOATING_SUBCIRCUIT: (
        "Connect the floating sub-circuit to the main loop or give it its own ground.",
        "For a demonstration you may keep running, but readings are relative to an arbitrary reference.",
    ),
}

_SINGULAR_REASONS = frozenset({INVALID_FACTORIZATION, INVALID_SOLVE})


@dataclass(frozen=True)
class DiagnosticSignals:
    """Inputs for one diagnostics pass. Every field is optional."""
    topology_report: Optional[Any] = None
    result: Optional[Any] = None
    invalid_parameter_issues: Sequence[Any] = ()
    solver_short_circuit_detected: bool = False
    shorted_source_ids: Sequence[str] = ()
    shorted_wire_ids: Sequence[str] = ()


@dataclass(frozen=True)
class RuntimeDiagnostics:
    code: str = ""
    categories: Tuple[FailureCategory, ...] = ()
    fatal: bool = False
    summary: str = ""
    hints: Tuple[str, ...] = ()
    component_ids: Tuple[str, ...] = ()
    wire_ids: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_failures(self) -> bool:
        return bool(self.categories)


def _issue_code(issue: Any) -> str:
    code = getattr(issue, "code", None)
    return str(code) if code is not None else ""


def _warnings_of(report: Any) -> List[Any]:
    return list(getattr(report, "warnings", None) or [])


def _invalid_reason(result: Any) -> str:
    meta = getattr(result, "meta", None)
    return str(getattr(meta, "invalid_reason", None) or "")


def _unique(ids: Iterable[Any]) -> List[str]:
    seen: List[str] = []
    for item in ids:
        if isinstance(item, str) and item and item not in seen:
            seen.append(item)
    return seen


def collect_failure_categories(signals: DiagnosticSignals) -> List[FailureCategory]:
    """Failure categories present in `signals`, in priority order."""
    found = set()
    report = signals.topology_report
    error = getattr(report, "error", None)
    if error is not None and _issue_code(error) == "TOPO_CONFLICTING_IDEAL_SOURCES":
        found.add(FailureCategory.CONFLICTING_SOURCES)
    if signals.solver_short_circuit_detected or len(signals.shorted_source_ids) > 0:
        found.add(FailureCategory.SHORT_CIRCUIT)
    reason = _invalid_reason(signals.result)
    if reason in _SINGULAR_REASONS:
        found.add(FailureCategory.SINGULAR_MATRIX)
    if len(signals.invalid_parameter_issues) > 0 or reason == INVALID_PARAMS:
        found.add(FailureCategory.INVALID_PARAMS)
    if any(_issue_code(w) == "TOPO_FLOATING_SUBCIRCUIT" for w in _warnings_of(report)):
        found.add(FailureCategory.FLOATING_SUBCIRCUIT)
    return [category for category in CATEGORY_PRIORITY if category in found]


def has_fatal_failure(categories: Iterable[FailureCategory]) -> bool:
    return any(category in FATAL_CATEGORIES for category in categories)


def build_runtime_diagnostics(signals: DiagnosticSignals) -> RuntimeDiagnostics:
    categories = collect_failure_categories(signals)
    if not categories:
        return RuntimeDiagnostics()

    component_ids: List[Any] = []
    wire_ids: List[Any] = []
    report = signals.topology_report

    if FailureCategory.CONFLICTING_SOURCES in categories:
        details = getattr(getattr(report, "error", None), "details", None) or {}
        component_ids.extend(details.get("source_ids", ()))
    if FailureCategory.FLOATING_SUBCIRCUIT in categories:
        for warning in _warnings_of(report):
            if _issue_code(warning) != "TOPO_FLOATING_SUBCIRCUIT":
                continue
            for group in (getattr(warning, "details", None) or {}).get("groups", ()):
                component_ids.extend(group.get("component_ids", ()))
    if FailureCategory.SHORT_CIRCUIT in categories:
        component_ids.extend(signals.shorted_source_ids)
        wire_ids.extend(signals.shorted_wire_ids)
    if FailureCategory.INVALID_PARAMS in categories:
        component_ids.extend(getattr(issue, "component_id", None) for issue in signals.invalid_parameter_issues)

    primary = categories[0]
    hints = tuple(hint for category in categories for hint in CATEGORY_HINTS[category])
    diagnostics = RuntimeDiagnostics(
        code=primary.value,
        categories=tuple(categories),
        fatal=has_fatal_failure(categories),
        summary=CATEGORY_SUMMARY[primary],
        hints=hints,
        component_ids=tuple(_unique(component_ids)),
        wire_ids=tuple(_unique(wire_ids)),
    )
    logger.debug(f"Runtime diagnostics: {diagnostics.code} {list(map(str, categories))}")
    return diagnostics
