# src/circuitsim_core/errors.py
import logging
from typing import Any, Dict, Protocol, abstractmethod
from typing import runtime_checkable

logger = logging.getLogger(__name__)

# --- User-Facing Exception Hierarchy ---

class CircuitSimError(Exception):
    """Base class for all custom, user-facing errors in CircuitSim Core."""
    pass


class TopologyError(CircuitSimError):
    """
    Raised when a circuit cannot be started because its topology is invalid
    (conflicting ideal sources, capacitor-only loops). The message is a
    pre-formatted, user-friendly diagnostic report.
    """
    pass


class SimulationRunError(CircuitSimError):
    """
    Raised when a simulation session is driven in a way the core cannot honour,
    such as solving before the solver was prepared.
    The message is a pre-formatted, user-friendly diagnostic report.
    """
    pass


# --- Diagnostic Protocol & Base Exception ---

@runtime_checkable
class Diagnosable(Protocol):
    """
    A protocol for exceptions that can generate their own rich diagnostic report.
    """
    def get_diagnostic_report(self) -> str:
        """Generates a complete, user-friendly, multi-line report string."""
        ...


class DiagnosableError(Exception, Diagnosable):
    """
    A common, concrete base class for all internal exceptions that are diagnosable.

    It inherits from `Exception`, so it can be used in `except` clauses, and it
    declares `get_diagnostic_report` abstract so every subclass must describe
    itself in user-facing terms.
    """
    @abstractmethod
    def get_diagnostic_report(self) -> str:
        """
        Abstract method to generate the diagnostic report.
        Subclasses MUST implement this.
        """
        raise NotImplementedError


# --- Stateless Formatting Utility ---

def format_diagnostic_report(
    error_type: str,
    details: str,
    suggestion: str,
    context: Dict[str, Any]
) -> str:
    """
    A stateless helper to format the final multi-line report string, ensuring a
    consistent look for all user-facing diagnostics.

    Args:
        error_type: The high-level category of the error (e.g., "Singular Matrix").
        details: A detailed, potentially multi-line description of the problem.
        suggestion: Actionable advice for the user to resolve the issue.
        context: A dictionary of contextual information (component id, wire id,
                 source file, simulation time).

    Returns:
        A formatted, user-friendly diagnostic report string ready for display.
    """
    lines = [
        "\n",
        "============== CircuitSim Core: Actionable Diagnostic Report ==============",
        f"Error Type:     {error_type}",
    ]
    if component_id := context.get('component_id'):
        lines.append(f"Component:      {component_id}")
    if wire_id := context.get('wire_id'):
        lines.append(f"Wire:           {wire_id}")
    if source_file := context.get('source_file'):
        lines.append(f"Source File:    {source_file}")
    if user_input := context.get('user_input'):
        lines.append(f"User Input:     '{user_input}'")
    if (sim_time := context.get('sim_time')) is not None:
        lines.append(f"Sim Time:       {sim_time}")

    lines.append("\nDetails:")
    for line in details.splitlines():
        lines.append(f"  {line}")

    if suggestion:
        lines.append("\nSuggestion:")
        for line in suggestion.splitlines():
            lines.append(f"  {line}")

    lines.append("===========================================================================")
    return "\n".join(lines)
