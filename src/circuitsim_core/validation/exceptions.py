# src/circuitsim_core/validation/exceptions.py
"""
Defines the diagnosable exception raised for fatal topology findings.

Validation itself never raises: it returns a `TopologyReport`. Callers that
prefer an exception call `TopologyReport.raise_for_errors()`.
"""
from typing import List

from .issues import ValidationIssue, ValidationIssueLevel
from ..errors import DiagnosableError, TopologyError, format_diagnostic_report


class TopologyValidationError(DiagnosableError, TopologyError):
    """Container for the error-level issues of one validation pass."""

    def __init__(self, issues: List[ValidationIssue]):
        self.issues: List[ValidationIssue] = [
            issue for issue in issues if issue.level == ValidationIssueLevel.ERROR
        ]
        if not self.issues:
            summary_message = "TopologyValidationError was raised with no error-level issues."
        else:
            summary_message = (
                f"Topology validation failed with {len(self.issues)} error(s):\n"
                + "\n".join(f"  - {issue}" for issue in self.issues)
            )
        super().__init__(summary_message)

    def get_diagnostic_report(self) -> str:
        details = (
            f"The circuit cannot be simulated as wired.\n"
            f"Found {len(self.issues)} error(s):\n\n"
            + "\n".join(f"  - {issue}" for issue in self.issues)
        )
        first_issue = self.issues[0] if self.issues else None
        context = {}
        if first_issue is not None:
            ids = first_issue.details.get("source_ids") or first_issue.details.get("component_ids") or []
            context['component_id'] = first_issue.component_id or ", ".join(ids) or None
        return format_diagnostic_report(
            error_type="Circuit Topology Error",
            details=details,
            suggestion="Add an internal resistance to one of the conflicting sources, or break the capacitor-only loop with a resistor.",
            context=context
        )
