# src/circuitsim_core/components/exceptions.py
"""
Defines the custom, diagnosable exceptions for the components subsystem.
"""
from dataclasses import dataclass
from typing import Optional

from ..errors import DiagnosableError, format_diagnostic_report


@dataclass()
class ComponentError(DiagnosableError):
    """
    The canonical, diagnosable exception for component-related contract errors:
    unknown component types, bad terminal indices, malformed declarations.
    """
    component_id: str
    details: str
    component_type: Optional[str] = None

    def __str__(self):
        return f"Component '{self.component_id}': {self.details}"

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for a component error."""
        return format_diagnostic_report(
            error_type="Component Error",
            details=self.details,
            suggestion="Check the component type name and the terminal or parameter being accessed.",
            context={
                'component_id': self.component_id,
                'user_input': self.component_type,
            }
        )
