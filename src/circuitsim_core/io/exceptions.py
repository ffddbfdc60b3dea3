# src/circuitsim_core/io/exceptions.py
"""
Diagnosable exceptions raised at the persistence boundary.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import CircuitSimError, DiagnosableError, format_diagnostic_report


@dataclass()
class CircuitFileError(DiagnosableError, CircuitSimError):
    """A circuit file could not be read or written."""
    details: str
    file_path: Optional[Path] = None

    def __str__(self):
        return f"Circuit file error in '{self.file_path}': {self.details}"

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Circuit File Error",
            details=self.details,
            suggestion="Ensure the file exists, is readable, and has a .json, .yaml or .yml extension.",
            context={'source_file': self.file_path}
        )


@dataclass()
class CircuitSchemaError(DiagnosableError, CircuitSimError, ValueError):
    """
    A circuit document does not match the persisted format: missing or
    mistyped fields, duplicate ids, unknown component types, or terminal
    bindings that do not resolve.
    """
    errors: Dict[str, Any]
    problems: List[str] = field(default_factory=list)
    file_path: Optional[Path] = None

    def _lines(self) -> List[str]:
        lines = [f"  - Field '{k}': {v}" for k, v in sorted(self.errors.items(), key=lambda kv: str(kv[0]))]
        lines.extend(f"  - {problem}" for problem in self.problems)
        return lines

    def __str__(self):
        return "Circuit document validation failed:\n" + "\n".join(self._lines())

    def get_diagnostic_report(self) -> str:
        lines = self._lines()
        details = (
            "The circuit document does not conform to the persisted format.\n"
            f"See details for {len(lines)} issue(s) below:\n\n" + "\n".join(lines)
        )
        return format_diagnostic_report(
            error_type="Circuit Schema Error",
            details=details,
            suggestion="Correct the listed fields. Check for duplicate component ids, unknown component types and wire bindings to missing terminals.",
            context={'source_file': self.file_path}
        )
