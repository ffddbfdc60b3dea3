# src/circuitsim_core/simulation/exceptions.py
"""
Defines custom, diagnosable exceptions specific to the simulation phase.

Numerical degradation during a step (singular matrices, non-finite solutions,
non-convergence) is reported through `SolveResult` and never raised past the
solver. The exceptions below cover the internal numerical failure that the
solver converts into an invalid result, and the contract violations that
callers must fix in their own code.
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..errors import DiagnosableError, SimulationRunError, format_diagnostic_report


@dataclass()
class SingularMatrixError(DiagnosableError, np.linalg.LinAlgError):
    """
    Raised when the MNA matrix cannot be factorized or its solution is not
    finite.

    Catchable both as `DiagnosableError` and as numpy's `LinAlgError`.
    """
    details: str
    sim_time: Optional[float] = None

    def __str__(self):
        time_str = f" at t={self.sim_time:.6g} s" if self.sim_time is not None else ""
        return f"Singular matrix detected{time_str}: {self.details}"

    def get_diagnostic_report(self) -> str:
        """Generates the diagnostic report for a singular matrix error."""
        return format_diagnostic_report(
            error_type="Singular Matrix Encountered",
            details=self.details,
            suggestion="This is often caused by a loop of ideal voltage sources, ideal ammeters or closed switches that disagree, or by a sub-circuit with no reference. Check the circuit topology and any zero-resistance sources.",
            context={'sim_time': self.sim_time}
        )


@dataclass()
class SolverStateError(DiagnosableError, SimulationRunError):
    """
    Raised when the solver is used out of order, for example solving before
    `set_circuit`, or refreshing parameters from a netlist of a different
    topology version.
    """
    details: str

    def __str__(self):
        return f"Solver state error: {self.details}"

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Solver State Error",
            details=self.details,
            suggestion="Call set_circuit() with a netlist built from the current topology before solving, or use Circuit.ensure_solver_prepared().",
            context={}
        )


@dataclass()
class SolverNotAttachedError(DiagnosableError, SimulationRunError):
    """Raised when a circuit is asked to simulate without a solver attached."""
    details: str = "No solver is attached to this circuit."

    def __str__(self):
        return self.details

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Solver Not Attached",
            details=self.details,
            suggestion="Construct the Circuit with a solver or assign an MnaSolver to circuit.solver.",
            context={}
        )
