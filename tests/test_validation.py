# tests/test_validation.py
import pytest

from circuitsim_core import Circuit, TopologyError, TopologyValidationError, TopologyValidator
from circuitsim_core.simulation import (
    DiagnosticSignals,
    FailureCategory,
    InvalidParameterIssue,
    SolveResult,
    build_runtime_diagnostics,
    collect_failure_categories,
)
from circuitsim_core.simulation.results import INVALID_FACTORIZATION, SolveMeta
from circuitsim_core.validation import (
    TopologyIssueCode,
    TopologyReport,
    ValidationIssue,
    ValidationIssueLevel,
)
from tests.circuit_helpers import add_component, connect_wire, solve_circuit


def _parallel_sources(second_voltage=5.0, second_resistance=0.0):
    circuit = Circuit()
    add_component(circuit, "PowerSource", "V1", voltage=12.0, internal_resistance=0)
    add_component(circuit, "PowerSource", "V2", voltage=second_voltage, internal_resistance=second_resistance)
    add_component(circuit, "Resistor", "R1")
    connect_wire(circuit, "top", ("V1", 0), ("V2", 0))
    connect_wire(circuit, "bottom", ("V1", 1), ("V2", 1))
    connect_wire(circuit, "r_in", ("V2", 0), ("R1", 0))
    connect_wire(circuit, "r_out", ("R1", 1), ("V2", 1))
    return circuit


def _with_floating_loop(series_circuit):
    add_component(series_circuit, "PowerSource", "V2", y=300, voltage=3.0)
    add_component(series_circuit, "Resistor", "R3", y=300)
    connect_wire(series_circuit, "f1", ("V2", 0), ("R3", 0))
    connect_wire(series_circuit, "f2", ("R3", 1), ("V2", 1))
    return series_circuit


def _issue(code, level=ValidationIssueLevel.ERROR, **details):
    return ValidationIssue(level=level, code=code, message=code, details=details)


class TestConflictingSources:

    def test_parallel_ideal_sources_with_different_voltages_block_start(self):
        circuit = _parallel_sources()
        report = circuit.start_simulation()
        assert not report.ok
        assert report.error.code == TopologyIssueCode.TOPO_CONFLICTING_IDEAL_SOURCES.code
        assert set(report.error.details["source_ids"]) == {"V1", "V2"}
        assert report.error.details["mismatch"] == pytest.approx(7.0)
        assert not circuit.is_running

    def test_matching_or_non_ideal_sources_are_accepted(self):
        assert _parallel_sources(second_voltage=12.0).validate_simulation_topology().ok
        assert _parallel_sources(second_resistance=0.5).validate_simulation_topology().ok

    def test_closed_switch_across_ideal_source_conflicts(self):
        circuit = Circuit()
        add_component(circuit, "PowerSource", "V1", voltage=9.0, internal_resistance=0)
        add_component(circuit, "Switch", "S1", closed=True)
        connect_wire(circuit, "w1", ("V1", 0), ("S1", 0))
        connect_wire(circuit, "w2", ("S1", 1), ("V1", 1))
        report = circuit.validate_simulation_topology()
        assert report.error.code == "TOPO_CONFLICTING_IDEAL_SOURCES"
        assert set(report.error.details["source_ids"]) == {"V1", "S1"}

        circuit.get_component("S1").closed = False
        assert circuit.validate_simulation_topology().ok

    def test_raise_for_errors(self):
        report = _parallel_sources().validate_simulation_topology()
        with pytest.raises(TopologyValidationError) as exc_info:
            report.raise_for_errors()
        assert isinstance(exc_info.value, TopologyError)
        diagnostic = exc_info.value.get_diagnostic_report()
        assert "Circuit Topology Error" in diagnostic
        assert "V1" in diagnostic

    def test_report_to_dict(self):
        data = _parallel_sources().validate_simulation_topology().to_dict()
        assert data["ok"] is False
        assert data["error"]["code"] == "TOPO_CONFLICTING_IDEAL_SOURCES"
        assert data["warnings"] == []


class TestCapacitorLoops:

    def test_parallel_capacitors_form_a_loop(self):
        circuit = Circuit()
        add_component(circuit, "PowerSource", "V1", voltage=5.0)
        add_component(circuit, "Resistor", "R1")
        add_component(circuit, "Capacitor", "C1")
        add_component(circuit, "Capacitor", "C2", y=150)
        connect_wire(circuit, "w1", ("V1", 0), ("R1", 0))
        connect_wire(circuit, "w2", ("R1", 1), ("C1", 0))
        connect_wire(circuit, "w3", ("C1", 1), ("V1", 1))
        connect_wire(circuit, "p1", ("C2", 0), ("C1", 0))
        connect_wire(circuit, "p2", ("C2", 1), ("C1", 1))
        report = circuit.validate_simulation_topology()
        assert not report.ok
        assert report.error.code == "TOPO_CAPACITOR_LOOP_NO_RESISTANCE"
        assert report.error.component_id == "C2"
        assert report.error.details["component_ids"] == ["C1", "C2"]

    def test_capacitors_in_series_with_resistance_are_accepted(self, rc_circuit):
        assert rc_circuit.validate_simulation_topology().ok


class TestFloatingSubcircuits:

    def test_unreferenced_loop_is_a_warning(self, series_circuit):
        circuit = _with_floating_loop(series_circuit)
        report = circuit.validate_simulation_topology()
        assert report.ok
        assert len(report.warnings) == 1
        warning = report.warnings[0]
        assert warning.code == "TOPO_FLOATING_SUBCIRCUIT"
        assert not warning.is_fatal
        assert set(warning.details["component_ids"]) == {"V2", "R3"}
        assert warning.details["group_count"] == 1

    def test_floating_loop_still_simulates_with_a_non_fatal_diagnostic(self, series_circuit):
        circuit = _with_floating_loop(series_circuit)
        result = solve_circuit(circuit)
        assert result.valid
        assert result.current_of("V1") == pytest.approx(0.06, rel=1e-9)
        diagnostics = result.runtime_diagnostics
        assert diagnostics.code == "FLOATING_SUBCIRCUIT"
        assert not diagnostics.fatal
        assert {"V2", "R3"} <= set(diagnostics.component_ids)

    def test_validator_works_on_a_bare_netlist(self, series_circuit):
        validator = TopologyValidator()
        report = validator.validate(series_circuit.build_netlist())
        assert report.ok and report.warnings == []
        assert validator.issues == []


class TestIssueCodes:

    def test_messages_are_formatted_from_details(self):
        message = TopologyIssueCode.TOPO_FLOATING_SUBCIRCUIT.format_message(group_count=2, component_ids=["R1"])
        assert message.startswith("2 sub-circuit(s)")

    def test_missing_arguments_do_not_raise(self):
        message = TopologyIssueCode.TOPO_CAPACITOR_LOOP_NO_RESISTANCE.format_message()
        assert "Error formatting message" in message

    def test_issue_string_names_level_code_and_component(self):
        issue = ValidationIssue(ValidationIssueLevel.WARNING, "X", "something", component_id="R1")
        assert str(issue) == "[WARNING - X] Component: R1 Message: something"


class TestRuntimeDiagnostics:

    def test_no_signals_means_no_failure(self):
        diagnostics = build_runtime_diagnostics(DiagnosticSignals())
        assert diagnostics.code == ""
        assert not diagnostics.has_failures
        assert not diagnostics.fatal

    def test_categories_follow_priority_order(self):
        report = TopologyReport(
            ok=False,
            error=_issue("TOPO_CONFLICTING_IDEAL_SOURCES", source_ids=["V1", "V2"]),
            warnings=[_issue("TOPO_FLOATING_SUBCIRCUIT", ValidationIssueLevel.WARNING,
                             groups=[{"component_ids": ["R7"], "nodes": [3]}])],
        )
        singular = SolveResult(valid=False, meta=SolveMeta(invalid_reason=INVALID_FACTORIZATION))
        bad_param = InvalidParameterIssue("R1", "resistance", "abc", 100.0, "unparseable")
        signals = DiagnosticSignals(
            topology_report=report,
            result=singular,
            invalid_parameter_issues=(bad_param,),
        )
        assert collect_failure_categories(signals) == [
            FailureCategory.CONFLICTING_SOURCES,
            FailureCategory.SINGULAR_MATRIX,
            FailureCategory.INVALID_PARAMS,
            FailureCategory.FLOATING_SUBCIRCUIT,
        ]
        diagnostics = build_runtime_diagnostics(signals)
        assert diagnostics.code == "CONFLICTING_SOURCES"
        assert diagnostics.fatal
        assert diagnostics.component_ids == ("V1", "V2", "R7", "R1")
        assert len(diagnostics.hints) == 8

    def test_short_circuit_collects_sources_and_wires(self):
        signals = DiagnosticSignals(shorted_source_ids=("V1",), shorted_wire_ids=("w1", "w1", "w2"))
        diagnostics = build_runtime_diagnostics(signals)
        assert diagnostics.categories == (FailureCategory.SHORT_CIRCUIT,)
        assert diagnostics.component_ids == ("V1",)
        assert diagnostics.wire_ids == ("w1", "w2")
        assert "short-circuited" in diagnostics.summary

    def test_floating_only_is_not_fatal(self):
        report = TopologyReport(warnings=[_issue("TOPO_FLOATING_SUBCIRCUIT", ValidationIssueLevel.WARNING)])
        diagnostics = build_runtime_diagnostics(DiagnosticSignals(topology_report=report))
        assert diagnostics.code == "FLOATING_SUBCIRCUIT"
        assert not diagnostics.fatal
