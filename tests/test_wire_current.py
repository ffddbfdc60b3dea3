# tests/test_wire_current.py
import pytest

from circuitsim_core import Circuit
from circuitsim_core.analysis import WireCurrentAnalyzer, WireCurrentInfo
from circuitsim_core.simulation import SolveResult
from tests.circuit_helpers import (
    add_component, build_series_circuit, connect_points, connect_wire, solve_circuit, terminal,
)


def _balanced_bridge(bridge_resistances=(100.0, 100.0, 100.0, 100.0)):
    """Two arms between the rails with a bare wire tying their midpoints."""
    circuit = Circuit()
    add_component(circuit, "PowerSource", "V1", voltage=10.0, internal_resistance=0)
    for rid, resistance in zip(("R1", "R2", "R3", "R4"), bridge_resistances):
        add_component(circuit, "Resistor", rid, resistance=resistance)
    connect_wire(circuit, "top_l", ("V1", 0), ("R1", 0))
    connect_wire(circuit, "top_r", ("V1", 0), ("R3", 0))
    connect_wire(circuit, "mid_l", ("R1", 1), ("R2", 0))
    connect_wire(circuit, "mid_r", ("R3", 1), ("R4", 0))
    connect_wire(circuit, "bot_l", ("R2", 1), ("V1", 1))
    connect_wire(circuit, "bot_r", ("R4", 1), ("V1", 1))
    connect_wire(circuit, "bridge", ("R1", 1), ("R3", 1))
    return circuit


class TestSeriesConsistency:

    def test_chained_segments_share_magnitude_and_direction(self):
        circuit = build_series_circuit(resistances=(100.0, 100.0))
        circuit.remove_wire("w1")
        start = terminal(circuit, "V1", 0)
        p1, p2 = (start.x + 80, start.y), (start.x + 130, start.y)
        connect_points(circuit, "seg1", None, p1, a_ref=("V1", 0))
        connect_points(circuit, "seg2", p1, p2)
        connect_points(circuit, "seg3", p2, None, b_ref=("R1", 0))
        solve_circuit(circuit)
        infos = [circuit.get_wire_current_info(w) for w in ("seg1", "seg2", "seg3", "w2", "w3")]
        for info in infos:
            assert info.current == pytest.approx(0.06, rel=1e-6)
            assert info.flow_direction == 1

    def test_reversed_wire_reports_opposite_direction(self):
        circuit = build_series_circuit()
        circuit.remove_wire("w2")
        connect_wire(circuit, "w2r", ("R2", 0), ("R1", 1))
        solve_circuit(circuit)
        info = circuit.get_wire_current_info("w2r")
        assert info.current == pytest.approx(0.06, rel=1e-6)
        assert info.flow_direction == -1

    def test_node_voltage_is_reported(self, series_circuit):
        solve_circuit(series_circuit)
        assert series_circuit.get_wire_current_info("w2").node_voltage == pytest.approx(6.0, rel=1e-9)

    def test_flows_are_cached_per_result(self, series_circuit):
        result = solve_circuit(series_circuit)
        analyzer = series_circuit.wire_analyzer
        for wire_id in ("w1", "w2", "w3"):
            series_circuit.get_wire_current_info(wire_id, result)
        assert analyzer.compute_count == 1
        series_circuit.step()
        series_circuit.get_wire_current_info("w1")
        assert analyzer.compute_count == 2


class TestBridgeAndDeadBranches:

    def test_balanced_bridge_wire_carries_no_current(self):
        circuit = _balanced_bridge()
        solve_circuit(circuit)
        info = circuit.get_wire_current_info("bridge")
        assert info.current == 0.0
        assert info.flow_direction == 0
        assert circuit.get_wire_current_info("top_l").current == pytest.approx(0.05, rel=1e-6)

    def test_unbalanced_bridge_wire_carries_the_difference(self):
        circuit = _balanced_bridge((100.0, 200.0, 200.0, 100.0))
        solve_circuit(circuit)
        info = circuit.get_wire_current_info("bridge")
        # Midpoints sit at 5 V; R1 brings 50 mA, R2 takes 25 mA, the rest crosses.
        assert info.current == pytest.approx(0.025, rel=1e-6)
        assert info.flow_direction == 1

    def test_open_switch_branch_is_dead(self):
        circuit = build_series_circuit(voltage=10.0, resistances=(100.0,))
        add_component(circuit, "Switch", "S1", y=150)
        add_component(circuit, "Resistor", "R9", y=150)
        connect_wire(circuit, "s_in", ("V1", 0), ("S1", 0))
        connect_wire(circuit, "s_out", ("S1", 1), ("R9", 0))
        connect_wire(circuit, "r_out", ("R9", 1), ("V1", 1))
        solve_circuit(circuit)
        for wire_id in ("s_in", "s_out", "r_out"):
            info = circuit.get_wire_current_info(wire_id)
            assert info.current == 0.0
            assert info.flow_direction == 0
        assert circuit.get_wire_current_info("w1").current == pytest.approx(0.1, rel=1e-6)

    def test_dangling_wire_is_dead(self, series_circuit):
        start = terminal(series_circuit, "R1", 0)
        connect_points(series_circuit, "stub", None, (start.x, start.y + 90), a_ref=("R1", 0))
        solve_circuit(series_circuit)
        info = series_circuit.get_wire_current_info("stub")
        assert info.current == 0.0
        assert info.flow_direction == 0
        assert not info.is_shorted
        assert info.node_voltage == pytest.approx(12.0)

    def test_unconnected_wire_and_missing_result(self, series_circuit):
        connect_points(series_circuit, "loose", (900, 900), (950, 900))
        solve_circuit(series_circuit)
        assert series_circuit.get_wire_current_info("loose").current == 0.0
        assert series_circuit.get_wire_current_info("missing") == WireCurrentInfo()
        invalid = SolveResult(valid=False)
        assert series_circuit.get_wire_current_info("w1", invalid) == WireCurrentInfo()


class TestShortCircuits:

    def _shorted_source(self):
        circuit = Circuit()
        add_component(circuit, "PowerSource", "V1", voltage=12.0, internal_resistance=0.5)
        add_component(circuit, "Resistor", "R1")
        connect_wire(circuit, "short", ("V1", 0), ("V1", 1))
        connect_wire(circuit, "r_a", ("R1", 0), ("V1", 0))
        connect_wire(circuit, "r_b", ("R1", 1), ("V1", 1))
        return circuit

    def test_wire_across_source_is_shorted(self):
        circuit = self._shorted_source()
        assert circuit.is_wire_in_short_circuit("short")
        result = solve_circuit(circuit)
        assert result.short_circuit_detected
        assert circuit.is_wire_in_short_circuit("short")
        info = circuit.get_wire_current_info("short")
        assert info.is_shorted
        assert info.current == 0.0 and info.flow_direction == 0

    def test_short_circuit_diagnostics(self):
        circuit = self._shorted_source()
        result = solve_circuit(circuit)
        diagnostics = result.runtime_diagnostics
        assert diagnostics.code == "SHORT_CIRCUIT"
        assert diagnostics.fatal
        assert "V1" in diagnostics.component_ids
        assert "short" in diagnostics.wire_ids
        assert circuit.get_component("V1").current_value == 0.0

    def test_healthy_circuit_has_no_shorted_wires(self, series_circuit):
        result = solve_circuit(series_circuit)
        report = series_circuit.wire_analyzer.short_circuits.analyze(result)
        assert not report.has_short
        assert not any(series_circuit.is_wire_in_short_circuit(w) for w in series_circuit.wires)
        assert result.runtime_diagnostics.code == ""

    def test_runtime_short_through_tiny_resistance(self):
        circuit = build_series_circuit(voltage=12.0, internal_resistance=1.0, resistances=(1e-6,))
        result = solve_circuit(circuit)
        assert result.shorted_source_ids == ("V1",)
        assert circuit.is_wire_in_short_circuit("w1")
        assert circuit.is_wire_in_short_circuit("w2")


class TestAnalyzerContract:

    def test_analyzer_works_against_any_circuit_like_object(self, series_circuit):
        result = solve_circuit(series_circuit)
        analyzer = WireCurrentAnalyzer(series_circuit)
        flows = analyzer.wire_flows(result)
        assert set(flows) == {"w1", "w2", "w3"}
        assert analyzer.wire_flows(SolveResult(valid=False)) == {}
