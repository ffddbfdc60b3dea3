# tests/test_integration_methods.py
import pytest

from circuitsim_core import IntegrationMethod
from tests.circuit_helpers import add_component, build_rc_circuit, connect_wire


def _rc_with_switch(integration_method="auto", closed=True):
    """RC loop with a switch between the resistor and the capacitor."""
    circuit = build_rc_circuit(integration_method=integration_method)
    circuit.remove_wire("w2")
    add_component(circuit, "Switch", "S1", y=150, closed=closed)
    connect_wire(circuit, "s_a", ("R1", 1), ("S1", 0))
    connect_wire(circuit, "s_b", ("S1", 1), ("C1", 0))
    return circuit


class TestIntegrationMethodSelection:

    def test_auto_starts_backward_euler_then_switches_to_trapezoidal(self, rc_circuit):
        rc_circuit.start_simulation()
        solver = rc_circuit.solver
        assert solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.BACKWARD_EULER
        rc_circuit.step()
        assert solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.TRAPEZOIDAL

    def test_connected_switch_pins_auto_to_backward_euler(self):
        circuit = _rc_with_switch()
        circuit.start_simulation()
        for _ in range(3):
            circuit.step()
        assert circuit.solver.has_connected_switch
        assert circuit.solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.BACKWARD_EULER

    def test_explicit_trapezoidal_ignores_switches(self):
        circuit = _rc_with_switch(integration_method="trapezoidal")
        circuit.start_simulation()
        assert circuit.solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.BACKWARD_EULER
        circuit.step()
        assert circuit.solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.TRAPEZOIDAL

    def test_explicit_backward_euler_is_always_honoured(self):
        circuit = build_rc_circuit(integration_method="backward-euler")
        circuit.start_simulation()
        for _ in range(3):
            circuit.step()
            assert circuit.solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.BACKWARD_EULER

    def test_rebuild_restarts_from_backward_euler(self, rc_circuit):
        rc_circuit.start_simulation()
        rc_circuit.step()
        rc_circuit.rebuild_nodes()
        rc_circuit.ensure_solver_prepared()
        assert rc_circuit.solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.BACKWARD_EULER

    def test_unknown_component_resolves_to_backward_euler(self, rc_circuit):
        rc_circuit.start_simulation()
        assert rc_circuit.solver.resolve_dynamic_integration_method("nope") == IntegrationMethod.BACKWARD_EULER


class TestChargeConservation:

    def test_capacitance_change_on_isolated_capacitor_keeps_charge(self):
        circuit = _rc_with_switch()
        circuit.start_simulation()
        for _ in range(20):
            circuit.step()
        capacitor = circuit.get_component("C1")
        charge = capacitor.capacitance * circuit.get_component_voltage("C1")
        assert charge > 0

        circuit.get_component("S1").closed = False
        circuit.step()
        assert circuit.get_component_voltage("C1") * capacitor.capacitance == pytest.approx(charge, rel=1e-6)

        capacitor.capacitance = 2e-3
        circuit.step()
        assert circuit.get_component_voltage("C1") == pytest.approx(charge / 2e-3, rel=1e-6)
        assert circuit.get_component_voltage("C1") * 2e-3 == pytest.approx(charge, rel=1e-6)

    def test_trapezoidal_capacitor_keeps_charge_after_switch_opens(self):
        circuit = _rc_with_switch(integration_method="trapezoidal")
        circuit.start_simulation()
        for _ in range(200):
            circuit.step()
        circuit.get_component("S1").closed = False
        circuit.step()
        solver = circuit.solver
        assert solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.TRAPEZOIDAL
        charge = 1e-3 * circuit.get_component_voltage("C1")
        assert charge == pytest.approx(0.01, rel=1e-6)

        circuit.get_component("C1").capacitance = 2e-3
        circuit.step()
        assert circuit.get_component_voltage("C1") == pytest.approx(charge / 2e-3, rel=1e-6)
        assert solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.TRAPEZOIDAL

        circuit.step()
        assert circuit.get_component_voltage("C1") * 2e-3 == pytest.approx(charge, rel=1e-6)

    def test_auto_capacitor_charge_balance_across_capacitance_change(self, rc_circuit):
        rc_circuit.start_simulation()
        for _ in range(20):
            rc_circuit.step()
        solver = rc_circuit.solver
        assert solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.TRAPEZOIDAL
        charge = 1e-3 * rc_circuit.get_component_voltage("C1")

        rc_circuit.get_component("C1").capacitance = 2e-3
        result = rc_circuit.step()
        inflow = result.current_of("C1") * rc_circuit.dt
        assert inflow > 0
        assert 2e-3 * rc_circuit.get_component_voltage("C1") == pytest.approx(charge + inflow, rel=1e-9)
        assert solver.resolve_dynamic_integration_method("C1") == IntegrationMethod.TRAPEZOIDAL


class TestFactorizationCache:

    def test_steady_steps_reuse_the_factorization(self, series_circuit):
        series_circuit.start_simulation()
        cache = series_circuit.solver.system_factorization_cache
        series_circuit.step()
        first = cache.get_stats()
        series_circuit.step()
        second = cache.get_stats()
        assert second["hits"] == first["hits"] + 1
        assert second["misses"] == first["misses"]

    def test_rebuild_invalidates_the_factorization(self, series_circuit):
        series_circuit.start_simulation()
        cache = series_circuit.solver.system_factorization_cache
        series_circuit.step()
        before = cache.get_stats()
        series_circuit.rebuild_nodes()
        series_circuit.step()
        after = cache.get_stats()
        assert after["misses"] == before["misses"] + 1
        assert after["hits"] == before["hits"]

    def test_method_flip_invalidates_the_factorization(self, rc_circuit):
        rc_circuit.start_simulation()
        cache = rc_circuit.solver.system_factorization_cache
        rc_circuit.step()
        stats_be = cache.get_stats()
        rc_circuit.step()
        stats_trap = cache.get_stats()
        rc_circuit.step()
        stats_steady = cache.get_stats()
        assert stats_trap["misses"] == stats_be["misses"] + 1
        assert stats_steady["hits"] == stats_trap["hits"] + 1

    def test_parameter_change_invalidates_the_factorization(self, series_circuit):
        series_circuit.start_simulation()
        cache = series_circuit.solver.system_factorization_cache
        series_circuit.step()
        before = cache.get_stats()
        series_circuit.get_component("R1").resistance = 50.0
        result = series_circuit.step()
        assert cache.get_stats()["misses"] == before["misses"] + 1
        assert result.current_of("R1") == pytest.approx(12.0 / 150.0, rel=1e-9)
