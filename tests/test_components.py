# tests/test_components.py
import math

import pytest

from circuitsim_core import ComponentType, create_component
from circuitsim_core.components import COMPONENT_REGISTRY, ComponentError, ParameterSpec
from circuitsim_core.simulation import NetlistBuilder
from circuitsim_core.simulation.netlist import ComponentStamp, sanitize_parameter


class TestRegistry:

    def test_every_component_type_is_registered(self):
        assert set(COMPONENT_REGISTRY) == {t.value for t in ComponentType}

    def test_unknown_type_raises_diagnosable_error(self):
        with pytest.raises(ComponentError) as exc_info:
            create_component("Flux", "F1")
        assert exc_info.value.component_id == "F1"
        report = exc_info.value.get_diagnostic_report()
        assert "Component Error" in report
        assert "Flux" in report

    def test_terminal_counts(self):
        assert create_component("Rheostat", "RH1").terminal_count == 3
        assert create_component("Ground", "G1").terminal_count == 1
        assert create_component("Diode", "D1").nodes == [-1, -1]


class TestProperties:

    def test_defaults_and_persisted_keys(self):
        source = create_component("PowerSource", "V1")
        assert source.get_properties() == {"voltage": 12.0, "internalResistance": 0.5}
        assert math.isinf(create_component("Voltmeter", "VM1").resistance)
        assert create_component("Capacitor", "C1").integration_method == "auto"

    def test_set_properties_accepts_both_names(self):
        bulb = create_component("Bulb", "B1")
        bulb.set_properties({"ratedPower": 10.0, "resistance": 25.0, "colour": "blue"})
        assert bulb.rated_power == 10.0
        assert bulb.resistance == 25.0
        assert not hasattr(bulb, "colour")
        bulb.set_properties({"rated_power": 2.0})
        assert bulb.get_properties()["ratedPower"] == 2.0

    def test_raw_values_are_stored_as_given(self):
        resistor = create_component("Resistor", "R1", properties={"resistance": "4.7 kohm"})
        assert resistor.resistance == "4.7 kohm"

    def test_readouts_start_at_zero(self):
        source = create_component("PowerSource", "V1", properties={"voltage": 9.0})
        assert source.current_value == 0.0 and source.brightness == 0.0
        assert source.instantaneous_voltage == 9.0

    def test_rheostat_position_is_clamped(self):
        rheostat = create_component("Rheostat", "RH1")
        for raw, expected in ((1.7, 1.0), (-3, 0.0), ("abc", 0.5), (math.nan, 0.5)):
            rheostat.position = raw
            assert rheostat.clamped_position() == expected


class TestSanitizing:

    @pytest.mark.parametrize("raw, expected", [
        (True, True),
        (0, False),
        ("closed", True),
        (" Open ", False),
    ])
    def test_booleans(self, raw, expected):
        spec = ParameterSpec("closed", "closed", False, kind="bool")
        assert sanitize_parameter(spec, raw) == (expected, None)

    def test_bad_boolean_falls_back(self):
        spec = ParameterSpec("closed", "closed", False, kind="bool")
        assert sanitize_parameter(spec, "maybe") == (False, "not a boolean")

    def test_choices(self):
        spec = ParameterSpec("mode", "mode", "auto", kind="choice", choices=("auto", "trapezoidal"))
        assert sanitize_parameter(spec, "Trapezoidal") == ("trapezoidal", None)
        value, reason = sanitize_parameter(spec, "euler")
        assert value == "auto" and reason.startswith("not one of")

    def test_numbers(self):
        spec = ParameterSpec("capacitance", "capacitance", 1e-3, "farad", minimum=0.0)
        assert sanitize_parameter(spec, "470 uF")[0] == pytest.approx(470e-6)
        assert sanitize_parameter(spec, -1.0) == (1e-3, "below minimum 0.0")
        assert sanitize_parameter(spec, math.inf) == (1e-3, "infinite value")
        value, reason = sanitize_parameter(spec, "abc")
        assert value == 1e-3 and reason

    def test_unbounded_default_accepts_missing_value(self):
        spec = ParameterSpec("resistance", "resistance", math.inf, "ohm", minimum=0.0)
        assert sanitize_parameter(spec, None) == (math.inf, None)
        assert sanitize_parameter(spec, "inf") == (math.inf, None)


class TestNetlistBuilder:

    def test_snapshot_is_frozen_and_records_bad_values(self):
        resistor = create_component("Resistor", "R1", properties={"resistance": "abc"})
        netlist = NetlistBuilder().build({"R1": resistor}, node_count=0, topology_version=7)
        stamp = netlist.get_component("R1")
        assert netlist.topology_version == 7
        assert stamp.param("resistance") == 100.0
        assert not stamp.is_connected
        with pytest.raises(TypeError):
            stamp.params["resistance"] = 1.0
        issue = netlist.invalid_parameters[0]
        assert (issue.component_id, issue.parameter, issue.raw_value) == ("R1", "resistance", "abc")
        assert "R1.resistance" in str(issue)

    def test_nodes_are_grouped_by_terminal(self, series_circuit):
        netlist = series_circuit.build_netlist()
        assert netlist.node_count == 3
        assert set(netlist.nodes[0].terminals) == {("V1", 1), ("R2", 1)}
        assert netlist.get_component("missing") is None

    def test_stamp_node_lookup(self):
        stamp = ComponentStamp(id="R1", type=ComponentType.RESISTOR, nodes=(1, 2), params={})
        assert stamp.node(1) == 2
        assert stamp.node(2) == -1
        assert stamp.param("resistance", 5.0) == 5.0
