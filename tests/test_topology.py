# tests/test_topology.py
import pytest

from circuitsim_core import Circuit, Point, RheostatMode, create_component, make_wire
from circuitsim_core.components import ComponentError
from circuitsim_core.topology import (
    NodeBuilder,
    WireCompactor,
    compute_component_connected_state,
    detect_rheostat_mode,
    sync_wire_endpoints_to_terminal_refs,
)
from tests.circuit_helpers import add_component, connect_points, connect_wire, terminal


class TestNodeBuilder:

    def test_series_loop_nodes(self, series_circuit):
        assert series_circuit.node_count == 3
        assert series_circuit.get_component("V1").nodes == [1, 0]
        assert series_circuit.get_component("R1").nodes == [1, 2]
        assert series_circuit.get_component("R2").nodes == [2, 0]
        assert [series_circuit.get_wire(w).node_index for w in ("w1", "w2", "w3")] == [1, 2, 0]

    def test_coinciding_terminals_join_without_a_wire(self):
        circuit = Circuit()
        add_component(circuit, "Resistor", "R1", x=0)
        add_component(circuit, "Resistor", "R2", x=60)
        assert terminal(circuit, "R1", 1) == terminal(circuit, "R2", 0)
        r1, r2 = circuit.get_component("R1"), circuit.get_component("R2")
        assert r1.nodes[1] == r2.nodes[0] >= 0
        assert r1.nodes[0] == -1 and r2.nodes[1] == -1

    def test_wired_ground_is_the_reference(self, series_circuit):
        add_component(series_circuit, "Ground", "G1", x=200, y=200)
        connect_wire(series_circuit, "g", ("G1", 0), ("R1", 1))
        assert series_circuit.get_component("G1").nodes == [0]
        assert series_circuit.get_component("R1").nodes[1] == 0

    def test_free_wire_chain_joins_terminals_transitively(self):
        circuit = Circuit()
        add_component(circuit, "Resistor", "R1")
        add_component(circuit, "Resistor", "R2", y=200)
        connect_points(circuit, "c1", (30, 0), (100, 0))
        connect_points(circuit, "c2", (100, 0), (100, 200))
        connect_points(circuit, "c3", (100, 200), (30, 200))
        connect_points(circuit, "stray", (500, 500), (600, 500))
        assert circuit.node_count == 1
        assert circuit.get_component("R1").nodes == [-1, 0]
        assert circuit.get_component("R2").nodes == [-1, 0]
        assert [circuit.get_wire(w).node_index for w in ("c1", "c2", "c3")] == [0, 0, 0]
        assert circuit.get_wire("stray").node_index == -1

    def test_unwired_components_get_no_nodes(self):
        circuit = Circuit()
        add_component(circuit, "Resistor", "R1")
        assert circuit.node_count == 0
        assert circuit.get_component("R1").nodes == [-1, -1]

    def test_build_is_idempotent(self, series_circuit):
        builder = NodeBuilder()
        first = builder.build(series_circuit.components, series_circuit.wires)
        second = builder.build(series_circuit.components, series_circuit.wires)
        assert first == second
        assert first.is_terminal_wired("R1", 0)
        assert not first.is_terminal_wired("R1", 5)

    def test_source_with_joined_terminals_is_reported(self):
        circuit = Circuit()
        add_component(circuit, "PowerSource", "V1")
        connect_wire(circuit, "short", ("V1", 0), ("V1", 1))
        assert circuit.node_build.shorted_power_nodes == frozenset({0})


class TestGeometry:

    def test_rotation_moves_terminals(self):
        resistor = create_component("Resistor", "R1", x=100, y=100, rotation=90)
        assert resistor.terminal_world_position(0) == Point(100, 70)
        assert resistor.terminal_world_position(1) == Point(100, 130)

    def test_terminal_extension_offsets_a_terminal(self):
        resistor = create_component("Resistor", "R1", x=100, y=0, terminal_extensions={0: (-10, 5)})
        assert resistor.terminal_world_position(0) == Point(60, 5)
        assert resistor.terminal_world_position(1) == Point(130, 0)

    def test_invalid_terminal_index_raises(self):
        resistor = create_component("Resistor", "R1")
        with pytest.raises(ComponentError):
            resistor.terminal_world_position(2)

    def test_rheostat_slider_follows_position(self):
        rheostat = create_component("Rheostat", "RH1", x=0, y=0, properties={"position": 1.0})
        assert rheostat.terminal_world_position(2) == Point(20, -28)
        key = rheostat.geometry_key()
        rheostat.position = 0.0
        assert rheostat.terminal_world_position(2) == Point(-20, -28)
        assert rheostat.geometry_key() != key


class TestRheostatModes:

    @pytest.mark.parametrize("left, right, slider, expected", [
        (True, True, True, RheostatMode.ALL),
        (True, False, True, RheostatMode.LEFT_SLIDER),
        (False, True, True, RheostatMode.RIGHT_SLIDER),
        (False, False, True, RheostatMode.SLIDER_ONLY),
        (True, True, False, RheostatMode.LEFT_RIGHT),
        (True, False, False, RheostatMode.NONE),
    ])
    def test_detect_mode(self, left, right, slider, expected):
        assert detect_rheostat_mode(left, right, slider) == expected

    def test_mode_is_assigned_on_rebuild(self):
        circuit = Circuit()
        add_component(circuit, "PowerSource", "V1", voltage=10.0)
        add_component(circuit, "Rheostat", "RH1")
        connect_wire(circuit, "w1", ("V1", 0), ("RH1", 0))
        rheostat = circuit.get_component("RH1")
        assert rheostat.connection_mode == RheostatMode.NONE
        assert not circuit.is_component_connected("RH1")
        connect_wire(circuit, "w2", ("RH1", 2), ("V1", 1))
        assert rheostat.connection_mode == RheostatMode.LEFT_SLIDER
        assert circuit.is_component_connected("RH1")


class TestConnectivity:

    def test_half_wired_component_is_disconnected(self, series_circuit):
        add_component(series_circuit, "Resistor", "R9", y=300)
        connect_points(series_circuit, "half", None, (0, 400), a_ref=("R9", 0))
        r9 = series_circuit.get_component("R9")
        connection_map = series_circuit.node_build.terminal_connection_map
        assert r9.nodes[0] >= 0
        assert not compute_component_connected_state(r9, connection_map)
        assert compute_component_connected_state(series_circuit.get_component("R1"), connection_map)

    def test_lookups_hit_until_the_next_rebuild(self, series_circuit):
        cache = series_circuit.connectivity_cache
        before = cache.get_stats()
        assert series_circuit.is_component_connected("R1")
        assert cache.get_stats()["hits"] == before["hits"] + 1
        assert not series_circuit.is_component_connected("missing")

    def test_removed_components_leave_the_cache(self, series_circuit):
        series_circuit.remove_component("R2")
        assert "R2" not in series_circuit.connectivity_cache.entries


class TestTerminalCache:

    def test_wire_edits_reuse_cached_positions(self, series_circuit):
        cache = series_circuit.terminal_cache
        point = cache.positions["R1"][0]
        connect_points(series_circuit, "extra", (900, 900), (950, 900))
        assert cache.positions["R1"][0] is point

    def test_moving_a_component_refreshes_its_positions(self, series_circuit):
        component = series_circuit.get_component("R1")
        component.y = 40
        series_circuit.rebuild_nodes()
        assert terminal(series_circuit, "R1", 0) == Point(170, 40)
        assert series_circuit.get_wire("w1").b == Point(170, 40)

    def test_out_of_range_terminal_is_none(self, series_circuit):
        assert series_circuit.get_terminal_world_position("R1", 3) is None
        assert series_circuit.get_terminal_world_position("missing", 0) is None


class TestEndpointSync:

    def test_bound_endpoints_follow_their_terminals(self, series_circuit):
        series_circuit.get_component("R1").x = 250
        moved = sync_wire_endpoints_to_terminal_refs(series_circuit.components, series_circuit.wires)
        assert moved == 2
        assert series_circuit.get_wire("w1").b == Point(220, 0)
        assert series_circuit.get_wire("w2").a == Point(280, 0)
        assert sync_wire_endpoints_to_terminal_refs(series_circuit.components, series_circuit.wires) == 0

    def test_refs_to_missing_components_are_ignored(self, series_circuit):
        wire = make_wire("ghost", (0, 500), (100, 500), {"componentId": "nope", "terminalIndex": 0})
        series_circuit.wires["ghost"] = wire
        sync_wire_endpoints_to_terminal_refs(series_circuit.components, series_circuit.wires)
        assert wire.a == Point(0, 500)


class TestWireCompactor:

    def _compact(self, *segments, scope=None):
        wires = {wire_id: make_wire(wire_id, a, b) for wire_id, a, b in segments}
        return wires, WireCompactor().compact({}, wires, scope)

    def test_collinear_chain_collapses_to_one_wire(self):
        wires, result = self._compact(
            ("s1", (0, 0), (100, 0)),
            ("s2", (100, 0), (200, 0)),
            ("s3", (200, 0), (300, 0)),
        )
        assert result.changed
        assert set(wires) == {"s1"}
        assert (wires["s1"].a, wires["s1"].b) == (Point(0, 0), Point(300, 0))
        assert result.replacement_by_removed_id == {"s2": "s1", "s3": "s1"}

    def test_corners_and_junctions_are_kept(self):
        wires, result = self._compact(
            ("h", (0, 0), (100, 0)),
            ("v", (100, 0), (100, 100)),
        )
        assert not result.changed
        wires, result = self._compact(
            ("a", (0, 0), (100, 0)),
            ("b", (100, 0), (200, 0)),
            ("c", (100, 0), (100, 100)),
        )
        assert not result.changed
        assert len(wires) == 3

    def test_wire_doubling_back_is_merged(self):
        wires, result = self._compact(
            ("out", (0, 0), (100, 0)),
            ("back", (100, 0), (0, 0)),
        )
        assert result.removed_ids == ("back",)
        assert set(wires) == {"out"}

    def test_zero_length_wires_are_removed(self):
        wires, result = self._compact(("dot", (5, 5), (5, 5)), ("line", (0, 0), (10, 0)))
        assert result.removed_ids == ("dot",)
        assert "dot" not in result.replacement_by_removed_id

    def test_scope_limits_the_merge(self):
        wires, result = self._compact(
            ("s1", (0, 0), (100, 0)),
            ("s2", (100, 0), (200, 0)),
            scope=["unrelated"],
        )
        assert not result.changed
        assert set(wires) == {"s1", "s2"}

    def test_bound_or_terminal_points_are_not_merged(self, series_circuit):
        series_circuit.remove_wire("w2")
        mid = (300, 0)
        connect_points(series_circuit, "left", None, mid, a_ref=("R1", 1))
        connect_points(series_circuit, "right", mid, None, b_ref=("R2", 0))
        series_circuit.get_wire("right").a_ref = series_circuit.get_wire("left").a_ref
        result = WireCompactor().compact(series_circuit.components, series_circuit.wires)
        assert not result.changed
