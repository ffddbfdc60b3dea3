# tests/circuit_helpers.py
"""
Shared builders for circuit tests.

Components are placed left to right, 200 px apart, so terminals of different
parts never coincide by accident. Wires are bound to terminal references and
follow their terminals on every rebuild.
"""
from typing import Any, Optional, Tuple

from circuitsim_core import Circuit, SimulationSettings, create_component, make_wire
from circuitsim_core.components.geometry import Point

COMPONENT_SPACING = 200


def add_component(circuit: Circuit, comp_type: str, comp_id: str, x: Optional[float] = None, y: float = 0,
                  rotation: float = 0, **properties: Any):
    """Creates a component with the given properties and adds it to `circuit`."""
    if x is None:
        x = COMPONENT_SPACING * len(circuit.components)
    component = create_component(comp_type, comp_id, x=x, y=y, rotation=rotation, properties=properties)
    return circuit.add_component(component)


def terminal(circuit: Circuit, comp_id: str, index: int) -> Point:
    return circuit.get_terminal_world_position(comp_id, index)


def connect_wire(circuit: Circuit, wire_id: str, a: Tuple[str, int], b: Tuple[str, int]):
    """Adds a wire bound at both ends, e.g. `connect_wire(c, "w1", ("V1", 0), ("R1", 0))`."""
    a_point, b_point = terminal(circuit, *a), terminal(circuit, *b)
    return circuit.add_wire(make_wire(
        wire_id, a_point, b_point,
        {"componentId": a[0], "terminalIndex": a[1]},
        {"componentId": b[0], "terminalIndex": b[1]},
    ))


def connect_points(circuit: Circuit, wire_id: str, a, b, a_ref: Optional[Tuple[str, int]] = None,
                   b_ref: Optional[Tuple[str, int]] = None):
    """Adds a wire between free points, optionally bound at either end."""
    if a_ref is not None:
        a = terminal(circuit, *a_ref)
    if b_ref is not None:
        b = terminal(circuit, *b_ref)
    return circuit.add_wire(make_wire(
        wire_id, a, b,
        {"componentId": a_ref[0], "terminalIndex": a_ref[1]} if a_ref else None,
        {"componentId": b_ref[0], "terminalIndex": b_ref[1]} if b_ref else None,
    ))


def solve_circuit(circuit: Circuit, steps: int = 1):
    """Starts a session and runs `steps` external steps. Returns the last result."""
    report = circuit.start_simulation()
    assert report.ok, report.error
    result = None
    for _ in range(steps):
        result = circuit.step()
    return result


def build_series_circuit(voltage: float = 12.0, internal_resistance: float = 0.0,
                         resistances=(100.0, 100.0), settings: Optional[SimulationSettings] = None) -> Circuit:
    """Source V1 driving resistors R1..Rn in one loop, wired w1..w(n+1) in current order."""
    circuit = Circuit(settings=settings)
    add_component(circuit, "PowerSource", "V1", voltage=voltage, internal_resistance=internal_resistance)
    ids = []
    for i, resistance in enumerate(resistances, start=1):
        add_component(circuit, "Resistor", f"R{i}", resistance=resistance)
        ids.append(f"R{i}")
    chain = [("V1", 0)] + [end for rid in ids for end in ((rid, 0), (rid, 1))] + [("V1", 1)]
    for n, (a, b) in enumerate(zip(chain[::2], chain[1::2]), start=1):
        connect_wire(circuit, f"w{n}", a, b)
    return circuit


def build_rc_circuit(voltage: float = 10.0, resistance: float = 100.0, capacitance: float = 1e-3,
                     integration_method: str = "auto", settings: Optional[SimulationSettings] = None) -> Circuit:
    """Ideal source V1 charging C1 through R1."""
    circuit = Circuit(settings=settings)
    add_component(circuit, "PowerSource", "V1", voltage=voltage, internal_resistance=0)
    add_component(circuit, "Resistor", "R1", resistance=resistance)
    add_component(circuit, "Capacitor", "C1", capacitance=capacitance, integration_method=integration_method)
    connect_wire(circuit, "w1", ("V1", 0), ("R1", 0))
    connect_wire(circuit, "w2", ("R1", 1), ("C1", 0))
    connect_wire(circuit, "w3", ("C1", 1), ("V1", 1))
    return circuit
