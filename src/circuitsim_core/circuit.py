# src/circuitsim_core/circuit.py
"""
The `Circuit` aggregate: the public API of the simulation core.

A circuit exclusively owns its components, wires and observation probes, the
topology caches and the solver. One `step()` call performs, in order:

1. a topology rebuild if the wiring or any terminal geometry changed;
2. solver preparation if the topology version moved or the solver was
   explicitly marked dirty;
3. a parameter refresh from a new netlist snapshot;
4. one or more internal solves (AC substeps, or adaptive retries);
5. the history commit and the readout copy-back for every accepted solve.
"""
import logging
import math
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from .analysis.results import WireCurrentInfo
from .analysis.wire_current import WireCurrentAnalyzer
from .cache.keys import create_terminal_geometry_key
from .components.base import Component
from .components.base_enums import ComponentType, RheostatMode, SOURCE_TYPES
from .components.geometry import Point
from .constants import AC_MIN_SUBSTEPS
from .io.serializer import deserialize_document, serialize_circuit
from .probes import ObservationProbe, ProbeType, normalize_probe
from .simulation.adaptive import AdaptiveStepController
from .simulation.config import SimulationSettings
from .simulation.diagnostics import DiagnosticSignals, build_runtime_diagnostics
from .simulation.exceptions import SolverNotAttachedError
from .simulation.netlist import ComponentStamp, Netlist, NetlistBuilder
from .simulation.results import SolveResult
from .simulation.solver import MnaSolver
from .simulation.stamps import is_ideal_voltmeter
from .topology.connectivity import ConnectivityCache, compute_component_connected_state
from .topology.node_builder import NodeBuilder, NodeBuildResult, sync_wire_endpoints_to_terminal_refs
from .topology.terminal_cache import TerminalPositionCache
from .topology.wire_compactor import CompactionResult, WireCompactor
from .validation.topology_validator import TopologyReport, TopologyValidator
from .wire import Wire, make_wire

logger = logging.getLogger(__name__)

_TIME_EPSILON = 1e-15


class Circuit:
    """
    Components, wires and probes plus everything needed to simulate them.

    Construction edits rebuild the electrical nodes immediately. Direct edits
    to a component's placement are picked up at the next `step()`; call
    `rebuild_nodes()` to see them earlier.
    """

    def __init__(
        self,
        settings: Optional[SimulationSettings] = None,
        solver: Optional[MnaSolver] = None,
        name: Optional[str] = None,
        attach_solver: bool = True,
    ):
        self.settings = settings or SimulationSettings()
        self.name = name
        self.components: Dict[str, Component] = {}
        self.wires: Dict[str, Wire] = {}
        self.probes: Dict[str, ObservationProbe] = {}

        if solver is not None:
            self.solver: Optional[MnaSolver] = solver
        else:
            self.solver = MnaSolver(self.settings) if attach_solver else None

        self.node_builder = NodeBuilder()
        self.netlist_builder = NetlistBuilder()
        self.topology_validator = TopologyValidator()
        self.wire_compactor = WireCompactor()
        self.connectivity_cache = ConnectivityCache()
        self.terminal_cache = TerminalPositionCache()
        self.wire_analyzer = WireCurrentAnalyzer(self)
        self.adaptive = AdaptiveStepController(self.settings.min_adaptive_dt, self.settings.max_adaptive_dt)

        self.dt: float = self.settings.dt
        self.sim_time: float = 0.0
        self.is_running: bool = False
        self.topology_version: int = 0
        self.node_count: int = 0
        self.node_build: Optional[NodeBuildResult] = None
        self.last_result: Optional[SolveResult] = None
        self.last_netlist: Optional[Netlist] = None
        self.last_topology_report: Optional[TopologyReport] = None

        self._topology_dirty = True
        self._solver_dirty = True
        self._probe_counter = 0
        self.rebuild_nodes()

    # --- Construction ---

    def add_component(self, component: Component, rebuild: bool = True) -> Component:
        if component.id in self.components:
            logger.warning(f"Component '{component.id}' is being replaced.")
            self.terminal_cache.drop(component.id)
        self.components[component.id] = component
        self._topology_dirty = True
        if rebuild:
            self.rebuild_nodes()
        return component

    def remove_component(self, component_id: str) -> Optional[Component]:
        component = self.components.pop(component_id, None)
        if component is None:
            return None
        self.terminal_cache.drop(component_id)
        self.connectivity_cache.invalidate(component_id)
        self._topology_dirty = True
        self.rebuild_nodes()
        return component

    def add_wire(self, wire: Any, rebuild: bool = True) -> Wire:
        """Adds a `Wire`, or a mapping with `id`, `a`, `b` and optional `aRef`/`bRef`."""
        if not isinstance(wire, Wire):
            wire = make_wire(wire["id"], wire.get("a"), wire.get("b"), wire.get("aRef"), wire.get("bRef"))
        self.wires[wire.id] = wire
        self._topology_dirty = True
        if rebuild:
            self.rebuild_nodes()
        return wire

    def remove_wire(self, wire_id: str) -> Optional[Wire]:
        wire = self.wires.pop(wire_id, None)
        if wire is None:
            return None
        for probe_id in [p.id for p in self.probes.values() if p.target_id == wire_id]:
            del self.probes[probe_id]
        self._topology_dirty = True
        self.rebuild_nodes()
        return wire

    def get_component(self, component_id: str) -> Optional[Component]:
        return self.components.get(component_id)

    def get_wire(self, wire_id: str) -> Optional[Wire]:
        return self.wires.get(wire_id)

    def get_all_components(self) -> List[Component]:
        return list(self.components.values())

    def get_all_wires(self) -> List[Wire]:
        return list(self.wires.values())

    def mark_topology_dirty(self):
        self._topology_dirty = True

    def mark_solver_circuit_dirty(self):
        """Forces solver preparation on the next step without a topology rebuild."""
        self._solver_dirty = True

    def rebuild_nodes(self) -> NodeBuildResult:
        self.terminal_cache.refresh(self.components)
        resolve = self.terminal_cache.get
        sync_wire_endpoints_to_terminal_refs(self.components, self.wires, resolve)
        build = self.node_builder.build(self.components, self.wires, resolve)

        for comp_id, comp in self.components.items():
            comp.nodes = list(build.component_nodes.get(comp_id, (-1,) * comp.terminal_count))
            if comp.component_type == ComponentType.RHEOSTAT:
                comp.connection_mode = build.rheostat_modes.get(comp_id, RheostatMode.NONE)
        for wire_id, wire in self.wires.items():
            wire.node_index = build.wire_nodes.get(wire_id, -1)

        self.node_build = build
        self.node_count = build.node_count
        self.topology_version += 1
        self.connectivity_cache.refresh(self.components, self.topology_version, self._compute_connected)
        self.wire_analyzer.invalidate()
        self._topology_dirty = False
        self._solver_dirty = True
        logger.info(f"Topology version {self.topology_version}: {self.node_count} node(s).")
        return build

    def compact_wires(self, scope_wire_ids=None) -> CompactionResult:
        """Merges redundant wire segments, remapping or dropping their probes."""
        result = self.wire_compactor.compact(self.components, self.wires, scope_wire_ids)
        if not result.changed:
            return result
        for removed_id in result.removed_ids:
            target = result.replacement_by_removed_id.get(removed_id)
            for probe in [p for p in self.probes.values() if p.target_id == removed_id]:
                if target is not None and target in self.wires:
                    probe.target_id = target
                else:
                    del self.probes[probe.id]
        self._topology_dirty = True
        self.rebuild_nodes()
        return result

    def clear(self):
        self.stop_simulation()
        self.components.clear()
        self.wires.clear()
        self.probes.clear()
        self.terminal_cache.clear()
        self.connectivity_cache.clear()
        self.last_result = None
        self.last_netlist = None
        self.last_topology_report = None
        self.sim_time = 0.0
        if self.solver is not None:
            self.solver.system_factorization_cache.clear()
        self.rebuild_nodes()

    # --- Geometry and connectivity ---

    def _geometry_changed(self) -> bool:
        for comp_id, comp in self.components.items():
            if self.terminal_cache.geometry_keys.get(comp_id) != create_terminal_geometry_key(comp):
                return True
        return False

    def get_terminal_world_position(self, component_id: str, terminal_index: int) -> Optional[Point]:
        component = self.components.get(component_id)
        if component is None:
            return None
        return self.terminal_cache.get(component, terminal_index)

    def _compute_connected(self, component: Component) -> bool:
        connection_map = self.node_build.terminal_connection_map if self.node_build else {}
        return compute_component_connected_state(component, connection_map)

    def is_component_connected(self, component_id: str) -> bool:
        return self.connectivity_cache.is_component_connected(
            self.components.get(component_id), self.topology_version, self._compute_connected
        )

    # --- Netlist boundary ---

    def build_netlist(self) -> Netlist:
        if self._topology_dirty:
            self.rebuild_nodes()
        return self.netlist_builder.build(
            self.components,
            self.node_count,
            self.topology_version,
            is_connected=lambda comp: self.is_component_connected(comp.id),
        )

    def get_analysis_netlist(self) -> Netlist:
        """The netlist the latest result was solved from, or a fresh snapshot."""
        if self.last_netlist is not None and self.last_netlist.topology_version == self.topology_version:
            return self.last_netlist
        return self.build_netlist()

    # --- Simulation ---

    def _require_solver(self) -> MnaSolver:
        if self.solver is None:
            raise SolverNotAttachedError()
        return self.solver

    def ensure_solver_prepared(self) -> bool:
        """Prepares the solver if needed. Returns True when preparation ran."""
        solver = self._require_solver()
        if self._topology_dirty or self._geometry_changed():
            self.rebuild_nodes()
        stale = (
            not solver.is_prepared
            or solver.netlist.topology_version != self.topology_version
        )
        if not (self._solver_dirty or stale):
            return False
        netlist = self.build_netlist()
        solver.set_circuit(netlist)
        self.last_netlist = netlist
        self._solver_dirty = False
        return True

    def validate_simulation_topology(self, sim_time: float = 0.0) -> TopologyReport:
        report = self.topology_validator.validate(self.build_netlist(), sim_time)
        self.last_topology_report = report
        return report

    def start_simulation(self) -> TopologyReport:
        """Validates the topology and, if no fatal issue is found, starts a session."""
        solver = self._require_solver()
        report = self.validate_simulation_topology(0.0)
        if not report.ok:
            self.is_running = False
            logger.warning(f"Simulation start blocked: {report.error}")
            return report
        self.sim_time = 0.0
        self.last_result = None
        self.adaptive.reset()
        self.ensure_solver_prepared()
        solver.reset_state()
        for component in self.components.values():
            component.reset_readouts()
        self.is_running = True
        logger.info(f"Simulation started with dt={self.dt:.6g} s.")
        return report

    def stop_simulation(self):
        if self.is_running:
            logger.info(f"Simulation stopped at t={self.sim_time:.6g} s.")
        self.is_running = False

    def get_simulation_substep_count(self) -> int:
        """
        Internal solves per external step. A connected AC source with frequency
        f needs `ceil(dt * f * ac_samples_per_period)` samples, clamped to
        `[2, ac_max_substeps]`; anything else solves once.
        """
        max_frequency = 0.0
        for stamp in self.get_analysis_netlist().components:
            if stamp.type != ComponentType.AC_VOLTAGE_SOURCE or not stamp.is_connected:
                continue
            frequency = stamp.param("frequency", 0.0)
            if isinstance(frequency, (int, float)) and math.isfinite(frequency) and frequency > 0:
                max_frequency = max(max_frequency, float(frequency))
        if max_frequency <= 0:
            return 1
        needed = math.ceil(self.dt * max_frequency * self.settings.ac_samples_per_period)
        return int(min(self.settings.ac_max_substeps, max(AC_MIN_SUBSTEPS, needed)))

    def step(self) -> Optional[SolveResult]:
        """Advances the simulation by one external `dt`."""
        solver = self._require_solver()
        if self.ensure_solver_prepared():
            netlist = self.last_netlist
        else:
            netlist = self.build_netlist()
            solver.load_parameters(netlist)
            self.last_netlist = netlist

        substeps = self.get_simulation_substep_count()
        nominal = self.dt / substeps
        remaining = self.dt
        result: Optional[SolveResult] = None

        while remaining > _TIME_EPSILON:
            if self.settings.enable_adaptive_time_step:
                h = min(self.adaptive.step_size(nominal), remaining)
            else:
                h = min(nominal, remaining)
            result = solver.solve(h, self.sim_time + h)

            if self.settings.enable_adaptive_time_step:
                if not result.valid or not result.meta.converged:
                    self.adaptive.record_failure()
                    break
                self.adaptive.record_success(result.meta.iterations, nominal)
            elif not result.valid:
                break

            solver.update_dynamic_components(result)
            self.sim_time += h
            remaining -= h

        if result is None:
            return None
        result = self._attach_diagnostics(result, netlist)
        if result.valid:
            self._update_readouts(result, netlist)
        self.last_result = result
        return result

    def _attach_diagnostics(self, result: SolveResult, netlist: Netlist) -> SolveResult:
        short_report = self.wire_analyzer.short_circuits.analyze(result)
        signals = DiagnosticSignals(
            topology_report=self.last_topology_report,
            result=result,
            invalid_parameter_issues=netlist.invalid_parameters,
            solver_short_circuit_detected=result.short_circuit_detected,
            shorted_source_ids=short_report.shorted_source_ids,
            shorted_wire_ids=tuple(sorted(short_report.shorted_wire_ids)),
        )
        diagnosed = replace(result, runtime_diagnostics=build_runtime_diagnostics(signals))
        self.wire_analyzer.rebind_result(result, diagnosed)
        return diagnosed

    # --- Readouts ---

    @staticmethod
    def _node_voltage(result: SolveResult, node: int) -> float:
        return result.voltage_at(node) if node is not None and node >= 0 else 0.0

    def _rheostat_voltage(self, stamp: ComponentStamp, result: SolveResult) -> float:
        v_left = self._node_voltage(result, stamp.node(0))
        v_right = self._node_voltage(result, stamp.node(1))
        v_slider = self._node_voltage(result, stamp.node(2))
        mode = stamp.connection_mode
        if mode == RheostatMode.LEFT_SLIDER.value:
            return v_left - v_slider
        if mode == RheostatMode.RIGHT_SLIDER.value:
            return v_slider - v_right
        if mode in (RheostatMode.LEFT_RIGHT.value, RheostatMode.ALL.value):
            return v_left - v_right
        return 0.0

    def _stamp_voltage(self, stamp: ComponentStamp, result: SolveResult) -> float:
        if stamp.type == ComponentType.RHEOSTAT:
            return self._rheostat_voltage(stamp, result)
        if stamp.type == ComponentType.GROUND or stamp.node(0) < 0 or stamp.node(1) < 0:
            return 0.0
        return self._node_voltage(result, stamp.node(0)) - self._node_voltage(result, stamp.node(1))

    def _update_readouts(self, result: SolveResult, netlist: Netlist):
        shorted = self.solver.shorted_ids if self.solver is not None else set()
        for stamp in netlist.components:
            comp = self.components.get(stamp.id)
            if comp is None:
                continue
            if stamp.type in SOURCE_TYPES:
                comp.instantaneous_voltage = result.source_voltages.get(stamp.id, 0.0)
            if not stamp.is_connected or stamp.id in shorted:
                comp.current_value = 0.0
                comp.voltage_value = 0.0
                comp.power_value = 0.0
                comp.brightness = 0.0
                continue

            current = result.current_of(stamp.id)
            if stamp.type == ComponentType.VOLTMETER and is_ideal_voltmeter(stamp):
                current = 0.0
            voltage = abs(self._stamp_voltage(stamp, result))
            comp.current_value = current
            comp.voltage_value = voltage
            comp.power_value = abs(voltage * current)

            if stamp.type == ComponentType.BULB:
                rated = stamp.param("rated_power", 0.0)
                comp.brightness = min(1.0, comp.power_value / rated) if rated > 0 else 0.0
            elif stamp.type == ComponentType.LED:
                rated = stamp.param("rated_current", 0.0)
                comp.brightness = min(1.0, max(0.0, current) / rated) if rated > 0 else 0.0

    # --- Query API ---

    def _result_or_last(self, result: Optional[SolveResult]) -> Optional[SolveResult]:
        return result if result is not None else self.last_result

    def get_node_voltage(self, node_index: int, result: Optional[SolveResult] = None) -> float:
        result = self._result_or_last(result)
        if result is None or not result.valid:
            return 0.0
        return result.voltage_at(node_index)

    def get_component_voltage(self, component_id: str, result: Optional[SolveResult] = None) -> float:
        """Signed voltage across the component's active terminals."""
        result = self._result_or_last(result)
        if result is None or not result.valid:
            return 0.0
        stamp = self.get_analysis_netlist().get_component(component_id)
        if stamp is None:
            return 0.0
        return self._stamp_voltage(stamp, result)

    def get_branch_current(self, component_id: str, result: Optional[SolveResult] = None) -> float:
        result = self._result_or_last(result)
        if result is None or not result.valid:
            return 0.0
        return result.current_of(component_id)

    def is_wire_in_short_circuit(self, wire_id: str, result: Optional[SolveResult] = None) -> bool:
        if wire_id not in self.wires:
            return False
        report = self.wire_analyzer.short_circuits.analyze(self._result_or_last(result))
        return wire_id in report.shorted_wire_ids

    def get_wire_current_info(self, wire_id: str, result: Optional[SolveResult] = None) -> WireCurrentInfo:
        return self.wire_analyzer.get_wire_current_info(self.wires.get(wire_id), self._result_or_last(result))

    # --- Observation probes ---

    def add_observation_probe(self, probe: Any = None, **kwargs) -> Optional[ObservationProbe]:
        """
        Adds a probe given as an `ObservationProbe`, a persisted mapping, or the
        keywords `type`, `target_id` (or `wireId`), `label` and `id`. Returns
        None when the target wire does not exist.
        """
        if probe is None:
            data = dict(kwargs)
            if "id" not in data:
                self._probe_counter += 1
                data["id"] = f"probe_{self._probe_counter}"
            probe = data
        probe = normalize_probe(probe)
        if probe is None:
            raise ValueError("Observation probe needs an id, a type and a target wire.")
        if probe.target_id not in self.wires:
            logger.warning(f"Probe '{probe.id}' targets unknown wire '{probe.target_id}'; not added.")
            return None
        self.probes[probe.id] = probe
        return probe

    def get_observation_probe(self, probe_id: str) -> Optional[ObservationProbe]:
        return self.probes.get(probe_id)

    def remove_observation_probe(self, probe_id: str) -> Optional[ObservationProbe]:
        return self.probes.pop(probe_id, None)

    def get_all_observation_probes(self) -> List[ObservationProbe]:
        return list(self.probes.values())

    def read_observation_probe(self, probe_id: str, result: Optional[SolveResult] = None) -> Optional[float]:
        probe = self.probes.get(probe_id)
        wire = self.wires.get(probe.target_id) if probe else None
        if wire is None:
            return None
        if probe.type == ProbeType.NODE_VOLTAGE:
            return self.get_node_voltage(wire.node_index, result) if wire.node_index >= 0 else 0.0
        return self.get_wire_current_info(wire.id, result).current

    # --- Persistence ---

    def to_json(self) -> Dict[str, Any]:
        return serialize_circuit(self)

    @classmethod
    def from_json(
        cls,
        data: Mapping[str, Any],
        settings: Optional[SimulationSettings] = None,
        validate: bool = True,
    ) -> "Circuit":
        document = deserialize_document(data, validate=validate)
        circuit = cls(settings=settings, name=document.meta.get("name"))
        for component in document.components:
            circuit.add_component(component, rebuild=False)
        for wire in document.wires:
            circuit.add_wire(wire, rebuild=False)
        circuit.rebuild_nodes()
        for probe in document.probes:
            circuit.add_observation_probe(probe)
        return circuit

    def __repr__(self) -> str:
        return (f"Circuit(components={len(self.components)}, wires={len(self.wires)}, "
                f"nodes={self.node_count}, version={self.topology_version})")
