# src/circuitsim_core/simulation/solver.py
import logging
import math
from dataclasses import replace
from types import MappingProxyType
from typing import Dict, List, Optional, Set, Tuple, Union

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as splinalg

from ..cache.keys import create_factorization_key
from ..cache.service import FactorizationCache
from ..components.base_enums import ComponentType, IntegrationMethod, JUNCTION_TYPES, SOURCE_TYPES
from ..constants import (
    IDEAL_SOURCE_RESISTANCE_THRESHOLD,
    SHORT_CURRENT_RATIO,
    SHORT_TERMINAL_VOLTAGE_ABS,
    SHORT_TERMINAL_VOLTAGE_REL,
    TERMINAL_CURRENT_EPSILON,
)
from .config import SimulationSettings
from .exceptions import SingularMatrixError, SolverStateError
from .integration import DynamicIntegrator
from .junction import JunctionParameters, limit_junction_step, linearize_junction_at, resolve_junction_parameters
from .mna import MnaSystemBuilder
from .netlist import ComponentStamp, Netlist
from .results import INVALID_FACTORIZATION, INVALID_PARAMS, INVALID_SOLVE, SolveMeta, SolveResult
from .stamps import (
    StampContext,
    get_current_handler,
    get_stamp_handler,
    needs_voltage_row,
    source_instant_voltage,
    source_internal_resistance,
    stampable,
)
from .state import SimulationState

logger = logging.getLogger(__name__)


def factorize_mna_matrix(matrix: sp.csc_matrix, sim_time: Optional[float] = None) -> splinalg.SuperLU:
    """
    Factorizes the reduced MNA matrix using sparse LU decomposition.

    Raises:
        SingularMatrixError: A diagnosable error if the matrix is singular.
        TypeError: If input is not a sparse matrix.
    """
    if not sp.issparse(matrix):
        raise TypeError("Input matrix must be a SciPy sparse matrix.")
    if matrix.shape[0] != matrix.shape[1]:
        raise ValueError("Reduced MNA matrix must be square.")

    logger.debug(f"Factorizing MNA matrix ({matrix.shape})...")
    try:
        lu = splinalg.splu(matrix.tocsc())
        logger.debug("LU factorization successful.")
        return lu
    except RuntimeError as e:
        logger.error(f"LU factorization failed, matrix appears singular: {e}")
        raise SingularMatrixError(details=str(e), sim_time=sim_time) from e


def solve_mna_system(lu_factorization: splinalg.SuperLU, rhs: np.ndarray, sim_time: Optional[float] = None) -> np.ndarray:
    """Solves the reduced MNA system using a pre-computed LU factorization."""
    if not isinstance(lu_factorization, splinalg.SuperLU):
        raise TypeError("lu_factorization must be a SuperLU object from splinalg.splu.")

    solution = lu_factorization.solve(rhs)
    if np.any(np.isnan(solution)) or np.any(np.isinf(solution)):
        logger.error("NaN or Inf detected in MNA solution vector.")
        raise SingularMatrixError(details="MNA system solve resulted in NaN/Inf values.", sim_time=sim_time)
    return solution


class MnaSolver:
    """
    Modified Nodal Analysis solver for one prepared netlist.

    `set_circuit` prepares the solver for a topology, `load_parameters`
    refreshes values for that same topology, `solve` produces a `SolveResult`
    and `update_dynamic_components` commits the accepted step as history.
    """

    def __init__(self, settings: Optional[SimulationSettings] = None):
        self.settings = settings or SimulationSettings()
        self.simulation_state = SimulationState()
        self.integrator = DynamicIntegrator(self.simulation_state)
        self.system_factorization_cache = FactorizationCache()

        self.netlist: Optional[Netlist] = None
        self.node_count: int = 0
        self.vs_index: Dict[str, int] = {}
        self.shorted_ids: Set[str] = set()
        self.short_circuit_detected: bool = False
        self.preparation_count: int = 0
        self.last_result: Optional[SolveResult] = None
        self._junction_guesses: Dict[str, Tuple[float, float]] = {}

    @property
    def is_prepared(self) -> bool:
        return self.netlist is not None

    @property
    def has_connected_switch(self) -> bool:
        return self.integrator.has_connected_switch

    # --- Preparation ---

    def _validated(self, netlist: Netlist) -> Netlist:
        """Replaces out-of-range node indices with -1."""
        count = netlist.node_count
        stamps: List[ComponentStamp] = []
        for stamp in netlist.components:
            nodes = tuple(n if isinstance(n, int) and 0 <= n < count else -1 for n in stamp.nodes)
            if nodes != stamp.nodes:
                logger.warning(f"Component '{stamp.id}' references unknown nodes {stamp.nodes}; treating them as unconnected.")
                stamp = replace(stamp, nodes=nodes)
            stamps.append(stamp)
        return replace(netlist, components=tuple(stamps))

    def _allocate_voltage_rows(self):
        self.vs_index = {}
        for stamp in self.netlist.components:
            if stamp.id in self.shorted_ids or not stampable(stamp):
                continue
            if needs_voltage_row(stamp):
                self.vs_index[stamp.id] = len(self.vs_index)

    def _scan_topology(self):
        self.shorted_ids = set()
        self.short_circuit_detected = False
        connected_switch = False
        for stamp in self.netlist.components:
            if stamp.type not in (ComponentType.GROUND, ComponentType.RHEOSTAT):
                n1, n2 = stamp.node(0), stamp.node(1)
                if n1 >= 0 and n1 == n2:
                    self.shorted_ids.add(stamp.id)
                    if stamp.type in SOURCE_TYPES:
                        self.short_circuit_detected = True
                        logger.warning(f"Source '{stamp.id}' has both terminals on node {n1}.")
            if stamp.type == ComponentType.SWITCH and stamp.node(0) >= 0 and stamp.node(1) >= 0:
                connected_switch = True
        self.integrator.has_connected_switch = connected_switch

    def set_circuit(self, netlist: Netlist):
        """Prepares the solver for the netlist's topology."""
        self.netlist = self._validated(netlist)
        self.node_count = self.netlist.node_count
        self._scan_topology()
        self._allocate_voltage_rows()
        self.simulation_state.sync_with(self.netlist.components)
        live = {stamp.id for stamp in self.netlist.components}
        self._junction_guesses = {k: v for k, v in self._junction_guesses.items() if k in live}
        self.preparation_count += 1
        logger.info(
            f"Solver prepared: {self.node_count} node(s), {len(self.netlist.components)} component(s), "
            f"{len(self.vs_index)} auxiliary row(s), topology version {self.netlist.topology_version}."
        )

    def load_parameters(self, netlist: Netlist):
        """Refreshes parameter values for the prepared topology."""
        if self.netlist is None:
            raise SolverStateError("load_parameters() called before set_circuit().")
        if netlist.topology_version != self.netlist.topology_version:
            raise SolverStateError(
                f"Netlist topology version {netlist.topology_version} does not match the "
                f"prepared version {self.netlist.topology_version}."
            )
        self.netlist = self._validated(netlist)
        self._scan_topology()
        self._allocate_voltage_rows()

    def reset_state(self):
        """Returns every reactive and junction element to its initial condition."""
        self.simulation_state.clear()
        self._junction_guesses.clear()
        if self.netlist is not None:
            self.simulation_state.reset_for_components(self.netlist.components)

    def resolve_dynamic_integration_method(self, component_or_id: Union[str, ComponentStamp, object]) -> IntegrationMethod:
        component_id = component_or_id if isinstance(component_or_id, str) else getattr(component_or_id, "id", None)
        stamp = self.netlist.get_component(component_id) if self.netlist is not None and component_id else None
        return self.integrator.resolve_method(stamp)

    # --- Solving ---

    def _invalid_result(self, reason: str, dt: float, sim_time: float, iterations: int, max_iterations: int,
                        source_voltages: Dict[str, float]) -> SolveResult:
        return SolveResult(
            valid=False,
            voltages=tuple(0.0 for _ in range(self.node_count)),
            currents=MappingProxyType({stamp.id: 0.0 for stamp in self.netlist.components}),
            meta=SolveMeta(converged=False, iterations=iterations, max_iterations=max_iterations, invalid_reason=reason),
            short_circuit_detected=self.short_circuit_detected,
            source_voltages=MappingProxyType(dict(source_voltages)),
            sim_time=sim_time,
            dt=dt,
        )

    def _shorted_current(self, stamp: ComponentStamp, source_voltages: Dict[str, float]) -> float:
        """Bounded current of a structurally shorted Norton source."""
        if stamp.type not in SOURCE_TYPES:
            return 0.0
        r = source_internal_resistance(stamp)
        if r <= IDEAL_SOURCE_RESISTANCE_THRESHOLD:
            return 0.0
        return source_voltages.get(stamp.id, 0.0) / r

    def _assemble(self, active: List[ComponentStamp], ctx: StampContext) -> MnaSystemBuilder:
        system = MnaSystemBuilder(self.node_count, len(self.vs_index))
        system.stamp_gmin(self.settings.gmin)
        for stamp in active:
            handler = get_stamp_handler(stamp.type)
            if handler is not None:
                handler(system, stamp, ctx)
        return system

    def _factorization_for(self, matrix: sp.csc_matrix, sim_time: float) -> splinalg.SuperLU:
        key = create_factorization_key(self.netlist.topology_version, matrix)
        lu = self.system_factorization_cache.get(key)
        if lu is None:
            lu = factorize_mna_matrix(matrix, sim_time)
            self.system_factorization_cache.put(key, lu)
        return lu

    def solve(self, dt: float, sim_time: float = 0.0) -> SolveResult:
        if self.netlist is None:
            raise SolverStateError("solve() called before set_circuit().")
        if not (isinstance(dt, (int, float)) and math.isfinite(dt) and dt > 0):
            raise ValueError(f"Time step must be a positive finite number, got {dt!r}.")
        dt = float(dt)
        sim_time = float(sim_time)

        stamps = self.netlist.components
        source_voltages = {
            stamp.id: source_instant_voltage(stamp, sim_time)
            for stamp in stamps if stamp.type in SOURCE_TYPES
        }
        junctions = [
            stamp for stamp in stamps
            if stamp.type in JUNCTION_TYPES and stamp.id not in self.shorted_ids and stampable(stamp)
        ]
        max_iterations = self.settings.newton_max_iterations if junctions else 1

        if self.settings.reject_invalid_parameters and self.netlist.invalid_parameters:
            logger.warning(f"Solve rejected: {len(self.netlist.invalid_parameters)} invalid parameter(s).")
            return self._invalid_result(INVALID_PARAMS, dt, sim_time, 0, max_iterations, source_voltages)

        if self.node_count < 2:
            currents = {stamp.id: 0.0 for stamp in stamps}
            for stamp in stamps:
                if stamp.id in self.shorted_ids:
                    currents[stamp.id] = self._shorted_current(stamp, source_voltages)
            result = SolveResult(
                valid=True,
                voltages=tuple(0.0 for _ in range(self.node_count)),
                currents=MappingProxyType(currents),
                meta=SolveMeta(converged=True, iterations=1, max_iterations=max_iterations),
                short_circuit_detected=self.short_circuit_detected,
                source_voltages=MappingProxyType(source_voltages),
                shorted_source_ids=tuple(s.id for s in stamps if s.id in self.shorted_ids and s.type in SOURCE_TYPES),
                sim_time=sim_time,
                dt=dt,
            )
            self.last_result = result
            return result

        active = [stamp for stamp in stamps if stamp.id not in self.shorted_ids and stampable(stamp)]
        ctx = StampContext(dt=dt, sim_time=sim_time, integrator=self.integrator,
                           vs_index=self.vs_index, shorted_ids=self.shorted_ids)
        junction_params: Dict[str, JunctionParameters] = {
            stamp.id: resolve_junction_parameters(stamp.type, stamp.params) for stamp in junctions
        }
        guesses: Dict[str, Tuple[float, float]] = {}
        for stamp in junctions:
            entry = self.simulation_state.get(stamp.id)
            guesses[stamp.id] = self._junction_guesses.get(
                stamp.id, (entry.junction_voltage, entry.junction_current) if entry else (0.0, 0.0)
            )

        converged = False
        iterations = 0
        x = None
        system = None
        while iterations < max_iterations:
            iterations += 1
            ctx.junctions = {
                stamp.id: linearize_junction_at(guesses[stamp.id][0], junction_params[stamp.id], guesses[stamp.id][1])
                for stamp in junctions
            }
            system = self._assemble(active, ctx)
            matrix = system.to_csc()
            try:
                lu = self._factorization_for(matrix, sim_time)
            except SingularMatrixError as e:
                logger.error(f"Solve at t={sim_time:.6g} s failed: {e}")
                return self._invalid_result(INVALID_FACTORIZATION, dt, sim_time, iterations, max_iterations, source_voltages)
            try:
                x = solve_mna_system(lu, system.rhs, sim_time)
            except SingularMatrixError as e:
                logger.error(f"Solve at t={sim_time:.6g} s failed: {e}")
                return self._invalid_result(INVALID_SOLVE, dt, sim_time, iterations, max_iterations, source_voltages)

            if not junctions:
                converged = True
                break

            node_v = np.concatenate(([0.0], x[:system.node_rows]))
            max_delta = 0.0
            next_guesses = {}
            for stamp in junctions:
                v_old, _ = guesses[stamp.id]
                v_new = float(node_v[stamp.nodes[0]] - node_v[stamp.nodes[1]])
                limited = limit_junction_step(v_new, v_old, junction_params[stamp.id])
                max_delta = max(max_delta, abs(limited - v_old))
                next_guesses[stamp.id] = (limited, ctx.junctions[stamp.id].current)
            logger.debug(f"Newton iteration {iterations}: max junction update {max_delta:.3e} V")
            if max_delta < self.settings.newton_voltage_tolerance:
                converged = True
                break
            guesses = next_guesses

        if not converged:
            logger.warning(f"Newton iteration did not converge within {max_iterations} iterations at t={sim_time:.6g} s.")

        voltages = tuple(float(v) for v in np.concatenate(([0.0], x[:system.node_rows])))
        ctx.source_voltages.update(source_voltages)
        currents: Dict[str, float] = {}
        for stamp in stamps:
            if stamp.id in self.shorted_ids:
                currents[stamp.id] = self._shorted_current(stamp, source_voltages)
                continue
            if not stampable(stamp):
                currents[stamp.id] = 0.0
                continue
            handler = get_current_handler(stamp.type)
            current = handler(stamp, voltages, x, system, ctx) if handler else 0.0
            if not math.isfinite(current) or abs(current) < TERMINAL_CURRENT_EPSILON:
                current = 0.0
            currents[stamp.id] = current

        shorted_sources = [s.id for s in stamps if s.id in self.shorted_ids and s.type in SOURCE_TYPES]
        for stamp in stamps:
            if stamp.type in SOURCE_TYPES and stamp.id not in self.shorted_ids and stampable(stamp):
                if self._is_runtime_short(stamp, voltages, currents[stamp.id], source_voltages[stamp.id]):
                    shorted_sources.append(stamp.id)

        for stamp in junctions:
            self._junction_guesses[stamp.id] = guesses[stamp.id]

        result = SolveResult(
            valid=True,
            voltages=voltages,
            currents=MappingProxyType(currents),
            meta=SolveMeta(converged=converged, iterations=iterations, max_iterations=max_iterations),
            short_circuit_detected=bool(shorted_sources) or self.short_circuit_detected,
            source_voltages=MappingProxyType(source_voltages),
            shorted_source_ids=tuple(shorted_sources),
            sim_time=sim_time,
            dt=dt,
        )
        self.last_result = result
        return result

    @staticmethod
    def _is_runtime_short(stamp: ComponentStamp, voltages, current: float, emf: float) -> bool:
        r = source_internal_resistance(stamp)
        if r <= IDEAL_SOURCE_RESISTANCE_THRESHOLD:
            return False
        bounded = abs(emf) / r
        if bounded <= TERMINAL_CURRENT_EPSILON:
            return False
        terminal_voltage = abs(voltages[stamp.nodes[0]] - voltages[stamp.nodes[1]])
        return (abs(current) >= SHORT_CURRENT_RATIO * bounded
                and terminal_voltage <= max(SHORT_TERMINAL_VOLTAGE_ABS, SHORT_TERMINAL_VOLTAGE_REL * abs(emf)))

    # --- History ---

    def update_dynamic_components(self, result: SolveResult):
        """Commits an accepted result as history for the next step."""
        if self.netlist is None or result is None or not result.valid:
            return
        stamps = self.netlist.components
        self.integrator.commit_all(stamps, result.voltages, result.currents, result.dt)
        for stamp in stamps:
            if stamp.type not in JUNCTION_TYPES:
                continue
            entry = self.simulation_state.get(stamp.id)
            if entry is None or stamp.node(0) < 0 or stamp.node(1) < 0:
                continue
            voltage = result.voltages[stamp.nodes[0]] - result.voltages[stamp.nodes[1]]
            current = result.currents.get(stamp.id, 0.0)
            entry.junction_voltage = voltage
            entry.junction_current = current
            entry.conducting = current > TERMINAL_CURRENT_EPSILON and voltage > 0
            self._junction_guesses[stamp.id] = (voltage, current)
