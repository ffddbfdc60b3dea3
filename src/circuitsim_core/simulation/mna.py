# src/circuitsim_core/simulation/mna.py

import logging
from typing import List, Optional

import numpy as np
import scipy.sparse as sp

logger = logging.getLogger(__name__)


class MnaSystemBuilder:
    """
    Accumulates MNA stamps for one solve and produces `A x = b`.

    Node 0 is the reference: its row and column are removed, so node `n > 0`
    maps to row `n - 1`. Auxiliary current rows for ideal voltage constraints
    follow the node rows, row `(node_count - 1) + vs_index`. Entries are
    collected as COO triplets; duplicates are summed on conversion.
    """

    def __init__(self, node_count: int, vs_count: int = 0):
        self.node_count = int(node_count)
        self.vs_count = int(vs_count)
        self.node_rows = max(0, self.node_count - 1)
        self.size = self.node_rows + self.vs_count
        self._rows: List[int] = []
        self._cols: List[int] = []
        self._vals: List[float] = []
        self.rhs = np.zeros(self.size, dtype=float)

    def node_row(self, node: int) -> Optional[int]:
        if node is None or node <= 0 or node >= self.node_count:
            return None
        return node - 1

    def aux_row(self, vs_index: int) -> int:
        return self.node_rows + vs_index

    def add_entry(self, row: Optional[int], col: Optional[int], value: float):
        if row is None or col is None or value == 0.0:
            return
        self._rows.append(row)
        self._cols.append(col)
        self._vals.append(float(value))

    def add_rhs(self, row: Optional[int], value: float):
        if row is None:
            return
        self.rhs[row] += value

    def stamp_conductance(self, n1: int, n2: int, conductance: float):
        i1, i2 = self.node_row(n1), self.node_row(n2)
        self.add_entry(i1, i1, conductance)
        self.add_entry(i2, i2, conductance)
        self.add_entry(i1, i2, -conductance)
        self.add_entry(i2, i1, -conductance)

    def stamp_resistance(self, n1: int, n2: int, resistance: float):
        self.stamp_conductance(n1, n2, 1.0 / resistance)

    def stamp_current_source(self, from_node: int, to_node: int, current: float):
        """Current `current` flows through the element from `from_node` to `to_node`."""
        self.add_rhs(self.node_row(from_node), -current)
        self.add_rhs(self.node_row(to_node), current)

    def stamp_voltage_source(self, n1: int, n2: int, voltage: float, vs_index: int):
        """Constrains `v(n1) - v(n2) = voltage` with an auxiliary current unknown."""
        k = self.aux_row(vs_index)
        i1, i2 = self.node_row(n1), self.node_row(n2)
        self.add_entry(k, i1, 1.0)
        self.add_entry(k, i2, -1.0)
        self.add_entry(i1, k, 1.0)
        self.add_entry(i2, k, -1.0)
        self.rhs[k] += voltage

    def stamp_gmin(self, gmin: float):
        for row in range(self.node_rows):
            self.add_entry(row, row, gmin)

    def to_csc(self) -> sp.csc_matrix:
        matrix = sp.coo_matrix(
            (np.asarray(self._vals, dtype=float), (np.asarray(self._rows, dtype=np.int64), np.asarray(self._cols, dtype=np.int64))),
            shape=(self.size, self.size),
        ).tocsc()
        matrix.sum_duplicates()
        matrix.sort_indices()
        logger.debug(f"Assembled MNA matrix {matrix.shape} with {matrix.nnz} non-zeros.")
        return matrix
