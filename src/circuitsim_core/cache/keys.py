# src/circuitsim_core/cache/keys.py
"""
Centralizes the construction of cache keys.

Every key is a tuple that starts with a namespace string so keys of different
caches can never collide.
"""
from typing import Tuple

import scipy.sparse as sp

from ..components.base import Component


def create_terminal_geometry_key(component: Component) -> Tuple:
    """
    Key of everything a component's terminal world positions depend on:
    type, placement, rotation, terminal extensions and type-specific geometry
    such as the rheostat slider position.
    """
    return ("terminal_geometry", component.type) + component.geometry_key()


def create_factorization_key(topology_version: int, matrix: sp.spmatrix) -> Tuple:
    """
    Key of an LU factorization: the topology version plus an exact fingerprint
    of the CSC matrix structure and values. Any stamp value change, including
    an integration-method flip or a Newton relinearization, changes the key.
    """
    csc = sp.csc_matrix(matrix)
    csc.sort_indices()
    return (
        "mna_lu",
        int(topology_version),
        csc.shape,
        csc.indptr.tobytes(),
        csc.indices.tobytes(),
        csc.data.tobytes(),
    )
