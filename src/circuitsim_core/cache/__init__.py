# src/circuitsim_core/cache/__init__.py
"""
Exposes the public interface of the cache package.
"""
from .service import VersionedValue, VersionedCache, FactorizationCache
from .keys import create_factorization_key, create_terminal_geometry_key

__all__ = [
    "VersionedValue",
    "VersionedCache",
    "FactorizationCache",
    "create_factorization_key",
    "create_terminal_geometry_key",
]
