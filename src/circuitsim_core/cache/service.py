# src/circuitsim_core/cache/service.py
"""
Caching services used by the circuit and the solver.

Entries are invalidated only by comparing a recorded version or key against the
current one; nothing is evicted by time or by an external observer.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Hashable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class VersionedValue(Generic[T]):
    """A cached value together with the topology version it was computed against."""
    value: T
    computed_at_version: int


class VersionedCache:
    """
    A keyed cache whose entries are valid only for the version they were stored
    with. A lookup with a different version counts as a miss.
    """

    def __init__(self, name: str = "versioned"):
        self.name = name
        self.entries: Dict[Hashable, VersionedValue] = {}
        self.clear_stats()
        logger.debug(f"VersionedCache '{name}' created.")

    def get(self, key: Hashable, version: int) -> Optional[VersionedValue]:
        """Returns the entry for `key` if it was computed at `version`, else None."""
        entry = self.entries.get(key)
        if entry is not None and entry.computed_at_version == version:
            self._stats['hits'] += 1
            logger.debug(f"Cache HIT in '{self.name}' for key {key!r} at version {version}.")
            return entry
        self._stats['misses'] += 1
        logger.debug(f"Cache MISS in '{self.name}' for key {key!r} at version {version}.")
        return None

    def put(self, key: Hashable, value: Any, version: int) -> VersionedValue:
        entry = VersionedValue(value=value, computed_at_version=version)
        self.entries[key] = entry
        return entry

    def invalidate(self, key: Hashable):
        self.entries.pop(key, None)

    def clear(self):
        self.entries.clear()

    def get_stats(self) -> Dict[str, int]:
        """Returns a copy of the cache hit/miss statistics."""
        return self._stats.copy()

    def clear_stats(self):
        self._stats = {'hits': 0, 'misses': 0}


class FactorizationCache:
    """
    Single-slot memo of the most recent LU factorization of the MNA matrix.

    A lookup hits only when the requested key equals the stored key exactly, in
    which case the identical factorization object is returned.
    """

    def __init__(self):
        self.key: Optional[Tuple] = None
        self.factorization: Any = None
        self.clear_stats()

    def get(self, key: Tuple) -> Any:
        if self.factorization is not None and self.key == key:
            self._stats['hits'] += 1
            logger.debug(f"Factorization cache HIT for key {str(key)[:80]}...")
            return self.factorization
        self._stats['misses'] += 1
        logger.debug(f"Factorization cache MISS for key {str(key)[:80]}...")
        return None

    def put(self, key: Tuple, factorization: Any):
        self.key = key
        self.factorization = factorization

    def clear(self):
        self.key = None
        self.factorization = None

    def get_stats(self) -> Dict[str, int]:
        return self._stats.copy()

    def clear_stats(self):
        self._stats = {'hits': 0, 'misses': 0}
