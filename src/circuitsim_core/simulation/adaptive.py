# src/circuitsim_core/simulation/adaptive.py
import logging
from collections import deque
from typing import Deque, Optional

from ..constants import (
    ADAPTIVE_EASY_ITERATIONS,
    ADAPTIVE_GROWTH_FACTOR,
    ADAPTIVE_GROWTH_WINDOW,
    DEFAULT_MAX_ADAPTIVE_DT,
    DEFAULT_MIN_ADAPTIVE_DT,
)

logger = logging.getLogger(__name__)


class AdaptiveStepController:
    """
    Scalar feedback loop over the internal step size.

    A failed or non-converged solve halves `current_dt` (floored at `min_dt`).
    A full window of easy solves grows it by `growth_factor`, capped at
    `min(max_dt, requested_dt)`. Only `current_dt` and the recent iteration
    counts are kept.
    """

    def __init__(
        self,
        min_dt: float = DEFAULT_MIN_ADAPTIVE_DT,
        max_dt: float = DEFAULT_MAX_ADAPTIVE_DT,
        easy_iterations: int = ADAPTIVE_EASY_ITERATIONS,
        growth_window: int = ADAPTIVE_GROWTH_WINDOW,
        growth_factor: float = ADAPTIVE_GROWTH_FACTOR,
    ):
        if min_dt <= 0 or max_dt <= 0 or min_dt > max_dt:
            raise ValueError(f"Invalid adaptive step bounds: min_dt={min_dt}, max_dt={max_dt}.")
        self.min_dt = float(min_dt)
        self.max_dt = float(max_dt)
        self.easy_iterations = int(easy_iterations)
        self.growth_factor = float(growth_factor)
        self.current_dt: Optional[float] = None
        self.history: Deque[int] = deque(maxlen=max(1, int(growth_window)))

    def reset(self):
        self.current_dt = None
        self.history.clear()

    def _cap(self, requested_dt: float) -> float:
        return min(self.max_dt, requested_dt)

    def step_size(self, requested_dt: float) -> float:
        """The internal step to use for the next solve."""
        cap = self._cap(requested_dt)
        if self.current_dt is None:
            self.current_dt = cap
        self.current_dt = min(self.current_dt, cap)
        return self.current_dt

    def record_failure(self) -> float:
        previous = self.current_dt if self.current_dt is not None else self.max_dt
        self.current_dt = max(self.min_dt, previous / 2.0)
        self.history.clear()
        logger.warning(f"Adaptive step reduced from {previous:.3e} s to {self.current_dt:.3e} s.")
        return self.current_dt

    def record_success(self, iterations: int, requested_dt: float) -> float:
        if self.current_dt is None:
            self.current_dt = self._cap(requested_dt)
        self.history.append(int(iterations))
        window_full = len(self.history) == self.history.maxlen
        if window_full and all(i <= self.easy_iterations for i in self.history):
            cap = self._cap(requested_dt)
            grown = min(self.current_dt * self.growth_factor, cap)
            if grown > self.current_dt:
                logger.debug(f"Adaptive step grown from {self.current_dt:.3e} s to {grown:.3e} s.")
            self.current_dt = grown
            self.history.clear()
        return self.current_dt
