"""
Execution Context
=================
Explicit, passed-in execution context for the data-parallel stages.

The context owns a reusable joblib worker pool for its lifetime. It is
created once at startup and disposed at shutdown:

    with ExecutionContext(n_jobs=4, n_partitions=8) as ctx:
        aggregated = FeatureAggregator(ctx).aggregate(raw)
"""

import logging
from typing import Any, Callable, Iterable, List, Optional

from joblib import Parallel, delayed

logger = logging.getLogger(__name__)


class ExecutionContext:
    """
    Holds the worker pool and the settings shared by all stages.

    Args:
        n_jobs: Number of worker threads (-1 for all cores)
        n_partitions: Number of partitions used by the aggregator
        random_state: Seed shared by splitting and model search
    """

    def __init__(self, n_jobs: int = 1, n_partitions: int = 1, random_state: int = 42):
        if n_partitions < 1:
            raise ValueError(f"n_partitions must be >= 1, got {n_partitions}")
        self.n_jobs = n_jobs
        self.n_partitions = n_partitions
        self.random_state = random_state
        self._parallel: Optional[Parallel] = None

    @property
    def is_active(self) -> bool:
        return self._parallel is not None

    def start(self) -> "ExecutionContext":
        if self._parallel is not None:
            raise RuntimeError("ExecutionContext is already started")
        self._parallel = Parallel(n_jobs=self.n_jobs, prefer="threads")
        self._parallel.__enter__()
        logger.info(f"Execution context started (n_jobs={self.n_jobs}, "
                    f"n_partitions={self.n_partitions})")
        return self

    def stop(self) -> None:
        if self._parallel is None:
            return
        parallel, self._parallel = self._parallel, None
        parallel.__exit__(None, None, None)
        logger.info("Execution context stopped")

    def __enter__(self) -> "ExecutionContext":
        return self.start()

    def __exit__(self, *args):
        self.stop()

    def map(self, func: Callable[..., Any], items: Iterable[Any]) -> List[Any]:
        """Apply func to every item on the worker pool, preserving input order."""
        if self._parallel is None:
            raise RuntimeError(
                "ExecutionContext is not active. Use it as 'with ExecutionContext() as ctx:'"
            )
        return list(self._parallel(delayed(func)(item) for item in items))
