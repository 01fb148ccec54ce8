"""Bounded-concurrency batch execution with live progress.

Two independent pieces composed by :func:`run_batch`:

- :func:`run_throttled` keeps at most ``limit`` units in flight and refills
  a slot as soon as any unit finishes. It knows nothing about results.
- :class:`ProgressAggregator` serialises outcome reports into immutable
  :class:`ProgressSnapshot` values. It knows nothing about concurrency.
"""

from throttle_requests.batch.progress import (
    BatchReporter,
    ProgressAggregator,
    ProgressSnapshot,
    describe_progress,
)
from throttle_requests.batch.runner import BatchThread, UnitTimeoutError, run_batch
from throttle_requests.batch.scheduler import DEFAULT_LIMIT, UnitOfWork, run_throttled

__all__ = [
    "DEFAULT_LIMIT",
    "BatchReporter",
    "BatchThread",
    "ProgressAggregator",
    "ProgressSnapshot",
    "UnitOfWork",
    "UnitTimeoutError",
    "describe_progress",
    "run_batch",
    "run_throttled",
]
