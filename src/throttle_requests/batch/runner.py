"""Compose the scheduler and the progress aggregator into one batch run."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from throttle_requests.batch.progress import BatchReporter, ProgressAggregator, ProgressSnapshot
from throttle_requests.batch.scheduler import (
    DEFAULT_LIMIT,
    UnitOfWork,
    run_throttled,
    validate_limit,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Operation = Callable[[], Awaitable[T]]


@dataclass(slots=True)
class UnitTimeoutError(Exception):
    """An operation did not settle within its per-unit timeout."""

    index: int
    timeout_seconds: float

    def __str__(self) -> str:
        return f"unit {self.index} timed out after {self.timeout_seconds:g}s"


async def run_batch(
    operations: Sequence[Operation[T]],
    aggregator: ProgressAggregator[T],
    *,
    limit: int = DEFAULT_LIMIT,
    unit_timeout_seconds: float | None = None,
) -> ProgressSnapshot[T]:
    """Run ``operations`` with bounded concurrency, reporting each outcome.

    The batch is started on ``aggregator`` before the first unit is admitted,
    so ``total_requests`` is right from the first report. Each operation's
    return value becomes a ``values`` entry and each exception an ``errors``
    entry; neither escapes this call. A ``CancelledError`` raised by the
    operation itself is an ``errors`` entry too. Returns the snapshot published by the
    last report of this batch.
    """

    validate_limit(limit)
    if unit_timeout_seconds is not None and unit_timeout_seconds <= 0:
        raise ValueError(f"unit_timeout_seconds must be > 0, got {unit_timeout_seconds}")

    reporter = aggregator.start_batch(len(operations))
    units = [
        _reporting_unit(operation, reporter, index=index, timeout_seconds=unit_timeout_seconds)
        for index, operation in enumerate(operations)
    ]
    await run_throttled(units, limit=limit)

    final = aggregator.snapshot()
    logger.info(
        "Batch finished: total=%d values=%d errors=%d limit=%d",
        final.total_requests,
        len(final.values),
        len(final.errors),
        limit,
    )
    return final


def _reporting_unit(
    operation: Operation[T],
    reporter: BatchReporter[T],
    *,
    index: int,
    timeout_seconds: float | None,
) -> UnitOfWork:
    async def _unit() -> None:
        try:
            if timeout_seconds is None:
                result = await operation()
            else:
                result = await _bounded(operation, index=index, timeout_seconds=timeout_seconds)
        except asyncio.CancelledError as exc:
            # Only a cancellation aimed at this task stops the unit unreported.
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            reporter.report_failure(exc)
        except Exception as exc:  # noqa: BLE001
            reporter.report_failure(exc)
        else:
            reporter.report_success(result)

    return _unit


async def _bounded(operation: Operation[T], *, index: int, timeout_seconds: float) -> T:
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_seconds)
    except TimeoutError as exc:
        raise UnitTimeoutError(index=index, timeout_seconds=timeout_seconds) from exc


class BatchThread(Generic[R]):
    """Run an async batch on a private event loop in a daemon thread.

    Lets a synchronous caller (the CLI) read ``ProgressAggregator.snapshot()``
    or consume listener notifications while the batch is in flight.
    """

    def __init__(self, target: Callable[[], Awaitable[R]], *, name: str = "throttle-batch") -> None:
        self._target = target
        self._result: list[R] = []
        self._error: list[BaseException] = []
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    def start(self) -> BatchThread[R]:
        self._thread.start()
        return self

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: float | None = None) -> R:
        """Wait for the batch and return its result, re-raising a fatal error."""

        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            raise TimeoutError(f"Batch thread {self._thread.name} still running")
        if self._error:
            raise self._error[0]
        return self._result[0]

    def _run(self) -> None:
        try:
            self._result.append(asyncio.run(self._run_target()))
        except BaseException as exc:  # noqa: BLE001
            logger.debug("Batch thread %s failed: %r", self._thread.name, exc)
            self._error.append(exc)

    async def _run_target(self) -> R:
        return await self._target()
