"""Thread-safe progress aggregation for one batch of units of work.

Writers (the units of a batch, possibly on another thread) report outcomes
one at a time; each report is a single locked transition from the current
:class:`ProgressSnapshot` to the next. Readers only ever see whole,
immutable snapshots, so ``completed <= total_requests`` holds for every
value ``snapshot()`` can return and ``percentage_loaded`` never decreases
within a batch.

``values`` and ``errors`` are kept in completion order, not submission order.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ProgressSnapshot(Generic[T]):
    """Immutable point-in-time view of a batch."""

    total_requests: int = 0
    values: tuple[T, ...] = ()
    errors: tuple[BaseException, ...] = ()
    percentage_loaded: int = 0
    loading: bool = False
    batch_started: bool = False

    @classmethod
    def idle(cls) -> ProgressSnapshot[T]:
        return cls()

    @classmethod
    def started(cls, total_requests: int) -> ProgressSnapshot[T]:
        return cls(
            total_requests=total_requests,
            loading=total_requests > 0,
            batch_started=True,
        )

    @property
    def completed(self) -> int:
        return len(self.values) + len(self.errors)

    def with_value(self, value: T) -> ProgressSnapshot[T]:
        return _derive(self, values=(*self.values, value), errors=self.errors)

    def with_error(self, error: BaseException) -> ProgressSnapshot[T]:
        return _derive(self, values=self.values, errors=(*self.errors, error))


ProgressListener = Callable[[ProgressSnapshot[T]], None]


def percentage(completed: int, total: int) -> int:
    """Round ``100 * completed / total`` half up; 0 for an empty batch."""

    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def _derive(
    previous: ProgressSnapshot[T],
    *,
    values: tuple[T, ...],
    errors: tuple[BaseException, ...],
) -> ProgressSnapshot[T]:
    completed = len(values) + len(errors)
    return replace(
        previous,
        values=values,
        errors=errors,
        percentage_loaded=percentage(completed, previous.total_requests),
        loading=previous.total_requests > 0 and completed < previous.total_requests,
    )


def describe_progress(snapshot: ProgressSnapshot[object]) -> str:
    """Human-readable status line for a snapshot."""

    if not snapshot.batch_started:
        return "Idle"
    failed = len(snapshot.errors)
    if snapshot.loading:
        return (
            f"Loading... {snapshot.percentage_loaded}% "
            f"({len(snapshot.values)} loaded, {failed} failed of {snapshot.total_requests})"
        )
    suffix = f" ({failed} failed)" if failed else ""
    return f"Loaded {len(snapshot.values)} of {snapshot.total_requests}{suffix}"


@dataclass(slots=True)
class BatchReporter(Generic[T]):
    """Report handle bound to one batch generation of an aggregator.

    Safe to share between concurrently running units. Once a newer batch is
    started on the aggregator, reports through this handle are dropped.
    """

    aggregator: ProgressAggregator[T]
    generation: int

    def report_success(self, value: T) -> bool:
        return self.aggregator._apply(self.generation, lambda snap: snap.with_value(value))

    def report_failure(self, error: BaseException) -> bool:
        return self.aggregator._apply(self.generation, lambda snap: snap.with_error(error))

    @property
    def is_current(self) -> bool:
        return self.aggregator.generation == self.generation


@dataclass(slots=True)
class _AggregatorState(Generic[T]):
    snapshot: ProgressSnapshot[T] = field(default_factory=ProgressSnapshot.idle)
    generation: int = 0
    ignored_reports: int = 0


class ProgressAggregator(Generic[T]):
    """Single-writer-at-a-time container for batch progress.

    ``start_batch`` fixes the total and discards everything accumulated so
    far. ``report_success`` / ``report_failure`` append one outcome each.
    Reports that would push ``completed`` past ``total_requests`` (including
    any report before the first ``start_batch``) are ignored, logged and
    counted in :attr:`ignored_reports`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._publish_lock = threading.RLock()
        self._state: _AggregatorState[T] = _AggregatorState()
        self._listeners: list[ProgressListener[T]] = []

    def start_batch(self, total_requests: int) -> BatchReporter[T]:
        """Reset to a fresh snapshot for ``total_requests`` outcomes."""

        if isinstance(total_requests, bool) or not isinstance(total_requests, int):
            raise TypeError(
                f"total_requests must be an int, got {type(total_requests).__name__}",
            )
        if total_requests < 0:
            raise ValueError(f"total_requests must be >= 0, got {total_requests}")

        with self._publish_lock:
            with self._lock:
                self._state.generation += 1
                self._state.ignored_reports = 0
                self._state.snapshot = ProgressSnapshot.started(total_requests)
                generation = self._state.generation
                snapshot = self._state.snapshot
            logger.debug("Batch %d started: total_requests=%d", generation, total_requests)
            self._notify(snapshot)
        return BatchReporter(aggregator=self, generation=generation)

    def report_success(self, value: T) -> bool:
        """Record a successful outcome for the current batch."""
        return self._apply(None, lambda snap: snap.with_value(value))

    def report_failure(self, error: BaseException) -> bool:
        """Record a failed outcome for the current batch."""
        return self._apply(None, lambda snap: snap.with_error(error))

    def snapshot(self) -> ProgressSnapshot[T]:
        with self._lock:
            return self._state.snapshot

    @property
    def generation(self) -> int:
        with self._lock:
            return self._state.generation

    @property
    def ignored_reports(self) -> int:
        with self._lock:
            return self._state.ignored_reports

    def subscribe(self, listener: ProgressListener[T]) -> Callable[[], None]:
        """Call ``listener`` with every published snapshot; returns an unsubscribe hook.

        Listeners run synchronously on the reporting thread (for ``run_batch``,
        the event-loop thread) while the publish lock is held, before the
        report call returns. They must not block: a listener waiting on a full
        bounded queue stalls every writer and the event loop with it.
        """

        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _apply(
        self,
        generation: int | None,
        transition: Callable[[ProgressSnapshot[T]], ProgressSnapshot[T]],
    ) -> bool:
        # Listeners are notified in transition order, across writer threads too.
        with self._publish_lock:
            with self._lock:
                state = self._state
                if generation is not None and generation != state.generation:
                    logger.info(
                        "Dropping report for superseded batch %d (current batch %d)",
                        generation,
                        state.generation,
                    )
                    return False
                current = state.snapshot
                if current.completed >= current.total_requests:
                    state.ignored_reports += 1
                    logger.warning(
                        "Ignoring report beyond total_requests=%d for batch %d",
                        current.total_requests,
                        state.generation,
                    )
                    return False
                state.snapshot = transition(current)
                snapshot = state.snapshot
            self._notify(snapshot)
        return True

    def _notify(self, snapshot: ProgressSnapshot[T]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Progress listener failed")
