"""Controllers for batch CLI commands."""

from __future__ import annotations

import asyncio
import logging
import queue
import random
from collections.abc import Awaitable, Callable, Generator, Iterator
from dataclasses import dataclass
from typing import TypeVar

import httpx

from throttle_requests.batch.progress import ProgressAggregator, ProgressSnapshot, describe_progress
from throttle_requests.batch.runner import BatchThread, run_batch
from throttle_requests.config import Settings
from throttle_requests.github.contributors import Contributor, GithubContributorsClient
from throttle_requests.http.fetcher import AsyncHttpFetcher

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SENTINEL = object()
_MAX_ERROR_LINES = 10


class BatchCommandError(RuntimeError):
    """A batch command could not run to completion."""


@dataclass(slots=True)
class ContributorsCommand:
    """CLI inputs for the contributors command."""

    owner: str | None = None
    repo: str | None = None
    limit: int | None = None
    unit_timeout_seconds: float | None = None


@dataclass(slots=True)
class SimulateCommand:
    """CLI inputs for the offline simulate command."""

    count: int = 20
    limit: int | None = None
    failure_rate: float = 0.1
    max_delay_seconds: float = 0.2
    seed: int | None = None
    unit_timeout_seconds: float | None = None


class SimulatedFailure(RuntimeError):
    """Failure raised on purpose by a simulated operation."""


@dataclass(slots=True)
class InFlightTracker:
    """Counts simulated operations currently running on one event loop."""

    current: int = 0
    peak: int = 0

    def enter(self) -> None:
        self.current += 1
        self.peak = max(self.peak, self.current)

    def leave(self) -> None:
        self.current -= 1


class BatchCliController:
    """Coordinates batch command execution and progress rendering."""

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def load_contributors(self, command: ContributorsCommand) -> Iterator[str]:
        """Load every contributor profile of a repository, yielding progress lines."""

        settings = _settings_with_overrides(
            limit=command.limit,
            unit_timeout_seconds=command.unit_timeout_seconds,
        )
        owner = command.owner or settings.github.default_owner
        repo = command.repo or settings.github.default_repo
        aggregator: ProgressAggregator[Contributor] = ProgressAggregator()

        async def _load() -> ProgressSnapshot[Contributor]:
            async with AsyncHttpFetcher(
                timeout_seconds=settings.github.request_timeout_seconds,
                max_retries=settings.github.max_retries,
                headers={
                    "X-GitHub-Api-Version": "2022-11-28",
                    **settings.github.auth_headers(),
                },
                transport=self._transport,
            ) as fetcher:
                client = GithubContributorsClient(
                    fetcher,
                    api_base_url=settings.github.api_base_url,
                    per_page=settings.github.per_page,
                )
                urls = await client.list_contributor_urls(owner, repo)
                logger.info("Found %d contributor profiles for %s/%s", len(urls), owner, repo)
                return await run_batch(
                    client.profile_operations(urls),
                    aggregator,
                    limit=settings.batch.limit,
                    unit_timeout_seconds=settings.batch.unit_timeout_seconds,
                )

        yield f"Loading contributors of {owner}/{repo} (limit {settings.batch.limit})"
        final = yield from _stream_progress(aggregator, _load)

        for contributor in final.values:
            yield contributor.display_line()
        yield from _format_errors(final)
        yield describe_progress(final)

    def simulate(self, command: SimulateCommand) -> Iterator[str]:
        """Run synthetic operations with random latency and failures."""

        if command.count < 0:
            raise BatchCommandError("count must be >= 0.")
        if not 0.0 <= command.failure_rate <= 1.0:
            raise BatchCommandError("failure rate must be between 0 and 1.")
        if command.max_delay_seconds < 0:
            raise BatchCommandError("max delay must be >= 0.")
        settings = _settings_with_overrides(
            limit=command.limit,
            unit_timeout_seconds=command.unit_timeout_seconds,
        )
        aggregator: ProgressAggregator[int] = ProgressAggregator()
        tracker = InFlightTracker()
        operations = simulated_operations(
            count=command.count,
            failure_rate=command.failure_rate,
            max_delay_seconds=command.max_delay_seconds,
            rng=random.Random(command.seed),
            tracker=tracker,
        )

        async def _simulate() -> ProgressSnapshot[int]:
            return await run_batch(
                operations,
                aggregator,
                limit=settings.batch.limit,
                unit_timeout_seconds=settings.batch.unit_timeout_seconds,
            )

        yield f"Simulating {command.count} operations (limit {settings.batch.limit})"
        final = yield from _stream_progress(aggregator, _simulate)

        yield f"Peak in-flight operations: {tracker.peak} (limit {settings.batch.limit})"
        yield from _format_errors(final)
        yield describe_progress(final)


def simulated_operations(
    *,
    count: int,
    failure_rate: float,
    max_delay_seconds: float,
    rng: random.Random,
    tracker: InFlightTracker,
) -> list[Callable[[], Awaitable[int]]]:
    """Build ``count`` operations; delays and failures are drawn up front from ``rng``."""

    plan = [
        (rng.uniform(0, max_delay_seconds), rng.random() < failure_rate) for _ in range(count)
    ]

    def _operation(index: int, delay: float, fails: bool) -> Callable[[], Awaitable[int]]:
        async def _run() -> int:
            tracker.enter()
            try:
                await asyncio.sleep(delay)
            finally:
                tracker.leave()
            if fails:
                raise SimulatedFailure(f"operation {index} failed after {delay:.3f}s")
            return index

        return _run

    return [_operation(index, delay, fails) for index, (delay, fails) in enumerate(plan)]


def _settings_with_overrides(
    *,
    limit: int | None,
    unit_timeout_seconds: float | None,
) -> Settings:
    try:
        settings = Settings.from_env()
        if limit is not None:
            settings.batch.limit = limit
        if unit_timeout_seconds is not None:
            settings.batch.unit_timeout_seconds = unit_timeout_seconds
        settings.validate()
    except ValueError as error:
        raise BatchCommandError(str(error)) from error
    return settings


def _stream_progress(
    aggregator: ProgressAggregator[T],
    target: Callable[[], Awaitable[ProgressSnapshot[T]]],
) -> Generator[str, None, ProgressSnapshot[T]]:
    """Run ``target`` in a batch thread, yielding a status line per snapshot.

    Returns the final snapshot once the batch thread has finished.
    """

    progress_q: queue.Queue[str | object] = queue.Queue()
    unsubscribe = aggregator.subscribe(
        lambda snapshot: progress_q.put(describe_progress(snapshot)),
    )

    async def _run() -> ProgressSnapshot[T]:
        try:
            return await target()
        finally:
            progress_q.put(_SENTINEL)

    batch = BatchThread(_run).start()
    try:
        while True:
            item = progress_q.get()
            if item is _SENTINEL:
                break
            yield str(item)
    finally:
        unsubscribe()

    try:
        return batch.join(timeout=10)
    except Exception as error:
        yield f"Something went wrong: {error}"
        raise BatchCommandError(str(error)) from error


def _format_errors(snapshot: ProgressSnapshot[object]) -> Iterator[str]:
    if not snapshot.errors:
        return
    yield f"{len(snapshot.errors)} request(s) failed:"
    for error in snapshot.errors[:_MAX_ERROR_LINES]:
        yield f"  - {error}"
    hidden = len(snapshot.errors) - _MAX_ERROR_LINES
    if hidden > 0:
        yield f"  ... and {hidden} more"
