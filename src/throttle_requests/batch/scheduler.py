"""Sliding-window scheduler for a fixed list of async units of work."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 6

UnitOfWork = Callable[[], Awaitable[object]]


def validate_limit(limit: int) -> int:
    """Return ``limit`` unchanged or raise for a non-positive / non-int value."""

    if isinstance(limit, bool) or not isinstance(limit, int):
        raise TypeError(f"limit must be an int, got {type(limit).__name__}")
    if limit <= 0:
        raise ValueError(f"limit must be > 0, got {limit}")
    return limit


async def run_throttled(
    units: Iterable[UnitOfWork] | None,
    limit: int = DEFAULT_LIMIT,
) -> None:
    """Run ``units`` with at most ``limit`` of them in flight at once.

    Units are admitted in submission order. Whenever the in-flight set is
    full (or nothing is left to admit) the loop waits for any one unit to
    finish, drops it from the set and refills. A unit that raises counts as
    finished: the error is logged and never propagated, so siblings keep
    running. Completion order is whatever the units' latency produces.

    A unit that never settles keeps its slot forever; bound such units with
    their own timeout.
    """

    validate_limit(limit)
    pending = list(units or ())
    if not pending:
        logger.debug("Nothing to schedule")
        return

    total = len(pending)
    in_flight: dict[asyncio.Task[object], int] = {}
    cursor = 0
    failed = 0
    try:
        while cursor < total or in_flight:
            while len(in_flight) < limit and cursor < total:
                task = asyncio.create_task(_invoke(pending[cursor]))
                in_flight[task] = cursor
                logger.debug(
                    "Admitted unit %d/%d (in flight: %d)",
                    cursor + 1,
                    total,
                    len(in_flight),
                )
                cursor += 1

            done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                index = in_flight.pop(task)
                if task.cancelled():
                    failed += 1
                    logger.warning("Unit %d was cancelled", index)
                    continue
                exc = task.exception()
                if exc is not None:
                    failed += 1
                    logger.warning("Unit %d failed: %r", index, exc)
    finally:
        if in_flight:
            for task in in_flight:
                task.cancel()
            await asyncio.gather(*in_flight, return_exceptions=True)

    logger.debug("Scheduled %d units with limit=%d (%d raised)", total, limit, failed)


async def _invoke(unit: UnitOfWork) -> object:
    return await unit()
