from __future__ import annotations

import asyncio
import random
import threading
import time

import allure
import pytest

from throttle_requests.batch.progress import ProgressAggregator, ProgressSnapshot
from throttle_requests.batch.runner import BatchThread, UnitTimeoutError, run_batch

pytestmark = [
    allure.epic("Batch Runner"),
    allure.feature("Batch Composition"),
]


def _operation(value: int, delay: float = 0.0, fail: bool = False):
    async def _run() -> int:
        await asyncio.sleep(delay)
        if fail:
            raise RuntimeError(f"operation {value} failed")
        return value

    return _run


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 2, 3])
async def test_every_outcome_is_reported_exactly_once(seed: int) -> None:
    rng = random.Random(seed)
    total = 40
    fails = {i for i in range(total) if rng.random() < 0.3}
    operations = [
        _operation(i, delay=rng.uniform(0, 0.005), fail=i in fails) for i in range(total)
    ]
    aggregator: ProgressAggregator[int] = ProgressAggregator()

    final = await run_batch(operations, aggregator, limit=4)

    assert final.completed == total
    assert sorted(final.values) == sorted(set(range(total)) - fails)
    assert len(final.errors) == len(fails)
    assert final.percentage_loaded == 100
    assert final.loading is False
    assert final == aggregator.snapshot()


@pytest.mark.asyncio
async def test_values_are_in_completion_order() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()
    operations = [_operation(0, 0.03), _operation(1, 0.001), _operation(2, 0.015)]

    final = await run_batch(operations, aggregator, limit=3)

    assert final.values == (1, 2, 0)


@pytest.mark.asyncio
async def test_batch_is_started_before_first_report() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()
    seen: list[ProgressSnapshot[int]] = []
    aggregator.subscribe(seen.append)

    await run_batch([_operation(i) for i in range(5)], aggregator, limit=2)

    assert seen[0] == ProgressSnapshot.started(5)
    assert all(s.total_requests == 5 for s in seen)
    percentages = [s.percentage_loaded for s in seen]
    assert percentages == sorted(percentages)
    assert percentages[-1] == 100


@pytest.mark.asyncio
async def test_empty_batch_returns_idle_totals() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()

    final = await run_batch([], aggregator)

    assert final.total_requests == 0
    assert final.percentage_loaded == 0
    assert final.loading is False


@pytest.mark.asyncio
async def test_unit_timeout_is_reported_as_failure() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()
    operations = [_operation(0, delay=5), _operation(1)]

    final = await run_batch(operations, aggregator, limit=2, unit_timeout_seconds=0.05)

    assert final.values == (1,)
    assert len(final.errors) == 1
    error = final.errors[0]
    assert isinstance(error, UnitTimeoutError)
    assert error.index == 0
    assert str(error) == "unit 0 timed out after 0.05s"


@pytest.mark.asyncio
async def test_operation_raising_cancelled_error_is_reported_as_failure() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()

    async def _awaits_cancelled_future() -> int:
        future = asyncio.get_running_loop().create_future()
        future.cancel()
        return await future

    operations = [_operation(1), _awaits_cancelled_future, _operation(2)]

    final = await run_batch(operations, aggregator, limit=2)

    assert final.completed == 3
    assert sorted(final.values) == [1, 2]
    assert len(final.errors) == 1
    assert isinstance(final.errors[0], asyncio.CancelledError)
    assert final.percentage_loaded == 100
    assert final.loading is False


@pytest.mark.asyncio
async def test_cancelling_the_batch_still_propagates() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()
    batch = asyncio.create_task(
        run_batch([_operation(i, delay=5) for i in range(3)], aggregator, limit=2),
    )
    await asyncio.sleep(0.01)

    batch.cancel()
    with pytest.raises(asyncio.CancelledError):
        await batch

    snapshot = aggregator.snapshot()
    assert snapshot.errors == ()
    assert snapshot.loading is True


@pytest.mark.asyncio
async def test_invalid_limit_fails_before_starting_a_batch() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()

    with pytest.raises(ValueError):
        await run_batch([_operation(1)], aggregator, limit=0)

    assert aggregator.generation == 0


@pytest.mark.asyncio
async def test_invalid_unit_timeout_is_rejected() -> None:
    with pytest.raises(ValueError, match="unit_timeout_seconds"):
        await run_batch([_operation(1)], ProgressAggregator(), unit_timeout_seconds=0)


@pytest.mark.asyncio
async def test_second_batch_on_same_aggregator_starts_clean() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()
    await run_batch([_operation(1), _operation(2, fail=True)], aggregator)

    final = await run_batch([_operation(3)], aggregator)

    assert final.values == (3,)
    assert final.errors == ()
    assert final.total_requests == 1


def test_batch_thread_allows_polling_from_caller_thread() -> None:
    aggregator: ProgressAggregator[int] = ProgressAggregator()
    release = threading.Event()

    def _gated(value: int):
        async def _run() -> int:
            while not release.is_set():
                await asyncio.sleep(0.001)
            return value

        return _run

    async def _target() -> ProgressSnapshot[int]:
        return await run_batch([_gated(i) for i in range(3)], aggregator, limit=2)

    batch = BatchThread(_target).start()
    deadline = time.monotonic() + 5
    while aggregator.snapshot().total_requests == 0 and time.monotonic() < deadline:
        time.sleep(0.001)

    in_flight = aggregator.snapshot()
    assert in_flight.total_requests == 3
    assert in_flight.loading is True
    assert batch.is_alive()

    release.set()
    final = batch.join(timeout=5)
    assert sorted(final.values) == [0, 1, 2]
    assert final.loading is False


def test_batch_thread_reraises_fatal_errors() -> None:
    async def _target() -> ProgressSnapshot[int]:
        return await run_batch([_operation(1)], ProgressAggregator(), limit=-1)

    batch = BatchThread(_target).start()

    with pytest.raises(ValueError, match="limit must be > 0"):
        batch.join(timeout=5)
