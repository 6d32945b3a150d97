"""
Tests for the ordered, partial-failure tolerant batch coordinator.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from analytics_backend.services.batch_service import BatchCoordinator


def _square_or_fail(item):
    if item == "boom":
        raise ValueError("bad item")
    if item == "silent":
        raise KeyError()
    return item * item


@pytest.fixture
def coordinator():
    coordinator = BatchCoordinator(max_workers=4)
    yield coordinator
    coordinator.shutdown()


@pytest.mark.asyncio
async def test_outcomes_keep_input_order(coordinator):
    def slow_first(item):
        # Earlier items finish later.
        time.sleep(0.01 * (5 - item))
        return item

    report = await coordinator.run(slow_first, [0, 1, 2, 3, 4])

    assert [outcome.index for outcome in report.outcomes] == [0, 1, 2, 3, 4]
    assert [outcome.value for outcome in report.outcomes] == [0, 1, 2, 3, 4]
    assert report.summary.total == 5
    assert report.summary.failed == 0


@pytest.mark.asyncio
async def test_failure_is_captured_per_item(coordinator):
    report = await coordinator.run(_square_or_fail, [2, "boom", 3])

    assert [outcome.ok for outcome in report.outcomes] == [True, False, True]
    assert report.outcomes[0].value == 4
    assert report.outcomes[2].value == 9
    assert report.outcomes[1].error_message == "bad item"
    assert report.outcomes[1].value is None
    assert report.summary.successful == 2
    assert report.summary.failed == 1


@pytest.mark.asyncio
async def test_empty_error_message_falls_back_to_type_name(coordinator):
    report = await coordinator.run(_square_or_fail, ["silent"])

    assert report.outcomes[0].error_message == "KeyError"


@pytest.mark.asyncio
async def test_items_run_on_worker_threads(coordinator):
    main_thread = threading.get_ident()
    report = await coordinator.run(lambda item: threading.get_ident(), [1, 2])

    assert all(outcome.value != main_thread for outcome in report.outcomes)


@pytest.mark.asyncio
async def test_shared_executor_is_not_shut_down():
    executor = ThreadPoolExecutor(max_workers=1)
    coordinator = BatchCoordinator(executor=executor)

    await coordinator.run(_square_or_fail, [1])
    coordinator.shutdown()

    assert executor.submit(lambda: 42).result() == 42
    executor.shutdown()
