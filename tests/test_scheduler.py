from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from factories import RecordingNotifier, make_event
from tradewatch.aggregator import TradeAggregator
from tradewatch.scheduler import FlushScheduler


@pytest_asyncio.fixture
async def scheduler():
    flush_scheduler = FlushScheduler(timezone="UTC")
    flush_scheduler.start()
    yield flush_scheduler
    if flush_scheduler.is_running:
        flush_scheduler.stop()


def test_arm_requires_started_scheduler() -> None:
    with pytest.raises(RuntimeError):
        FlushScheduler(timezone="UTC").arm("job", 1, lambda: None)


@pytest.mark.asyncio
async def test_coroutine_callback_fires_once(scheduler: FlushScheduler) -> None:
    fired: list[str] = []
    done = asyncio.Event()

    async def callback(value: str) -> None:
        fired.append(value)
        done.set()

    scheduler.arm("job-1", 0.05, callback, "payload")

    await asyncio.wait_for(done.wait(), timeout=5)
    await asyncio.sleep(0.1)

    assert fired == ["payload"]
    assert scheduler.get_status()["pending_jobs"] == 0


@pytest.mark.asyncio
async def test_cancelled_timer_never_fires(scheduler: FlushScheduler) -> None:
    fired: list[str] = []

    async def callback() -> None:
        fired.append("fired")

    scheduler.arm("job-1", 0.2, callback)
    assert scheduler.get_status()["pending_jobs"] == 1

    assert scheduler.cancel("job-1") is True
    await asyncio.sleep(0.4)

    assert fired == []
    assert scheduler.cancel("job-1") is False


@pytest.mark.asyncio
async def test_status_reports_next_run(scheduler: FlushScheduler) -> None:
    async def callback() -> None:
        pass

    scheduler.arm("job-1", 30, callback)

    status = scheduler.get_status()
    assert status["is_running"] is True
    assert status["next_run_time"] is not None


@pytest.mark.asyncio
async def test_stop_is_reported(scheduler: FlushScheduler) -> None:
    assert scheduler.stop() is True
    assert scheduler.stop() is False
    assert scheduler.get_status()["is_running"] is False


@pytest.mark.asyncio
async def test_aggregator_flushes_on_real_timer(scheduler: FlushScheduler) -> None:
    notifier = RecordingNotifier()
    aggregator = TradeAggregator(notifier, scheduler, window_seconds=0.1)

    aggregator.submit(make_event(10, 6, tx="0x1"))
    aggregator.submit(make_event(5, 3, tx="0x2"))

    for _ in range(50):
        if notifier.events:
            break
        await asyncio.sleep(0.05)

    assert len(notifier.events) == 1
    assert notifier.events[0].fill_count == 2
    assert aggregator.pending_count == 0
