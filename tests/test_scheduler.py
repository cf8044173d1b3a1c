"""Tests for the collection scheduler state machine and delivery."""
from __future__ import annotations

import asyncio
import logging

import pytest

from hostwatch.collector import TelemetryCollector
from hostwatch.scheduler import CollectionScheduler, SchedulerState
from tests.fakes import FakeProvider, StaticDriverInfo

LONG_INTERVAL_MS = 60_000


class StubCollector:
    """Counts collections and tracks how many overlap."""

    def __init__(self, delay_s: float = 0.0) -> None:
        self.delay_s = delay_s
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def collect(self):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            return {"timestamp": f"t{self.calls}", "status": "success", "seq": self.calls}
        finally:
            self.active -= 1


def test_initial_state_is_stopped():
    scheduler = CollectionScheduler(StubCollector())
    assert scheduler.state is SchedulerState.STOPPED
    assert scheduler.interval_ms == 30000
    assert not scheduler.running


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        CollectionScheduler(StubCollector(), interval_ms=0)
    with pytest.raises(ValueError):
        CollectionScheduler(StubCollector()).set_interval(-5)


def test_stop_twice_is_a_noop(caplog):
    scheduler = CollectionScheduler(StubCollector())
    with caplog.at_level(logging.INFO):
        scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED
        scheduler.stop()
        assert scheduler.state is SchedulerState.STOPPED
    assert "already stopped" in caplog.text


def test_start_does_not_block_and_collects_immediately():
    async def scenario():
        collector = StubCollector()
        delivered = []
        scheduler = CollectionScheduler(collector, interval_ms=LONG_INTERVAL_MS)
        scheduler.subscribe(delivered.append)

        scheduler.start()
        assert scheduler.state is SchedulerState.RUNNING
        assert collector.calls == 0

        await scheduler.wait_idle()
        scheduler.stop()
        return collector, delivered

    collector, delivered = asyncio.run(scenario())
    assert collector.calls == 1
    assert [snapshot["seq"] for snapshot in delivered] == [1]


def test_start_twice_keeps_one_timer(caplog):
    async def scenario():
        collector = StubCollector()
        scheduler = CollectionScheduler(collector, interval_ms=LONG_INTERVAL_MS)
        scheduler.start()
        timer = scheduler._timer
        scheduler.start()
        assert scheduler._timer is timer
        await scheduler.wait_idle()
        scheduler.stop()
        return collector

    with caplog.at_level(logging.INFO):
        collector = asyncio.run(scenario())
    assert collector.calls == 1
    assert "already running" in caplog.text


def test_periodic_delivery_end_to_end():
    async def scenario():
        collector = TelemetryCollector(
            FakeProvider(), driver_info=StaticDriverInfo()
        )
        delivered = []
        scheduler = CollectionScheduler(collector, interval_ms=50)
        scheduler.subscribe(delivered.append)
        scheduler.start()
        await asyncio.sleep(0.2)
        scheduler.stop()
        await scheduler.wait_idle()
        return delivered

    delivered = asyncio.run(scenario())
    assert len(delivered) >= 2
    timestamps = [snapshot["timestamp"] for snapshot in delivered]
    assert timestamps == sorted(timestamps)
    assert all(snapshot["status"] == "success" for snapshot in delivered)


def test_stop_prevents_future_ticks():
    async def scenario():
        collector = StubCollector()
        scheduler = CollectionScheduler(collector, interval_ms=20)
        scheduler.start()
        await scheduler.wait_idle()
        scheduler.stop()
        calls_at_stop = collector.calls
        await asyncio.sleep(0.1)
        return calls_at_stop, collector.calls

    calls_at_stop, calls_later = asyncio.run(scenario())
    assert calls_later == calls_at_stop


def test_overlapping_ticks_are_skipped():
    async def scenario():
        collector = StubCollector(delay_s=0.15)
        delivered = []
        scheduler = CollectionScheduler(collector, interval_ms=20)
        scheduler.subscribe(delivered.append)
        scheduler.start()
        await asyncio.sleep(0.2)
        scheduler.stop()
        await scheduler.wait_idle()
        return collector, delivered

    collector, delivered = asyncio.run(scenario())
    assert collector.max_active == 1
    # ten ticks fired, but only back-to-back collections ran
    assert 1 <= collector.calls <= 3
    assert len(delivered) == collector.calls


def test_in_flight_collection_is_delivered_after_stop():
    async def scenario():
        collector = StubCollector(delay_s=0.05)
        delivered = []
        scheduler = CollectionScheduler(collector, interval_ms=LONG_INTERVAL_MS)
        scheduler.subscribe(delivered.append)
        scheduler.start()
        await asyncio.sleep(0)
        scheduler.stop()
        assert scheduler.busy
        await scheduler.wait_idle()
        return delivered

    assert len(asyncio.run(scenario())) == 1


def test_subscriber_errors_do_not_stop_the_timer(caplog):
    async def scenario():
        collector = StubCollector()
        scheduler = CollectionScheduler(collector, interval_ms=20)

        def broken(snapshot):
            raise RuntimeError("subscriber broke")

        scheduler.subscribe(broken)
        scheduler.start()
        await asyncio.sleep(0.15)
        scheduler.stop()
        await scheduler.wait_idle()
        return collector

    with caplog.at_level(logging.ERROR):
        collector = asyncio.run(scenario())
    assert collector.calls >= 2
    assert "Telemetry subscriber failed" in caplog.text


def test_async_subscriber_is_awaited():
    async def scenario():
        delivered = []

        async def subscriber(snapshot):
            await asyncio.sleep(0)
            delivered.append(snapshot)

        scheduler = CollectionScheduler(StubCollector(), interval_ms=LONG_INTERVAL_MS)
        scheduler.subscribe(subscriber)
        scheduler.start()
        await scheduler.wait_idle()
        scheduler.stop()
        return delivered

    assert len(asyncio.run(scenario())) == 1


def test_unsubscribe_stops_delivery():
    async def scenario():
        delivered = []
        scheduler = CollectionScheduler(StubCollector(), interval_ms=LONG_INTERVAL_MS)
        scheduler.subscribe(delivered.append)
        scheduler.unsubscribe()
        scheduler.start()
        await scheduler.wait_idle()
        scheduler.stop()
        return delivered

    assert asyncio.run(scenario()) == []


def test_subscribe_replaces_previous_subscriber():
    async def scenario():
        first, second = [], []
        scheduler = CollectionScheduler(StubCollector(), interval_ms=LONG_INTERVAL_MS)
        scheduler.subscribe(first.append)
        scheduler.subscribe(second.append)
        scheduler.start()
        await scheduler.wait_idle()
        scheduler.stop()
        return first, second

    first, second = asyncio.run(scenario())
    assert first == []
    assert len(second) == 1


def test_set_interval_restarts_when_running():
    async def scenario():
        collector = StubCollector()
        scheduler = CollectionScheduler(collector, interval_ms=LONG_INTERVAL_MS)
        scheduler.start()
        await scheduler.wait_idle()
        old_timer = scheduler._timer

        scheduler.set_interval(LONG_INTERVAL_MS // 2)
        assert scheduler.state is SchedulerState.RUNNING
        assert scheduler.interval_ms == LONG_INTERVAL_MS // 2
        assert scheduler._timer is not old_timer
        await scheduler.wait_idle()
        scheduler.stop()
        return collector

    collector = asyncio.run(scenario())
    assert collector.calls == 2


def test_set_interval_when_stopped_does_not_start():
    scheduler = CollectionScheduler(StubCollector())
    scheduler.set_interval(1000)
    assert scheduler.interval_ms == 1000
    assert scheduler.state is SchedulerState.STOPPED


def test_collect_now_bypasses_timer_and_subscriber():
    async def scenario():
        collector = StubCollector()
        delivered = []
        scheduler = CollectionScheduler(collector, interval_ms=LONG_INTERVAL_MS)
        scheduler.subscribe(delivered.append)
        snapshot = await scheduler.collect_now()
        return scheduler, snapshot, delivered

    scheduler, snapshot, delivered = asyncio.run(scenario())
    assert snapshot["status"] == "success"
    assert delivered == []
    assert scheduler.state is SchedulerState.STOPPED
    assert scheduler._timer is None


def test_slow_async_subscriber_never_overlaps():
    async def scenario():
        active = 0
        max_active = 0
        delivered = []

        async def slow_subscriber(snapshot):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.08)
            delivered.append(snapshot)
            active -= 1

        scheduler = CollectionScheduler(StubCollector(), interval_ms=20)
        scheduler.subscribe(slow_subscriber)
        scheduler.start()
        await asyncio.sleep(0.25)
        scheduler.stop()
        await scheduler.wait_idle()
        return max_active, delivered

    max_active, delivered = asyncio.run(scenario())
    assert max_active == 1
    assert len(delivered) >= 2


def test_start_outside_event_loop_raises():
    scheduler = CollectionScheduler(StubCollector())
    with pytest.raises(RuntimeError):
        scheduler.start()
