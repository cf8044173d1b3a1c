"""Timer-driven collection with a single subscriber.

All scheduler state lives on the event loop thread: ``start()``,
``stop()`` and ``set_interval()`` are plain methods that must be called
from that thread, and none of them awaits, so a restart can never
interleave with another state change.
"""

from __future__ import annotations

import asyncio
from enum import Enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from hostwatch.collector import TelemetryCollector
from hostwatch.config import DEFAULT_INTERVAL_MS

Snapshot = dict[str, Any]
Subscriber = Callable[[Snapshot], Union[None, Awaitable[None]]]


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class CollectionScheduler:
    def __init__(
        self,
        collector: TelemetryCollector,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        logger: logging.Logger | None = None,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.collector = collector
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._interval_ms = interval_ms
        self._state = SchedulerState.STOPPED
        self._subscriber: Subscriber | None = None
        self._timer: asyncio.Task[None] | None = None
        self._busy = False
        self._in_flight: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def busy(self) -> bool:
        return self._busy

    def subscribe(self, callback: Subscriber) -> None:
        """Register the single subscriber, replacing any previous one."""
        self._subscriber = callback

    def unsubscribe(self) -> None:
        self._subscriber = None

    def start(self) -> None:
        """Collect now, then every ``interval_ms``.

        Must be called from a coroutine on the running event loop; outside a
        loop ``asyncio.get_running_loop()`` raises ``RuntimeError``.
        """
        if self.running:
            self.logger.info("Telemetry collection already running")
            return

        loop = asyncio.get_running_loop()
        self.logger.info(
            "Starting telemetry collection every %s ms", self._interval_ms
        )
        self._state = SchedulerState.RUNNING
        self._trigger("start")
        self._timer = loop.create_task(self._run_timer(self._interval_ms / 1000))

    def stop(self) -> None:
        if not self.running and self._timer is None:
            self.logger.info("Telemetry collection already stopped")
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._state = SchedulerState.STOPPED
        self.logger.info("Telemetry collection stopped")

    def set_interval(self, interval_ms: int) -> None:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._interval_ms = interval_ms
        if self.running:
            self.stop()
            self.start()

    async def collect_now(self) -> Snapshot:
        """Collect immediately; the result is returned, not delivered."""
        return await self.collector.collect()

    async def wait_idle(self) -> None:
        """Wait for every in-flight scheduled collection to be delivered."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _run_timer(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            self._trigger("tick")

    def _trigger(self, reason: str) -> None:
        if self._busy:
            self.logger.debug("Skipping %s collection; previous one still running", reason)
            return
        self._busy = True
        task = asyncio.get_running_loop().create_task(self._collect_and_deliver())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _collect_and_deliver(self) -> None:
        # Busy until delivery finishes, so a slow subscriber never sees two
        # snapshots at once.
        try:
            snapshot = await self.collector.collect()
            subscriber = self._subscriber
            if subscriber is None:
                return
            try:
                result = subscriber(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self.logger.exception("Telemetry subscriber failed")
        finally:
            self._busy = False
