from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from study_os.storage.accessor import StudyStore

logger = logging.getLogger(__name__)

IntervalListener = Callable[[int], None]
RefreshCallback = Callable[[], Awaitable[None]]


class IntervalChannel:
    """Publish-subscribe channel carrying auto-refresh interval changes (minutes)."""

    def __init__(self) -> None:
        self._listeners: List[IntervalListener] = []

    def subscribe(self, listener: IntervalListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: IntervalListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def publish(self, interval_minutes: int) -> None:
        for listener in list(self._listeners):
            try:
                listener(interval_minutes)
            except Exception:
                logger.exception("Auto-refresh interval listener failed. interval_minutes=%s", interval_minutes)


class RefreshSettings:
    """Process-wide holder of the auto-refresh interval."""

    def __init__(self, store: StudyStore, channel: Optional[IntervalChannel] = None) -> None:
        self._store = store
        self.channel = channel or IntervalChannel()

    def get_interval(self) -> int:
        return self._store.get_auto_refresh_interval()

    def set_interval(self, interval_minutes: int) -> int:
        """Persist the interval, then notify every subscribed scheduler. Returns the stored value."""
        self._store.save_auto_refresh_interval(interval_minutes)
        stored = self._store.get_auto_refresh_interval()
        logger.info("Auto-refresh interval changed. interval_minutes=%s", stored)
        self.channel.publish(stored)
        return stored


class AutoRefreshScheduler:
    """
    Runs a refresh callback once on start, then every `interval` minutes.

    An interval of 0 disables repeats. Interval changes published on the settings
    channel restart the timer. stop() cancels the timer together with any refresh
    still in flight, so nothing runs on behalf of this scheduler afterwards.
    """

    def __init__(
        self,
        name: str,
        settings: RefreshSettings,
        refresh: RefreshCallback,
        *,
        seconds_per_minute: float = 60.0,
    ) -> None:
        self.name = name
        self._settings = settings
        self._refresh = refresh
        self._seconds_per_minute = seconds_per_minute
        self._interval = 0
        self._wake = asyncio.Event()
        self._runtime_task: Optional[asyncio.Task] = None

    @property
    def interval_minutes(self) -> int:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._runtime_task is not None and not self._runtime_task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._interval = self._settings.get_interval()
        self._settings.channel.subscribe(self._on_interval_changed)
        self._wake.clear()
        self._runtime_task = asyncio.create_task(self._runtime_loop())
        logger.info("Auto-refresh started. name=%s interval_minutes=%s", self.name, self._interval)

    async def stop(self) -> None:
        self._settings.channel.unsubscribe(self._on_interval_changed)
        task = self._runtime_task
        self._runtime_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Auto-refresh stopped. name=%s", self.name)

    def _on_interval_changed(self, interval_minutes: int) -> None:
        self._interval = interval_minutes
        self._wake.set()

    async def _runtime_loop(self) -> None:
        await self._run_once()
        while True:
            self._wake.clear()
            if self._interval <= 0:
                await self._wake.wait()
                continue
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._interval * self._seconds_per_minute)
            except asyncio.TimeoutError:
                await self._run_once()

    async def _run_once(self) -> None:
        try:
            await self._refresh()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Auto-refresh tick failed. name=%s", self.name)
