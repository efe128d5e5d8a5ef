import asyncio
import unittest

from study_os.aggregation.scheduler import AutoRefreshScheduler, IntervalChannel, RefreshSettings
from study_os.storage import MemoryStore, StudyStore

# One "minute" of interval lasts 10ms in these tests.
FAST = 0.01


class Counter:
    def __init__(self) -> None:
        self.count = 0

    async def __call__(self) -> None:
        self.count += 1


class IntervalChannelTests(unittest.TestCase):
    def test_publish_reaches_subscribers_until_unsubscribed(self) -> None:
        channel = IntervalChannel()
        seen = []
        channel.subscribe(seen.append)
        channel.subscribe(seen.append)
        self.assertEqual(channel.subscriber_count, 1)

        channel.publish(10)
        channel.unsubscribe(seen.append)
        channel.publish(20)

        self.assertEqual(seen, [10])
        self.assertEqual(channel.subscriber_count, 0)

    def test_failing_listener_does_not_block_others(self) -> None:
        channel = IntervalChannel()
        seen = []

        def broken(_: int) -> None:
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        with self.assertLogs("study_os.aggregation.scheduler", level="ERROR"):
            channel.publish(3)
        self.assertEqual(seen, [3])


class RefreshSettingsTests(unittest.TestCase):
    def test_set_interval_persists_and_publishes_stored_value(self) -> None:
        store = StudyStore(MemoryStore())
        settings = RefreshSettings(store)
        seen = []
        settings.channel.subscribe(seen.append)

        self.assertEqual(settings.get_interval(), 5)
        self.assertEqual(settings.set_interval(-4), 0)
        self.assertEqual(settings.set_interval(15), 15)

        self.assertEqual(seen, [0, 15])
        self.assertEqual(store.get_auto_refresh_interval(), 15)


class AutoRefreshSchedulerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.store = StudyStore(MemoryStore())
        self.settings = RefreshSettings(self.store)

    async def test_runs_once_then_repeats_on_interval(self) -> None:
        self.store.save_auto_refresh_interval(1)
        counter = Counter()
        scheduler = AutoRefreshScheduler("dashboard", self.settings, counter, seconds_per_minute=FAST)

        scheduler.start()
        await asyncio.sleep(0.08)
        await scheduler.stop()

        self.assertGreaterEqual(counter.count, 3)

    async def test_zero_interval_disables_repeats(self) -> None:
        self.store.save_auto_refresh_interval(0)
        counter = Counter()
        scheduler = AutoRefreshScheduler("dashboard", self.settings, counter, seconds_per_minute=FAST)

        scheduler.start()
        await asyncio.sleep(0.06)
        await scheduler.stop()

        self.assertEqual(counter.count, 1)

    async def test_interval_change_restarts_timer(self) -> None:
        self.store.save_auto_refresh_interval(0)
        counter = Counter()
        scheduler = AutoRefreshScheduler("calendar", self.settings, counter, seconds_per_minute=FAST)
        scheduler.start()
        await asyncio.sleep(0.03)
        self.assertEqual(counter.count, 1)

        self.settings.set_interval(1)
        await asyncio.sleep(0.08)
        self.assertEqual(scheduler.interval_minutes, 1)
        self.assertGreaterEqual(counter.count, 3)

        self.settings.set_interval(0)
        await asyncio.sleep(0.02)
        settled = counter.count
        await asyncio.sleep(0.05)
        await scheduler.stop()

        self.assertEqual(counter.count, settled)

    async def test_change_to_long_interval_waits_full_period(self) -> None:
        self.store.save_auto_refresh_interval(1)
        counter = Counter()
        scheduler = AutoRefreshScheduler("dashboard", self.settings, counter, seconds_per_minute=FAST)
        scheduler.start()
        await asyncio.sleep(0)

        self.settings.set_interval(100)
        await asyncio.sleep(0.05)
        await scheduler.stop()

        self.assertEqual(counter.count, 1)

    async def test_stop_cancels_in_flight_refresh(self) -> None:
        started = asyncio.Event()
        cancelled = []

        async def slow_refresh() -> None:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        scheduler = AutoRefreshScheduler("files", self.settings, slow_refresh, seconds_per_minute=FAST)
        scheduler.start()
        await asyncio.wait_for(started.wait(), timeout=1)

        await scheduler.stop()

        self.assertEqual(cancelled, [True])
        self.assertFalse(scheduler.is_running)
        self.assertEqual(self.settings.channel.subscriber_count, 0)

    async def test_failing_refresh_keeps_schedule_alive(self) -> None:
        self.store.save_auto_refresh_interval(1)
        calls = []

        async def flaky() -> None:
            calls.append(1)
            raise RuntimeError("Canvas unreachable")

        scheduler = AutoRefreshScheduler("dashboard", self.settings, flaky, seconds_per_minute=FAST)
        with self.assertLogs("study_os.aggregation.scheduler", level="ERROR"):
            scheduler.start()
            await asyncio.sleep(0.05)
            await scheduler.stop()

        self.assertGreaterEqual(len(calls), 2)


if __name__ == "__main__":
    unittest.main()
