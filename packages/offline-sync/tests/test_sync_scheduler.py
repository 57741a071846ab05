import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from offline_sync.collector import Collector, InMemoryCollector
from offline_sync.config import OfflineConfig
from offline_sync.connectivity import ConnectivityMonitor, QueueConnectivityMonitor
from offline_sync.exceptions import DeliveryError
from offline_sync.kv_store import InMemoryKeyValueStore
from offline_sync.models import EventKind, EventPriority, OfflineEvent
from offline_sync.queue import DurableQueue
from offline_sync.scheduler import SyncScheduler

START = datetime(2026, 3, 14, 21, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class GatedCollector(Collector):
    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.attempts: list[str] = []

    async def submit(self, event: OfflineEvent) -> bool:
        self.attempts.append(event.id)
        self.entered.set()
        await self.release.wait()
        return True


class Harness:
    def __init__(self, collector: Collector, online: bool = True, **config_changes) -> None:
        self.clock = FakeClock(START)
        self.sleeps: list[float] = []
        self.queue = DurableQueue(InMemoryKeyValueStore(), OfflineConfig(**config_changes), clock=self.clock)
        self.collector = collector
        self.monitor = QueueConnectivityMonitor(initial=online)
        self.scheduler = SyncScheduler(
            self.queue,
            collector,
            monitor=self.monitor,
            clock=self.clock,
            sleep_fn=self._sleep,
        )

    async def _sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    async def enqueue(self, priority: EventPriority = EventPriority.NORMAL, kind: EventKind = EventKind.LOCATION):
        event_id = await self.queue.enqueue(kind, {"seq": len(self.queue)}, priority)
        self.clock.advance(seconds=1)
        return event_id


async def _wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_pass_delivers_in_priority_then_age_order() -> None:
    harness = Harness(InMemoryCollector())
    low = await harness.enqueue(EventPriority.LOW)
    critical = await harness.enqueue(EventPriority.CRITICAL, EventKind.PANIC)
    normal_old = await harness.enqueue(EventPriority.NORMAL)
    high = await harness.enqueue(EventPriority.HIGH)
    normal_new = await harness.enqueue(EventPriority.NORMAL)

    result = await harness.scheduler.force_sync()

    assert harness.collector.attempts == [critical, high, normal_old, normal_new, low]
    assert result.attempted == 5
    assert result.synced == 5
    assert result.interrupted is False
    assert harness.sleeps == [1.0] * 4
    assert harness.scheduler.last_sync_at == harness.clock.now
    assert harness.scheduler.status().synced_count == 5
    assert harness.scheduler.metrics.delivery_total[("panic", "synced")] == 1


@pytest.mark.asyncio
async def test_concurrent_triggers_run_a_single_pass() -> None:
    collector = GatedCollector()
    harness = Harness(collector)
    await harness.enqueue(EventPriority.CRITICAL, EventKind.PANIC)

    first = asyncio.create_task(harness.scheduler.force_sync())
    await collector.entered.wait()

    assert harness.scheduler.syncing is True
    assert harness.scheduler.status().syncing is True
    assert await harness.scheduler.force_sync() is None
    assert await harness.scheduler.set_online(True) is None

    collector.release.set()
    result = await first

    assert result.synced == 1
    assert len(collector.attempts) == 1
    assert harness.scheduler.syncing is False


@pytest.mark.asyncio
async def test_failed_attempts_wait_for_retry_delay() -> None:
    harness = Harness(InMemoryCollector([False, False, True]), retry_delay_seconds=120)
    event_id = await harness.enqueue()

    first = await harness.scheduler.force_sync()
    assert first.failed == 1
    assert harness.queue.get(event_id).retry_count == 1

    too_soon = await harness.scheduler.force_sync()
    assert too_soon.attempted == 0

    harness.clock.advance(seconds=120)
    await harness.scheduler.force_sync()
    assert harness.queue.get(event_id).retry_count == 2

    harness.clock.advance(seconds=120)
    await harness.scheduler.force_sync()
    event = harness.queue.get(event_id)
    assert event.synced is True
    assert event.retry_count == 2
    assert len(harness.collector.attempts) == 3


@pytest.mark.asyncio
async def test_exhausted_events_are_skipped_until_retried() -> None:
    harness = Harness(InMemoryCollector(default=False), retry_delay_seconds=0)
    event_id = await harness.enqueue()

    for _ in range(3):
        await harness.scheduler.force_sync()
    exhausted_pass = await harness.scheduler.force_sync()

    assert exhausted_pass.attempted == 0
    assert harness.queue.get(event_id).exhausted
    assert harness.scheduler.status().failed_count == 1

    harness.collector.script(True)
    assert await harness.scheduler.retry_failed_items() == 1
    assert harness.queue.get(event_id).synced is True
    assert harness.scheduler.status().failed_count == 0


@pytest.mark.asyncio
async def test_collector_exception_counts_as_failure() -> None:
    harness = Harness(InMemoryCollector([DeliveryError("collector returned 500")]))
    event_id = await harness.enqueue()

    result = await harness.scheduler.force_sync()

    assert result.failed == 1
    assert harness.queue.get(event_id).retry_count == 1
    assert harness.queue.get(event_id).synced is False


@pytest.mark.asyncio
async def test_attempt_timeout_counts_as_failure() -> None:
    class HangingCollector(Collector):
        async def submit(self, event: OfflineEvent) -> bool:
            await asyncio.Event().wait()
            return True

    harness = Harness(HangingCollector(), attempt_timeout_seconds=0.01)
    event_id = await harness.enqueue()

    result = await harness.scheduler.force_sync()

    assert result.failed == 1
    assert harness.queue.get(event_id).retry_count == 1


@pytest.mark.asyncio
async def test_going_offline_stops_the_pass() -> None:
    harness: Harness

    class DisconnectingCollector(Collector):
        def __init__(self) -> None:
            self.attempts: list[str] = []

        async def submit(self, event: OfflineEvent) -> bool:
            self.attempts.append(event.id)
            await harness.scheduler.set_online(False)
            return True

    harness = Harness(DisconnectingCollector())
    for _ in range(3):
        await harness.enqueue()

    result = await harness.scheduler.force_sync()

    assert result.attempted == 1
    assert result.synced == 1
    assert result.interrupted is True
    assert len(harness.queue.list_pending()) == 2
    assert await harness.scheduler.force_sync() is None


@pytest.mark.asyncio
async def test_coming_online_triggers_a_pass() -> None:
    harness = Harness(InMemoryCollector(), online=False)
    event_id = await harness.enqueue(EventPriority.CRITICAL, EventKind.PANIC)

    assert await harness.scheduler.force_sync() is None

    result = await harness.scheduler.set_online(True)

    assert result.synced == 1
    assert harness.queue.get(event_id).synced is True


@pytest.mark.asyncio
async def test_coming_online_without_auto_sync_waits() -> None:
    harness = Harness(InMemoryCollector(), online=False, auto_sync=False)
    await harness.enqueue()

    assert await harness.scheduler.set_online(True) is None
    assert harness.scheduler.online is True
    assert len(harness.queue.list_pending()) == 1


@pytest.mark.asyncio
async def test_deliver_now_attempts_single_event() -> None:
    harness = Harness(InMemoryCollector())
    event_id = await harness.enqueue(EventPriority.CRITICAL, EventKind.PANIC)
    other = await harness.enqueue()

    assert await harness.scheduler.deliver_now(event_id) is True
    assert harness.queue.get(event_id).synced is True
    assert harness.queue.get(other).synced is False
    assert await harness.scheduler.deliver_now(event_id) is False

    await harness.scheduler.set_online(False)
    assert await harness.scheduler.deliver_now(other) is False


@pytest.mark.asyncio
async def test_pass_applies_retention() -> None:
    harness = Harness(InMemoryCollector())
    old = await harness.enqueue()
    await harness.scheduler.force_sync()

    harness.clock.advance(days=8)
    fresh = await harness.enqueue()
    result = await harness.scheduler.force_sync()

    assert result.pruned == 1
    assert harness.queue.get(old) is None
    assert harness.queue.get(fresh).synced is True


@pytest.mark.asyncio
async def test_background_watcher_syncs_on_reconnect() -> None:
    harness = Harness(InMemoryCollector(), online=False, sync_interval_seconds=3600)
    event_id = await harness.enqueue()

    await harness.scheduler.start()
    assert harness.scheduler.running is True
    harness.monitor.publish(True)
    await _wait_until(lambda: harness.queue.get(event_id).synced)
    await harness.scheduler.stop()

    assert harness.scheduler.running is False
    assert harness.collector.attempts == [event_id]


@pytest.mark.asyncio
async def test_background_timer_runs_periodic_passes() -> None:
    harness = Harness(InMemoryCollector(), sync_interval_seconds=0.01)
    event_id = await harness.enqueue()

    await harness.scheduler.start()
    await _wait_until(lambda: harness.queue.get(event_id).synced)
    await harness.scheduler.stop()

    assert harness.scheduler.metrics.pass_total["completed"] >= 1


@pytest.mark.asyncio
async def test_stop_lets_attempt_finish_and_picks_nothing_further() -> None:
    collector = GatedCollector()
    harness = Harness(collector, sync_interval_seconds=3600)
    first = await harness.enqueue(EventPriority.CRITICAL, EventKind.PANIC)
    second = await harness.enqueue()

    await harness.scheduler.start()
    pass_task = asyncio.create_task(harness.scheduler.force_sync())
    await collector.entered.wait()

    await harness.scheduler.stop()
    collector.release.set()
    result = await pass_task

    assert collector.attempts == [first]
    assert harness.queue.get(first).synced is True
    assert harness.queue.get(second).synced is False
    assert result.attempted == 1
    assert result.interrupted is True
    assert harness.scheduler.running is False


@pytest.mark.asyncio
async def test_finished_transition_stream_means_offline() -> None:
    class SilentMonitor(ConnectivityMonitor):
        def is_online(self) -> bool:
            return True

        async def transitions(self):
            for online in ():
                yield online

        async def close(self) -> None:
            return None

    queue = DurableQueue(InMemoryKeyValueStore(), OfflineConfig(sync_interval_seconds=3600), clock=FakeClock(START))
    event_id = await queue.enqueue(EventKind.LOCATION, {"seq": 0}, EventPriority.NORMAL)
    scheduler = SyncScheduler(queue, InMemoryCollector(), monitor=SilentMonitor())

    await scheduler.start()
    await _wait_until(lambda: not scheduler.online)

    assert await scheduler.deliver_now(event_id) is False
    assert await scheduler.force_sync() is None
    await scheduler.stop()


@pytest.mark.asyncio
async def test_timer_survives_unexpected_store_errors() -> None:
    class FlakyStore(InMemoryKeyValueStore):
        def __init__(self) -> None:
            super().__init__()
            self.failures = 0

        async def set(self, key: str, value: str) -> None:
            if self.failures:
                self.failures -= 1
                raise RuntimeError("backend unavailable")
            await super().set(key, value)

    store = FlakyStore()
    queue = DurableQueue(store, OfflineConfig(sync_interval_seconds=0.01), clock=FakeClock(START))
    event_id = await queue.enqueue(EventKind.LOCATION, {"seq": 0}, EventPriority.NORMAL)
    store.failures = 1
    scheduler = SyncScheduler(queue, InMemoryCollector(), monitor=QueueConnectivityMonitor(initial=True))

    await scheduler.start()
    await _wait_until(lambda: queue.get(event_id).synced)

    assert scheduler.running is True
    assert scheduler.metrics.pass_total["error"] == 1
    await scheduler.stop()
