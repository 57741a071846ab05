from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timedelta
import json
import logging
from typing import Any

from geo_math import GeoPoint
from offline_sync import (
    Collector,
    ConnectivityMonitor,
    DurableQueue,
    EventKind,
    EventPriority,
    HttpCollector,
    HttpProbeConnectivityMonitor,
    InMemoryCollector,
    InMemoryKeyValueStore,
    InMemorySyncMetricsCollector,
    JsonFileKeyValueStore,
    KeyValueStore,
    OfflineConfig,
    OfflineEvent,
    QueueConnectivityMonitor,
    RedisKeyValueStore,
    RetentionPolicy,
    StorageUsage,
    SyncPassResult,
    SyncPrometheusExporter,
    SyncScheduler,
    SyncStatus,
    create_redis_client,
)
from safety_devkit.config import CompanionSettings, load_settings
from safety_devkit.timezone import local_now, resolve_zone, to_local
from safety_score import (
    BehaviorSnapshot,
    BehaviorTracker,
    BehaviorTrackerConfig,
    LocationSample,
    SafetyScore,
    SafetyScoreEngine,
    TrackingStats,
)

CONFIG_KEY = "offline_config"

logger = logging.getLogger(__name__)


def offline_config_from_settings(settings: CompanionSettings) -> OfflineConfig:
    return OfflineConfig(
        enabled=settings.OFFLINE_ENABLED,
        max_storage_bytes=settings.OFFLINE_MAX_STORAGE_BYTES,
        storage_full_policy=settings.OFFLINE_STORAGE_FULL_POLICY,
        max_retries=settings.OFFLINE_MAX_RETRIES,
        sync_interval_seconds=settings.OFFLINE_SYNC_INTERVAL_SECONDS,
        retry_delay_seconds=settings.OFFLINE_RETRY_DELAY_SECONDS,
        inter_item_delay_seconds=settings.OFFLINE_INTER_ITEM_DELAY_SECONDS,
        attempt_timeout_seconds=settings.OFFLINE_ATTEMPT_TIMEOUT_SECONDS,
        retention_days=settings.OFFLINE_RETENTION_DAYS,
        auto_sync=settings.OFFLINE_AUTO_SYNC,
    )


def _build_store(settings: CompanionSettings) -> tuple[KeyValueStore, Any]:
    if settings.REDIS_URL:
        client = create_redis_client(settings.REDIS_URL)
        return RedisKeyValueStore(client), client
    if settings.QUEUE_FILE_PATH:
        return JsonFileKeyValueStore(settings.QUEUE_FILE_PATH), None
    logger.warning("offline_store_in_memory", extra={"component": "companion"})
    return InMemoryKeyValueStore(), None


def _build_collector(settings: CompanionSettings) -> Collector:
    if settings.COLLECTOR_BASE_URL:
        return HttpCollector(
            base_url=settings.COLLECTOR_BASE_URL,
            api_key=settings.COLLECTOR_API_KEY or "",
            timeout_seconds=settings.OFFLINE_ATTEMPT_TIMEOUT_SECONDS,
        )
    logger.warning("collector_not_configured", extra={"component": "companion"})
    return InMemoryCollector()


def _build_monitor(settings: CompanionSettings) -> ConnectivityMonitor:
    if settings.CONNECTIVITY_PROBE_URL:
        return HttpProbeConnectivityMonitor(
            probe_url=settings.CONNECTIVITY_PROBE_URL,
            interval_seconds=settings.CONNECTIVITY_PROBE_INTERVAL_SECONDS,
        )
    return QueueConnectivityMonitor(initial=True)


class SafetyCompanion:
    """Explicitly constructed home of the scoring and offline sync state.

    Build one with ``await SafetyCompanion.create(settings)`` and release it
    with ``await companion.shutdown()``. Nothing here is a module level
    singleton, so tests and hosts can run several side by side.
    """

    def __init__(
        self,
        settings: CompanionSettings,
        store: KeyValueStore,
        engine: SafetyScoreEngine,
        tracker: BehaviorTracker,
        queue: DurableQueue,
        scheduler: SyncScheduler,
        monitor: ConnectivityMonitor,
        clock: Callable[[], datetime],
        redis_client: Any = None,
    ) -> None:
        self.settings = settings
        self._clock = clock
        self._store = store
        self._engine = engine
        self._tracker = tracker
        self._queue = queue
        self._scheduler = scheduler
        self._monitor = monitor
        self._redis_client = redis_client
        self._exporter = SyncPrometheusExporter()
        self._closed = False

    @classmethod
    async def create(
        cls,
        settings: CompanionSettings | None = None,
        *,
        store: KeyValueStore | None = None,
        collector: Collector | None = None,
        monitor: ConnectivityMonitor | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
        start_background: bool = True,
    ) -> SafetyCompanion:
        settings = settings or load_settings()
        zone_name = settings.LOCAL_TIMEZONE
        clock = clock or (lambda: local_now(zone_name))

        redis_client = None
        if store is None:
            store, redis_client = _build_store(settings)
        collector = collector or _build_collector(settings)
        monitor = monitor or _build_monitor(settings)

        config = offline_config_from_settings(settings)
        stored_config = await store.get(CONFIG_KEY)
        if stored_config:
            config = OfflineConfig.from_dict(json.loads(stored_config), config)

        queue = DurableQueue(store, config, clock=clock)
        await queue.load()
        scheduler = SyncScheduler(
            queue,
            collector,
            monitor=monitor,
            retention=RetentionPolicy(timedelta(days=config.retention_days)),
            metrics=InMemorySyncMetricsCollector(),
            clock=clock,
            sleep_fn=sleep_fn,
        )
        companion = cls(
            settings=settings,
            store=store,
            engine=SafetyScoreEngine(clock=clock, zone=resolve_zone(zone_name)),
            tracker=BehaviorTracker(BehaviorTrackerConfig(history_size=settings.BEHAVIOR_HISTORY_SIZE), clock=clock),
            queue=queue,
            scheduler=scheduler,
            monitor=monitor,
            clock=clock,
            redis_client=redis_client,
        )
        if start_background:
            await scheduler.start()
        logger.info(
            "safety_companion_started",
            extra={"component": "companion", "queued_events": len(queue), "online": scheduler.online},
        )
        return companion

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._scheduler.stop()
        if self._redis_client is not None:
            await self._redis_client.close()
        logger.info("safety_companion_stopped", extra={"component": "companion"})

    def now(self) -> datetime:
        return self._clock()

    def _localize(self, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return to_local(value, self.settings.LOCAL_TIMEZONE)

    # scoring and behaviour

    def compute_score(
        self,
        location: LocationSample | GeoPoint | None = None,
        *,
        at: datetime | None = None,
    ) -> SafetyScore:
        at = self._localize(at)
        target = location or self._tracker.latest_location()
        if target is None:
            raise ValueError("no location available; record a location or pass one explicitly")
        return self._engine.compute_score(target, self._tracker.snapshot(at), at=at)

    def get_current_score(self) -> SafetyScore | None:
        return self._engine.get_current_score()

    def record_location(self, sample: LocationSample) -> None:
        self._tracker.record_location(replace(sample, timestamp=self._localize(sample.timestamp)))

    async def record_panic_press(self, at: datetime | None = None, payload: dict[str, Any] | None = None) -> str:
        """Count the press for scoring and queue it as a critical panic event."""
        self._tracker.record_panic_press(self._localize(at))
        latest = self._tracker.latest_location()
        body = dict(payload or {})
        if latest is not None:
            body.setdefault("latitude", latest.latitude)
            body.setdefault("longitude", latest.longitude)
        return await self.enqueue_event(EventKind.PANIC, body, EventPriority.CRITICAL)

    def record_interaction(self, at: datetime | None = None) -> None:
        self._tracker.record_interaction(self._localize(at))

    def behavior_snapshot(self, now: datetime | None = None) -> BehaviorSnapshot:
        return self._tracker.snapshot(self._localize(now))

    def tracking_stats(self) -> TrackingStats:
        return self._tracker.tracking_stats()

    def reset_behavior(self) -> None:
        self._tracker.reset()
        self._engine.reset()

    # offline events and sync

    async def enqueue_event(
        self,
        kind: EventKind | str,
        payload: Any,
        priority: EventPriority | str = EventPriority.NORMAL,
        max_retries: int | None = None,
    ) -> str:
        event_id = await self._queue.enqueue(kind, payload, priority, max_retries)
        if event_id and self._scheduler.online:
            await self._scheduler.deliver_now(event_id)
        return event_id

    async def force_sync(self) -> SyncPassResult | None:
        return await self._scheduler.force_sync()

    async def retry_failed_items(self) -> int:
        return await self._scheduler.retry_failed_items()

    async def report_connectivity(self, online: bool) -> SyncPassResult | None:
        if isinstance(self._monitor, QueueConnectivityMonitor):
            self._monitor.publish(online)
        return await self._scheduler.set_online(online)

    async def check_network_status(self) -> bool:
        if isinstance(self._monitor, HttpProbeConnectivityMonitor):
            online = await self._monitor.probe()
        else:
            online = self._monitor.is_online()
        await self._scheduler.set_online(online)
        return online

    def get_sync_status(self) -> SyncStatus:
        return self._scheduler.status()

    def get_storage_usage(self) -> StorageUsage:
        return self._queue.storage_usage()

    def get_event(self, event_id: str) -> OfflineEvent | None:
        return self._queue.get(event_id)

    def list_failed_events(self) -> list[OfflineEvent]:
        return self._queue.list_failed()

    def list_events_by_kind(self, kind: EventKind | str) -> list[OfflineEvent]:
        return self._queue.list_by_kind(kind)

    async def clear_events(self) -> int:
        removed = await self._queue.clear()
        logger.info("offline_events_cleared", extra={"component": "companion", "count": removed})
        return removed

    @property
    def configuration(self) -> OfflineConfig:
        return self._queue.config

    async def update_configuration(self, **changes: Any) -> OfflineConfig:
        previous = self._queue.config
        updated = previous.with_updates(**changes)
        await self._store.set(CONFIG_KEY, json.dumps(updated.to_dict()))
        self._queue.update_config(updated)
        self._scheduler.apply_config(previous, updated)
        logger.info(
            "offline_configuration_updated",
            extra={"component": "companion", "changed": sorted(changes)},
        )
        return updated

    def render_metrics(self) -> str:
        return self._exporter.render(self._scheduler.metrics)
