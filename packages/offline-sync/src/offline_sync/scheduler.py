from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import contextlib
from datetime import datetime, timedelta, timezone
import logging
import time

from opentelemetry import trace

from offline_sync.collector import Collector
from offline_sync.connectivity import ConnectivityMonitor
from offline_sync.config import OfflineConfig
from offline_sync.metrics import InMemorySyncMetricsCollector, QueueGaugeSample
from offline_sync.models import OfflineEvent, SyncPassResult, SyncStatus
from offline_sync.queue import DurableQueue
from offline_sync.retention import RetentionPolicy

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Drains the durable queue into the collector.

    At most one pass runs at a time. The ``syncing`` flag is taken before the
    first suspension point, so concurrent triggers on the same loop observe
    it and return without doing anything. Stopping is cooperative: the
    attempt in progress completes and no further items are picked.
    """

    def __init__(
        self,
        queue: DurableQueue,
        collector: Collector,
        monitor: ConnectivityMonitor | None = None,
        retention: RetentionPolicy | None = None,
        metrics: InMemorySyncMetricsCollector | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._queue = queue
        self._collector = collector
        self._monitor = monitor
        self._retention = retention or RetentionPolicy(timedelta(days=queue.config.retention_days))
        self._metrics = metrics or InMemorySyncMetricsCollector()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep_fn
        self._tracer = trace.get_tracer("safety-companion-offline-sync")

        self._online = monitor.is_online() if monitor is not None else True
        self._syncing = False
        self._last_sync_at: datetime | None = None
        self._in_flight: set[str] = set()
        self._stop_requested = False
        self._timer_reset = asyncio.Event()
        self._timer_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._pass_tasks: set[asyncio.Task[None]] = set()

    @property
    def online(self) -> bool:
        return self._online

    @property
    def syncing(self) -> bool:
        return self._syncing

    @property
    def last_sync_at(self) -> datetime | None:
        return self._last_sync_at

    @property
    def metrics(self) -> InMemorySyncMetricsCollector:
        return self._metrics

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def status(self) -> SyncStatus:
        return SyncStatus(
            online=self._online,
            last_sync_at=self._last_sync_at,
            pending_count=len(self._queue.list_pending()),
            synced_count=len(self._queue.list_synced()),
            failed_count=len(self._queue.list_failed()),
            syncing=self._syncing,
        )

    def apply_config(self, previous: OfflineConfig, current: OfflineConfig) -> None:
        self._retention = RetentionPolicy(timedelta(days=current.retention_days))
        if previous.sync_interval_seconds != current.sync_interval_seconds or previous.auto_sync != current.auto_sync:
            self._timer_reset.set()

    async def set_online(self, online: bool) -> SyncPassResult | None:
        if self._apply_transition(online):
            return await self.run_pass()
        return None

    async def force_sync(self) -> SyncPassResult | None:
        return await self.run_pass()

    async def retry_failed_items(self) -> int:
        reset = await self._queue.reset_failed()
        if self._online:
            await self.run_pass()
        return reset

    async def deliver_now(self, event_id: str) -> bool:
        if not self._online or event_id in self._in_flight:
            return False
        event = self._queue.get(event_id)
        if event is None or not event.pending:
            return False
        return await self._attempt(event)

    async def run_pass(self) -> SyncPassResult | None:
        if self._syncing:
            logger.debug("sync_pass_skipped_busy", extra={"component": "offline_sync"})
            return None
        if not self._online:
            logger.debug("sync_pass_skipped_offline", extra={"component": "offline_sync"})
            return None
        if not self._queue.config.enabled:
            return None

        self._syncing = True
        started = time.perf_counter()
        try:
            with self._tracer.start_as_current_span("offline_sync.pass") as span:
                result = await self._drain()
                span.set_attribute("offline_sync.attempted", result.attempted)
                span.set_attribute("offline_sync.synced", result.synced)
                span.set_attribute("offline_sync.interrupted", result.interrupted)
        except Exception:
            self._metrics.increment_pass("error")
            raise
        finally:
            self._syncing = False
            self._metrics.observe_pass_duration(time.perf_counter() - started)
            self._record_queue_sample()

        self._metrics.increment_pass("interrupted" if result.interrupted else "completed")
        logger.info(
            "sync_pass_finished",
            extra={
                "component": "offline_sync",
                "attempted": result.attempted,
                "synced": result.synced,
                "failed": result.failed,
                "pruned": result.pruned,
                "interrupted": result.interrupted,
            },
        )
        return result

    async def start(self) -> None:
        if self.running:
            return
        self._stop_requested = False
        self._timer_reset.clear()
        self._timer_task = asyncio.create_task(self._timer_loop())
        if self._monitor is not None:
            self._online = self._monitor.is_online()
            self._watch_task = asyncio.create_task(self._watch_connectivity())
        logger.info(
            "sync_scheduler_started",
            extra={"component": "offline_sync", "interval_seconds": self._queue.config.sync_interval_seconds},
        )

    async def stop(self) -> None:
        self._stop_requested = True
        self._timer_reset.set()
        if self._watch_task is not None:
            self._watch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._watch_task
            self._watch_task = None
        if self._monitor is not None:
            await self._monitor.close()
        pending = [task for task in (self._timer_task, *self._pass_tasks) if task is not None]
        await asyncio.gather(*pending, return_exceptions=True)
        self._timer_task = None
        self._pass_tasks.clear()
        logger.info("sync_scheduler_stopped", extra={"component": "offline_sync"})

    async def _drain(self) -> SyncPassResult:
        config = self._queue.config
        due = sorted(
            (event for event in self._queue.list_pending() if self._is_due(event, self._clock(), config)),
            key=lambda event: (-event.priority.rank, event.created_at),
        )

        attempted = synced = failed = exhausted = 0
        interrupted = False
        for index, snapshot in enumerate(due):
            if index > 0 and config.inter_item_delay_seconds > 0:
                await self._sleep(config.inter_item_delay_seconds)
            if not self._online or self._stop_requested:
                interrupted = True
                break
            event = self._queue.get(snapshot.id)
            if (
                event is None
                or not event.pending
                or event.id in self._in_flight
                or not self._is_due(event, self._clock(), config)
            ):
                continue
            attempted += 1
            if await self._attempt(event):
                synced += 1
                continue
            failed += 1
            updated = self._queue.get(event.id)
            if updated is not None and updated.exhausted:
                exhausted += 1

        finished_at = self._clock()
        self._last_sync_at = finished_at
        pruned = await self._retention.apply(self._queue, finished_at)
        self._metrics.add_pruned(pruned)
        return SyncPassResult(
            attempted=attempted,
            synced=synced,
            failed=failed,
            exhausted=exhausted,
            pruned=pruned,
            interrupted=interrupted,
            finished_at=finished_at,
        )

    async def _attempt(self, event: OfflineEvent) -> bool:
        timeout = self._queue.config.attempt_timeout_seconds
        self._in_flight.add(event.id)
        try:
            try:
                accepted = bool(await asyncio.wait_for(self._collector.submit(event), timeout=timeout))
            except asyncio.TimeoutError:
                logger.warning(
                    "offline_delivery_timeout",
                    extra={"component": "offline_sync", "event_id": event.id, "timeout_seconds": timeout},
                )
                accepted = False
            except Exception as exc:
                logger.warning(
                    "offline_delivery_failed",
                    extra={"component": "offline_sync", "event_id": event.id, "error": str(exc)},
                )
                accepted = False

            if accepted:
                await self._queue.mark_synced(event.id)
            else:
                await self._queue.increment_retry(event.id)
        finally:
            self._in_flight.discard(event.id)

        self._metrics.increment_delivery(event.kind.value, "synced" if accepted else "failed")
        return accepted

    def _is_due(self, event: OfflineEvent, now: datetime, config: OfflineConfig) -> bool:
        if event.last_attempt_at is None:
            return True
        return event.last_attempt_at + timedelta(seconds=config.retry_delay_seconds) <= now

    def _apply_transition(self, online: bool) -> bool:
        was_online = self._online
        self._online = online
        if was_online != online:
            logger.info("connectivity_state_changed", extra={"component": "offline_sync", "online": online})
        return online and not was_online and self._queue.config.auto_sync

    async def _timer_loop(self) -> None:
        while not self._stop_requested:
            self._timer_reset.clear()
            try:
                await asyncio.wait_for(self._timer_reset.wait(), timeout=self._queue.config.sync_interval_seconds)
                # interval changed or stop requested; re-arm with the current settings
                continue
            except asyncio.TimeoutError:
                pass
            if self._stop_requested or not self._queue.config.auto_sync:
                continue
            await self._run_pass_logged()

    async def _watch_connectivity(self) -> None:
        assert self._monitor is not None
        async for online in self._monitor.transitions():
            if self._apply_transition(online):
                task = asyncio.create_task(self._run_pass_logged())
                self._pass_tasks.add(task)
                task.add_done_callback(self._pass_tasks.discard)
        # no monitor left to report a reconnect; assume offline until restarted
        logger.warning("connectivity_stream_ended", extra={"component": "offline_sync"})
        self._apply_transition(False)

    async def _run_pass_logged(self) -> None:
        try:
            await self.run_pass()
        except Exception:
            logger.exception("sync_pass_failed", extra={"component": "offline_sync"})

    def _record_queue_sample(self) -> None:
        usage = self._queue.storage_usage()
        self._metrics.set_queue_sample(
            QueueGaugeSample(
                pending=len(self._queue.list_pending()),
                synced=len(self._queue.list_synced()),
                failed=len(self._queue.list_failed()),
                used_bytes=usage.used_bytes,
            )
        )
