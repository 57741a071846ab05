from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
import json
import logging
import secrets
from typing import Any

from offline_sync.config import OfflineConfig, StorageFullPolicy
from offline_sync.exceptions import ConfigurationError, StorageError
from offline_sync.kv_store import KeyValueStore
from offline_sync.models import EventKind, EventPriority, OfflineEvent, StorageUsage

QUEUE_KEY = "offline_events"

logger = logging.getLogger(__name__)


def generate_event_id(now: datetime) -> str:
    return f"offline_{int(now.timestamp() * 1000)}_{secrets.token_hex(8)}"


class DurableQueue:
    """Append-only local store of offline events.

    The queue is the only owner of its records. Every mutation takes the
    queue lock, persists the new contents and only then swaps them in, so a
    failed write leaves the in-memory view untouched.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: OfflineConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[datetime], str] = generate_event_id,
    ) -> None:
        self._store = store
        self._config = config or OfflineConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory
        self._events: dict[str, OfflineEvent] = {}
        self._used_bytes = 0
        self._lock = asyncio.Lock()

    @property
    def config(self) -> OfflineConfig:
        return self._config

    def update_config(self, config: OfflineConfig) -> None:
        self._config = config

    async def load(self) -> int:
        raw = await self._store.get(QUEUE_KEY)
        if not raw:
            return 0
        try:
            items = json.loads(raw)
            events = [OfflineEvent.from_dict(item) for item in items]
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"stored offline queue is unreadable: {exc}") from exc
        async with self._lock:
            self._events = {event.id: event for event in events}
            self._used_bytes = len(raw.encode("utf-8"))
        logger.info("offline_queue_loaded", extra={"component": "offline_sync", "event_count": len(events)})
        return len(events)

    async def enqueue(
        self,
        kind: EventKind | str,
        payload: Any,
        priority: EventPriority | str = EventPriority.NORMAL,
        max_retries: int | None = None,
    ) -> str:
        if not self._config.enabled:
            logger.info("offline_storage_disabled", extra={"component": "offline_sync"})
            return ""
        kind = EventKind(kind)
        priority = EventPriority(priority)
        retries = self._config.max_retries if max_retries is None else max_retries
        if retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        _ensure_serializable(payload)

        async with self._lock:
            events = dict(self._events)
            if self._is_full():
                if not self._make_room(events, priority):
                    logger.warning(
                        "offline_event_rejected_storage_full",
                        extra={
                            "component": "offline_sync",
                            "kind": kind.value,
                            "priority": priority.value,
                            "used_bytes": self._used_bytes,
                        },
                    )
                    return ""

            now = self._clock()
            event_id = self._id_factory(now)
            while event_id in events:
                event_id = self._id_factory(now)
            event = OfflineEvent(
                id=event_id,
                kind=kind,
                payload=payload,
                created_at=now,
                priority=priority,
                max_retries=retries,
            )
            events[event_id] = event
            await self._persist(events)

        logger.info(
            "offline_event_enqueued",
            extra={"component": "offline_sync", "event_id": event_id, "kind": kind.value, "priority": priority.value},
        )
        return event_id

    async def mark_synced(self, event_id: str) -> bool:
        async with self._lock:
            event = self._events.get(event_id)
            if event is None:
                logger.warning("offline_event_unknown", extra={"component": "offline_sync", "event_id": event_id})
                return False
            if event.synced:
                return True
            events = dict(self._events)
            events[event_id] = replace(event, synced=True, last_attempt_at=self._clock())
            await self._persist(events)
        return True

    async def increment_retry(self, event_id: str) -> bool:
        async with self._lock:
            event = self._events.get(event_id)
            if event is None:
                logger.warning("offline_event_unknown", extra={"component": "offline_sync", "event_id": event_id})
                return False
            if event.synced or event.retry_count >= event.max_retries:
                return False
            updated = replace(event, retry_count=event.retry_count + 1, last_attempt_at=self._clock())
            events = dict(self._events)
            events[event_id] = updated
            await self._persist(events)

        if updated.exhausted:
            logger.warning(
                "offline_event_exhausted",
                extra={"component": "offline_sync", "event_id": event_id, "max_retries": updated.max_retries},
            )
        return True

    async def reset_failed(self) -> int:
        async with self._lock:
            failed = [event for event in self._events.values() if event.exhausted]
            if not failed:
                return 0
            events = dict(self._events)
            for event in failed:
                events[event.id] = replace(event, retry_count=0, last_attempt_at=None)
            await self._persist(events)
        logger.info("offline_failed_events_reset", extra={"component": "offline_sync", "count": len(failed)})
        return len(failed)

    async def prune(self, predicate: Callable[[OfflineEvent], bool]) -> int:
        async with self._lock:
            kept = {event_id: event for event_id, event in self._events.items() if not predicate(event)}
            removed = len(self._events) - len(kept)
            if removed:
                await self._persist(kept)
        return removed

    async def clear(self) -> int:
        return await self.prune(lambda _: True)

    def get(self, event_id: str) -> OfflineEvent | None:
        return self._events.get(event_id)

    def list_all(self) -> list[OfflineEvent]:
        return list(self._events.values())

    def list_pending(self) -> list[OfflineEvent]:
        return [event for event in self._events.values() if event.pending]

    def list_failed(self) -> list[OfflineEvent]:
        return [event for event in self._events.values() if event.exhausted]

    def list_synced(self) -> list[OfflineEvent]:
        return [event for event in self._events.values() if event.synced]

    def list_by_kind(self, kind: EventKind | str) -> list[OfflineEvent]:
        kind = EventKind(kind)
        return [event for event in self._events.values() if event.kind is kind]

    def __len__(self) -> int:
        return len(self._events)

    def storage_usage(self) -> StorageUsage:
        ceiling = self._config.max_storage_bytes
        return StorageUsage(
            used_bytes=self._used_bytes,
            ceiling_bytes=ceiling,
            percentage=(self._used_bytes / ceiling) * 100.0,
        )

    def is_storage_full(self) -> bool:
        return self._is_full()

    def _is_full(self, used_bytes: int | None = None) -> bool:
        used = self._used_bytes if used_bytes is None else used_bytes
        return used >= self._config.max_storage_bytes * self._config.storage_full_ratio

    def _make_room(self, events: dict[str, OfflineEvent], incoming: EventPriority) -> bool:
        if self._config.storage_full_policy is StorageFullPolicy.REJECT_LOW_PRIORITY:
            return incoming.rank >= EventPriority.HIGH.rank

        # synced first, then lowest priority, then oldest; critical events are never evicted
        candidates = sorted(
            (
                event
                for event in events.values()
                if event.synced
                or (event.priority is not EventPriority.CRITICAL and event.priority.rank <= incoming.rank)
            ),
            key=lambda event: (not event.synced, event.priority.rank, event.created_at),
        )
        estimated = self._used_bytes
        evicted = 0
        for event in candidates:
            if not self._is_full(estimated):
                break
            del events[event.id]
            estimated -= len(json.dumps(event.to_dict(), ensure_ascii=True)) + 2
            evicted += 1
        if evicted:
            logger.warning(
                "offline_events_evicted",
                extra={"component": "offline_sync", "count": evicted, "incoming_priority": incoming.value},
            )
        return not self._is_full(estimated)

    async def _persist(self, events: dict[str, OfflineEvent]) -> None:
        serialized = json.dumps([event.to_dict() for event in events.values()], ensure_ascii=True)
        await self._store.set(QUEUE_KEY, serialized)
        self._events = events
        self._used_bytes = len(serialized.encode("utf-8"))


def _ensure_serializable(payload: Any) -> None:
    try:
        json.dumps(payload)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"event payload must be JSON serializable: {exc}") from exc
