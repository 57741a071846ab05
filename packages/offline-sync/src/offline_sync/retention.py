from __future__ import annotations

from datetime import datetime, timedelta
import logging

from offline_sync.models import OfflineEvent
from offline_sync.queue import DurableQueue

logger = logging.getLogger(__name__)


class RetentionPolicy:
    """Drops synced events older than ``window``. Exhausted events are kept."""

    def __init__(self, window: timedelta = timedelta(days=7)) -> None:
        if window <= timedelta(0):
            raise ValueError("retention window must be > 0")
        self._window = window

    @property
    def window(self) -> timedelta:
        return self._window

    def is_expired(self, event: OfflineEvent, now: datetime) -> bool:
        return event.synced and now - event.created_at > self._window

    async def apply(self, queue: DurableQueue, now: datetime) -> int:
        removed = await queue.prune(lambda event: self.is_expired(event, now))
        if removed:
            logger.info("offline_events_pruned", extra={"component": "offline_sync", "count": removed})
        return removed
