from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    LOCATION = "location"
    PANIC = "panic"
    ANOMALY = "anomaly"
    GEO_FENCE = "geo_fence"
    SAFETY_SCORE = "safety_score"
    DIGITAL_ID = "digital_id"


class EventPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    EventPriority.LOW: 1,
    EventPriority.NORMAL: 2,
    EventPriority.HIGH: 3,
    EventPriority.CRITICAL: 4,
}


@dataclass(frozen=True)
class OfflineEvent:
    id: str
    kind: EventKind
    payload: Any
    created_at: datetime
    priority: EventPriority = EventPriority.NORMAL
    retry_count: int = 0
    max_retries: int = 3
    synced: bool = False
    last_attempt_at: datetime | None = None

    @property
    def exhausted(self) -> bool:
        return not self.synced and self.retry_count >= self.max_retries

    @property
    def pending(self) -> bool:
        return not self.synced and not self.exhausted

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
            "priority": self.priority.value,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "synced": self.synced,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> OfflineEvent:
        last_attempt_at = payload.get("last_attempt_at")
        return cls(
            id=str(payload["id"]),
            kind=EventKind(payload["kind"]),
            payload=payload.get("payload"),
            created_at=datetime.fromisoformat(str(payload["created_at"])),
            priority=EventPriority(payload.get("priority", EventPriority.NORMAL.value)),
            retry_count=int(payload.get("retry_count", 0)),
            max_retries=int(payload.get("max_retries", 3)),
            synced=bool(payload.get("synced", False)),
            last_attempt_at=datetime.fromisoformat(str(last_attempt_at)) if last_attempt_at else None,
        )


@dataclass(frozen=True)
class SyncStatus:
    online: bool
    last_sync_at: datetime | None
    pending_count: int
    synced_count: int
    failed_count: int
    syncing: bool


@dataclass(frozen=True)
class StorageUsage:
    used_bytes: int
    ceiling_bytes: int
    percentage: float


@dataclass(frozen=True)
class SyncPassResult:
    attempted: int
    synced: int
    failed: int
    exhausted: int
    pruned: int
    interrupted: bool
    finished_at: datetime
