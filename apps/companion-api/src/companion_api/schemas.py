from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

EventKindName = Literal["location", "panic", "anomaly", "geo_fence", "safety_score", "digital_id"]
PriorityName = Literal["low", "normal", "high", "critical"]


class LocationRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_meters: float = Field(default=0.0, ge=0)
    timestamp: datetime | None = None


class ScoreRequest(BaseModel):
    location: LocationRequest | None = None
    at: datetime | None = None


class PanicPressRequest(BaseModel):
    at: datetime | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class InteractionRequest(BaseModel):
    at: datetime | None = None


class EnqueueEventRequest(BaseModel):
    kind: EventKindName
    payload: Any = None
    priority: PriorityName = "normal"
    max_retries: int | None = Field(default=None, ge=0)


class ConnectivityRequest(BaseModel):
    online: bool


class ConfigurationPatchRequest(BaseModel):
    enabled: bool | None = None
    max_storage_bytes: int | None = None
    storage_full_ratio: float | None = None
    storage_full_policy: Literal["reject_low_priority", "evict_oldest"] | None = None
    max_retries: int | None = None
    sync_interval_seconds: float | None = None
    retry_delay_seconds: float | None = None
    inter_item_delay_seconds: float | None = None
    attempt_timeout_seconds: float | None = None
    retention_days: float | None = None
    auto_sync: bool | None = None
