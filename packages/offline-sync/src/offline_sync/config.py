from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any

from offline_sync.exceptions import ConfigurationError


class StorageFullPolicy(str, Enum):
    REJECT_LOW_PRIORITY = "reject_low_priority"
    EVICT_OLDEST = "evict_oldest"


@dataclass(frozen=True)
class OfflineConfig:
    enabled: bool = True
    max_storage_bytes: int = 50 * 1024 * 1024
    storage_full_ratio: float = 0.9
    storage_full_policy: StorageFullPolicy = StorageFullPolicy.REJECT_LOW_PRIORITY
    max_retries: int = 3
    sync_interval_seconds: float = 300.0
    retry_delay_seconds: float = 120.0
    inter_item_delay_seconds: float = 1.0
    attempt_timeout_seconds: float = 10.0
    retention_days: float = 7.0
    auto_sync: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.storage_full_policy, StorageFullPolicy):
            try:
                object.__setattr__(self, "storage_full_policy", StorageFullPolicy(self.storage_full_policy))
            except ValueError as exc:
                raise ConfigurationError(f"unknown storage_full_policy: {self.storage_full_policy}") from exc
        if self.max_storage_bytes <= 0:
            raise ConfigurationError("max_storage_bytes must be > 0")
        if not 0 < self.storage_full_ratio <= 1:
            raise ConfigurationError("storage_full_ratio must be between 0 (exclusive) and 1")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        if self.sync_interval_seconds <= 0:
            raise ConfigurationError("sync_interval_seconds must be > 0")
        if self.retry_delay_seconds < 0:
            raise ConfigurationError("retry_delay_seconds must be >= 0")
        if self.inter_item_delay_seconds < 0:
            raise ConfigurationError("inter_item_delay_seconds must be >= 0")
        if self.attempt_timeout_seconds <= 0:
            raise ConfigurationError("attempt_timeout_seconds must be > 0")
        if self.retention_days <= 0:
            raise ConfigurationError("retention_days must be > 0")

    def with_updates(self, **changes: Any) -> OfflineConfig:
        known = {item.name for item in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigurationError(f"unknown configuration keys: {', '.join(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["storage_full_policy"] = self.storage_full_policy.value
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any], base: OfflineConfig | None = None) -> OfflineConfig:
        return (base or cls()).with_updates(**payload)
