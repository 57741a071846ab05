from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class CompanionSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    SERVICE_NAME: str = "safety-companion"
    LOG_LEVEL: str = "INFO"
    LOCAL_TIMEZONE: str = "Asia/Kolkata"
    REDIS_URL: str | None = None
    QUEUE_FILE_PATH: str | None = None
    COLLECTOR_BASE_URL: str | None = None
    COLLECTOR_API_KEY: str | None = None
    CONNECTIVITY_PROBE_URL: str | None = None
    CONNECTIVITY_PROBE_INTERVAL_SECONDS: float = 15.0

    OFFLINE_ENABLED: bool = True
    OFFLINE_MAX_STORAGE_BYTES: int = 50 * 1024 * 1024
    OFFLINE_MAX_RETRIES: int = 3
    OFFLINE_SYNC_INTERVAL_SECONDS: float = 300.0
    OFFLINE_RETRY_DELAY_SECONDS: float = 120.0
    OFFLINE_INTER_ITEM_DELAY_SECONDS: float = 1.0
    OFFLINE_ATTEMPT_TIMEOUT_SECONDS: float = 10.0
    OFFLINE_RETENTION_DAYS: float = 7.0
    OFFLINE_AUTO_SYNC: bool = True
    OFFLINE_STORAGE_FULL_POLICY: str = "reject_low_priority"

    BEHAVIOR_HISTORY_SIZE: int = 100


def load_settings(service_name: str = "safety-companion") -> CompanionSettings:
    return CompanionSettings(SERVICE_NAME=service_name)
