import pytest

from offline_sync.config import OfflineConfig, StorageFullPolicy
from offline_sync.exceptions import ConfigurationError


def test_offline_config_defaults() -> None:
    config = OfflineConfig()

    assert config.enabled is True
    assert config.max_storage_bytes == 50 * 1024 * 1024
    assert config.max_retries == 3
    assert config.sync_interval_seconds == 300.0
    assert config.retry_delay_seconds == 120.0
    assert config.inter_item_delay_seconds == 1.0
    assert config.attempt_timeout_seconds == 10.0
    assert config.retention_days == 7.0
    assert config.storage_full_policy is StorageFullPolicy.REJECT_LOW_PRIORITY


@pytest.mark.parametrize(
    "changes",
    [
        {"max_storage_bytes": 0},
        {"storage_full_ratio": 0},
        {"storage_full_ratio": 1.5},
        {"max_retries": -1},
        {"sync_interval_seconds": 0},
        {"retry_delay_seconds": -1},
        {"attempt_timeout_seconds": 0},
        {"retention_days": 0},
        {"storage_full_policy": "drop_everything"},
    ],
)
def test_offline_config_rejects_invalid_values(changes) -> None:
    with pytest.raises(ConfigurationError):
        OfflineConfig(**changes)


def test_offline_config_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        OfflineConfig(max_retries=-5)


def test_offline_config_with_updates_rejects_unknown_keys() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        OfflineConfig().with_updates(sync_every="often")

    assert "sync_every" in str(exc_info.value)


def test_offline_config_from_dict_coerces_policy() -> None:
    base = OfflineConfig(max_retries=5)
    config = OfflineConfig.from_dict({"storage_full_policy": "evict_oldest", "sync_interval_seconds": 60}, base)

    assert config.storage_full_policy is StorageFullPolicy.EVICT_OLDEST
    assert config.sync_interval_seconds == 60
    assert config.max_retries == 5
    assert config.to_dict()["storage_full_policy"] == "evict_oldest"
