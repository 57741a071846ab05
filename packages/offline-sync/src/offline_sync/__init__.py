from offline_sync.collector import Collector, HttpCollector, InMemoryCollector
from offline_sync.config import OfflineConfig, StorageFullPolicy
from offline_sync.connectivity import ConnectivityMonitor, HttpProbeConnectivityMonitor, QueueConnectivityMonitor
from offline_sync.exceptions import ConfigurationError, DeliveryError, OfflineSyncError, StorageError
from offline_sync.kv_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    create_redis_client,
)
from offline_sync.metrics import InMemorySyncMetricsCollector, SyncPrometheusExporter
from offline_sync.models import (
    EventKind,
    EventPriority,
    OfflineEvent,
    StorageUsage,
    SyncPassResult,
    SyncStatus,
)
from offline_sync.queue import DurableQueue, generate_event_id
from offline_sync.retention import RetentionPolicy
from offline_sync.scheduler import SyncScheduler

__all__ = [
    "Collector",
    "ConfigurationError",
    "ConnectivityMonitor",
    "DeliveryError",
    "DurableQueue",
    "EventKind",
    "EventPriority",
    "HttpCollector",
    "HttpProbeConnectivityMonitor",
    "InMemoryCollector",
    "InMemoryKeyValueStore",
    "InMemorySyncMetricsCollector",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "OfflineConfig",
    "OfflineEvent",
    "OfflineSyncError",
    "QueueConnectivityMonitor",
    "RedisKeyValueStore",
    "RetentionPolicy",
    "StorageError",
    "StorageFullPolicy",
    "StorageUsage",
    "SyncPassResult",
    "SyncPrometheusExporter",
    "SyncScheduler",
    "SyncStatus",
    "create_redis_client",
    "generate_event_id",
]
