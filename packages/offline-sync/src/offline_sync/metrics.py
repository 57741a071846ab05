from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Gauge, generate_latest


@dataclass(frozen=True)
class QueueGaugeSample:
    pending: int
    synced: int
    failed: int
    used_bytes: int


class InMemorySyncMetricsCollector:
    def __init__(self) -> None:
        self.pass_total: dict[str, int] = defaultdict(int)
        self.delivery_total: dict[tuple[str, str], int] = defaultdict(int)
        self.last_pass_duration_seconds = 0.0
        self.pruned_total = 0
        self.queue: QueueGaugeSample | None = None

    def increment_pass(self, outcome: str) -> None:
        self.pass_total[outcome] += 1

    def increment_delivery(self, kind: str, result: str) -> None:
        self.delivery_total[(kind, result)] += 1

    def observe_pass_duration(self, duration_seconds: float) -> None:
        self.last_pass_duration_seconds = duration_seconds

    def add_pruned(self, count: int) -> None:
        if count > 0:
            self.pruned_total += count

    def set_queue_sample(self, sample: QueueGaugeSample) -> None:
        self.queue = sample


class SyncPrometheusExporter:
    def __init__(self) -> None:
        self._registry = CollectorRegistry()
        self._pass_total = Gauge(
            "offline_sync_pass_total",
            "Sync passes grouped by outcome",
            labelnames=("outcome",),
            registry=self._registry,
        )
        self._delivery_total = Gauge(
            "offline_sync_delivery_total",
            "Delivery attempts grouped by event kind and result",
            labelnames=("kind", "result"),
            registry=self._registry,
        )
        self._pass_duration = Gauge(
            "offline_sync_last_pass_duration_seconds",
            "Duration of the most recent sync pass",
            registry=self._registry,
        )
        self._pruned_total = Gauge(
            "offline_sync_pruned_events_total",
            "Synced events removed by retention",
            registry=self._registry,
        )
        self._queue_events = Gauge(
            "offline_queue_events",
            "Queued events grouped by state",
            labelnames=("state",),
            registry=self._registry,
        )
        self._queue_bytes = Gauge(
            "offline_queue_used_bytes",
            "Serialized size of the offline queue",
            registry=self._registry,
        )

    def render(self, metrics: InMemorySyncMetricsCollector) -> str:
        for outcome, count in metrics.pass_total.items():
            self._pass_total.labels(outcome=outcome).set(count)
        for (kind, result), count in metrics.delivery_total.items():
            self._delivery_total.labels(kind=kind, result=result).set(count)
        self._pass_duration.set(metrics.last_pass_duration_seconds)
        self._pruned_total.set(metrics.pruned_total)
        if metrics.queue is not None:
            self._queue_events.labels(state="pending").set(metrics.queue.pending)
            self._queue_events.labels(state="synced").set(metrics.queue.synced)
            self._queue_events.labels(state="failed").set(metrics.queue.failed)
            self._queue_bytes.set(metrics.queue.used_bytes)
        return generate_latest(self._registry).decode("utf-8")
