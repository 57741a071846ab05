from __future__ import annotations

from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import math

from geo_math import haversine_distance_meters

from safety_score.evaluators import DEFAULT_RISK_ZONES, find_risk_zone
from safety_score.models import (
    BehaviorSnapshot,
    LocationSample,
    MovementType,
    RiskZone,
    TrackingStats,
)

logger = logging.getLogger(__name__)

MAX_HISTORY_SIZE = 100

LocationObserver = Callable[[LocationSample], None]


@dataclass(frozen=True)
class BehaviorTrackerConfig:
    history_size: int = MAX_HISTORY_SIZE
    behavior_window: timedelta = timedelta(hours=24)
    interaction_window: timedelta = timedelta(minutes=60)
    stationary_max_speed_mps: float = 0.5
    walking_max_speed_mps: float = 2.5

    def __post_init__(self) -> None:
        if self.history_size < 1 or self.history_size > MAX_HISTORY_SIZE:
            raise ValueError(f"history_size must be between 1 and {MAX_HISTORY_SIZE}")
        if self.behavior_window <= timedelta(0):
            raise ValueError("behavior_window must be > 0")
        if self.interaction_window <= timedelta(0):
            raise ValueError("interaction_window must be > 0")
        if self.stationary_max_speed_mps < 0:
            raise ValueError("stationary_max_speed_mps must be >= 0")
        if self.walking_max_speed_mps <= self.stationary_max_speed_mps:
            raise ValueError("walking_max_speed_mps must be > stationary_max_speed_mps")


class BehaviorTracker:
    """Rolling behaviour state fed by location, panic and interaction updates.

    Readers take a ``BehaviorSnapshot``; the tracker itself is only mutated
    through the ``record_*`` methods and ``reset``.
    """

    def __init__(
        self,
        config: BehaviorTrackerConfig | None = None,
        risk_zones: Sequence[RiskZone] = DEFAULT_RISK_ZONES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or BehaviorTrackerConfig()
        self._risk_zones = tuple(risk_zones)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._observers: list[LocationObserver] = []
        self._init_state()

    def _init_state(self) -> None:
        self._samples: deque[LocationSample] = deque(maxlen=self._config.history_size)
        self._panic_presses: deque[datetime] = deque()
        self._interactions: deque[datetime] = deque()
        # (interval end, minutes spent inside a risk zone)
        self._risk_zone_intervals: deque[tuple[datetime, float]] = deque()
        self._movement = MovementType.UNKNOWN
        self._started_at = self._clock()

    def record_location(self, sample: LocationSample) -> None:
        previous = self._samples[-1] if self._samples else None
        self._samples.append(sample)
        if previous is not None:
            elapsed_seconds = (sample.timestamp - previous.timestamp).total_seconds()
            if elapsed_seconds > 0 and find_risk_zone(previous.point, self._risk_zones) is not None:
                self._risk_zone_intervals.append((sample.timestamp, elapsed_seconds / 60.0))
        self._movement = self._classify_movement(previous, sample)
        self._notify(sample)

    def record_panic_press(self, at: datetime | None = None) -> None:
        self._panic_presses.append(at or self._clock())
        logger.info(
            "panic_press_recorded",
            extra={"component": "safety_score", "panic_presses": len(self._panic_presses)},
        )

    def record_interaction(self, at: datetime | None = None) -> None:
        self._interactions.append(at or self._clock())

    def snapshot(self, now: datetime | None = None) -> BehaviorSnapshot:
        current = now or self._clock()
        behavior_cutoff = current - self._config.behavior_window
        interaction_cutoff = current - self._config.interaction_window
        _drop_before(self._panic_presses, behavior_cutoff)
        _drop_before(self._interactions, interaction_cutoff)
        while self._risk_zone_intervals and self._risk_zone_intervals[0][0] < behavior_cutoff:
            self._risk_zone_intervals.popleft()

        observed = min(current - self._started_at, self._config.interaction_window)
        observed_minutes = max(1.0, observed.total_seconds() / 60.0)
        return BehaviorSnapshot(
            movement=self._movement,
            panic_frequency=float(len(self._panic_presses)),
            time_in_risk_zone_minutes=sum(minutes for _, minutes in self._risk_zone_intervals),
            app_interaction_rate=len(self._interactions) / observed_minutes,
            sample_count=len(self._samples),
        )

    @property
    def movement(self) -> MovementType:
        return self._movement

    def history(self) -> tuple[LocationSample, ...]:
        return tuple(self._samples)

    def latest_location(self) -> LocationSample | None:
        return self._samples[-1] if self._samples else None

    def tracking_stats(self) -> TrackingStats:
        samples = list(self._samples)
        if len(samples) < 2:
            return TrackingStats(
                total_distance_meters=0.0,
                total_time_seconds=0.0,
                average_speed_mps=0.0,
                max_speed_mps=0.0,
                sample_count=len(samples),
            )

        total_distance = 0.0
        total_time = 0.0
        speeds: list[float] = []
        for prev, curr in zip(samples, samples[1:]):
            distance = haversine_distance_meters(prev.point, curr.point)
            elapsed = (curr.timestamp - prev.timestamp).total_seconds()
            total_distance += distance
            total_time += elapsed
            if elapsed > 0:
                speeds.append(distance / elapsed)
        return TrackingStats(
            total_distance_meters=total_distance,
            total_time_seconds=total_time,
            average_speed_mps=sum(speeds) / len(speeds) if speeds else 0.0,
            max_speed_mps=max(speeds, default=0.0),
            sample_count=len(samples),
        )

    def subscribe(self, observer: LocationObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            self.unsubscribe(observer)

        return _unsubscribe

    def unsubscribe(self, observer: LocationObserver) -> None:
        self._observers = [item for item in self._observers if item is not observer]

    def reset(self) -> None:
        self._init_state()

    def _notify(self, sample: LocationSample) -> None:
        for observer in list(self._observers):
            try:
                observer(sample)
            except Exception:
                logger.exception("location_observer_failed", extra={"component": "safety_score"})

    def _classify_movement(self, previous: LocationSample | None, current: LocationSample) -> MovementType:
        if previous is None:
            return MovementType.UNKNOWN
        elapsed = (current.timestamp - previous.timestamp).total_seconds()
        if elapsed <= 0:
            return MovementType.UNKNOWN
        speed = haversine_distance_meters(previous.point, current.point) / elapsed
        if math.isnan(speed):
            return MovementType.UNKNOWN
        if speed < self._config.stationary_max_speed_mps:
            return MovementType.STATIONARY
        if speed < self._config.walking_max_speed_mps:
            return MovementType.WALKING
        return MovementType.DRIVING


def _drop_before(timestamps: deque[datetime], cutoff: datetime) -> None:
    while timestamps and timestamps[0] < cutoff:
        timestamps.popleft()
