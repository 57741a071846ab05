from datetime import datetime, timedelta, timezone

import pytest

from safety_score.behavior import BehaviorTracker, BehaviorTrackerConfig
from safety_score.evaluators import CITY_CENTER
from safety_score.models import LocationSample, MovementType, RiskZone

START = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _sample(lat: float, lng: float, seconds: float) -> LocationSample:
    return LocationSample(latitude=lat, longitude=lng, accuracy_meters=5, timestamp=START + timedelta(seconds=seconds))


def test_movement_classification_from_speed() -> None:
    tracker = BehaviorTracker(risk_zones=[], clock=FakeClock(START))
    tracker.record_location(_sample(20.30, 85.83, 0))
    assert tracker.movement is MovementType.UNKNOWN

    # ~11 m in 60 s
    tracker.record_location(_sample(20.3001, 85.83, 60))
    assert tracker.movement is MovementType.STATIONARY

    # ~111 m in 60 s
    tracker.record_location(_sample(20.3011, 85.83, 120))
    assert tracker.movement is MovementType.WALKING

    # ~1.1 km in 60 s
    tracker.record_location(_sample(20.3111, 85.83, 180))
    assert tracker.movement is MovementType.DRIVING

    tracker.record_location(_sample(20.3111, 85.83, 180))
    assert tracker.movement is MovementType.UNKNOWN


def test_history_is_bounded() -> None:
    tracker = BehaviorTracker(config=BehaviorTrackerConfig(history_size=3), clock=FakeClock(START))
    for index in range(5):
        tracker.record_location(_sample(20.30 + index * 0.001, 85.83, index * 60))

    history = tracker.history()
    assert len(history) == 3
    assert history[0].latitude == pytest.approx(20.302)


def test_history_size_above_limit_is_rejected() -> None:
    with pytest.raises(ValueError):
        BehaviorTrackerConfig(history_size=101)


def test_panic_frequency_counts_presses_inside_window() -> None:
    clock = FakeClock(START)
    tracker = BehaviorTracker(clock=clock)
    tracker.record_panic_press(at=START - timedelta(hours=30))
    tracker.record_panic_press(at=START - timedelta(hours=2))
    tracker.record_panic_press()

    assert tracker.snapshot().panic_frequency == 2


def test_time_in_risk_zone_accrues_between_samples() -> None:
    zone = RiskZone(name="market", center=CITY_CENTER, radius_meters=500, risk_value=80)
    tracker = BehaviorTracker(risk_zones=[zone], clock=FakeClock(START + timedelta(minutes=90)))
    tracker.record_location(_sample(CITY_CENTER.lat, CITY_CENTER.lng, 0))
    tracker.record_location(_sample(CITY_CENTER.lat, CITY_CENTER.lng, 45 * 60))
    tracker.record_location(_sample(20.40, 85.83, 75 * 60))
    tracker.record_location(_sample(20.40, 85.83, 90 * 60))

    assert tracker.snapshot().time_in_risk_zone_minutes == pytest.approx(75)


def test_interaction_rate_over_elapsed_window() -> None:
    clock = FakeClock(START)
    tracker = BehaviorTracker(clock=clock)
    clock.now = START + timedelta(minutes=10)
    for _ in range(5):
        tracker.record_interaction()

    assert tracker.snapshot().app_interaction_rate == pytest.approx(0.5)


def test_observers_receive_updates_in_order_until_unsubscribed() -> None:
    tracker = BehaviorTracker(clock=FakeClock(START))
    received: list[float] = []
    unsubscribe = tracker.subscribe(lambda sample: received.append(sample.latitude))

    tracker.record_location(_sample(20.1, 85.8, 0))
    tracker.record_location(_sample(20.2, 85.8, 60))
    unsubscribe()
    tracker.record_location(_sample(20.3, 85.8, 120))

    assert received == [20.1, 20.2]


def test_failing_observer_does_not_block_others() -> None:
    tracker = BehaviorTracker(clock=FakeClock(START))
    received: list[LocationSample] = []

    def broken(_: LocationSample) -> None:
        raise RuntimeError("observer failure")

    tracker.subscribe(broken)
    tracker.subscribe(received.append)
    tracker.record_location(_sample(20.1, 85.8, 0))

    assert len(received) == 1


def test_tracking_stats() -> None:
    tracker = BehaviorTracker(clock=FakeClock(START))
    assert tracker.tracking_stats().total_distance_meters == 0.0

    tracker.record_location(_sample(20.3000, 85.83, 0))
    tracker.record_location(_sample(20.3010, 85.83, 100))
    tracker.record_location(_sample(20.3030, 85.83, 200))
    stats = tracker.tracking_stats()

    assert stats.sample_count == 3
    assert stats.total_time_seconds == 200
    assert stats.total_distance_meters == pytest.approx(333.6, rel=0.01)
    assert stats.max_speed_mps == pytest.approx(2.22, rel=0.01)


def test_reset_clears_state() -> None:
    tracker = BehaviorTracker(clock=FakeClock(START))
    tracker.record_location(_sample(20.1, 85.8, 0))
    tracker.record_panic_press()
    tracker.reset()

    snapshot = tracker.snapshot()
    assert snapshot.sample_count == 0
    assert snapshot.panic_frequency == 0
    assert snapshot.movement is MovementType.UNKNOWN
