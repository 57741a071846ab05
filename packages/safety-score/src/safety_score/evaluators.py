"""Risk factor evaluators.

Every evaluator is a pure function of its inputs and returns a value in
``[0, 100]`` where higher means riskier.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from geo_math import GeoPoint, first_containing, haversine_distance_meters

from safety_score.models import BehaviorSnapshot, Impact, MovementType, RiskZone

CITY_CENTER = GeoPoint(lat=20.2961, lng=85.8245)

DEFAULT_RISK_ZONES: tuple[RiskZone, ...] = (
    RiskZone(name="old-town-market", center=CITY_CENTER, radius_meters=500, risk_value=80),
    RiskZone(name="simlipal-fringe", center=GeoPoint(lat=21.75, lng=86.3333), radius_meters=1000, risk_value=70),
    RiskZone(name="old-town-core", center=CITY_CENTER, radius_meters=200, risk_value=90),
)

# Evaluated top to bottom, first match wins. Hour ranges overlap on purpose.
TIME_RISK_RULES: tuple[tuple[Callable[[int], bool], float], ...] = (
    (lambda hour: hour >= 22 or hour <= 5, 80.0),
    (lambda hour: hour >= 19 or hour <= 7, 60.0),
    (lambda hour: hour >= 17 or hour <= 9, 40.0),
)
DEFAULT_TIME_RISK = 20.0

MOVEMENT_RISK: dict[MovementType, float] = {
    MovementType.STATIONARY: 30.0,
    MovementType.WALKING: 20.0,
    MovementType.DRIVING: 40.0,
    MovementType.UNKNOWN: 50.0,
}


def classify_impact(value: float) -> Impact:
    if value > 70:
        return Impact.NEGATIVE
    if value > 40:
        return Impact.NEUTRAL
    return Impact.POSITIVE


def find_risk_zone(point: GeoPoint, zones: Sequence[RiskZone]) -> RiskZone | None:
    """Return the first zone in list order whose radius contains ``point``."""
    return first_containing(point, zones)


def evaluate_location_risk(
    point: GeoPoint,
    zones: Sequence[RiskZone] = DEFAULT_RISK_ZONES,
    city_center: GeoPoint = CITY_CENTER,
) -> float:
    zone = find_risk_zone(point, zones)
    if zone is not None:
        return float(zone.risk_value)

    distance_from_center = haversine_distance_meters(point, city_center)
    if distance_from_center > 50_000:
        return 60.0
    if distance_from_center > 20_000:
        return 40.0
    return 20.0


def evaluate_time_risk(hour: int) -> float:
    for matches, value in TIME_RISK_RULES:
        if matches(hour):
            return value
    return DEFAULT_TIME_RISK


def evaluate_movement_risk(movement: MovementType) -> float:
    return MOVEMENT_RISK[movement]


def evaluate_behavior_risk(behavior: BehaviorSnapshot) -> float:
    risk = 0.0

    if behavior.panic_frequency > 3:
        risk += 40
    elif behavior.panic_frequency > 1:
        risk += 20

    if behavior.time_in_risk_zone_minutes > 120:
        risk += 30
    elif behavior.time_in_risk_zone_minutes > 60:
        risk += 15

    if behavior.app_interaction_rate < 0.1:
        risk += 20
    elif behavior.app_interaction_rate < 0.3:
        risk += 10

    return min(100.0, risk)


def evaluate_environment_risk(hour: int) -> float:
    # placeholder until weather and crime feeds are wired in
    is_night = hour >= 20 or hour <= 6
    return 60.0 if is_night else 30.0
