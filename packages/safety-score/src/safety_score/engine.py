from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
import logging

from geo_math import GeoPoint

from safety_score.evaluators import (
    CITY_CENTER,
    DEFAULT_RISK_ZONES,
    classify_impact,
    evaluate_behavior_risk,
    evaluate_environment_risk,
    evaluate_location_risk,
    evaluate_movement_risk,
    evaluate_time_risk,
)
from safety_score.models import (
    BehaviorSnapshot,
    Impact,
    LocationSample,
    RiskFactor,
    RiskLevel,
    RiskZone,
    SafetyScore,
)

logger = logging.getLogger(__name__)

LOCATION_RISK = "Location Risk"
TIME_RISK = "Time Risk"
MOVEMENT_PATTERN = "Movement Pattern"
HISTORICAL_BEHAVIOR = "Historical Behavior"
ENVIRONMENTAL_RISK = "Environmental Risk"

FACTOR_WEIGHTS: dict[str, float] = {
    LOCATION_RISK: 0.30,
    TIME_RISK: 0.20,
    MOVEMENT_PATTERN: 0.15,
    HISTORICAL_BEHAVIOR: 0.20,
    ENVIRONMENTAL_RISK: 0.15,
}

FACTOR_RECOMMENDATIONS: dict[str, str] = {
    LOCATION_RISK: "Consider moving to a safer area",
    TIME_RISK: "Avoid traveling during high-risk hours",
    MOVEMENT_PATTERN: "Maintain steady movement patterns",
    HISTORICAL_BEHAVIOR: "Follow safety guidelines more closely",
    ENVIRONMENTAL_RISK: "Be extra cautious of your surroundings",
}

TIER_RECOMMENDATIONS: dict[RiskLevel, str] = {
    RiskLevel.HIGH: "High risk detected - consider emergency contacts",
    RiskLevel.MEDIUM: "Medium risk - stay alert and follow safety guidelines",
    RiskLevel.LOW: "Low risk - continue following safety practices",
}

# (threshold, label) pairs per factor, checked from the highest threshold down
_DESCRIPTIONS: dict[str, tuple[tuple[float, str], ...]] = {
    LOCATION_RISK: (
        (80, "Very high risk location"),
        (60, "High risk location"),
        (40, "Medium risk location"),
        (0, "Low risk location"),
    ),
    TIME_RISK: (
        (80, "Very high risk time period"),
        (60, "High risk time period"),
        (40, "Medium risk time period"),
        (0, "Low risk time period"),
    ),
    MOVEMENT_PATTERN: (
        (80, "Very concerning movement pattern"),
        (60, "Concerning movement pattern"),
        (40, "Unusual movement pattern"),
        (0, "Normal movement pattern"),
    ),
    HISTORICAL_BEHAVIOR: (
        (80, "Very concerning behavior pattern"),
        (60, "Concerning behavior pattern"),
        (40, "Unusual behavior pattern"),
        (0, "Normal behavior pattern"),
    ),
    ENVIRONMENTAL_RISK: (
        (80, "Very high environmental risk"),
        (60, "High environmental risk"),
        (40, "Medium environmental risk"),
        (0, "Low environmental risk"),
    ),
}


def describe_factor(name: str, value: float) -> str:
    labels = _DESCRIPTIONS[name]
    for threshold, label in labels:
        if value >= threshold:
            return label
    return labels[-1][1]


def build_factor(name: str, value: float) -> RiskFactor:
    return RiskFactor(
        name=name,
        value=value,
        weight=FACTOR_WEIGHTS[name],
        impact=classify_impact(value),
        description=describe_factor(name, value),
    )


def aggregate_score(factors: Sequence[RiskFactor]) -> int:
    weighted = sum(factor.value * factor.weight for factor in factors)
    clamped = max(0.0, min(100.0, weighted))
    # round half up: 56.5 -> 57
    return int(Decimal(repr(round(clamped, 9))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify_risk_level(score: int) -> RiskLevel:
    if score >= 70:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def build_recommendations(factors: Sequence[RiskFactor], risk_level: RiskLevel) -> tuple[str, ...]:
    recommendations = [
        FACTOR_RECOMMENDATIONS[factor.name]
        for factor in factors
        if factor.impact is Impact.NEGATIVE and factor.value > 60
    ]
    recommendations.append(TIER_RECOMMENDATIONS[risk_level])
    return tuple(recommendations)


class SafetyScoreEngine:
    """Turns a location and a behaviour snapshot into an explainable score.

    The engine keeps the most recent score as the "current" one. Everything
    else it does is a pure function of its inputs and the clock.
    """

    def __init__(
        self,
        risk_zones: Sequence[RiskZone] = DEFAULT_RISK_ZONES,
        city_center: GeoPoint = CITY_CENTER,
        clock: Callable[[], datetime] | None = None,
        zone: tzinfo | None = None,
    ) -> None:
        self._risk_zones = tuple(risk_zones)
        self._zone = zone
        self._city_center = city_center
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._current: SafetyScore | None = None

    @property
    def risk_zones(self) -> tuple[RiskZone, ...]:
        return self._risk_zones

    def compute_score(
        self,
        location: LocationSample | GeoPoint,
        behavior: BehaviorSnapshot | None = None,
        *,
        at: datetime | None = None,
    ) -> SafetyScore:
        computed_at = at or self._clock()
        point = location.point if isinstance(location, LocationSample) else location
        snapshot = behavior or BehaviorSnapshot()
        hour = self._local_hour(computed_at)

        factors = (
            build_factor(LOCATION_RISK, evaluate_location_risk(point, self._risk_zones, self._city_center)),
            build_factor(TIME_RISK, evaluate_time_risk(hour)),
            build_factor(MOVEMENT_PATTERN, evaluate_movement_risk(snapshot.movement)),
            build_factor(HISTORICAL_BEHAVIOR, evaluate_behavior_risk(snapshot)),
            build_factor(ENVIRONMENTAL_RISK, evaluate_environment_risk(hour)),
        )
        score = aggregate_score(factors)
        risk_level = classify_risk_level(score)
        result = SafetyScore(
            score=score,
            risk_level=risk_level,
            factors=factors,
            computed_at=computed_at,
            recommendations=build_recommendations(factors, risk_level),
        )
        self._current = result
        logger.debug(
            "safety_score_computed",
            extra={"component": "safety_score", "score": score, "risk_level": risk_level.value},
        )
        return result

    def _local_hour(self, moment: datetime) -> int:
        # naive values are taken as local wall time already
        if self._zone is None or moment.tzinfo is None:
            return moment.hour
        return moment.astimezone(self._zone).hour

    def get_current_score(self) -> SafetyScore | None:
        return self._current

    def reset(self) -> None:
        self._current = None
