from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from geo_math import GeoPoint


class Impact(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MovementType(str, Enum):
    STATIONARY = "stationary"
    WALKING = "walking"
    DRIVING = "driving"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class LocationSample:
    latitude: float
    longitude: float
    accuracy_meters: float
    timestamp: datetime

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.latitude, lng=self.longitude)


@dataclass(frozen=True)
class RiskZone:
    name: str
    center: GeoPoint
    radius_meters: float
    risk_value: float


@dataclass(frozen=True)
class BehaviorSnapshot:
    movement: MovementType = MovementType.UNKNOWN
    panic_frequency: float = 0.0
    time_in_risk_zone_minutes: float = 0.0
    app_interaction_rate: float = 0.0
    sample_count: int = 0


@dataclass(frozen=True)
class RiskFactor:
    name: str
    value: float
    weight: float
    impact: Impact
    description: str


@dataclass(frozen=True)
class SafetyScore:
    score: int
    risk_level: RiskLevel
    factors: tuple[RiskFactor, ...]
    computed_at: datetime
    recommendations: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "risk_level": self.risk_level.value,
            "factors": [
                {
                    "name": factor.name,
                    "value": factor.value,
                    "weight": factor.weight,
                    "impact": factor.impact.value,
                    "description": factor.description,
                }
                for factor in self.factors
            ],
            "computed_at": self.computed_at.isoformat(),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class TrackingStats:
    total_distance_meters: float
    total_time_seconds: float
    average_speed_mps: float
    max_speed_mps: float
    sample_count: int
