"""Heuristic tourist safety scoring."""

from safety_score.behavior import BehaviorTracker, BehaviorTrackerConfig
from safety_score.engine import FACTOR_WEIGHTS, SafetyScoreEngine
from safety_score.evaluators import CITY_CENTER, DEFAULT_RISK_ZONES
from safety_score.models import (
    BehaviorSnapshot,
    Impact,
    LocationSample,
    MovementType,
    RiskFactor,
    RiskLevel,
    RiskZone,
    SafetyScore,
    TrackingStats,
)

__all__ = [
    "BehaviorSnapshot",
    "BehaviorTracker",
    "BehaviorTrackerConfig",
    "CITY_CENTER",
    "DEFAULT_RISK_ZONES",
    "FACTOR_WEIGHTS",
    "Impact",
    "LocationSample",
    "MovementType",
    "RiskFactor",
    "RiskLevel",
    "RiskZone",
    "SafetyScore",
    "SafetyScoreEngine",
    "TrackingStats",
]
