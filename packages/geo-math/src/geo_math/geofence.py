from __future__ import annotations

from collections.abc import Iterable
import math
from typing import Protocol, TypeVar

from geo_math.distance import haversine_distance_meters
from geo_math.models import GeoPoint


class CircularArea(Protocol):
    @property
    def center(self) -> GeoPoint: ...

    @property
    def radius_meters(self) -> float: ...


AreaT = TypeVar("AreaT", bound=CircularArea)


def is_point_inside_radius(center: GeoPoint, point: GeoPoint, radius_meters: float) -> bool:
    """Inclusive circle containment. Non-finite coordinates are never inside."""
    if radius_meters < 0:
        raise ValueError(f"radius_meters must be >= 0, got {radius_meters}")
    distance = haversine_distance_meters(center, point)
    return not math.isnan(distance) and distance <= radius_meters


def first_containing(point: GeoPoint, areas: Iterable[AreaT]) -> AreaT | None:
    for area in areas:
        if is_point_inside_radius(area.center, point, area.radius_meters):
            return area
    return None
