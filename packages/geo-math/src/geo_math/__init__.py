"""Great-circle geometry helpers used by the safety score engine."""

from geo_math.distance import EARTH_RADIUS_METERS, distance_meters, haversine_distance_meters
from geo_math.geofence import CircularArea, first_containing, is_point_inside_radius
from geo_math.models import GeoPoint

__all__ = [
    "EARTH_RADIUS_METERS",
    "CircularArea",
    "GeoPoint",
    "distance_meters",
    "first_containing",
    "haversine_distance_meters",
    "is_point_inside_radius",
]
