import math

from geo_math.models import GeoPoint

EARTH_RADIUS_METERS = 6_371_000


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance between two signed decimal-degree coordinates.

    Ranges are not validated. NaN or infinite inputs yield NaN.
    """
    if not all(math.isfinite(value) for value in (lat1, lon1, lat2, lon2)):
        return math.nan
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # float drift can push a past 1 for antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def haversine_distance_meters(start: GeoPoint, end: GeoPoint) -> float:
    return distance_meters(start.lat, start.lng, end.lat, end.lng)
