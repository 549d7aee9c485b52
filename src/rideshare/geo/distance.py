"""Straight-line distances for driver search, geofences and ETA fallbacks.

Also builds the latitude/longitude box used to pre-filter driver rows in the
backend before the exact distance check.
"""

from math import asin, cos, radians, sin, sqrt

from .models import BoundingBox

EARTH_RADIUS_M = 6_371_000

# One degree of latitude is ~111.32 km everywhere
KM_PER_DEGREE_LAT = 111.32
_LAT_DEGREES_PER_M = 1.0 / (KM_PER_DEGREE_LAT * 1000)


def haversine_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two points given in degrees."""
    phi1, phi2 = radians(lat1), radians(lat2)
    half_dphi = (phi2 - phi1) / 2
    half_dlambda = radians(lng2 - lng1) / 2

    h = sin(half_dphi) ** 2 + cos(phi1) * cos(phi2) * sin(half_dlambda) ** 2
    return 2 * EARTH_RADIUS_M * asin(min(1.0, sqrt(h)))


def haversine_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    return haversine_distance_m(lat1, lng1, lat2, lng2) / 1000.0


def is_within_proximity(
    lat1: float,
    lng1: float,
    lat2: float,
    lng2: float,
    threshold_m: float = 50.0,
) -> bool:
    """True when the points are at most ``threshold_m`` apart.

    Far points are rejected on the raw degree deltas first. The degree
    threshold is widened by 1% so the shortcut never rejects a point the
    exact check would accept.
    """
    lat_limit = threshold_m * _LAT_DEGREES_PER_M * 1.01
    if abs(lat2 - lat1) > lat_limit:
        return False
    if abs(lng2 - lng1) > lat_limit / max(cos(radians(lat1)), 1e-6):
        return False
    return haversine_distance_m(lat1, lng1, lat2, lng2) <= threshold_m


def bounding_box(lat: float, lng: float, radius_km: float) -> BoundingBox:
    """Box enclosing a circle of ``radius_km`` around a point.

    Longitude degrees shrink with cos(latitude), so the longitude delta is
    widened accordingly.
    """
    lat_delta = radius_km / KM_PER_DEGREE_LAT
    lng_delta = radius_km / (KM_PER_DEGREE_LAT * cos(radians(lat)))
    return BoundingBox(
        min_lat=lat - lat_delta,
        max_lat=lat + lat_delta,
        min_lng=lng - lng_delta,
        max_lng=lng + lng_delta,
    )
