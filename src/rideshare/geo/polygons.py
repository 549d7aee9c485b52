"""Point-in-region checks for surge zones and geofences."""

from collections.abc import Iterable, Mapping, Sequence

import polyline

from .distance import is_within_proximity
from .models import Coordinates, GeofenceRegion


def point_in_polygon(
    lat: float, lng: float, polygon: Sequence[Mapping[str, float]]
) -> bool:
    """Ray-casting test of a point against a ring of ``{"lat", "lng"}`` vertices.

    The ring may be open or closed. Rings with fewer than three vertices
    contain nothing.
    """
    if len(polygon) < 3:
        return False

    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i]["lng"], polygon[i]["lat"]
        xj, yj = polygon[j]["lng"], polygon[j]["lat"]

        if (yi > lat) != (yj > lat) and lng < (xj - xi) * (lat - yi) / (yj - yi) + xi:
            inside = not inside
        j = i

    return inside


def decode_polyline(encoded: str, precision: int = 5) -> list[Coordinates]:
    """Decode an encoded polyline into coordinates."""
    return [Coordinates(lat=lat, lng=lng) for lat, lng in polyline.decode(encoded, precision)]


def is_inside_geofence(point: Coordinates, region: GeofenceRegion) -> bool:
    return is_within_proximity(
        point.lat, point.lng, region.center.lat, region.center.lng, threshold_m=region.radius_m
    )


def containing_geofences(
    point: Coordinates, regions: Iterable[GeofenceRegion]
) -> list[GeofenceRegion]:
    return [region for region in regions if is_inside_geofence(point, region)]
