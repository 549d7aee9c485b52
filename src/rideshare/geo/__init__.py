from .distance import (
    EARTH_RADIUS_M,
    bounding_box,
    haversine_distance_km,
    haversine_distance_m,
    is_within_proximity,
)
from .models import BoundingBox, Coordinates, GeofenceRegion
from .polygons import containing_geofences, decode_polyline, is_inside_geofence, point_in_polygon

__all__ = [
    "EARTH_RADIUS_M",
    "BoundingBox",
    "Coordinates",
    "GeofenceRegion",
    "bounding_box",
    "containing_geofences",
    "decode_polyline",
    "haversine_distance_km",
    "haversine_distance_m",
    "is_inside_geofence",
    "is_within_proximity",
    "point_in_polygon",
]
