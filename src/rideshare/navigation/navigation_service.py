"""Turn-by-turn guidance over Directions routes.

Routes come from the Maps client. The rest is geometry on the decoded
polyline: off-route detection, the next step to announce, marker bearings
and polyline thinning for map rendering.
"""

import logging
import math
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from pydantic import BaseModel

from rideshare.core.exceptions import RideshareError
from rideshare.geo import Coordinates, decode_polyline, haversine_distance_m, is_within_proximity
from rideshare.maps.models import Route
from rideshare.utils.numbers import round_half_up

if TYPE_CHECKING:
    from rideshare.maps import GoogleMapsClient

logger = logging.getLogger(__name__)

ON_ROUTE_TOLERANCE_M = 50.0
REROUTE_TOLERANCE_M = 100.0
# A step whose end point is this close has been reached
STEP_REACHED_M = 10.0
# Degrees; roughly 11 m of latitude
SIMPLIFY_TOLERANCE = 0.0001


class NavigationStep(BaseModel):
    instruction: str
    distance_m: float
    duration_s: float
    maneuver: str | None = None
    location: Coordinates


class NavigationRoute(BaseModel):
    distance_m: float
    duration_s: float
    polyline: list[Coordinates]
    steps: list[NavigationStep]

    @classmethod
    def from_route(cls, route: Route) -> "NavigationRoute":
        """Steps are located at their end point, where the maneuver happens."""
        return cls(
            distance_m=route.distance_m,
            duration_s=route.duration_s,
            polyline=route.geometry or decode_polyline(route.polyline),
            steps=[
                NavigationStep(
                    instruction=step.instruction,
                    distance_m=step.distance_m,
                    duration_s=step.duration_s,
                    maneuver=step.maneuver,
                    location=step.end_location,
                )
                for step in route.steps
            ],
        )


class EtaUpdate(BaseModel):
    estimated_arrival: datetime
    remaining_distance_m: float
    remaining_duration_s: float


def is_on_route(
    current: Coordinates,
    route_points: Sequence[Coordinates] | str,
    tolerance_m: float = ON_ROUTE_TOLERANCE_M,
) -> bool:
    """True when some route vertex lies within ``tolerance_m``.

    Accepts decoded points or an encoded polyline. An empty route is never
    followed.
    """
    points = decode_polyline(route_points) if isinstance(route_points, str) else route_points
    return any(
        is_within_proximity(current.lat, current.lng, p.lat, p.lng, threshold_m=tolerance_m)
        for p in points
    )


def get_next_instruction(current: Coordinates, route: NavigationRoute) -> NavigationStep | None:
    for step in route.steps:
        distance = haversine_distance_m(
            current.lat, current.lng, step.location.lat, step.location.lng
        )
        if distance > STEP_REACHED_M:
            return step
    return None


def bearing(start: Coordinates, end: Coordinates) -> float:
    """Initial great-circle bearing in degrees clockwise from north, in [0, 360)."""
    lat1, lng1 = math.radians(start.lat), math.radians(start.lng)
    lat2, lng2 = math.radians(end.lat), math.radians(end.lng)
    dlng = lng2 - lng1

    y = math.sin(dlng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlng)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


def perpendicular_distance(
    point: Coordinates, line_start: Coordinates, line_end: Coordinates
) -> float:
    """Planar distance in degrees from a point to the segment between two others."""
    x, y = point.lng, point.lat
    x1, y1 = line_start.lng, line_start.lat
    dx, dy = line_end.lng - x1, line_end.lat - y1

    length_sq = dx * dx + dy * dy
    t = ((x - x1) * dx + (y - y1) * dy) / length_sq if length_sq else 0.0
    t = min(max(t, 0.0), 1.0)

    return math.hypot(x - (x1 + t * dx), y - (y1 + t * dy))


def simplify_polyline(
    points: Sequence[Coordinates], tolerance: float = SIMPLIFY_TOLERANCE
) -> list[Coordinates]:
    """Douglas-Peucker simplification; end points are always kept."""
    if len(points) <= 2:
        return list(points)

    keep = [False] * len(points)
    keep[0] = keep[-1] = True
    ranges = [(0, len(points) - 1)]
    while ranges:
        first, last = ranges.pop()
        max_distance, max_index = 0.0, first
        for i in range(first + 1, last):
            distance = perpendicular_distance(points[i], points[first], points[last])
            if distance > max_distance:
                max_distance, max_index = distance, i

        if max_distance > tolerance:
            keep[max_index] = True
            ranges.append((first, max_index))
            ranges.append((max_index, last))

    return [p for p, kept in zip(points, keep) if kept]


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return "Less than 1 min"

    minutes = round_half_up(seconds / 60)
    if minutes < 60:
        return f"{minutes} min{'s' if minutes > 1 else ''}"

    hours, remainder = divmod(minutes, 60)
    text = f"{hours} hr{'s' if hours > 1 else ''}"
    return f"{text} {remainder} min" if remainder else text


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{round_half_up(meters)} m"
    return f"{meters / 1000:.1f} km"


def directions_url(destination: Coordinates) -> str:
    """Google Maps link that opens driving directions in the browser or app."""
    query = urlencode({"api": 1, "destination": destination.as_param()})
    return f"https://www.google.com/maps/dir/?{query}"


class NavigationService:
    def __init__(self, maps: "GoogleMapsClient"):
        self.maps = maps

    async def get_route(
        self, origin: Coordinates, destination: Coordinates
    ) -> NavigationRoute | None:
        try:
            route = await self.maps.get_route(origin, destination)
        except RideshareError as e:
            logger.error(f"Error fetching navigation route: {e}")
            return None
        return NavigationRoute.from_route(route)

    async def calculate_eta(
        self,
        current: Coordinates,
        destination: Coordinates,
        current_speed_kmh: float | None = None,
        now: datetime | None = None,
    ) -> EtaUpdate | None:
        """Remaining time on the driving route, or at the current speed when moving."""
        route = await self.get_route(current, destination)
        if route is None:
            return None

        duration = route.duration_s
        if current_speed_kmh and current_speed_kmh > 0:
            duration = (route.distance_m / 1000) / current_speed_kmh * 3600

        return EtaUpdate(
            estimated_arrival=(now or datetime.now(UTC)) + timedelta(seconds=duration),
            remaining_distance_m=route.distance_m,
            remaining_duration_s=duration,
        )

    async def recalculate_route(
        self,
        current: Coordinates,
        destination: Coordinates,
        route: NavigationRoute,
        tolerance_m: float = REROUTE_TOLERANCE_M,
    ) -> NavigationRoute | None:
        """Keep ``route`` while the position follows it, otherwise fetch a new one."""
        if is_on_route(current, route.polyline, tolerance_m):
            return route

        logger.info(f"Off route at {current.as_param()}, recalculating")
        return await self.get_route(current, destination)
