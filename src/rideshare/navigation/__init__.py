from .navigation_service import (
    EtaUpdate,
    NavigationRoute,
    NavigationService,
    NavigationStep,
    bearing,
    directions_url,
    format_distance,
    format_duration,
    get_next_instruction,
    is_on_route,
    perpendicular_distance,
    simplify_polyline,
)

__all__ = [
    "EtaUpdate",
    "NavigationRoute",
    "NavigationService",
    "NavigationStep",
    "bearing",
    "directions_url",
    "format_distance",
    "format_duration",
    "get_next_instruction",
    "is_on_route",
    "perpendicular_distance",
    "simplify_polyline",
]
