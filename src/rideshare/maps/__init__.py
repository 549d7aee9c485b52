"""Google Maps web services client."""

from .google_client import GoogleMapsClient, MapsServiceError, MapsTimeoutError
from .models import (
    DistanceResult,
    EtaResult,
    PlaceDetails,
    PlacePrediction,
    Route,
    RouteBounds,
    RouteStep,
)

__all__ = [
    "DistanceResult",
    "EtaResult",
    "GoogleMapsClient",
    "MapsServiceError",
    "MapsTimeoutError",
    "PlaceDetails",
    "PlacePrediction",
    "Route",
    "RouteBounds",
    "RouteStep",
]
