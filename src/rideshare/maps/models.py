from datetime import datetime

from pydantic import BaseModel

from rideshare.geo.models import Coordinates


class DistanceResult(BaseModel):
    distance_m: float
    duration_s: float
    distance_text: str
    duration_text: str


class RouteStep(BaseModel):
    instruction: str
    distance_m: float
    duration_s: float
    maneuver: str | None = None
    start_location: Coordinates
    end_location: Coordinates


class RouteBounds(BaseModel):
    northeast: Coordinates
    southwest: Coordinates


class Route(BaseModel):
    distance_m: float
    duration_s: float
    polyline: str
    geometry: list[Coordinates]
    steps: list[RouteStep]
    bounds: RouteBounds


class PlacePrediction(BaseModel):
    place_id: str
    description: str
    main_text: str
    secondary_text: str


class PlaceDetails(BaseModel):
    place_id: str
    name: str
    address: str
    coordinates: Coordinates


class EtaResult(BaseModel):
    eta: datetime
    duration_s: float
