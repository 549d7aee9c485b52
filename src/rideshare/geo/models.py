from pydantic import BaseModel, Field


class Coordinates(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)

    def as_param(self) -> str:
        """Format as the ``lat,lng`` pair used in Maps query strings."""
        return f"{self.lat},{self.lng}"


class BoundingBox(BaseModel):
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


class GeofenceRegion(BaseModel):
    """Circular region around a point of interest."""

    identifier: str
    center: Coordinates
    radius_m: float = Field(gt=0)
    notify_on_enter: bool = True
    notify_on_exit: bool = True
