from .location_service import LocationPoint, LocationService

__all__ = ["LocationPoint", "LocationService"]
