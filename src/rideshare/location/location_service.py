"""Live location publishing, trip replay recording and geofence checks."""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from rideshare.backend import execute, fetch_first, subscribe_to_changes
from rideshare.backend.client import RowCallback, Unsubscribe
from rideshare.core.exceptions import RideshareError
from rideshare.geo import Coordinates, GeofenceRegion, containing_geofences

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)


class LocationPoint(BaseModel):
    coords: Coordinates
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    accuracy: float | None = None
    heading: float | None = None
    speed: float | None = None


class LocationService:
    def __init__(self, backend: "AsyncClient"):
        self.backend = backend

    async def _driver_id_for(self, user_id: str) -> str | None:
        driver = await fetch_first(
            self.backend.table("drivers").select("id").eq("user_id", user_id),
            "lookup driver",
        )
        return driver["id"] if driver else None

    async def update_live_location(
        self,
        user_id: str,
        coords: Coordinates,
        heading: float | None = None,
        speed: float | None = None,
    ) -> bool:
        """Publish a driver position to availability and to the ongoing trip, if any."""
        now = datetime.now(UTC).isoformat()
        try:
            driver_id = await self._driver_id_for(user_id)
            if driver_id is None:
                logger.debug(f"User {user_id} is not a driver, skipping live location")
                return False

            await execute(
                self.backend.table("driver_availability").upsert(
                    {
                        "driver_id": driver_id,
                        "current_lat": coords.lat,
                        "current_lng": coords.lng,
                        "current_heading": heading,
                        "current_speed": speed,
                        "last_location_update": now,
                    },
                    on_conflict="driver_id",
                ),
                "update driver availability",
            )

            active_trip = await fetch_first(
                self.backend.table("trips")
                .select("id")
                .eq("driver_id", driver_id)
                .eq("status", "ongoing"),
                "lookup ongoing trip",
            )
            if active_trip:
                await execute(
                    self.backend.table("live_locations").upsert(
                        {
                            "trip_id": active_trip["id"],
                            "latitude": coords.lat,
                            "longitude": coords.lng,
                            "heading": heading,
                            "speed": speed,
                            "timestamp": now,
                        },
                        on_conflict="trip_id",
                    ),
                    "update live location",
                )
        except RideshareError as e:
            logger.error(f"Error updating live location: {e}")
            return False
        return True

    async def record_location_for_replay(self, trip_id: str, point: LocationPoint) -> bool:
        try:
            recording = await fetch_first(
                self.backend.table("ride_recordings").select("route_points").eq("trip_id", trip_id),
                "fetch ride recording",
            )
            route_points: list[dict[str, Any]] = list((recording or {}).get("route_points") or [])
            route_points.append(
                {
                    "lat": point.coords.lat,
                    "lng": point.coords.lng,
                    "timestamp": point.timestamp.isoformat(),
                    "speed": point.speed,
                    "heading": point.heading,
                }
            )
            await execute(
                self.backend.table("ride_recordings").upsert(
                    {"trip_id": trip_id, "route_points": route_points},
                    on_conflict="trip_id",
                ),
                "save ride recording",
            )
        except RideshareError as e:
            logger.error(f"Error recording location for replay: {e}")
            return False
        return True

    async def get_last_known_location(self, user_id: str) -> Coordinates | None:
        """Drivers report their availability position. Passengers fall back to
        the pickup point of their most recent booking."""
        try:
            driver_id = await self._driver_id_for(user_id)
            if driver_id:
                availability = await fetch_first(
                    self.backend.table("driver_availability")
                    .select("current_lat, current_lng")
                    .eq("driver_id", driver_id),
                    "fetch driver availability",
                )
                if (
                    availability
                    and availability.get("current_lat") is not None
                    and availability.get("current_lng") is not None
                ):
                    return Coordinates(
                        lat=availability["current_lat"], lng=availability["current_lng"]
                    )

            booking = await fetch_first(
                self.backend.table("bookings")
                .select("pickup_lat, pickup_lng")
                .eq("passenger_id", user_id)
                .order("created_at", desc=True),
                "fetch last pickup",
            )
        except RideshareError as e:
            logger.error(f"Error getting last known location: {e}")
            return None

        if booking and booking.get("pickup_lat") is not None and booking.get("pickup_lng") is not None:
            return Coordinates(lat=booking["pickup_lat"], lng=booking["pickup_lng"])
        return None

    async def subscribe_to_live_location(self, trip_id: str, callback: RowCallback) -> Unsubscribe:
        return await subscribe_to_changes(
            self.backend,
            f"live_location_{trip_id}",
            "live_locations",
            callback,
            row_filter=f"trip_id=eq.{trip_id}",
        )

    def check_geofences(
        self, coords: Coordinates, regions: Iterable[GeofenceRegion]
    ) -> list[GeofenceRegion]:
        return containing_geofences(coords, regions)
