"""One-tap booking with a client-side driver matching loop.

Matching is plain polling: notify the closest drivers, poll the booking row
until one of them accepts, and retry the search a few times before giving up.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from rideshare.backend import current_user_id, execute, fetch_first, fetch_rows
from rideshare.core.exceptions import RideshareError
from rideshare.geo import Coordinates, haversine_distance_km
from rideshare.notifications import NotificationData, NotificationType
from rideshare.pricing import VehicleType
from rideshare.ride_logging import log_booking_context
from rideshare.settings import MatchingSettings
from rideshare.utils.numbers import round_half_up
from rideshare.utils.timestamps import utc_now

from .models import (
    BookingStatus,
    MatchResult,
    Place,
    QuickBookRequest,
    QuickBookResponse,
    RecentDestination,
    RidePreferences,
)

if TYPE_CHECKING:
    from supabase import AsyncClient

    from rideshare.location import LocationService
    from rideshare.notifications import NotificationService

    from .ride_service import RideService

logger = logging.getLogger(__name__)


class QuickBookService:
    def __init__(
        self,
        backend: "AsyncClient",
        rides: "RideService",
        location: "LocationService",
        notifications: "NotificationService",
        settings: MatchingSettings | None = None,
    ):
        self.backend = backend
        self.rides = rides
        self.location = location
        self.notifications = notifications
        self.settings = settings or MatchingSettings()

    async def _resolve_pickup(self, request: QuickBookRequest, passenger_id: str) -> Place | None:
        if request.pickup:
            return request.pickup

        coords = await self.location.get_last_known_location(passenger_id)
        if coords is None:
            return None
        return Place(lat=coords.lat, lng=coords.lng, address="Current Location")

    async def quick_book(
        self, request: QuickBookRequest, passenger_id: str | None = None
    ) -> QuickBookResponse:
        """Quote, create a pending booking, then run matching on it."""
        try:
            passenger_id = passenger_id or await current_user_id(self.backend)
            if not passenger_id:
                return QuickBookResponse(success=False, error="User not authenticated")

            pickup = await self._resolve_pickup(request, passenger_id)
            if pickup is None:
                return QuickBookResponse(success=False, error="Failed to get current location")

            estimate = await self.rides.estimate_fare(
                pickup.coordinates, request.drop.coordinates, request.vehicle_type
            )

            rows = await fetch_rows(
                self.backend.table("bookings").insert(
                    {
                        "passenger_id": passenger_id,
                        "pickup_location": pickup.address,
                        "pickup_lat": pickup.lat,
                        "pickup_lng": pickup.lng,
                        "drop_location": request.drop.address,
                        "drop_lat": request.drop.lat,
                        "drop_lng": request.drop.lng,
                        "status": BookingStatus.PENDING.value,
                        "total_amount": estimate.estimated_price - request.discount_amount,
                        "vehicle_type": request.vehicle_type.value,
                        "promo_code": request.promo_code,
                        "discount_amount": request.discount_amount,
                        "surge_multiplier": estimate.surge_multiplier,
                        "fare_breakdown": {
                            **estimate.breakdown.model_dump(),
                            "discount": request.discount_amount,
                        },
                        "preferences": (
                            request.preferences.model_dump(exclude_none=True)
                            if request.preferences
                            else None
                        ),
                        "created_at": utc_now().isoformat(),
                    }
                ),
                "create quick booking",
            )
            booking_id = rows[0]["id"]

            with log_booking_context(booking_id, user_id=passenger_id):
                logger.info(f"Quick booking created, fare {estimate.estimated_price}")
                match = await self.match_with_drivers(
                    booking_id, pickup.lat, pickup.lng, pickup.address, request.vehicle_type
                )

                if not match.success:
                    await execute(
                        self.backend.table("bookings")
                        .update({"status": BookingStatus.TIMEOUT.value})
                        .eq("id", booking_id),
                        "time out quick booking",
                    )
                    return QuickBookResponse(
                        success=False, error=match.error or "No drivers available nearby"
                    )

            return QuickBookResponse(
                success=True,
                booking_id=booking_id,
                estimated_fare=estimate.estimated_price,
                estimated_arrival=match.estimated_arrival,
            )
        except RideshareError as e:
            logger.error(f"Error in quick book: {e}")
            return QuickBookResponse(success=False, error=e.message or "Failed to book ride")

    async def match_with_drivers(
        self,
        booking_id: str,
        lat: float,
        lng: float,
        pickup_address: str,
        vehicle_type: VehicleType | str,
    ) -> MatchResult:
        pickup = Coordinates(lat=lat, lng=lng)
        max_attempts = self.settings.max_attempts

        for attempt in range(max_attempts):
            drivers = await self.rides.find_nearby_drivers(pickup, vehicle_type)
            logger.debug(
                f"Matching attempt {attempt + 1}/{max_attempts}: {len(drivers)} drivers nearby"
            )

            if drivers:
                notified = drivers[: self.settings.drivers_to_notify]
                await asyncio.gather(
                    *(
                        self.notifications.create_notification(
                            driver.user_id,
                            NotificationData(
                                type=NotificationType.BOOKING_CONFIRMATION,
                                title="New QuickBook Request",
                                message=f"Nearby ride request from {pickup_address} available",
                                data={"bookingId": booking_id, "type": "new_booking"},
                            ),
                        )
                        for driver in notified
                        if driver.user_id
                    )
                )

                if await self.wait_for_acceptance(booking_id):
                    arrival = await self._arrival_minutes(booking_id, pickup)
                    if arrival is not None:
                        return MatchResult(success=True, estimated_arrival=arrival)

            if attempt < max_attempts - 1:
                await asyncio.sleep(self.settings.attempt_interval_seconds)

        return MatchResult(success=False, error="No drivers accepted your request")

    async def _arrival_minutes(self, booking_id: str, pickup: Coordinates) -> int | None:
        try:
            booking = await fetch_first(
                self.backend.table("bookings").select("driver_id").eq("id", booking_id),
                "fetch assigned driver",
            )
            if not booking or not booking.get("driver_id"):
                return None

            driver = await fetch_first(
                self.backend.table("drivers")
                .select("current_lat, current_lng")
                .eq("id", booking["driver_id"]),
                "fetch driver position",
            )
        except RideshareError as e:
            logger.warning(f"Could not estimate driver arrival: {e}")
            return None
        if not driver or driver.get("current_lat") is None or driver.get("current_lng") is None:
            return None

        km = haversine_distance_km(pickup.lat, pickup.lng, driver["current_lat"], driver["current_lng"])
        return round_half_up(km * self.settings.arrival_minutes_per_km)

    async def wait_for_acceptance(self, booking_id: str) -> bool:
        """Poll the booking until a driver accepts, it is cancelled, or time runs out."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.acceptance_timeout_seconds

        while True:
            try:
                booking = await fetch_first(
                    self.backend.table("bookings").select("status").eq("id", booking_id),
                    "poll booking status",
                )
            except RideshareError as e:
                logger.warning(f"Booking status poll failed: {e}")
                booking = None
            status = (booking or {}).get("status")
            if status == BookingStatus.ACCEPTED.value:
                return True
            if status == BookingStatus.CANCELLED.value:
                return False
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.settings.poll_interval_seconds)

    async def get_recent_destinations(
        self, user_id: str, limit: int = 5
    ) -> list[RecentDestination]:
        try:
            rows = await fetch_rows(
                self.backend.table("bookings")
                .select("drop_location, drop_lat, drop_lng")
                .eq("passenger_id", user_id)
                .order("created_at", desc=True)
                .limit(limit),
                "fetch recent destinations",
            )
        except RideshareError as e:
            logger.error(f"Error getting recent destinations: {e}")
            return []

        seen: set[str] = set()
        destinations = []
        for row in rows:
            if not row.get("drop_location") or row["drop_location"] in seen:
                continue
            seen.add(row["drop_location"])
            destinations.append(RecentDestination.model_validate(row))
        return destinations

    async def repeat_last_ride(self, user_id: str) -> QuickBookResponse:
        try:
            last_ride: dict[str, Any] | None = await fetch_first(
                self.backend.table("bookings")
                .select("*")
                .eq("passenger_id", user_id)
                .order("created_at", desc=True),
                "fetch last ride",
            )
        except RideshareError as e:
            logger.error(f"Error repeating last ride: {e}")
            return QuickBookResponse(success=False, error=e.message)

        if not last_ride or last_ride.get("drop_lat") is None or last_ride.get("drop_lng") is None:
            return QuickBookResponse(success=False, error="No previous rides found")

        preferences = last_ride.get("preferences")
        try:
            request = QuickBookRequest(
                drop=Place(
                    lat=last_ride["drop_lat"],
                    lng=last_ride["drop_lng"],
                    address=last_ride.get("drop_location") or "",
                ),
                vehicle_type=last_ride.get("vehicle_type") or VehicleType.BIKE,
                preferences=RidePreferences.model_validate(preferences) if preferences else None,
            )
        except PydanticValidationError as e:
            logger.error(f"Last ride {last_ride.get('id')} cannot be rebooked: {e}")
            return QuickBookResponse(success=False, error="Last ride cannot be repeated")

        return await self.quick_book(request, passenger_id=user_id)
