"""Booking lifecycle: fare quotes, driver search, cancellation and timeouts."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from rideshare.backend import execute, fetch_first, fetch_rows, subscribe_to_changes
from rideshare.backend.client import Unsubscribe
from rideshare.core.exceptions import RideshareError
from rideshare.geo import Coordinates, bounding_box
from rideshare.notifications import NotificationData, NotificationType
from rideshare.pricing import FareEstimate, VehicleType
from rideshare.ride_logging import log_booking_context
from rideshare.settings import MatchingSettings
from rideshare.utils.numbers import round_half_up
from rideshare.utils.timestamps import parse_timestamp, utc_now

from .models import BookingStatus, CancellationResult, DriverMatch, OperationResult, Ride

if TYPE_CHECKING:
    from supabase import AsyncClient

    from rideshare.maps import GoogleMapsClient
    from rideshare.notifications import NotificationService
    from rideshare.payments import WalletService
    from rideshare.pricing import FareCalculator, SurgePricingService

logger = logging.getLogger(__name__)

BOOKINGS_TABLE = "bookings"

# Refund share by hours left before the ride, checked top to bottom
REFUND_TIERS: tuple[tuple[float, int], ...] = ((24, 100), (12, 75), (6, 50), (1, 25))


def refund_percentage(hours_until_ride: float) -> int:
    for threshold, percentage in REFUND_TIERS:
        if hours_until_ride > threshold:
            return percentage
    return 0


class RideService:
    def __init__(
        self,
        backend: "AsyncClient",
        maps: "GoogleMapsClient",
        fares: "FareCalculator",
        surge: "SurgePricingService",
        wallet: "WalletService",
        notifications: "NotificationService",
        settings: MatchingSettings | None = None,
    ):
        self.backend = backend
        self.maps = maps
        self.fares = fares
        self.surge = surge
        self.wallet = wallet
        self.notifications = notifications
        self.settings = settings or MatchingSettings()
        self.pending_timeouts: dict[str, asyncio.Task[None]] = {}

    async def _fetch_booking(self, booking_id: str, columns: str = "*") -> dict[str, Any] | None:
        return await fetch_first(
            self.backend.table(BOOKINGS_TABLE).select(columns).eq("id", booking_id),
            "fetch booking",
        )

    async def get_recent_rides(self, user_id: str, limit: int = 1) -> list[dict[str, Any]]:
        """Most recent trips of a passenger, for "repeat ride"."""
        try:
            return await fetch_rows(
                self.backend.table("trips")
                .select("*")
                .eq("passenger_id", user_id)
                .order("created_at", desc=True)
                .limit(limit),
                "fetch recent rides",
            )
        except RideshareError as e:
            logger.error(f"Error fetching recent rides: {e}")
            return []

    async def estimate_fare(
        self,
        pickup: Coordinates,
        drop: Coordinates,
        vehicle_type: VehicleType | str = VehicleType.BIKE,
        now: datetime | None = None,
    ) -> FareEstimate:
        """Quote a ride: driving distance, surge at the pickup, then the fare."""
        distance = await self.maps.get_distance(pickup, drop)
        quote = await self.surge.get_surge_multiplier(pickup.lat, pickup.lng, now)
        return self.fares.calculate(
            distance.distance_m,
            distance.duration_s,
            vehicle_type,
            surge_multiplier=quote.multiplier,
            surge_reason=quote.reason,
        )

    async def book_ride(self, details: dict[str, Any]) -> Ride:
        rows = await fetch_rows(
            self.backend.table(BOOKINGS_TABLE).insert(
                {
                    **details,
                    "status": BookingStatus.PENDING.value,
                    "created_at": utc_now().isoformat(),
                }
            ),
            "create booking",
        )
        ride = Ride.model_validate(rows[0])
        logger.info(f"Booking {ride.id} created")
        return ride

    async def cancel_ride(
        self,
        ride_id: str,
        user_id: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> CancellationResult:
        """Cancel a booking and refund by how far ahead of the ride it is cancelled."""
        now = now or utc_now()
        with log_booking_context(ride_id, user_id=user_id):
            try:
                ride = await self._fetch_booking(ride_id, "*, trip:trips(*)")
                if ride is None:
                    return CancellationResult(success=False, error="Ride not found")

                if user_id not in (ride.get("passenger_id"), ride.get("driver_id")):
                    return CancellationResult(success=False, error="Unauthorized")

                trip = ride.get("trip") or {}
                ride_time = parse_timestamp(trip.get("departure_time") or ride["created_at"])
                hours_until_ride = (ride_time - now).total_seconds() / 3600
                percentage = refund_percentage(hours_until_ride)
                refund_amount = round_half_up(float(ride.get("total_amount") or 0) * percentage / 100)

                await execute(
                    self.backend.table(BOOKINGS_TABLE)
                    .update(
                        {
                            "status": BookingStatus.CANCELLED.value,
                            "cancellation_reason": reason,
                            "refund_amount": refund_amount,
                            "cancelled_at": now.isoformat(),
                        }
                    )
                    .eq("id", ride_id),
                    "cancel booking",
                )

                if refund_amount > 0 and ride.get("payment_method") == "wallet":
                    await self.wallet.add_money_to_wallet(
                        user_id, refund_amount, f"refund_{ride_id}", "Ride cancellation refund"
                    )
            except RideshareError as e:
                logger.error(f"Error cancelling ride: {e}")
                return CancellationResult(success=False, error=e.message)

            self.clear_booking_timeout(ride_id)
            logger.info(f"Ride cancelled with {percentage}% refund ({refund_amount})")
            return CancellationResult(success=True, refund_amount=refund_amount)

    async def find_nearby_drivers(
        self,
        pickup: Coordinates,
        vehicle_type: VehicleType | str,
        radius_km: float | None = None,
    ) -> list[DriverMatch]:
        """Verified, available drivers of a vehicle type within the radius, closest first.

        The bounding box narrows the query, then the exact distance check drops
        the box corners.
        """
        radius_km = radius_km or self.settings.search_radius_km
        box = bounding_box(pickup.lat, pickup.lng, radius_km)

        try:
            drivers = await fetch_rows(
                self.backend.table("drivers")
                .select("*, users!inner(*)")
                .eq("verification_status", "verified")
                .eq("is_available", True)
                .eq("vehicle_type", VehicleType(vehicle_type).value)
                .gte("current_lat", box.min_lat)
                .lte("current_lat", box.max_lat)
                .gte("current_lng", box.min_lng)
                .lte("current_lng", box.max_lng),
                "search drivers",
            )
        except RideshareError as e:
            logger.error(f"Error finding nearby drivers: {e}")
            return []

        matches = []
        for driver in drivers:
            if driver.get("current_lat") is None or driver.get("current_lng") is None:
                continue
            position = Coordinates(lat=driver["current_lat"], lng=driver["current_lng"])
            estimate = self.maps.estimate_haversine(pickup, position)
            if estimate.distance_m > radius_km * 1000:
                continue

            user = driver.get("users") or {}
            matches.append(
                DriverMatch(
                    id=driver["id"],
                    name=user.get("full_name") or "Driver",
                    rating=driver.get("rating") or 0,
                    total_trips=driver.get("total_trips") or 0,
                    vehicle_type=driver["vehicle_type"],
                    vehicle_number=driver.get("vehicle_number"),
                    distance_m=estimate.distance_m,
                    eta_mins=round_half_up(estimate.duration_s / 60),
                    current_lat=position.lat,
                    current_lng=position.lng,
                    user_id=user.get("id"),
                )
            )

        matches.sort(key=lambda m: m.distance_m)
        logger.debug(f"Found {len(matches)} drivers within {radius_km}km")
        return matches

    async def match_driver(self, booking_id: str, driver_id: str) -> OperationResult:
        with log_booking_context(booking_id, driver_id=driver_id):
            try:
                await execute(
                    self.backend.table(BOOKINGS_TABLE)
                    .update(
                        {
                            "driver_id": driver_id,
                            "status": BookingStatus.ACCEPTED.value,
                            "accepted_at": utc_now().isoformat(),
                        }
                    )
                    .eq("id", booking_id),
                    "assign driver",
                )
            except RideshareError as e:
                logger.error(f"Error matching driver: {e}")
                return OperationResult(success=False, error=e.message)

            try:
                await execute(
                    self.backend.table("drivers").update({"is_available": False}).eq("id", driver_id),
                    "mark driver busy",
                )
            except RideshareError as e:
                logger.warning(f"Booking assigned but driver availability not updated: {e}")

            self.clear_booking_timeout(booking_id)
            logger.info("Driver matched")
            return OperationResult(success=True)

    async def handle_booking_timeout(self, booking_id: str, now: datetime | None = None) -> bool:
        """Time out a booking still pending past the limit. Returns True if it was timed out."""
        now = now or utc_now()
        with log_booking_context(booking_id):
            try:
                booking = await self._fetch_booking(booking_id)
                if booking is None or booking.get("status") != BookingStatus.PENDING.value:
                    return False

                age = (now - parse_timestamp(booking["created_at"])).total_seconds()
                if age <= self.settings.booking_timeout_seconds:
                    return False

                await execute(
                    self.backend.table(BOOKINGS_TABLE)
                    .update(
                        {
                            "status": BookingStatus.TIMEOUT.value,
                            "cancellation_reason": "No driver found within timeout period",
                            "cancelled_at": now.isoformat(),
                        }
                    )
                    .eq("id", booking_id),
                    "time out booking",
                )

                passenger_id = booking.get("passenger_id")
                if booking.get("payment_method") == "wallet" and passenger_id:
                    await self.wallet.add_money_to_wallet(
                        passenger_id,
                        float(booking.get("total_amount") or 0),
                        f"timeout_refund_{booking_id}",
                        "Booking timeout refund",
                    )

                if passenger_id:
                    await self.notifications.notify(
                        passenger_id,
                        NotificationData(
                            type=NotificationType.BOOKING_TIMEOUT,
                            title="Booking Timeout",
                            message="Sorry, we couldn't find a driver. Your payment has been refunded.",
                            data={"bookingId": booking_id, "type": "booking_timeout"},
                        ),
                    )
            except RideshareError as e:
                logger.error(f"Error handling booking timeout: {e}")
                return False

            logger.info(f"Booking timed out after {age:.0f}s")
            return True

    def start_booking_timeout(self, booking_id: str) -> "asyncio.Task[None]":
        """Schedule the timeout check. Cancel with ``clear_booking_timeout``."""
        self.clear_booking_timeout(booking_id)
        task = asyncio.create_task(self._timeout_after_delay(booking_id))
        self.pending_timeouts[booking_id] = task
        return task

    async def _timeout_after_delay(self, booking_id: str) -> None:
        try:
            await asyncio.sleep(self.settings.booking_timeout_seconds)
            await self.handle_booking_timeout(booking_id)
        finally:
            # A restarted timer has already replaced this entry
            if self.pending_timeouts.get(booking_id) is asyncio.current_task():
                del self.pending_timeouts[booking_id]

    def clear_booking_timeout(self, booking_id: str) -> None:
        task = self.pending_timeouts.pop(booking_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def get_booking_status(self, booking_id: str) -> Ride | None:
        try:
            booking = await self._fetch_booking(booking_id)
        except RideshareError as e:
            logger.error(f"Error getting booking status: {e}")
            return None
        return Ride.model_validate(booking) if booking else None

    async def subscribe_to_booking_updates(
        self, booking_id: str, on_update: Callable[[Ride], Any]
    ) -> Unsubscribe:
        return await subscribe_to_changes(
            self.backend,
            f"booking:{booking_id}",
            BOOKINGS_TABLE,
            lambda row: on_update(Ride.model_validate(row)),
            row_filter=f"id=eq.{booking_id}",
        )
