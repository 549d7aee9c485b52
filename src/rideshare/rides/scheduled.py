"""Rides booked ahead of time and converted into real bookings near pickup time.

``check_pending_rides`` is meant to be called periodically by whatever runs
background jobs. It books rides entering the booking window and cancels rides
left unbooked well past their time.
"""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from rideshare.backend import execute, fetch_rows
from rideshare.core.exceptions import RideshareError
from rideshare.notifications import NotificationData, NotificationType
from rideshare.pricing import VehicleType
from rideshare.utils.timestamps import utc_now

from .models import (
    Place,
    QuickBookRequest,
    RidePreferences,
    ScheduledRide,
    ScheduledRideStatus,
)

if TYPE_CHECKING:
    from supabase import AsyncClient

    from rideshare.notifications import NotificationService

    from .quick_book import QuickBookService

logger = logging.getLogger(__name__)

SCHEDULED_RIDES_TABLE = "scheduled_rides"

BOOKING_LEAD_TIME = timedelta(minutes=15)
EXPIRY_GRACE = timedelta(hours=1)
RETENTION = timedelta(days=30)

# (offset before pickup, title, body, kind)
REMINDERS: tuple[tuple[timedelta, str, str, str], ...] = (
    (timedelta(hours=1), "Ride Reminder", "Your scheduled ride is in 1 hour", "reminder"),
    (
        timedelta(minutes=15),
        "Ride Starting Soon",
        "Your ride will start in 15 minutes. Booking driver now...",
        "booking",
    ),
)


class ScheduledRideManager:
    def __init__(
        self,
        backend: "AsyncClient",
        quick_book: "QuickBookService",
        notifications: "NotificationService",
    ):
        self.backend = backend
        self.quick_book = quick_book
        self.notifications = notifications

    async def schedule_ride(
        self,
        user_id: str,
        pickup: Place,
        drop: Place,
        scheduled_time: datetime,
        vehicle_type: VehicleType = VehicleType.BIKE,
        preferences: RidePreferences | None = None,
        now: datetime | None = None,
    ) -> str | None:
        now = now or utc_now()
        try:
            rows = await fetch_rows(
                self.backend.table(SCHEDULED_RIDES_TABLE).insert(
                    {
                        "user_id": user_id,
                        "pickup_location": pickup.address,
                        "pickup_lat": pickup.lat,
                        "pickup_lng": pickup.lng,
                        "drop_location": drop.address,
                        "drop_lat": drop.lat,
                        "drop_lng": drop.lng,
                        "scheduled_time": scheduled_time.isoformat(),
                        "vehicle_type": VehicleType(vehicle_type).value,
                        "preferences": preferences.model_dump(exclude_none=True) if preferences else None,
                        "status": ScheduledRideStatus.PENDING.value,
                    }
                ),
                "schedule ride",
            )
            ride_id: str = rows[0]["id"]
            await self._schedule_reminders(user_id, ride_id, scheduled_time, now)
        except RideshareError as e:
            logger.error(f"Error scheduling ride: {e}")
            return None

        logger.info(f"Scheduled ride {ride_id} for {scheduled_time.isoformat()}")
        return ride_id

    async def _schedule_reminders(
        self, user_id: str, ride_id: str, scheduled_time: datetime, now: datetime
    ) -> int:
        """Queue reminder notifications that are still in the future."""
        rows = [
            {
                "user_id": user_id,
                "title": title,
                "message": body,
                "type": NotificationType.GENERAL.value,
                "data": {"rideId": ride_id, "type": kind},
                "is_read": False,
                "scheduled_for": (scheduled_time - offset).isoformat(),
            }
            for offset, title, body, kind in REMINDERS
            if scheduled_time - offset > now
        ]
        if rows:
            await execute(self.backend.table("notifications").insert(rows), "queue ride reminders")
        return len(rows)

    async def get_user_scheduled_rides(self, user_id: str) -> list[ScheduledRide]:
        try:
            rows = await fetch_rows(
                self.backend.table(SCHEDULED_RIDES_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .eq("status", ScheduledRideStatus.PENDING.value)
                .order("scheduled_time"),
                "fetch scheduled rides",
            )
        except RideshareError as e:
            logger.error(f"Error getting user scheduled rides: {e}")
            return []
        return [ScheduledRide.model_validate(row) for row in rows]

    async def cancel_scheduled_ride(self, ride_id: str) -> bool:
        try:
            rows = await fetch_rows(
                self.backend.table(SCHEDULED_RIDES_TABLE)
                .update({"status": ScheduledRideStatus.CANCELLED.value})
                .eq("id", ride_id),
                "cancel scheduled ride",
            )
        except RideshareError as e:
            logger.error(f"Error cancelling scheduled ride: {e}")
            return False
        return bool(rows)

    async def check_pending_rides(self, now: datetime | None = None) -> dict[str, int]:
        """Book rides within the lead time and expire stale ones."""
        now = now or utc_now()
        counts = {"booked": 0, "expired": 0}
        try:
            rows = await fetch_rows(
                self.backend.table(SCHEDULED_RIDES_TABLE)
                .select("*")
                .eq("status", ScheduledRideStatus.PENDING.value),
                "fetch pending scheduled rides",
            )
        except RideshareError as e:
            logger.error(f"Error checking pending rides: {e}")
            return counts

        for row in rows:
            ride = ScheduledRide.model_validate(row)
            until_pickup = ride.scheduled_time - now

            if timedelta(0) < until_pickup <= BOOKING_LEAD_TIME:
                if await self.book_scheduled_ride(ride):
                    counts["booked"] += 1
            elif until_pickup < -EXPIRY_GRACE:
                if await self.cancel_scheduled_ride(ride.id):
                    counts["expired"] += 1

        return counts

    async def book_scheduled_ride(self, ride: ScheduledRide) -> bool:
        result = await self.quick_book.quick_book(
            QuickBookRequest(
                pickup=ride.pickup,
                drop=ride.drop,
                vehicle_type=ride.vehicle_type,
                preferences=RidePreferences.model_validate(ride.preferences) if ride.preferences else None,
            ),
            passenger_id=ride.user_id,
        )
        if not result.success:
            logger.warning(f"Scheduled ride {ride.id} could not be booked: {result.error}")
            return False

        try:
            await execute(
                self.backend.table(SCHEDULED_RIDES_TABLE)
                .update({"status": ScheduledRideStatus.BOOKED.value, "booking_id": result.booking_id})
                .eq("id", ride.id),
                "mark scheduled ride booked",
            )
        except RideshareError as e:
            logger.error(f"Error booking scheduled ride: {e}")
            return False

        await self.notifications.notify(
            ride.user_id,
            NotificationData(
                type=NotificationType.BOOKING_CONFIRMATION,
                title="Ride Booked!",
                message="Your scheduled ride has been booked successfully",
                data={"bookingId": result.booking_id},
            ),
        )
        return True

    async def cleanup_old_rides(self, now: datetime | None = None) -> int:
        cutoff = (now or utc_now()) - RETENTION
        try:
            rows: list[dict[str, Any]] = await fetch_rows(
                self.backend.table(SCHEDULED_RIDES_TABLE)
                .delete()
                .lte("scheduled_time", cutoff.isoformat()),
                "clean up scheduled rides",
            )
        except RideshareError as e:
            logger.error(f"Error cleaning up old rides: {e}")
            return 0
        return len(rows)
