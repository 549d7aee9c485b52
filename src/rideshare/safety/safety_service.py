"""Rider safety: check-ins, emergency escalation, trusted contacts and trip sharing."""

import logging
import secrets
from datetime import datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from rideshare.backend import execute, fetch_first, fetch_rows
from rideshare.core.exceptions import RideshareError
from rideshare.geo import Coordinates
from rideshare.ride_logging import log_booking_context
from rideshare.utils.timestamps import parse_timestamp, utc_now

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

CHECKINS_TABLE = "safety_checkins"
CONTACTS_TABLE = "emergency_contacts"
TRIP_SHARES_TABLE = "trip_shares"

# Support staff read notifications addressed to this pseudo user
ADMIN_USER_ID = "admin"

MISSED_CHECK_INS_BEFORE_ESCALATION = 2
SHARE_LINK_TTL = timedelta(hours=24)

SAFETY_TIPS: dict[str, list[str]] = {
    "pre_ride": [
        "Verify driver photo and vehicle details before getting in",
        "Share your trip details with emergency contacts",
        "Check driver ratings and reviews",
        "Ensure the license plate matches the app",
        "Sit in the back seat for safety",
    ],
    "during_ride": [
        "Keep your phone charged and accessible",
        "Stay alert and aware of your surroundings",
        "Follow the route on the app",
        "Respond to safety check-ins promptly",
        "Trust your instincts - if something feels wrong, speak up",
    ],
    "emergency": [
        "Call emergency services (112) immediately if in danger",
        "Use the in-app SOS button to alert emergency contacts",
        "Share your live location with trusted contacts",
        "Stay calm and try to remember details",
        "Exit the vehicle in a safe, public area if possible",
    ],
}


class CheckInStatus(StrEnum):
    SAFE = "safe"
    NEED_HELP = "need_help"
    MISSED = "missed"


class EmergencyContact(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    user_id: str | None = None
    name: str
    phone: str
    relationship: str | None = None
    is_primary: bool = False
    is_active: bool = True


class DriverVerification(BaseModel):
    photo_match: bool
    vehicle_match: bool
    license_plate_match: bool

    @property
    def passed(self) -> bool:
        return self.photo_match and self.vehicle_match and self.license_plate_match


def maps_link(location: Coordinates) -> str:
    return f"https://maps.google.com/?q={location.lat},{location.lng}"


class SafetyService:
    def __init__(self, backend: "AsyncClient", share_base_url: str = "https://tcsygo.com"):
        self.backend = backend
        self.share_base_url = share_base_url.rstrip("/")

    async def _insert_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        kind: str,
        data: dict[str, Any],
    ) -> None:
        await execute(
            self.backend.table("notifications").insert(
                {
                    "user_id": user_id,
                    "title": title,
                    "message": message,
                    "type": kind,
                    "data": data,
                    "is_read": False,
                }
            ),
            f"notify {kind}",
        )

    async def _user_id_for_phone(self, phone: str) -> str | None:
        user = await fetch_first(
            self.backend.table("users").select("id").eq("phone", phone),
            "lookup contact user",
        )
        return user["id"] if user else None

    async def _user_name(self, user_id: str) -> str:
        user = await fetch_first(
            self.backend.table("users").select("full_name").eq("id", user_id),
            "fetch user name",
        )
        return (user or {}).get("full_name") or "User"

    async def create_safety_check_in(
        self,
        booking_id: str,
        user_id: str,
        status: CheckInStatus,
        location: Coordinates | None = None,
    ) -> bool:
        """Record a rider's answer to a check-in. ``need_help`` escalates immediately."""
        status = CheckInStatus(status)
        with log_booking_context(booking_id, user_id=user_id):
            try:
                await execute(
                    self.backend.table(CHECKINS_TABLE).insert(
                        {
                            "trip_id": booking_id,
                            "user_id": user_id,
                            "status": status.value,
                            "location_lat": location.lat if location else None,
                            "location_lng": location.lng if location else None,
                            "response_time": utc_now().isoformat(),
                        }
                    ),
                    "create safety check-in",
                )
            except RideshareError as e:
                logger.error(f"Error creating safety check-in: {e}")
                return False

            if status == CheckInStatus.NEED_HELP:
                await self.trigger_emergency_protocol(booking_id, user_id, location)
            return True

    async def record_missed_check_in(
        self, booking_id: str, user_id: str, location: Coordinates | None = None
    ) -> bool:
        """Record a missed check-in. Returns True when it escalated to an emergency."""
        with log_booking_context(booking_id, user_id=user_id):
            try:
                await execute(
                    self.backend.table(CHECKINS_TABLE).insert(
                        {
                            "trip_id": booking_id,
                            "user_id": user_id,
                            "status": CheckInStatus.MISSED.value,
                            "location_lat": location.lat if location else None,
                            "location_lng": location.lng if location else None,
                        }
                    ),
                    "record missed check-in",
                )
                missed = await fetch_rows(
                    self.backend.table(CHECKINS_TABLE)
                    .select("id")
                    .eq("trip_id", booking_id)
                    .eq("status", CheckInStatus.MISSED.value)
                    .order("created_at", desc=True)
                    .limit(MISSED_CHECK_INS_BEFORE_ESCALATION),
                    "count missed check-ins",
                )
            except RideshareError as e:
                logger.error(f"Error recording missed check-in: {e}")
                return False

            if len(missed) < MISSED_CHECK_INS_BEFORE_ESCALATION:
                logger.warning("Safety check-in missed")
                return False

            await self.trigger_emergency_protocol(booking_id, user_id, location)
            return True

    async def trigger_emergency_protocol(
        self, booking_id: str, user_id: str, location: Coordinates | None = None
    ) -> str | None:
        """Open an emergency alert, tell the trusted contacts and page support."""
        with log_booking_context(booking_id, user_id=user_id):
            logger.warning("Emergency protocol triggered")
            try:
                rows = await fetch_rows(
                    self.backend.table("emergency_alerts").insert(
                        {
                            "booking_id": booking_id,
                            "user_id": user_id,
                            "alert_type": "safety_concern",
                            "location_lat": location.lat if location else None,
                            "location_lng": location.lng if location else None,
                            "status": "active",
                        }
                    ),
                    "create emergency alert",
                )
                alert_id = rows[0]["id"] if rows else None

                await self.notify_emergency_contacts(user_id, booking_id, location)
                await self._insert_notification(
                    ADMIN_USER_ID,
                    "Emergency Alert",
                    f"User {user_id} triggered emergency protocol for booking {booking_id}",
                    "emergency",
                    {"booking_id": booking_id, "alert_id": alert_id},
                )
            except RideshareError as e:
                logger.error(f"Error triggering emergency protocol: {e}")
                return None
            return alert_id

    async def notify_emergency_contacts(
        self, user_id: str, booking_id: str, location: Coordinates | None = None
    ) -> int:
        """Alert the rider's active contacts. Returns how many were reached in-app.

        Contacts without an account get nothing here: text messages are sent
        from the rider's device.
        """
        try:
            contacts = await self.get_emergency_contacts(user_id)
            user_name = await self._user_name(user_id)
        except RideshareError as e:
            logger.error(f"Error notifying emergency contacts: {e}")
            return 0

        where = f" Current location: {maps_link(location)}." if location else ""
        message = (
            f"EMERGENCY ALERT: {user_name} has triggered an emergency alert during their ride."
            f"{where} Booking ID: {booking_id}. Please contact them immediately."
        )
        data = {
            "booking_id": booking_id,
            "location": location.model_dump() if location else None,
        }

        notified = 0
        for contact in contacts:
            try:
                contact_user_id = await self._user_id_for_phone(contact.phone)
                if contact_user_id:
                    await self._insert_notification(
                        contact_user_id, "Emergency Alert", message, "emergency", data
                    )
                    notified += 1
            except RideshareError as e:
                logger.error(f"Error notifying contact {contact.id}: {e}")
        return notified

    async def get_emergency_contacts(self, user_id: str) -> list[EmergencyContact]:
        try:
            rows = await fetch_rows(
                self.backend.table(CONTACTS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .eq("is_active", True)
                .order("is_primary", desc=True),
                "fetch emergency contacts",
            )
        except RideshareError as e:
            logger.error(f"Error fetching emergency contacts: {e}")
            return []
        return [EmergencyContact.model_validate(row) for row in rows]

    async def add_emergency_contact(self, user_id: str, contact: EmergencyContact) -> bool:
        try:
            await execute(
                self.backend.table(CONTACTS_TABLE).insert(
                    {
                        **contact.model_dump(exclude={"id", "user_id"}),
                        "user_id": user_id,
                        "is_active": True,
                    }
                ),
                "add emergency contact",
            )
        except RideshareError as e:
            logger.error(f"Error adding emergency contact: {e}")
            return False
        return True

    async def update_emergency_contact(self, contact_id: str, updates: dict[str, Any]) -> bool:
        changes = {k: v for k, v in updates.items() if k not in ("id", "user_id")}
        if not changes:
            return True
        try:
            await execute(
                self.backend.table(CONTACTS_TABLE).update(changes).eq("id", contact_id),
                "update emergency contact",
            )
        except RideshareError as e:
            logger.error(f"Error updating emergency contact: {e}")
            return False
        return True

    async def delete_emergency_contact(self, contact_id: str) -> bool:
        """Soft delete: the contact is deactivated, not removed."""
        return await self.update_emergency_contact(contact_id, {"is_active": False})

    async def create_trip_share_link(
        self, booking_id: str, user_id: str, now: datetime | None = None
    ) -> str | None:
        now = now or utc_now()
        token = f"{booking_id}_{secrets.token_urlsafe(9)}"
        try:
            await execute(
                self.backend.table(TRIP_SHARES_TABLE).insert(
                    {
                        "booking_id": booking_id,
                        "user_id": user_id,
                        "share_token": token,
                        "expires_at": (now + SHARE_LINK_TTL).isoformat(),
                    }
                ),
                "create trip share",
            )
        except RideshareError as e:
            logger.error(f"Error creating trip share link: {e}")
            return None
        return f"{self.share_base_url}/track/{token}"

    async def share_trip_with_contacts(
        self, booking_id: str, user_id: str, contact_ids: list[str] | None = None
    ) -> bool:
        """Send a tracking link to the given contacts, or to the primary ones."""
        link = await self.create_trip_share_link(booking_id, user_id)
        if link is None:
            return False

        try:
            user_name = await self._user_name(user_id)
            contacts = await self.get_emergency_contacts(user_id)
            if contact_ids:
                targets = [c for c in contacts if c.id in contact_ids]
            else:
                targets = [c for c in contacts if c.is_primary]

            message = f"{user_name} is sharing their ride with you. Track their journey here: {link}"
            for contact in targets:
                contact_user_id = await self._user_id_for_phone(contact.phone)
                if contact_user_id:
                    await self._insert_notification(
                        contact_user_id,
                        "Trip Shared",
                        message,
                        "trip_share",
                        {"booking_id": booking_id, "link": link},
                    )
        except RideshareError as e:
            logger.error(f"Error sharing trip with contacts: {e}")
            return False

        logger.info(f"Trip {booking_id} shared with {len(targets)} contacts")
        return True

    async def get_trip_share_details(
        self, token: str, now: datetime | None = None
    ) -> dict[str, Any] | None:
        try:
            share = await fetch_first(
                self.backend.table(TRIP_SHARES_TABLE)
                .select("*, booking:bookings(*, trip:trips(*), driver:drivers(*))")
                .eq("share_token", token),
                "fetch trip share",
            )
        except RideshareError as e:
            logger.error(f"Error fetching trip share details: {e}")
            return None

        if share is None:
            return None
        # Shares without an expiry are treated as expired
        expires_at = share.get("expires_at")
        if expires_at is None or (now or utc_now()) > parse_timestamp(expires_at):
            return None
        return share

    async def verify_driver(
        self, booking_id: str, driver_id: str, verification: DriverVerification
    ) -> bool:
        try:
            await execute(
                self.backend.table("driver_verifications").insert(
                    {
                        "booking_id": booking_id,
                        "driver_id": driver_id,
                        "photo_verified": verification.photo_match,
                        "vehicle_verified": verification.vehicle_match,
                        "license_plate_verified": verification.license_plate_match,
                        "verified_at": utc_now().isoformat(),
                    }
                ),
                "record driver verification",
            )
            if not verification.passed:
                await self._insert_notification(
                    ADMIN_USER_ID,
                    "Driver Verification Failed",
                    f"Driver verification failed for booking {booking_id}",
                    "alert",
                    {"booking_id": booking_id, "driver_id": driver_id, **verification.model_dump()},
                )
        except RideshareError as e:
            logger.error(f"Error verifying driver: {e}")
            return False
        return True

    async def report_driver_mismatch(
        self, booking_id: str, driver_id: str, reason: str, details: str
    ) -> bool:
        try:
            await execute(
                self.backend.table("driver_mismatch_reports").insert(
                    {
                        "booking_id": booking_id,
                        "driver_id": driver_id,
                        "reason": reason,
                        "details": details,
                        "status": "pending",
                    }
                ),
                "report driver mismatch",
            )
            await self._insert_notification(
                ADMIN_USER_ID,
                "Driver Mismatch Reported",
                f"Driver mismatch reported for booking {booking_id}: {reason}",
                "alert",
                {"booking_id": booking_id, "driver_id": driver_id, "reason": reason, "details": details},
            )
        except RideshareError as e:
            logger.error(f"Error reporting driver mismatch: {e}")
            return False
        return True

    def get_safety_tips(self, context: str) -> list[str]:
        return list(SAFETY_TIPS.get(context, []))
