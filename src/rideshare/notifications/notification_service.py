"""In-app notification inbox and Expo push delivery."""

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Literal

import httpx
from pydantic import BaseModel

from rideshare.backend import execute, fetch_count, fetch_first, fetch_rows, subscribe_to_changes
from rideshare.backend.client import RowCallback, Unsubscribe
from rideshare.core.exceptions import RideshareError
from rideshare.settings import PushSettings

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

NOTIFICATIONS_TABLE = "notifications"
PUSH_TOKENS_TABLE = "push_tokens"


class NotificationType(StrEnum):
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_TIMEOUT = "booking_timeout"
    DRIVER_ARRIVAL = "driver_arrival"
    RIDE_STARTED = "ride_started"
    RIDE_COMPLETED = "ride_completed"
    PAYMENT_REMINDER = "payment_reminder"
    PAYMENT_SUCCESS = "payment_success"
    PROMO_OFFER = "promo_offer"
    SAFETY_ALERT = "safety_alert"
    RIDE_SHARING_INVITE = "ride_sharing_invite"
    GENERAL = "general"


class NotificationData(BaseModel):
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] | None = None


class NotificationService:
    """Writes inbox rows to the backend and fans pushes out to the user's devices."""

    def __init__(self, backend: "AsyncClient", push_settings: PushSettings | None = None):
        self.backend = backend
        self.push_settings = push_settings or PushSettings()

    async def create_notification(self, user_id: str, notification: NotificationData) -> bool:
        try:
            await execute(
                self.backend.table(NOTIFICATIONS_TABLE).insert(
                    {
                        "user_id": user_id,
                        "title": notification.title,
                        "message": notification.message,
                        "type": notification.type.value,
                        "data": notification.data,
                        "is_read": False,
                    }
                ),
                "create notification",
            )
        except RideshareError as e:
            logger.error(f"Error creating notification in database: {e}")
            return False
        return True

    async def get_notifications(
        self, user_id: str, limit: int = 50, unread_only: bool = False
    ) -> list[dict[str, Any]]:
        query = self.backend.table(NOTIFICATIONS_TABLE).select("*").eq("user_id", user_id)
        if unread_only:
            query = query.eq("is_read", False)
        try:
            return await fetch_rows(
                query.order("created_at", desc=True).limit(limit), "fetch notifications"
            )
        except RideshareError as e:
            logger.error(f"Error fetching notifications: {e}")
            return []

    async def mark_as_read(self, notification_id: str) -> bool:
        try:
            await execute(
                self.backend.table(NOTIFICATIONS_TABLE)
                .update({"is_read": True})
                .eq("id", notification_id),
                "mark notification read",
            )
        except RideshareError as e:
            logger.error(f"Error marking notification as read: {e}")
            return False
        return True

    async def mark_all_as_read(self, user_id: str) -> bool:
        try:
            await execute(
                self.backend.table(NOTIFICATIONS_TABLE)
                .update({"is_read": True})
                .eq("user_id", user_id)
                .eq("is_read", False),
                "mark all notifications read",
            )
        except RideshareError as e:
            logger.error(f"Error marking all notifications as read: {e}")
            return False
        return True

    async def delete_notification(self, notification_id: str) -> bool:
        try:
            await execute(
                self.backend.table(NOTIFICATIONS_TABLE).delete().eq("id", notification_id),
                "delete notification",
            )
        except RideshareError as e:
            logger.error(f"Error deleting notification: {e}")
            return False
        return True

    async def get_unread_count(self, user_id: str) -> int:
        try:
            return await fetch_count(
                self.backend.table(NOTIFICATIONS_TABLE)
                .select("*", count="exact", head=True)
                .eq("user_id", user_id)
                .eq("is_read", False),
                "count unread notifications",
            )
        except RideshareError as e:
            logger.error(f"Error getting unread count: {e}")
            return 0

    async def subscribe_to_notifications(
        self, user_id: str, callback: RowCallback
    ) -> Unsubscribe:
        return await subscribe_to_changes(
            self.backend,
            f"notifications:{user_id}",
            NOTIFICATIONS_TABLE,
            callback,
            row_filter=f"user_id=eq.{user_id}",
            event="INSERT",
        )

    async def save_push_token(
        self, user_id: str, token: str, platform: Literal["ios", "android", "web"]
    ) -> None:
        """Register a device token once per user."""
        try:
            existing = await fetch_first(
                self.backend.table(PUSH_TOKENS_TABLE)
                .select("id")
                .eq("user_id", user_id)
                .eq("token", token),
                "lookup push token",
            )
            if existing:
                return
            await execute(
                self.backend.table(PUSH_TOKENS_TABLE).insert(
                    {"user_id": user_id, "token": token, "platform": platform, "is_active": True}
                ),
                "save push token",
            )
        except RideshareError as e:
            logger.error(f"Error saving push token: {e}")

    async def send_push_notification(
        self,
        user_id: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        channel_id: str = "default",
    ) -> int:
        """Push to every active device of the user. Returns the number of messages sent."""
        try:
            rows = await fetch_rows(
                self.backend.table(PUSH_TOKENS_TABLE)
                .select("token")
                .eq("user_id", user_id)
                .eq("is_active", True),
                "fetch push tokens",
            )
        except RideshareError as e:
            logger.error(f"Error fetching push tokens: {e}")
            return 0

        if not rows:
            logger.debug(f"No active push tokens for user {user_id}")
            return 0

        messages = [
            {
                "to": row["token"],
                "title": title,
                "body": body,
                "data": data or {},
                "sound": "default",
                "priority": "high",
                "channelId": channel_id,
            }
            for row in rows
        ]

        try:
            async with httpx.AsyncClient(timeout=self.push_settings.timeout_seconds) as client:
                response = await client.post(
                    self.push_settings.expo_url,
                    json=messages,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error sending push notification: {e}")
            return 0

        return len(messages)

    async def notify(
        self, user_id: str, notification: NotificationData, channel_id: str = "ride_updates"
    ) -> None:
        await self.create_notification(user_id, notification)
        await self.send_push_notification(
            user_id, notification.title, notification.message, notification.data, channel_id
        )

    async def send_booking_confirmation(
        self, user_id: str, booking_id: str, pickup_location: str, drop_location: str
    ) -> None:
        await self.notify(
            user_id,
            NotificationData(
                type=NotificationType.BOOKING_CONFIRMATION,
                title="🚗 Booking Confirmed",
                message=f"Your ride from {pickup_location} to {drop_location} is confirmed",
                data={"bookingId": booking_id},
            ),
        )

    async def send_driver_arrival(self, user_id: str, driver_name: str, eta: int) -> None:
        await self.notify(
            user_id,
            NotificationData(
                type=NotificationType.DRIVER_ARRIVAL,
                title="✅ Driver Arriving",
                message=f"{driver_name} will arrive in {eta} minutes",
                data={"eta": eta},
            ),
        )

    async def send_ride_started(self, user_id: str, destination: str) -> None:
        await self.notify(
            user_id,
            NotificationData(
                type=NotificationType.RIDE_STARTED,
                title="🚀 Ride Started",
                message=f"Your ride to {destination} has started",
                data={"destination": destination},
            ),
        )

    async def send_ride_completed(self, user_id: str, amount: float) -> None:
        await self.notify(
            user_id,
            NotificationData(
                type=NotificationType.RIDE_COMPLETED,
                title="🎉 Ride Completed",
                message=f"Your ride is complete. Amount: ₹{amount}",
                data={"amount": amount},
            ),
        )

    async def send_safety_alert(self, user_id: str, message: str) -> None:
        await self.notify(
            user_id,
            NotificationData(
                type=NotificationType.SAFETY_ALERT,
                title="⚠️ Safety Alert",
                message=message,
                data={},
            ),
            channel_id="safety",
        )
