"""Trip chat between a passenger and a driver."""

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from rideshare.backend import fetch_rows, subscribe_to_changes
from rideshare.backend.client import RowCallback, Unsubscribe
from rideshare.core.exceptions import RideshareError, ValidationError

if TYPE_CHECKING:
    from supabase import AsyncClient

    from rideshare.notifications import NotificationService

logger = logging.getLogger(__name__)

MESSAGES_TABLE = "messages"
MAX_MESSAGE_LENGTH = 1000


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    trip_id: str
    sender_id: str
    receiver_id: str
    message: str
    is_read: bool = False
    created_at: str | None = None


class ChatService:
    def __init__(self, backend: "AsyncClient", notifications: "NotificationService | None" = None):
        self.backend = backend
        self.notifications = notifications

    async def send_message(
        self, trip_id: str, sender_id: str, receiver_id: str, content: str
    ) -> ChatMessage | None:
        """Store a message and push it to the receiver's devices."""
        text = content.strip()
        if not text:
            raise ValidationError("Message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message longer than {MAX_MESSAGE_LENGTH} characters",
                {"length": len(text)},
            )

        try:
            rows = await fetch_rows(
                self.backend.table(MESSAGES_TABLE).insert(
                    {
                        "trip_id": trip_id,
                        "sender_id": sender_id,
                        "receiver_id": receiver_id,
                        "message": text,
                        "is_read": False,
                    }
                ),
                "send chat message",
            )
        except RideshareError as e:
            logger.error(f"Error sending message: {e}")
            return None

        if self.notifications:
            await self.notifications.send_push_notification(
                receiver_id, "New message", text, {"tripId": trip_id, "type": "chat"}, "chat"
            )
        return ChatMessage.model_validate(rows[0])

    async def get_messages(self, trip_id: str) -> list[ChatMessage]:
        try:
            rows = await fetch_rows(
                self.backend.table(MESSAGES_TABLE)
                .select("*")
                .eq("trip_id", trip_id)
                .order("created_at"),
                "fetch chat messages",
            )
        except RideshareError as e:
            logger.error(f"Error fetching messages: {e}")
            return []
        return [ChatMessage.model_validate(row) for row in rows]

    async def mark_messages_read(self, trip_id: str, user_id: str) -> int:
        """Mark every unread message addressed to ``user_id`` as read."""
        try:
            rows = await fetch_rows(
                self.backend.table(MESSAGES_TABLE)
                .update({"is_read": True})
                .eq("trip_id", trip_id)
                .eq("receiver_id", user_id)
                .eq("is_read", False),
                "mark messages read",
            )
        except RideshareError as e:
            logger.error(f"Error marking messages read: {e}")
            return 0
        return len(rows)

    async def subscribe_to_messages(self, trip_id: str, on_message: RowCallback) -> Unsubscribe:
        return await subscribe_to_changes(
            self.backend,
            f"chat-{trip_id}",
            MESSAGES_TABLE,
            on_message,
            row_filter=f"trip_id=eq.{trip_id}",
            event="INSERT",
        )
