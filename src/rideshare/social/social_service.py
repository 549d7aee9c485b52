"""Split fares and ride-share invitations between riders."""

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from rideshare.backend import execute, fetch_count, fetch_first, fetch_rows, invoke_function
from rideshare.core.exceptions import RideshareError
from rideshare.utils.numbers import round_half_up
from rideshare.utils.timestamps import utc_now

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

SPLIT_REQUESTS_TABLE = "split_fare_requests"
SPLIT_PARTICIPANTS_TABLE = "split_fare_participants"
INVITES_TABLE = "ride_share_invites"


class SplitType(StrEnum):
    EQUAL = "equal"
    CUSTOM = "custom"


class SplitParticipant(BaseModel):
    email: str | None = None
    phone: str | None = None
    amount: float | None = None


class Invitee(BaseModel):
    email: str | None = None
    phone: str | None = None


class SplitFareRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    booking_id: str
    initiator_user_id: str
    total_amount: float
    split_type: SplitType
    status: str
    participants: list[dict[str, Any]] = []


class SocialActivity(BaseModel):
    split_fares: int = 0
    ride_shares: int = 0
    referrals: int = 0


def _contact_filter(email_column: str, phone_column: str, email: str, phone: str) -> str:
    return f"{email_column}.eq.{email},{phone_column}.eq.{phone}"


class SocialService:
    def __init__(self, backend: "AsyncClient", share_base_url: str = "https://tcsygo.com"):
        self.backend = backend
        self.share_base_url = share_base_url.rstrip("/")

    async def create_split_fare_request(
        self,
        booking_id: str,
        user_id: str,
        total_amount: float,
        split_type: SplitType,
        participants: list[SplitParticipant],
    ) -> str | None:
        """Split a fare between the initiator and ``participants``.

        An equal split gives everyone, the initiator included, the same
        rounded share. A custom split takes each participant's amount as given
        and leaves the initiator's share at zero.
        """
        split_type = SplitType(split_type)
        try:
            rows = await fetch_rows(
                self.backend.table(SPLIT_REQUESTS_TABLE).insert(
                    {
                        "booking_id": booking_id,
                        "initiator_user_id": user_id,
                        "total_amount": total_amount,
                        "split_type": split_type.value,
                        "status": "pending",
                    }
                ),
                "create split fare request",
            )
            split_id: str = rows[0]["id"]

            share = 0
            if split_type == SplitType.EQUAL:
                share = round_half_up(total_amount / (len(participants) + 1))

            await execute(
                self.backend.table(SPLIT_PARTICIPANTS_TABLE).insert(
                    {
                        "split_fare_id": split_id,
                        "user_id": user_id,
                        "amount": share,
                        "payment_status": "pending",
                    }
                ),
                "add split initiator",
            )

            for participant in participants:
                amount = participant.amount if split_type == SplitType.CUSTOM else share
                await execute(
                    self.backend.table(SPLIT_PARTICIPANTS_TABLE).insert(
                        {
                            "split_fare_id": split_id,
                            "email": participant.email,
                            "phone": participant.phone,
                            "amount": amount,
                            "payment_status": "pending",
                        }
                    ),
                    "add split participant",
                )
                await self.send_split_fare_invitation(split_id, participant.email, amount or 0)
        except RideshareError as e:
            logger.error(f"Error creating split fare request: {e}")
            return None

        logger.info(f"Split fare {split_id} created for booking {booking_id}")
        return split_id

    async def send_split_fare_invitation(
        self, split_fare_id: str, email: str | None, amount: float
    ) -> bool:
        """Email an invitation to pay a share. Returns False when nothing was sent."""
        if not email:
            return False
        try:
            split = await fetch_first(
                self.backend.table(SPLIT_REQUESTS_TABLE)
                .select("*, initiator:users!initiator_user_id(*)")
                .eq("id", split_fare_id),
                "fetch split fare",
            )
            if split is None:
                return False

            await invoke_function(
                self.backend,
                "send-split-fare-email",
                {
                    "splitFareId": split_fare_id,
                    "recipientEmail": email,
                    "initiatorName": (split.get("initiator") or {}).get("full_name") or "Someone",
                    "amount": amount,
                    "inviteLink": f"{self.share_base_url}/split-fare/{split_fare_id}",
                },
            )
        except RideshareError as e:
            logger.error(f"Failed to send split fare invitation: {e}")
            return False
        return True

    async def get_split_fare_requests(self, user_id: str) -> list[SplitFareRequest]:
        try:
            rows = await fetch_rows(
                self.backend.table(SPLIT_REQUESTS_TABLE)
                .select("*, participants:split_fare_participants(*)")
                .eq("initiator_user_id", user_id)
                .order("created_at", desc=True),
                "fetch split fare requests",
            )
        except RideshareError as e:
            logger.error(f"Error fetching split fare requests: {e}")
            return []
        return [SplitFareRequest.model_validate(row) for row in rows]

    async def get_split_fare_invitations(self, email: str, phone: str) -> list[dict[str, Any]]:
        """Unpaid shares addressed to this email or phone number."""
        try:
            return await fetch_rows(
                self.backend.table(SPLIT_PARTICIPANTS_TABLE)
                .select("*, split_fare:split_fare_requests(*)")
                .or_(_contact_filter("email", "phone", email, phone))
                .eq("payment_status", "pending")
                .order("created_at", desc=True),
                "fetch split fare invitations",
            )
        except RideshareError as e:
            logger.error(f"Error fetching split fare invitations: {e}")
            return []

    async def pay_split_fare_share(self, participant_id: str) -> bool:
        """Mark a share paid and close the request once every share is paid."""
        try:
            participant = await fetch_first(
                self.backend.table(SPLIT_PARTICIPANTS_TABLE).select("*").eq("id", participant_id),
                "fetch split participant",
            )
            if participant is None:
                return False

            await execute(
                self.backend.table(SPLIT_PARTICIPANTS_TABLE)
                .update({"payment_status": "paid", "paid_at": utc_now().isoformat()})
                .eq("id", participant_id),
                "mark split share paid",
            )

            shares = await fetch_rows(
                self.backend.table(SPLIT_PARTICIPANTS_TABLE)
                .select("payment_status")
                .eq("split_fare_id", participant["split_fare_id"]),
                "fetch split shares",
            )
            if all(share["payment_status"] == "paid" for share in shares):
                await execute(
                    self.backend.table(SPLIT_REQUESTS_TABLE)
                    .update({"status": "completed"})
                    .eq("id", participant["split_fare_id"]),
                    "complete split fare",
                )
                logger.info(f"Split fare {participant['split_fare_id']} fully paid")
        except RideshareError as e:
            logger.error(f"Error paying split fare share: {e}")
            return False
        return True

    async def create_ride_share_invite(
        self, trip_id: str, user_id: str, invitees: list[Invitee]
    ) -> bool:
        try:
            trip = await fetch_first(
                self.backend.table("trips").select("*").eq("id", trip_id), "fetch trip"
            )
            if trip is None:
                return False

            for invitee in invitees:
                rows = await fetch_rows(
                    self.backend.table(INVITES_TABLE).insert(
                        {
                            "trip_id": trip_id,
                            "inviter_user_id": user_id,
                            "invitee_email": invitee.email,
                            "invitee_phone": invitee.phone,
                            "status": "pending",
                        }
                    ),
                    "create ride share invite",
                )
                await self.send_ride_share_invitation(rows[0]["id"], invitee.email)
        except RideshareError as e:
            logger.error(f"Error creating ride share invite: {e}")
            return False
        return True

    async def send_ride_share_invitation(self, invite_id: str, email: str | None) -> bool:
        if not email:
            return False
        try:
            invite = await fetch_first(
                self.backend.table(INVITES_TABLE)
                .select("*, trip:trips(*), inviter:users!inviter_user_id(*)")
                .eq("id", invite_id),
                "fetch ride share invite",
            )
            if invite is None:
                return False

            trip = invite.get("trip") or {}
            await invoke_function(
                self.backend,
                "send-ride-share-email",
                {
                    "inviteId": invite_id,
                    "recipientEmail": email,
                    "inviterName": (invite.get("inviter") or {}).get("full_name") or "Someone",
                    "pickupLocation": trip.get("pickup_location"),
                    "dropLocation": trip.get("drop_location"),
                    "departureTime": trip.get("departure_time"),
                    "inviteLink": f"{self.share_base_url}/ride-invite/{invite_id}",
                },
            )
        except RideshareError as e:
            logger.error(f"Failed to send ride share invitation: {e}")
            return False
        return True

    async def accept_ride_share_invite(self, invite_id: str, user_id: str) -> bool:
        """Accept an invite and book one seat on the inviter's trip."""
        try:
            invite = await fetch_first(
                self.backend.table(INVITES_TABLE).select("*").eq("id", invite_id),
                "fetch ride share invite",
            )
            if invite is None:
                return False

            trip = await fetch_first(
                self.backend.table("trips").select("*").eq("id", invite["trip_id"]),
                "fetch trip",
            )
            if trip is None:
                return False

            await execute(
                self.backend.table(INVITES_TABLE).update({"status": "accepted"}).eq("id", invite_id),
                "accept ride share invite",
            )
            await execute(
                self.backend.table("bookings").insert(
                    {
                        "trip_id": invite["trip_id"],
                        "passenger_id": user_id,
                        "seats_booked": 1,
                        "total_amount": trip["price_per_seat"],
                        "status": "confirmed",
                    }
                ),
                "book shared ride",
            )
        except RideshareError as e:
            logger.error(f"Error accepting ride share invite: {e}")
            return False
        return True

    async def reject_ride_share_invite(self, invite_id: str) -> bool:
        try:
            await execute(
                self.backend.table(INVITES_TABLE).update({"status": "rejected"}).eq("id", invite_id),
                "reject ride share invite",
            )
        except RideshareError as e:
            logger.error(f"Error rejecting ride share invite: {e}")
            return False
        return True

    async def get_ride_share_invites(self, email: str, phone: str) -> list[dict[str, Any]]:
        try:
            return await fetch_rows(
                self.backend.table(INVITES_TABLE)
                .select("*, trip:trips(*), inviter:users!inviter_user_id(*)")
                .or_(_contact_filter("invitee_email", "invitee_phone", email, phone))
                .eq("status", "pending")
                .order("created_at", desc=True),
                "fetch ride share invites",
            )
        except RideshareError as e:
            logger.error(f"Error fetching ride share invites: {e}")
            return []

    async def get_social_activity(self, user_id: str) -> SocialActivity:
        try:
            return SocialActivity(
                split_fares=await fetch_count(
                    self.backend.table(SPLIT_REQUESTS_TABLE)
                    .select("id", count="exact", head=True)
                    .eq("initiator_user_id", user_id)
                ),
                ride_shares=await fetch_count(
                    self.backend.table(INVITES_TABLE)
                    .select("id", count="exact", head=True)
                    .eq("inviter_user_id", user_id)
                ),
                referrals=await fetch_count(
                    self.backend.table("referral_usage")
                    .select("id", count="exact", head=True)
                    .eq("referrer_user_id", user_id)
                ),
            )
        except RideshareError as e:
            logger.error(f"Error fetching social activity: {e}")
            return SocialActivity()
