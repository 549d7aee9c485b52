import logging
import secrets
import string
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from rideshare.backend import execute, fetch_first, fetch_rows
from rideshare.core.exceptions import RideshareError

if TYPE_CHECKING:
    from supabase import AsyncClient

    from rideshare.payments import WalletService

logger = logging.getLogger(__name__)

REFERRAL_CODES_TABLE = "referral_codes"
REFERRAL_USAGE_TABLE = "referral_usage"
REFERRAL_REWARDS_TABLE = "referral_rewards"

REFERRAL_REWARD = 50
REFERRAL_MAX_USES = 10
# Paid to the referrer once the referred user finishes a first ride
FIRST_RIDE_REWARD = 50

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code(user_name: str) -> str:
    """``REF`` + first three letters of the name + six random characters."""
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return f"REF{user_name[:3].upper()}{suffix}"


class RewardStatus(StrEnum):
    PENDING = "pending"
    CLAIMED = "claimed"


class ReferralResult(BaseModel):
    success: bool
    reward: float = 0
    error: str | None = None


class ReferralReward(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    referrer_id: str
    referred_id: str
    reward_amount: float
    status: RewardStatus
    created_at: datetime | None = None
    referred_name: str | None = None


class ReferralStatistics(BaseModel):
    referral_code: str = ""
    total_referrals: int = 0
    remaining_uses: int = 0
    total_rewards: float = 0
    pending_rewards: float = 0
    claimed_rewards: float = 0


class ReferralService:
    def __init__(self, backend: "AsyncClient", wallet: "WalletService"):
        self.backend = backend
        self.wallet = wallet

    async def create_referral_code(self, user_id: str, user_name: str) -> str | None:
        """Return the user's referral code, creating it on first use."""
        try:
            existing = await fetch_first(
                self.backend.table(REFERRAL_CODES_TABLE).select("code").eq("user_id", user_id),
                "lookup referral code",
            )
            if existing:
                return existing["code"]

            rows = await fetch_rows(
                self.backend.table(REFERRAL_CODES_TABLE).insert(
                    {
                        "user_id": user_id,
                        "code": generate_referral_code(user_name),
                        "reward_amount": REFERRAL_REWARD,
                        "max_uses": REFERRAL_MAX_USES,
                        "uses_count": 0,
                    }
                ),
                "create referral code",
            )
        except RideshareError as e:
            logger.error(f"Error creating referral code: {e}")
            return None
        return rows[0]["code"] if rows else None

    async def apply_referral_code(self, code: str, new_user_id: str) -> ReferralResult:
        """Redeem a code for a new user, crediting both wallets."""
        try:
            referral = await fetch_first(
                self.backend.table(REFERRAL_CODES_TABLE).select("*").eq("code", code.strip().upper()),
                "fetch referral code",
            )
            if referral is None or referral["user_id"] == new_user_id:
                return ReferralResult(success=False)

            uses = referral.get("uses_count") or 0
            if uses >= (referral.get("max_uses") or REFERRAL_MAX_USES):
                return ReferralResult(success=False)

            already_referred = await fetch_first(
                self.backend.table(REFERRAL_USAGE_TABLE)
                .select("id")
                .eq("referred_user_id", new_user_id),
                "lookup referral usage",
            )
            if already_referred:
                return ReferralResult(success=False)

            reward = float(referral.get("reward_amount") or REFERRAL_REWARD)
            await execute(
                self.backend.table(REFERRAL_USAGE_TABLE).insert(
                    {
                        "referral_code_id": referral["id"],
                        "referrer_user_id": referral["user_id"],
                        "referred_user_id": new_user_id,
                        "reward_amount": reward,
                    }
                ),
                "record referral usage",
            )
            await execute(
                self.backend.table(REFERRAL_REWARDS_TABLE).insert(
                    {
                        "referrer_id": referral["user_id"],
                        "referred_id": new_user_id,
                        "reward_amount": FIRST_RIDE_REWARD,
                        "status": RewardStatus.PENDING.value,
                    }
                ),
                "record pending referral reward",
            )
            await execute(
                self.backend.table(REFERRAL_CODES_TABLE)
                .update({"uses_count": uses + 1})
                .eq("id", referral["id"]),
                "count referral use",
            )
        except RideshareError as e:
            logger.error(f"Error applying referral code: {e}")
            return ReferralResult(success=False)

        await self.wallet.add_money_to_wallet(
            referral["user_id"], reward, f"referral_{referral['id']}_{new_user_id}", "Referral reward"
        )
        await self.wallet.add_money_to_wallet(
            new_user_id, reward, f"welcome_{referral['id']}", "Welcome bonus from referral"
        )
        logger.info(f"Referral code {referral['code']} redeemed by {new_user_id}")
        return ReferralResult(success=True, reward=reward)

    async def get_referral_statistics(self, user_id: str) -> ReferralStatistics:
        try:
            referral = await fetch_first(
                self.backend.table(REFERRAL_CODES_TABLE).select("*").eq("user_id", user_id),
                "fetch referral code",
            )
            if referral is None:
                return ReferralStatistics()

            usages = await fetch_rows(
                self.backend.table(REFERRAL_USAGE_TABLE)
                .select("reward_amount")
                .eq("referrer_user_id", user_id),
                "fetch referral usage",
            )
            rewards = await fetch_rows(
                self.backend.table(REFERRAL_REWARDS_TABLE)
                .select("reward_amount, status")
                .eq("referrer_id", user_id),
                "fetch referral rewards",
            )
        except RideshareError as e:
            logger.error(f"Error fetching referral stats: {e}")
            return ReferralStatistics()

        def reward_total(status: RewardStatus) -> float:
            return sum(
                float(r.get("reward_amount") or 0) for r in rewards if r.get("status") == status
            )

        uses = referral.get("uses_count") or 0
        return ReferralStatistics(
            referral_code=referral["code"],
            total_referrals=uses,
            remaining_uses=max((referral.get("max_uses") or REFERRAL_MAX_USES) - uses, 0),
            total_rewards=sum(float(u.get("reward_amount") or 0) for u in usages),
            pending_rewards=reward_total(RewardStatus.PENDING),
            claimed_rewards=reward_total(RewardStatus.CLAIMED),
        )

    async def get_pending_rewards(self, user_id: str) -> list[ReferralReward]:
        """First-ride rewards a referrer is still waiting on, newest first."""
        try:
            rows = await fetch_rows(
                self.backend.table(REFERRAL_REWARDS_TABLE)
                .select("*, referred:users!referred_id(full_name)")
                .eq("referrer_id", user_id)
                .eq("status", RewardStatus.PENDING.value)
                .order("created_at", desc=True),
                "fetch pending referral rewards",
            )
        except RideshareError as e:
            logger.error(f"Error fetching pending rewards: {e}")
            return []

        return [
            ReferralReward.model_validate(
                {**row, "referred_name": (row.get("referred") or {}).get("full_name")}
            )
            for row in rows
        ]

    async def claim_referral_reward(self, reward_id: str) -> ReferralResult:
        """Pay a pending reward into the referrer's wallet.

        The row is flipped to claimed before the credit, guarded on its
        pending status, so a reward is paid at most once. A failed credit puts
        it back to pending.
        """
        try:
            reward = await fetch_first(
                self.backend.table(REFERRAL_REWARDS_TABLE).select("*").eq("id", reward_id),
                "fetch referral reward",
            )
            if reward is None:
                return ReferralResult(success=False, error="Reward not found")
            if reward.get("status") == RewardStatus.CLAIMED.value:
                return ReferralResult(success=False, error="Reward already claimed")

            claimed = await fetch_rows(
                self.backend.table(REFERRAL_REWARDS_TABLE)
                .update({"status": RewardStatus.CLAIMED.value})
                .eq("id", reward_id)
                .eq("status", RewardStatus.PENDING.value),
                "claim referral reward",
            )
        except RideshareError as e:
            logger.error(f"Error claiming referral reward: {e}")
            return ReferralResult(success=False, error=e.message)

        if not claimed:
            return ReferralResult(success=False, error="Reward already claimed")

        amount = float(reward.get("reward_amount") or 0)
        credited = await self.wallet.add_money_to_wallet(
            reward["referrer_id"], amount, f"referral_{reward_id}", "Referral reward"
        )
        if not credited:
            try:
                await execute(
                    self.backend.table(REFERRAL_REWARDS_TABLE)
                    .update({"status": RewardStatus.PENDING.value})
                    .eq("id", reward_id),
                    "release referral reward",
                )
            except RideshareError as e:
                logger.error(f"Referral reward {reward_id} left claimed but unpaid: {e}")
            return ReferralResult(success=False, error="Failed to add reward to wallet")

        logger.info(f"Referral reward {reward_id} of {amount} paid to {reward['referrer_id']}")
        return ReferralResult(success=True, reward=amount)

    async def activate_referral_reward(self, referred_user_id: str) -> ReferralResult:
        """Pay the referrer once the referred user completes a first ride.

        Callers invoke this when a trip completes; users without a pending
        reward get an unsuccessful result and nothing is paid.
        """
        try:
            reward = await fetch_first(
                self.backend.table(REFERRAL_REWARDS_TABLE)
                .select("id")
                .eq("referred_id", referred_user_id)
                .eq("status", RewardStatus.PENDING.value),
                "fetch pending referral reward",
            )
        except RideshareError as e:
            logger.error(f"Error activating referral reward: {e}")
            return ReferralResult(success=False, error=e.message)

        if reward is None:
            return ReferralResult(success=False, error="No pending referral reward")
        return await self.claim_referral_reward(reward["id"])
