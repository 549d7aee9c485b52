import logging
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from rideshare.backend import call_rpc, execute, fetch_first, fetch_rows
from rideshare.core.exceptions import RideshareError
from rideshare.utils.numbers import round_half_up
from rideshare.utils.timestamps import parse_timestamp, utc_now

if TYPE_CHECKING:
    from supabase import AsyncClient

logger = logging.getLogger(__name__)

PROMO_CODES_TABLE = "promo_codes"
PROMO_USAGE_TABLE = "promo_code_usage"


class DiscountType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromoCode(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    code: str
    description: str | None = None
    discount_type: DiscountType
    discount_value: float
    min_order_value: float = 0
    max_discount: float | None = None
    valid_from: datetime
    valid_until: datetime
    usage_limit: int | None = None
    usage_count: int = 0
    is_active: bool = True
    user_specific: bool = False
    applicable_vehicle_types: list[str] | None = None


class PromoCodeValidation(BaseModel):
    valid: bool
    discount: int = 0
    message: str
    promo_code: PromoCode | None = None


def _rejected(message: str) -> PromoCodeValidation:
    return PromoCodeValidation(valid=False, discount=0, message=message)


def compute_discount(promo: PromoCode, order_amount: float) -> int:
    """Percentage discounts are capped by ``max_discount``. No discount exceeds the order."""
    if promo.discount_type == DiscountType.PERCENTAGE:
        discount = order_amount * promo.discount_value / 100
        if promo.max_discount and discount > promo.max_discount:
            discount = promo.max_discount
    else:
        discount = promo.discount_value
    return round_half_up(min(discount, order_amount))


class PromoCodeService:
    def __init__(self, backend: "AsyncClient"):
        self.backend = backend

    async def _has_used(self, promo_id: str, user_id: str) -> bool:
        usage = await fetch_first(
            self.backend.table(PROMO_USAGE_TABLE)
            .select("id")
            .eq("promo_code_id", promo_id)
            .eq("user_id", user_id),
            "lookup promo usage",
        )
        return usage is not None

    async def validate_promo_code(
        self,
        code: str,
        user_id: str,
        order_amount: float,
        vehicle_type: str | None = None,
        now: datetime | None = None,
    ) -> PromoCodeValidation:
        now = now or utc_now()
        try:
            row = await fetch_first(
                self.backend.table(PROMO_CODES_TABLE)
                .select("*")
                .eq("code", code.strip().upper())
                .eq("is_active", True),
                "fetch promo code",
            )
            if row is None:
                return _rejected("Invalid promo code")

            promo = PromoCode.model_validate(row)
            if now < parse_timestamp(promo.valid_from):
                return _rejected("Promo code not yet active")
            if now > parse_timestamp(promo.valid_until):
                return _rejected("Promo code has expired")
            if promo.usage_limit and promo.usage_count >= promo.usage_limit:
                return _rejected("Promo code usage limit reached")
            if order_amount < promo.min_order_value:
                return _rejected(f"Minimum order value of ₹{promo.min_order_value:g} required")
            if promo.applicable_vehicle_types and vehicle_type:
                if vehicle_type not in promo.applicable_vehicle_types:
                    return _rejected(f"Promo code not applicable for {vehicle_type}")
            if promo.user_specific and await self._has_used(promo.id, user_id):
                return _rejected("You have already used this promo code")
        except RideshareError as e:
            logger.error(f"Error validating promo code: {e}")
            return _rejected("Error validating promo code")

        discount = compute_discount(promo, order_amount)
        return PromoCodeValidation(
            valid=True,
            discount=discount,
            message=f"Promo code applied! You saved ₹{discount}",
            promo_code=promo,
        )

    async def apply_promo_code(
        self, promo_id: str, user_id: str, booking_id: str, discount: float
    ) -> bool:
        try:
            await execute(
                self.backend.table(PROMO_USAGE_TABLE).insert(
                    {
                        "promo_code_id": promo_id,
                        "user_id": user_id,
                        "booking_id": booking_id,
                        "discount_amount": discount,
                    }
                ),
                "record promo usage",
            )

            try:
                await call_rpc(self.backend, "increment_promo_usage", {"promo_id": promo_id})
            except RideshareError as e:
                # The usage row is the source of truth, the counter is best effort
                logger.error(f"Error updating promo code usage count: {e}")

            await execute(
                self.backend.table("bookings")
                .update({"promo_code_id": promo_id, "discount_amount": discount})
                .eq("id", booking_id),
                "apply discount to booking",
            )
        except RideshareError as e:
            logger.error(f"Error applying promo code: {e}")
            return False
        return True

    async def get_available_promo_codes(
        self, user_id: str, now: datetime | None = None
    ) -> list[PromoCode]:
        now_iso = (now or utc_now()).isoformat()
        try:
            rows = await fetch_rows(
                self.backend.table(PROMO_CODES_TABLE)
                .select("*")
                .eq("is_active", True)
                .lte("valid_from", now_iso)
                .gte("valid_until", now_iso)
                .order("discount_value", desc=True),
                "fetch available promo codes",
            )
            available = []
            for row in rows:
                promo = PromoCode.model_validate(row)
                if promo.user_specific and await self._has_used(promo.id, user_id):
                    continue
                available.append(promo)
        except RideshareError as e:
            logger.error(f"Error fetching available promo codes: {e}")
            return []
        return available

    async def get_usage_history(self, user_id: str) -> list[dict[str, Any]]:
        try:
            return await fetch_rows(
                self.backend.table(PROMO_USAGE_TABLE)
                .select("*, promo_code:promo_codes(*), booking:bookings(*)")
                .eq("user_id", user_id)
                .order("created_at", desc=True),
                "fetch promo usage history",
            )
        except RideshareError as e:
            logger.error(f"Error fetching promo code usage history: {e}")
            return []
