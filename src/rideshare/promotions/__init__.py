from .promo_codes import DiscountType, PromoCode, PromoCodeService, PromoCodeValidation, compute_discount
from .referrals import (
    FIRST_RIDE_REWARD,
    ReferralResult,
    ReferralReward,
    ReferralService,
    ReferralStatistics,
    RewardStatus,
    generate_referral_code,
)

__all__ = [
    "FIRST_RIDE_REWARD",
    "DiscountType",
    "PromoCode",
    "PromoCodeService",
    "PromoCodeValidation",
    "ReferralResult",
    "ReferralReward",
    "ReferralService",
    "ReferralStatistics",
    "RewardStatus",
    "compute_discount",
    "generate_referral_code",
]
