"""SQLModel сущности реферального движка."""

from .base import TimeStampedModel, as_utc, utcnow  # noqa: F401
from .payout import Payout, PayoutStatus  # noqa: F401
from .referral import CancellationReason, Referral, ReferralStatus  # noqa: F401
from .referrer import PayoutMethod, Referrer, ReferrerStatus  # noqa: F401
from .social_verification import SocialVerification, VerificationStatus  # noqa: F401

__all__ = [
    "CancellationReason",
    "Payout",
    "PayoutMethod",
    "PayoutStatus",
    "Referral",
    "ReferralStatus",
    "Referrer",
    "ReferrerStatus",
    "SocialVerification",
    "TimeStampedModel",
    "VerificationStatus",
    "as_utc",
    "utcnow",
]
