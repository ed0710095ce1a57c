"""SQLModel модель реферера (участника, получающего комиссию)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from .base import TimeStampedModel


class ReferrerStatus(str):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"

    ALL = (PENDING, ACTIVE, SUSPENDED, BANNED)


class PayoutMethod(str):
    STRIPE_CONNECT = "stripe_connect"
    PAYPAL = "paypal"

    ALL = (STRIPE_CONNECT, PAYPAL)


class Referrer(TimeStampedModel, table=True):
    """Запись реферера. Никогда не удаляется физически, только смена статуса."""

    __tablename__ = "referrers"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(max_length=254, unique=True, index=True)
    name: str = Field(max_length=128)
    country: str = Field(default="US", max_length=2, index=True)
    currency: str = Field(default="USD", max_length=3)
    referral_code: str = Field(max_length=32, unique=True, index=True)
    referral_url: str = Field(max_length=512)
    commission_rate_bps: int = Field(default=0, ge=0, le=10_000)
    status: str = Field(default=ReferrerStatus.PENDING, max_length=16, index=True)

    social_verified: bool = Field(default=False, index=True)
    social_verified_at: Optional[datetime] = Field(default=None)

    payout_method: Optional[str] = Field(default=None, max_length=32)
    payout_account_id: Optional[str] = Field(default=None, max_length=128, index=True)
    paypal_email: Optional[str] = Field(default=None, max_length=254)

    # Производные счётчики: пересчитываются recompute_stats после каждого перехода.
    total_referrals: int = Field(default=0)
    pending_referrals: int = Field(default=0)
    active_referrals: int = Field(default=0)
    eligible_referrals: int = Field(default=0)
    paid_referrals: int = Field(default=0)
    cancelled_referrals: int = Field(default=0)
    fraud_referrals: int = Field(default=0)

    total_earned_cents: int = Field(default=0, ge=0)
    total_paid_cents: int = Field(default=0, ge=0)
    available_balance_cents: int = Field(default=0, ge=0)
    pending_balance_cents: int = Field(default=0, ge=0)

    admin_notes: str = Field(default="")

    def account_for(self, method: str) -> str | None:
        """Возвращает внешний аккаунт рельсы для указанного метода выплаты."""

        if self.payout_method == method:
            return self.payout_account_id
        return None


__all__ = ["PayoutMethod", "Referrer", "ReferrerStatus"]
