"""Таблица атрибуций: один реферер -> одна оплаченная подписка профессионала."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import Field

from .base import TimeStampedModel


class ReferralStatus(str):
    PENDING = "pending"
    ACTIVE = "active"
    ELIGIBLE = "eligible"
    PAID = "paid"
    CANCELLED = "cancelled"
    FRAUD = "fraud"

    ALL = (PENDING, ACTIVE, ELIGIBLE, PAID, CANCELLED, FRAUD)
    DEAD = (CANCELLED, FRAUD)


class CancellationReason(str):
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    PROFESSIONAL_NOT_FOUND = "professional_not_found"
    VERIFICATION_OVERDUE = "verification_overdue"
    ADMIN_DECISION = "admin_decision"
    FRAUD_DETECTED = "fraud_detected"


_LIVE_EMAIL_PREDICATE = "status NOT IN ('cancelled', 'fraud')"


class Referral(TimeStampedModel, table=True):
    __tablename__ = "referrals"
    __table_args__ = (
        # Одна «живая» рефералка на email профессионала, даже при гонке запросов.
        Index(
            "uq_referrals_live_email",
            "referred_email",
            unique=True,
            sqlite_where=text(_LIVE_EMAIL_PREDICATE),
            postgresql_where=text(_LIVE_EMAIL_PREDICATE),
        ),
        Index("ix_referrals_probation_scan", "status", "probation_complete", "probation_ends_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    referrer_id: int = Field(foreign_key="referrers.id", index=True)
    referral_code: str = Field(max_length=32, index=True)

    professional_id: str = Field(max_length=64, index=True)
    referred_email: str = Field(max_length=254)
    subscription_id: str = Field(max_length=128, index=True)
    subscription_started_at: datetime = Field(nullable=False)

    probation_ends_at: datetime = Field(nullable=False, index=True)
    probation_complete: bool = Field(default=False)
    eligible_at: Optional[datetime] = Field(default=None)

    commission_rate_bps: int = Field(ge=0, le=10_000)
    subscription_amount_cents: int = Field(ge=0)
    commission_cents: int = Field(default=0, ge=0)
    currency: str = Field(default="USD", max_length=3)
    country: str = Field(default="US", max_length=2)

    status: str = Field(default=ReferralStatus.ACTIVE, max_length=16, index=True)
    cancellation_reason: Optional[str] = Field(default=None, max_length=64)
    cancellation_details: Optional[str] = Field(default=None, max_length=512)
    cancelled_at: Optional[datetime] = Field(default=None)

    payout_id: Optional[int] = Field(default=None, foreign_key="payouts.id", index=True)
    social_verification_id: Optional[int] = Field(
        default=None, foreign_key="social_verifications.id"
    )
    reviewed_by: Optional[str] = Field(default=None, max_length=128)
    paid_at: Optional[datetime] = Field(default=None)


__all__ = ["CancellationReason", "Referral", "ReferralStatus"]
