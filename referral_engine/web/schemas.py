"""Pydantic-схемы HTTP API. Суммы наружу отдаются Decimal-строками."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from referral_engine.models import (
    Payout,
    Referral,
    Referrer,
    SocialVerification,
    as_utc,
)
from referral_engine.services.core.commission import bps_to_rate, from_cents


# ============================================================================
# Запросы
# ============================================================================

class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=254)
    name: str = Field(..., min_length=1, max_length=128)
    country: str = Field("US", min_length=2, max_length=2)


class ValidateCodeRequest(BaseModel):
    code: str = Field(..., max_length=32)
    email: Optional[str] = None


class TrackRequest(BaseModel):
    code: str = Field(..., max_length=32)
    professional_id: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., max_length=254)
    subscription_id: str = Field(..., min_length=1, max_length=128)
    amount: Decimal = Field(..., gt=0, description="Сумма первой оплаты подписки")
    country: Optional[str] = Field(None, min_length=2, max_length=2)


class SocialVerificationRequest(BaseModel):
    referrer_id: int
    platform: str = Field(..., max_length=32)
    post_url: str = Field(..., max_length=1024)
    screenshot_url: Optional[str] = Field(None, max_length=1024)


class PayoutAccountRequest(BaseModel):
    method: str
    paypal_email: Optional[str] = None


class PayoutRequest(BaseModel):
    referrer_id: int
    amount: Decimal
    method: str
    social_proof_url: Optional[str] = None


class ReviewRequest(BaseModel):
    action: str
    reason: Optional[str] = Field(None, max_length=1024)


class ReferrerStatusRequest(BaseModel):
    status: str
    reason: Optional[str] = Field(None, max_length=512)


class FeatureToggleRequest(BaseModel):
    enabled: bool


# ============================================================================
# Ответы
# ============================================================================

class ReferrerView(BaseModel):
    id: int
    email: str
    name: str
    country: str
    currency: str
    referral_code: str
    referral_url: str
    commission_rate: Decimal
    status: str
    social_verified: bool
    payout_method: Optional[str] = None
    payout_account_id: Optional[str] = None
    total_referrals: int = 0
    pending_referrals: int = 0
    active_referrals: int = 0
    eligible_referrals: int = 0
    paid_referrals: int = 0
    cancelled_referrals: int = 0
    fraud_referrals: int = 0
    total_earned: Decimal
    total_paid: Decimal
    available_balance: Decimal
    pending_balance: Decimal
    created_at: datetime

    @classmethod
    def from_model(cls, referrer: Referrer) -> "ReferrerView":
        return cls(
            id=referrer.id,
            email=referrer.email,
            name=referrer.name,
            country=referrer.country,
            currency=referrer.currency,
            referral_code=referrer.referral_code,
            referral_url=referrer.referral_url,
            commission_rate=bps_to_rate(referrer.commission_rate_bps),
            status=referrer.status,
            social_verified=referrer.social_verified,
            payout_method=referrer.payout_method,
            payout_account_id=referrer.payout_account_id,
            total_referrals=referrer.total_referrals,
            pending_referrals=referrer.pending_referrals,
            active_referrals=referrer.active_referrals,
            eligible_referrals=referrer.eligible_referrals,
            paid_referrals=referrer.paid_referrals,
            cancelled_referrals=referrer.cancelled_referrals,
            fraud_referrals=referrer.fraud_referrals,
            total_earned=from_cents(referrer.total_earned_cents),
            total_paid=from_cents(referrer.total_paid_cents),
            available_balance=from_cents(referrer.available_balance_cents),
            pending_balance=from_cents(referrer.pending_balance_cents),
            created_at=as_utc(referrer.created_at),
        )


class ReferralView(BaseModel):
    id: int
    referrer_id: int
    referral_code: str
    professional_id: str
    referred_email: str
    subscription_id: str
    status: str
    subscription_amount: Decimal
    commission: Decimal
    currency: str
    country: str
    probation_ends_at: datetime
    probation_complete: bool
    eligible_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    payout_id: Optional[int] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_model(cls, referral: Referral) -> "ReferralView":
        return cls(
            id=referral.id,
            referrer_id=referral.referrer_id,
            referral_code=referral.referral_code,
            professional_id=referral.professional_id,
            referred_email=referral.referred_email,
            subscription_id=referral.subscription_id,
            status=referral.status,
            subscription_amount=from_cents(referral.subscription_amount_cents),
            commission=from_cents(referral.commission_cents),
            currency=referral.currency,
            country=referral.country,
            probation_ends_at=as_utc(referral.probation_ends_at),
            probation_complete=referral.probation_complete,
            eligible_at=as_utc(referral.eligible_at),
            cancellation_reason=referral.cancellation_reason,
            payout_id=referral.payout_id,
            paid_at=as_utc(referral.paid_at),
            created_at=as_utc(referral.created_at),
        )


class SocialVerificationView(BaseModel):
    id: int
    referrer_id: int
    platform: str
    post_url: str
    screenshot_url: Optional[str] = None
    status: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, verification: SocialVerification) -> "SocialVerificationView":
        return cls(
            id=verification.id,
            referrer_id=verification.referrer_id,
            platform=verification.platform,
            post_url=verification.post_url,
            screenshot_url=verification.screenshot_url,
            status=verification.status,
            reviewed_by=verification.reviewed_by,
            reviewed_at=as_utc(verification.reviewed_at),
            rejection_reason=verification.rejection_reason,
            created_at=as_utc(verification.created_at),
        )


class PayoutView(BaseModel):
    id: int
    referrer_id: int
    status: str
    amount: Decimal
    platform_fee: Decimal
    processing_fee: Decimal
    net: Decimal
    currency: str
    method: str
    country: str
    transfer_id: Optional[str] = None
    referral_ids: list[int] = Field(default_factory=list)
    approved_by: Optional[str] = None
    failure_code: Optional[str] = None
    failure_reason: Optional[str] = None
    retry_count: int = 0
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, payout: Payout) -> "PayoutView":
        return cls(
            id=payout.id,
            referrer_id=payout.referrer_id,
            status=payout.status,
            amount=from_cents(payout.requested_cents),
            platform_fee=from_cents(payout.platform_fee_cents),
            processing_fee=from_cents(payout.processing_fee_cents),
            net=from_cents(payout.net_cents),
            currency=payout.currency,
            method=payout.method,
            country=payout.country,
            transfer_id=payout.transfer_id,
            referral_ids=list(payout.referral_ids or []),
            approved_by=payout.approved_by,
            failure_code=payout.failure_code,
            failure_reason=payout.failure_reason,
            retry_count=payout.retry_count,
            created_at=as_utc(payout.created_at),
            completed_at=as_utc(payout.completed_at),
        )


class ReferrerResponse(BaseModel):
    ok: bool = True
    referrer: ReferrerView


class CodeValidationResponse(BaseModel):
    ok: bool = True
    valid: bool
    reason: Optional[str] = None
    referrer_id: Optional[int] = None
    referrer_name: Optional[str] = None


class TrackResponse(BaseModel):
    ok: bool = True
    referral_id: int
    commission: Decimal
    currency: str
    probation_ends_at: datetime


class DashboardResponse(BaseModel):
    ok: bool = True
    referrer: ReferrerView
    referrals: list[ReferralView]
    payouts: list[PayoutView]


class PayoutAccountResponse(BaseModel):
    ok: bool = True
    referrer: ReferrerView
    onboarding_url: str


class ReferralResponse(BaseModel):
    ok: bool = True
    referral: ReferralView


class SocialVerificationResponse(BaseModel):
    ok: bool = True
    verification: SocialVerificationView


class PayoutResponse(BaseModel):
    ok: bool = True
    payout: PayoutView


class ReferrerPage(BaseModel):
    ok: bool = True
    items: list[ReferrerView]
    total: int
    offset: int
    limit: int


class ReferralPage(BaseModel):
    ok: bool = True
    items: list[ReferralView]
    total: int
    offset: int
    limit: int


class SocialVerificationList(BaseModel):
    ok: bool = True
    items: list[SocialVerificationView]


class PayoutList(BaseModel):
    ok: bool = True
    items: list[PayoutView]


class VerificationRunResponse(BaseModel):
    ok: bool = True
    checked: int
    eligible: int
    cancelled: int
    errored: int
    overdue: int


class FeatureToggleResponse(BaseModel):
    ok: bool = True
    enabled: bool


__all__ = [
    "CodeValidationResponse",
    "DashboardResponse",
    "FeatureToggleRequest",
    "FeatureToggleResponse",
    "PayoutAccountRequest",
    "PayoutAccountResponse",
    "PayoutList",
    "PayoutRequest",
    "PayoutResponse",
    "PayoutView",
    "ReferralPage",
    "ReferralResponse",
    "ReferralView",
    "ReferrerPage",
    "ReferrerResponse",
    "ReferrerStatusRequest",
    "ReferrerView",
    "RegisterRequest",
    "ReviewRequest",
    "SocialVerificationList",
    "SocialVerificationRequest",
    "SocialVerificationResponse",
    "SocialVerificationView",
    "TrackRequest",
    "TrackResponse",
    "ValidateCodeRequest",
    "VerificationRunResponse",
]
