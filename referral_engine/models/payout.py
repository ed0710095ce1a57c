"""Заявки на вывод доступного баланса реферера."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field

from .base import TimeStampedModel


class PayoutStatus(str):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    ALL = (PENDING, APPROVED, PROCESSING, COMPLETED, FAILED, CANCELLED)
    OPEN = (PENDING, APPROVED, PROCESSING)


class Payout(TimeStampedModel, table=True):
    """Одна выплата. transfer_id, однажды записанный, блокирует повторное исполнение."""

    __tablename__ = "payouts"

    id: Optional[int] = Field(default=None, primary_key=True)
    referrer_id: int = Field(foreign_key="referrers.id", index=True)

    requested_cents: int = Field(ge=0)
    currency: str = Field(default="USD", max_length=3)
    platform_fee_cents: int = Field(default=0, ge=0)
    processing_fee_cents: int = Field(default=0, ge=0)
    net_cents: int = Field(default=0, ge=0)

    method: str = Field(max_length=32)
    country: str = Field(default="US", max_length=2)
    payout_account_id: str = Field(max_length=254)
    transfer_id: Optional[str] = Field(default=None, max_length=128, unique=True)
    referral_ids: list[int] = Field(default_factory=list, sa_column=Column(JSON))

    status: str = Field(default=PayoutStatus.PENDING, max_length=16, index=True)

    social_proof_url: str = Field(max_length=1024)
    social_verification_id: Optional[int] = Field(
        default=None, foreign_key="social_verifications.id"
    )

    approved_by: Optional[str] = Field(default=None, max_length=128)
    approved_at: Optional[datetime] = Field(default=None)
    review_notes: Optional[str] = Field(default=None, max_length=1024)

    cancelled_by: Optional[str] = Field(default=None, max_length=128)
    cancelled_at: Optional[datetime] = Field(default=None)
    cancellation_reason: Optional[str] = Field(default=None, max_length=1024)

    processing_started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    failed_at: Optional[datetime] = Field(default=None)
    failure_reason: Optional[str] = Field(default=None, max_length=1024)
    failure_code: Optional[str] = Field(default=None, max_length=64)
    retry_count: int = Field(default=0, ge=0)

    @property
    def total_fees_cents(self) -> int:
        return self.platform_fee_cents + self.processing_fee_cents


__all__ = ["Payout", "PayoutStatus"]
