"""Публикации рефереров в соцсетях (social-proof gate)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field

from .base import TimeStampedModel


class VerificationStatus(str):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    ALL = (PENDING, APPROVED, REJECTED)


class SocialVerification(TimeStampedModel, table=True):
    __tablename__ = "social_verifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    referrer_id: int = Field(foreign_key="referrers.id", index=True)
    platform: str = Field(max_length=32)
    post_url: str = Field(max_length=1024)
    screenshot_url: Optional[str] = Field(default=None, max_length=1024)
    status: str = Field(default=VerificationStatus.PENDING, max_length=16, index=True)
    reviewed_by: Optional[str] = Field(default=None, max_length=128)
    reviewed_at: Optional[datetime] = Field(default=None)
    rejection_reason: Optional[str] = Field(default=None, max_length=512)


__all__ = ["SocialVerification", "VerificationStatus"]
