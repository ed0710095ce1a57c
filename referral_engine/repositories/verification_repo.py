"""Публикации в соцсетях (social-proof)."""

from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from referral_engine.models import SocialVerification, VerificationStatus


async def get_verification(
    session: AsyncSession, verification_id: int
) -> Optional[SocialVerification]:
    return await session.get(SocialVerification, verification_id)


async def list_verifications(
    session: AsyncSession,
    *,
    status: str | None = VerificationStatus.PENDING,
    referrer_id: int | None = None,
) -> Sequence[SocialVerification]:
    stmt = select(SocialVerification)
    if status:
        stmt = stmt.where(SocialVerification.status == status)
    if referrer_id is not None:
        stmt = stmt.where(SocialVerification.referrer_id == referrer_id)
    stmt = stmt.order_by(SocialVerification.created_at.desc(), SocialVerification.id.desc())
    return (await session.exec(stmt)).all()


async def latest_approved(
    session: AsyncSession, referrer_id: int
) -> Optional[SocialVerification]:
    stmt = (
        select(SocialVerification)
        .where(
            SocialVerification.referrer_id == referrer_id,
            SocialVerification.status == VerificationStatus.APPROVED,
        )
        .order_by(SocialVerification.reviewed_at.desc(), SocialVerification.id.desc())
    )
    return (await session.exec(stmt)).first()


async def count_verifications(session: AsyncSession, *, status: str) -> int:
    stmt = select(func.count(SocialVerification.id)).where(SocialVerification.status == status)
    return int((await session.exec(stmt)).one() or 0)


__all__ = ["count_verifications", "get_verification", "latest_approved", "list_verifications"]
