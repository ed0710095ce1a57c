"""Функции для работы с таблицей рефереров."""

from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from referral_engine.models import Referrer, ReferrerStatus


async def get_referrer(session: AsyncSession, referrer_id: int) -> Optional[Referrer]:
    return await session.get(Referrer, referrer_id)


async def get_referrer_by_email(session: AsyncSession, email: str) -> Optional[Referrer]:
    stmt = select(Referrer).where(Referrer.email == email.strip().lower())
    result = await session.exec(stmt)
    return result.one_or_none()


async def get_referrer_by_code(
    session: AsyncSession,
    code: str,
    *,
    active_only: bool = False,
) -> Optional[Referrer]:
    stmt = select(Referrer).where(Referrer.referral_code == code.strip().upper())
    if active_only:
        stmt = stmt.where(Referrer.status == ReferrerStatus.ACTIVE)
    result = await session.exec(stmt)
    return result.one_or_none()


async def referral_code_exists(session: AsyncSession, code: str) -> bool:
    stmt = select(Referrer.id).where(Referrer.referral_code == code)
    return (await session.exec(stmt)).first() is not None


async def list_referrers(
    session: AsyncSession,
    *,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[Sequence[Referrer], int]:
    stmt = select(Referrer)
    count_stmt = select(func.count(Referrer.id))
    if status:
        stmt = stmt.where(Referrer.status == status)
        count_stmt = count_stmt.where(Referrer.status == status)
    stmt = stmt.order_by(Referrer.created_at.desc(), Referrer.id.desc()).offset(offset).limit(limit)
    items = (await session.exec(stmt)).all()
    total = (await session.exec(count_stmt)).one()
    return items, int(total or 0)


async def count_referrers(session: AsyncSession, *, status: str | None = None) -> int:
    stmt = select(func.count(Referrer.id))
    if status:
        stmt = stmt.where(Referrer.status == status)
    return int((await session.exec(stmt)).one() or 0)


__all__ = [
    "count_referrers",
    "get_referrer",
    "get_referrer_by_code",
    "get_referrer_by_email",
    "list_referrers",
    "referral_code_exists",
]
