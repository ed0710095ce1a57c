"""Работа с рефералками: выборки, агрегаты и условные обновления."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, func, select

from referral_engine.models import Referral, ReferralStatus


async def get_referral(session: AsyncSession, referral_id: int) -> Optional[Referral]:
    return await session.get(Referral, referral_id)


async def find_live_referral_by_email(session: AsyncSession, email: str) -> Optional[Referral]:
    """Рефералка по email профессионала, кроме cancelled/fraud (без учёта регистра)."""

    stmt = select(Referral).where(
        func.lower(Referral.referred_email) == email.strip().lower(),
        col(Referral.status).not_in(ReferralStatus.DEAD),
    )
    result = await session.exec(stmt)
    return result.first()


async def list_referrals(
    session: AsyncSession,
    *,
    status: str | None = None,
    referrer_id: int | None = None,
    offset: int = 0,
    limit: int | None = 50,
) -> tuple[Sequence[Referral], int]:
    stmt = select(Referral)
    count_stmt = select(func.count(Referral.id))
    if status:
        stmt = stmt.where(Referral.status == status)
        count_stmt = count_stmt.where(Referral.status == status)
    if referrer_id is not None:
        stmt = stmt.where(Referral.referrer_id == referrer_id)
        count_stmt = count_stmt.where(Referral.referrer_id == referrer_id)
    stmt = stmt.order_by(Referral.created_at.desc(), Referral.id.desc()).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    items = (await session.exec(stmt)).all()
    total = (await session.exec(count_stmt)).one()
    return items, int(total or 0)


async def list_due_for_verification(
    session: AsyncSession,
    *,
    now: datetime,
    limit: int,
) -> list[int]:
    """id рефералок, у которых закончился испытательный срок и нет решения."""

    stmt = (
        select(Referral.id)
        .where(
            Referral.status == ReferralStatus.ACTIVE,
            Referral.probation_complete == False,  # noqa: E712
            Referral.probation_ends_at <= now,
        )
        .order_by(Referral.probation_ends_at, Referral.id)
        .limit(limit)
    )
    return list((await session.exec(stmt)).all())


async def list_overdue(
    session: AsyncSession,
    *,
    cutoff: datetime,
    limit: int,
) -> list[int]:
    stmt = (
        select(Referral.id)
        .where(
            Referral.status == ReferralStatus.ACTIVE,
            Referral.probation_complete == False,  # noqa: E712
            Referral.probation_ends_at <= cutoff,
        )
        .order_by(Referral.probation_ends_at, Referral.id)
        .limit(limit)
    )
    return list((await session.exec(stmt)).all())


async def list_claimable(session: AsyncSession, referrer_id: int) -> list[Referral]:
    """eligible-рефералки без выплаты, старые первыми."""

    stmt = (
        select(Referral)
        .where(
            Referral.referrer_id == referrer_id,
            Referral.status == ReferralStatus.ELIGIBLE,
            Referral.payout_id == None,  # noqa: E711
        )
        .order_by(Referral.eligible_at, Referral.id)
    )
    return list((await session.exec(stmt)).all())


async def claimable_balance_cents(session: AsyncSession, referrer_id: int) -> int:
    stmt = select(func.coalesce(func.sum(Referral.commission_cents), 0)).where(
        Referral.referrer_id == referrer_id,
        Referral.status == ReferralStatus.ELIGIBLE,
        Referral.payout_id == None,  # noqa: E711
    )
    return int((await session.exec(stmt)).one() or 0)


async def claim_for_payout(
    session: AsyncSession,
    *,
    referral_id: int,
    payout_id: int,
    social_verification_id: int | None,
    now: datetime,
) -> bool:
    """Атомарно привязывает рефералку к выплате, только если она ещё свободна."""

    stmt = (
        update(Referral)
        .where(
            Referral.id == referral_id,
            Referral.status == ReferralStatus.ELIGIBLE,
            Referral.payout_id == None,  # noqa: E711
        )
        .values(payout_id=payout_id, social_verification_id=social_verification_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1


async def release_payout(session: AsyncSession, *, payout_id: int, now: datetime) -> int:
    """Снимает привязку к отклонённой выплате: баланс снова доступен."""

    stmt = (
        update(Referral)
        .where(
            Referral.payout_id == payout_id,
            Referral.status == ReferralStatus.ELIGIBLE,
        )
        .values(payout_id=None, social_verification_id=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount


async def mark_paid_for_payout(session: AsyncSession, *, payout_id: int, now: datetime) -> int:
    stmt = (
        update(Referral)
        .where(
            Referral.payout_id == payout_id,
            Referral.status == ReferralStatus.ELIGIBLE,
        )
        .values(status=ReferralStatus.PAID, paid_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount


async def status_counts(session: AsyncSession, referrer_id: int | None = None) -> dict[str, int]:
    stmt = select(Referral.status, func.count(Referral.id)).group_by(Referral.status)
    if referrer_id is not None:
        stmt = stmt.where(Referral.referrer_id == referrer_id)
    rows = (await session.exec(stmt)).all()
    return {status: int(count) for status, count in rows}


async def commission_sums(
    session: AsyncSession,
    referrer_id: int | None = None,
) -> dict[tuple[str, str], int]:
    """(currency, status) -> сумма комиссий в центах."""

    stmt = select(
        Referral.currency,
        Referral.status,
        func.coalesce(func.sum(Referral.commission_cents), 0),
    ).group_by(Referral.currency, Referral.status)
    if referrer_id is not None:
        stmt = stmt.where(Referral.referrer_id == referrer_id)
    rows = (await session.exec(stmt)).all()
    return {(currency, status): int(total) for currency, status, total in rows}


__all__ = [
    "claim_for_payout",
    "claimable_balance_cents",
    "commission_sums",
    "find_live_referral_by_email",
    "get_referral",
    "list_claimable",
    "list_due_for_verification",
    "list_overdue",
    "list_referrals",
    "mark_paid_for_payout",
    "release_payout",
    "status_counts",
]
