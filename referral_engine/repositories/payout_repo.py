"""Выплаты: выборки и условный переход approved -> processing."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, func, select

from referral_engine.models import Payout, PayoutStatus


async def get_payout(session: AsyncSession, payout_id: int) -> Optional[Payout]:
    return await session.get(Payout, payout_id)


async def list_payouts(
    session: AsyncSession,
    *,
    status: str | None = None,
    statuses: Sequence[str] | None = None,
    referrer_id: int | None = None,
    limit: int | None = None,
) -> Sequence[Payout]:
    stmt = select(Payout)
    if status:
        stmt = stmt.where(Payout.status == status)
    if statuses:
        stmt = stmt.where(col(Payout.status).in_(statuses))
    if referrer_id is not None:
        stmt = stmt.where(Payout.referrer_id == referrer_id)
    stmt = stmt.order_by(Payout.created_at.desc(), Payout.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return (await session.exec(stmt)).all()


async def begin_processing(session: AsyncSession, *, payout_id: int, now: datetime) -> bool:
    """approved -> processing, только если перевод ещё не создавался.

    Защита от двойного исполнения живёт в БД, а не в локе процесса: повтор из
    другого процесса после падения получит rowcount == 0.
    """

    stmt = (
        update(Payout)
        .where(
            Payout.id == payout_id,
            Payout.status == PayoutStatus.APPROVED,
            Payout.transfer_id == None,  # noqa: E711
        )
        .values(status=PayoutStatus.PROCESSING, processing_started_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1


async def transition(
    session: AsyncSession,
    *,
    payout_id: int,
    from_status: str,
    values: dict,
) -> bool:
    """Условный переход статуса (pending -> approved / cancelled)."""

    stmt = (
        update(Payout)
        .where(Payout.id == payout_id, Payout.status == from_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await session.exec(stmt)  # type: ignore[call-overload]
    return result.rowcount == 1


async def count_payouts(session: AsyncSession, *, status: str) -> int:
    stmt = select(func.count(Payout.id)).where(Payout.status == status)
    return int((await session.exec(stmt)).one() or 0)


__all__ = ["begin_processing", "count_payouts", "get_payout", "list_payouts", "transition"]
