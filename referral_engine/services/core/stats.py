"""Пересчёт счётчиков реферера из леджера.

Счётчики на Referrer являются производными данными. Они не инкрементируются по месту,
а каждый раз выводятся заново из таблицы рефералок в той же транзакции, что и
сам переход статуса.
"""

from __future__ import annotations

from collections import defaultdict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models import Referrer, ReferralStatus
from referral_engine.repositories import commission_sums, get_referrer, status_counts
from referral_engine.services.exceptions import ReferrerNotFound


async def recompute_stats(session: AsyncSession, referrer_id: int) -> Referrer:
    """Обновляет счётчики и балансы; commit остаётся за вызывающим."""

    referrer = await get_referrer(session, referrer_id)
    if referrer is None:
        raise ReferrerNotFound(f"Реферер {referrer_id} не найден")

    counts = await status_counts(session, referrer_id)
    by_status: dict[str, int] = defaultdict(int)
    for (_currency, status), total in (await commission_sums(session, referrer_id)).items():
        by_status[status] += total

    referrer.total_referrals = sum(counts.values())
    referrer.pending_referrals = counts.get(ReferralStatus.PENDING, 0)
    referrer.active_referrals = counts.get(ReferralStatus.ACTIVE, 0)
    referrer.eligible_referrals = counts.get(ReferralStatus.ELIGIBLE, 0)
    referrer.paid_referrals = counts.get(ReferralStatus.PAID, 0)
    referrer.cancelled_referrals = counts.get(ReferralStatus.CANCELLED, 0)
    referrer.fraud_referrals = counts.get(ReferralStatus.FRAUD, 0)

    earned = by_status[ReferralStatus.ELIGIBLE] + by_status[ReferralStatus.PAID]
    paid = by_status[ReferralStatus.PAID]
    referrer.total_earned_cents = earned
    referrer.total_paid_cents = paid
    referrer.available_balance_cents = earned - paid
    referrer.pending_balance_cents = by_status[ReferralStatus.ACTIVE]
    referrer.touch()
    session.add(referrer)
    logger.debug(
        "Статистика реферера {ref}: заработано {earned}, выплачено {paid}",
        ref=referrer_id,
        earned=earned,
        paid=paid,
    )
    return referrer


__all__ = ["recompute_stats"]
