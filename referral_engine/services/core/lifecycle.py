"""Жизненный цикл рефералки: атрибуция, испытательный срок, ручной разбор.

Машина состояний рефералки::

    active -> eligible -> paid
    active -> cancelled | fraud
    eligible -> cancelled | fraud   (только пока не привязана к выплате)

probation_complete == True допустимо лишь в статусах eligible и paid.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import get_settings
from referral_engine.models import (
    CancellationReason,
    Referral,
    ReferralStatus,
    ReferrerStatus,
    utcnow,
)
from referral_engine.repositories import (
    find_live_referral_by_email,
    get_referral,
    get_referrer_by_code,
)
from referral_engine.services.exceptions import (
    DuplicateReferral,
    InvalidAction,
    InvalidAmount,
    InvalidCode,
    InvalidTransition,
    ReferralNotFound,
    ValidationFailed,
)
from .commission import commission_cents, to_cents
from .stats import recompute_stats

REVIEW_ACTIONS = ("approve", "reject", "fraud")


class LifecycleManager:
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._probation = timedelta(days=get_settings().referral.probation_days)
        self._clock = clock

    async def attribute_referral(
        self,
        session: AsyncSession,
        *,
        code: str,
        professional_id: str,
        referred_email: str,
        subscription_id: str,
        subscription_amount: Decimal | str,
        country: str | None = None,
    ) -> Referral:
        """Привязывает оплаченную подписку профессионала к рефереру.

        Внешних вызовов нет: ставка уже зафиксирована на реферере, сумма
        приходит из события оплаты. Дубликат по email ловится дважды: явной
        проверкой и частичным уникальным индексом (на случай гонки).
        """

        email = (referred_email or "").strip().lower()
        if "@" not in email:
            raise ValidationFailed(f"Некорректный email: {referred_email!r}")
        if not professional_id or not subscription_id:
            raise ValidationFailed("professional_id и subscription_id обязательны")
        amount_cents = to_cents(subscription_amount)
        if amount_cents <= 0:
            raise InvalidAmount("Сумма подписки должна быть положительной")

        referrer = await get_referrer_by_code(session, code or "", active_only=True)
        if referrer is None or referrer.status != ReferrerStatus.ACTIVE:
            raise InvalidCode(f"Код {code!r} не принадлежит активному рефереру")
        if await find_live_referral_by_email(session, email):
            raise DuplicateReferral(f"{email} уже приведён по реферальной программе")

        now = self._clock()
        referral = Referral(
            referrer_id=referrer.id,
            referral_code=referrer.referral_code,
            professional_id=str(professional_id),
            referred_email=email,
            subscription_id=str(subscription_id),
            subscription_started_at=now,
            probation_ends_at=now + self._probation,
            commission_rate_bps=referrer.commission_rate_bps,
            subscription_amount_cents=amount_cents,
            commission_cents=commission_cents(amount_cents, referrer.commission_rate_bps),
            currency=referrer.currency,
            country=(country or referrer.country).upper(),
            status=ReferralStatus.ACTIVE,
        )
        session.add(referral)
        try:
            await session.flush()
        except IntegrityError as exc:
            await session.rollback()
            raise DuplicateReferral(f"{email} уже приведён по реферальной программе") from exc

        await recompute_stats(session, referrer.id)
        await session.commit()
        await session.refresh(referral)
        logger.info(
            "Рефералка {ref_id}: реферер {referrer}, комиссия {cents} {currency}, испытательный срок до {until}",
            ref_id=referral.id,
            referrer=referrer.id,
            cents=referral.commission_cents,
            currency=referral.currency,
            until=referral.probation_ends_at.isoformat(),
        )
        return referral

    def promote(self, referral: Referral, now: datetime) -> None:
        """active -> eligible; комиссия пересчитывается из сохранённых входов."""

        referral.status = ReferralStatus.ELIGIBLE
        referral.probation_complete = True
        referral.eligible_at = now
        referral.commission_cents = commission_cents(
            referral.subscription_amount_cents, referral.commission_rate_bps
        )
        referral.updated_at = now

    def cancel(
        self,
        referral: Referral,
        now: datetime,
        *,
        reason: str,
        details: str | None = None,
        status: str = ReferralStatus.CANCELLED,
    ) -> None:
        referral.status = status
        referral.probation_complete = False
        referral.cancellation_reason = reason
        referral.cancellation_details = details
        referral.cancelled_at = now
        referral.updated_at = now

    async def review_referral(
        self,
        session: AsyncSession,
        *,
        referral_id: int,
        action: str,
        reviewer: str,
        reason: str | None = None,
    ) -> Referral:
        """Ручное решение администратора по рефералке."""

        if action not in REVIEW_ACTIONS:
            raise InvalidAction(f"Действие должно быть одним из {REVIEW_ACTIONS}")
        referral = await get_referral(session, referral_id)
        if referral is None:
            raise ReferralNotFound(f"Рефералка {referral_id} не найдена")
        if referral.status == ReferralStatus.PAID or referral.payout_id is not None:
            raise InvalidTransition(f"Рефералка {referral_id} уже участвует в выплате")
        if referral.status in ReferralStatus.DEAD:
            raise InvalidTransition(f"Рефералка {referral_id} уже закрыта ({referral.status})")

        now = self._clock()
        if action == "approve":
            self.promote(referral, now)
        elif action == "reject":
            self.cancel(
                referral,
                now,
                reason=CancellationReason.ADMIN_DECISION,
                details=reason,
            )
        else:
            self.cancel(
                referral,
                now,
                reason=CancellationReason.FRAUD_DETECTED,
                details=reason,
                status=ReferralStatus.FRAUD,
            )
        referral.reviewed_by = reviewer
        session.add(referral)
        await recompute_stats(session, referral.referrer_id)
        await session.commit()
        await session.refresh(referral)
        logger.info(
            "Рефералка {ref_id} -> {status} ({admin})",
            ref_id=referral_id,
            status=referral.status,
            admin=reviewer,
        )
        return referral


__all__ = ["LifecycleManager"]
