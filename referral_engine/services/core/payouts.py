"""Оркестратор выплат: заявка -> ревью -> исполнение через платёжную рельсу.

Машина состояний выплаты::

    pending -> approved -> processing -> completed
    pending -> cancelled
    processing -> failed

Переход approved -> processing фиксируется в БД до обращения к рельсе, поэтому
повторный вызов execute (в т.ч. из другого процесса) получает AlreadyExecuted.
Пока ждём рельсу, транзакция не открыта. Автоматических повторов нет.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import get_settings
from referral_engine.models import (
    Payout,
    PayoutMethod,
    PayoutStatus,
    ReferrerStatus,
    utcnow,
)
from referral_engine.repositories import (
    begin_processing,
    claim_for_payout,
    claimable_balance_cents,
    get_payout,
    get_referrer,
    latest_approved,
    list_claimable,
    mark_paid_for_payout,
    release_payout,
    transition,
)
from referral_engine.services.exceptions import (
    AlreadyExecuted,
    BelowMinimum,
    InsufficientBalance,
    InvalidAmount,
    InvalidTransition,
    MissingPayoutAccount,
    MissingSocialProof,
    NotApproved,
    PayoutNotFound,
    RailError,
    RailTimeout,
    ReferrerNotFound,
    ValidationFailed,
)
from referral_engine.services.rails import RailRegistry, TransferResult
from .commission import payout_fees_cents, to_cents
from .stats import recompute_stats

UNKNOWN_OUTCOME = "unknown_outcome"


class PayoutOrchestrator:
    def __init__(self, rails: RailRegistry, clock: Callable[[], datetime] = utcnow) -> None:
        cfg = get_settings().payout
        self._rails = rails
        self._min_cents = to_cents(cfg.min_amount)
        self._timeout = cfg.rail_timeout_sec
        self._clock = clock

    async def request_payout(
        self,
        session: AsyncSession,
        *,
        referrer_id: int,
        amount: Decimal | str,
        method: str,
        social_proof_url: str | None,
    ) -> Payout:
        """Создаёт pending-выплату и атомарно закрепляет за ней eligible-рефералки."""

        amount_cents = to_cents(amount)
        if amount_cents <= 0:
            raise InvalidAmount("Сумма выплаты должна быть положительной")
        if amount_cents < self._min_cents:
            raise BelowMinimum(f"Минимальная сумма выплаты {get_settings().payout.min_amount}")
        if method not in PayoutMethod.ALL:
            raise ValidationFailed(f"Неизвестный метод выплаты: {method!r}")

        referrer = await get_referrer(session, referrer_id)
        if referrer is None:
            raise ReferrerNotFound(f"Реферер {referrer_id} не найден")
        if referrer.status != ReferrerStatus.ACTIVE:
            raise InvalidTransition(f"Реферер {referrer_id} не активен ({referrer.status})")

        proof_url = (social_proof_url or "").strip()
        if not proof_url:
            raise MissingSocialProof("Для выплаты нужна ссылка на публикацию")
        verification = await latest_approved(session, referrer_id)
        if verification is None or not referrer.social_verified:
            raise MissingSocialProof("Нет одобренной публикации в соцсетях")

        account_id = referrer.account_for(method)
        if not account_id:
            raise MissingPayoutAccount(f"Аккаунт {method} не подключён")

        available = await claimable_balance_cents(session, referrer_id)
        if amount_cents > available:
            raise InsufficientBalance(
                f"Запрошено {amount_cents}, доступно {available} (в центах)"
            )

        now = self._clock()
        payout = Payout(
            referrer_id=referrer_id,
            requested_cents=amount_cents,
            currency=referrer.currency,
            method=method,
            country=referrer.country,
            payout_account_id=account_id,
            social_proof_url=proof_url,
            social_verification_id=verification.id,
            status=PayoutStatus.PENDING,
        )
        session.add(payout)
        await session.flush()

        claimed: list[int] = []
        claimed_cents = 0
        for referral in await list_claimable(session, referrer_id):
            if claimed_cents + referral.commission_cents > amount_cents:
                continue
            ok = await claim_for_payout(
                session,
                referral_id=referral.id,
                payout_id=payout.id,
                social_verification_id=verification.id,
                now=now,
            )
            if ok:
                claimed.append(referral.id)
                claimed_cents += referral.commission_cents

        if not claimed:
            await session.rollback()
            raise InsufficientBalance("Доступные рефералки уже закреплены за другой выплатой")
        if claimed_cents < self._min_cents:
            await session.rollback()
            raise BelowMinimum(
                f"Удалось закрепить только {claimed_cents} центов, меньше минимума"
            )

        fees = payout_fees_cents(claimed_cents, method, referrer.country)
        payout.requested_cents = fees.gross_cents
        payout.platform_fee_cents = fees.platform_fee_cents
        payout.processing_fee_cents = fees.processing_fee_cents
        payout.net_cents = fees.net_cents
        payout.referral_ids = claimed
        session.add(payout)
        await recompute_stats(session, referrer_id)
        await session.commit()
        await session.refresh(payout)
        logger.info(
            "Выплата {payout} создана: реферер {ref}, брутто {gross}, комиссии {fees}, нетто {net}, рефералок {count}",
            payout=payout.id,
            ref=referrer_id,
            gross=payout.requested_cents,
            fees=payout.total_fees_cents,
            net=payout.net_cents,
            count=len(claimed),
        )
        return payout

    async def review_payout(
        self,
        session: AsyncSession,
        *,
        payout_id: int,
        action: str,
        reviewer: str,
        reason: str | None = None,
    ) -> Payout:
        payout = await get_payout(session, payout_id)
        if payout is None:
            raise PayoutNotFound(f"Выплата {payout_id} не найдена")

        now = self._clock()
        if action == "approve":
            values = {
                "status": PayoutStatus.APPROVED,
                "approved_by": reviewer,
                "approved_at": now,
                "review_notes": reason,
                "updated_at": now,
            }
        elif action == "reject":
            values = {
                "status": PayoutStatus.CANCELLED,
                "cancelled_by": reviewer,
                "cancelled_at": now,
                "cancellation_reason": reason or "Rejected by admin",
                "updated_at": now,
            }
        else:
            raise InvalidTransition(f"Недопустимое действие над выплатой: {action!r}")

        current_status = payout.status
        if not await transition(
            session, payout_id=payout_id, from_status=PayoutStatus.PENDING, values=values
        ):
            await session.rollback()
            raise InvalidTransition(
                f"Выплата {payout_id} в статусе {current_status}, ожидался pending"
            )
        if action == "reject":
            released = await release_payout(session, payout_id=payout_id, now=now)
            logger.info("Выплата {payout}: освобождено рефералок {count}", payout=payout_id, count=released)
        await recompute_stats(session, payout.referrer_id)
        await session.commit()
        await session.refresh(payout)
        logger.info(
            "Выплата {payout} -> {status} ({admin})",
            payout=payout_id,
            status=payout.status,
            admin=reviewer,
        )
        return payout

    async def execute_payout(self, session: AsyncSession, payout_id: int) -> Payout:
        """Отправляет одобренную выплату в рельсу.

        При ошибке рельсы выплата переходит в failed (рефералки остаются
        закреплёнными) и исключение пробрасывается дальше. Таймаут и любые
        неожиданные сбои считаются неизвестным исходом: код unknown_outcome,
        сверка с рельсой вручную.
        """

        payout = await get_payout(session, payout_id)
        if payout is None:
            raise PayoutNotFound(f"Выплата {payout_id} не найдена")
        if payout.transfer_id or payout.status in (PayoutStatus.PROCESSING, PayoutStatus.COMPLETED):
            raise AlreadyExecuted(f"Выплата {payout_id} уже исполнялась")
        if payout.status != PayoutStatus.APPROVED:
            raise NotApproved(f"Выплата {payout_id} в статусе {payout.status}")
        try:
            rail = self._rails.get(payout.method)
        except ValueError as exc:
            raise RailError(str(exc), rail_code="rail_not_configured") from exc

        if not await begin_processing(session, payout_id=payout_id, now=self._clock()):
            await session.rollback()
            raise AlreadyExecuted(f"Выплата {payout_id} уже исполняется")
        await session.commit()
        await session.refresh(payout)
        logger.info(
            "Выплата {payout}: перевод {net} {currency} через {method}",
            payout=payout_id,
            net=payout.net_cents,
            currency=payout.currency,
            method=payout.method,
        )

        try:
            result: TransferResult = await asyncio.wait_for(
                rail.create_transfer(
                    payout.payout_account_id,
                    payout.net_cents,
                    payout.currency,
                    {"payout_id": str(payout.id), "referrer_id": str(payout.referrer_id)},
                    idempotency_key=f"payout-{payout.id}",
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            error: RailError = RailTimeout(f"Рельса не ответила за {self._timeout} с")
            await self._mark_failed(session, payout, error)
            raise error from exc
        except RailError as exc:
            await self._mark_failed(session, payout, exc)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Выплата {payout}: неожиданная ошибка рельсы", payout=payout_id)
            error = RailError(str(exc) or exc.__class__.__name__, rail_code=UNKNOWN_OUTCOME)
            await self._mark_failed(session, payout, error)
            raise error from exc

        now = self._clock()
        await transition(
            session,
            payout_id=payout_id,
            from_status=PayoutStatus.PROCESSING,
            values={
                "status": PayoutStatus.COMPLETED,
                "transfer_id": result.transfer_id,
                "completed_at": now,
                "updated_at": now,
            },
        )
        paid = await mark_paid_for_payout(session, payout_id=payout_id, now=now)
        await recompute_stats(session, payout.referrer_id)
        await session.commit()
        await session.refresh(payout)
        logger.info(
            "Выплата {payout} завершена: transfer {transfer}, оплачено рефералок {count}",
            payout=payout_id,
            transfer=result.transfer_id,
            count=paid,
        )
        return payout

    async def _mark_failed(self, session: AsyncSession, payout: Payout, error: RailError) -> None:
        now = self._clock()
        await transition(
            session,
            payout_id=payout.id,
            from_status=PayoutStatus.PROCESSING,
            values={
                "status": PayoutStatus.FAILED,
                "failure_reason": error.message,
                "failure_code": error.rail_code,
                "failed_at": now,
                "retry_count": Payout.retry_count + 1,
                "updated_at": now,
            },
        )
        await session.commit()
        await session.refresh(payout)
        logger.error(
            "Выплата {payout} не прошла: {code} {reason}",
            payout=payout.id,
            code=error.rail_code,
            reason=error.message,
        )


__all__ = ["PayoutOrchestrator", "UNKNOWN_OUTCOME"]
