"""Ежедневная проверка рефералок, у которых закончился испытательный срок."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import get_settings
from referral_engine.models import (
    CancellationReason,
    ReferralStatus,
    as_utc,
    utcnow,
)
from referral_engine.repositories import get_referral, list_due_for_verification, list_overdue
from referral_engine.services.exceptions import ExternalDependencyError
from referral_engine.services.integrations.subscriptions import (
    SubscriptionStatus,
    SubscriptionStatusLookup,
)
from referral_engine.utils.feature_flags import FeatureToggle
from .lifecycle import LifecycleManager
from .stats import recompute_stats


@dataclass(slots=True)
class VerificationSummary:
    checked: int = 0
    eligible: int = 0
    cancelled: int = 0
    errored: int = 0
    overdue: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "checked": self.checked,
            "eligible": self.eligible,
            "cancelled": self.cancelled,
            "errored": self.errored,
            "overdue": self.overdue,
        }


class VerificationScheduler:
    """Фоновая задача + ручной run_once().

    Каждая рефералка обрабатывается в своей сессии: сбой одной (сервис подписок
    или БД) не откатывает остальные, а сама она остаётся active до следующего
    прогона. Повторный прогон по уже обработанным записям ничего не меняет.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        lookup: SubscriptionStatusLookup,
        lifecycle: LifecycleManager,
        toggle: FeatureToggle,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = get_settings()
        self._interval = settings.scheduler.interval_sec
        self._batch_size = settings.scheduler.batch_size
        self._run_on_startup = settings.scheduler.run_on_startup
        self._grace = timedelta(days=settings.referral.overdue_grace_days)
        self._session_maker = session_maker
        self._lookup = lookup
        self._lifecycle = lifecycle
        self._toggle = toggle
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._stop = asyncio.Event()
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run_loop(), name="referral-verification-loop")
        logger.info("VerificationScheduler запущен, интервал {sec} с", sec=self._interval)

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("VerificationScheduler остановлен")

    async def _run_loop(self) -> None:
        if not self._run_on_startup:
            await self._sleep()
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception:  # noqa: BLE001
                logger.exception("Прогон проверки рефералок упал")
            await self._sleep()

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> VerificationSummary:
        summary = VerificationSummary()
        if not self._toggle.enabled:
            logger.debug("Реферальная программа выключена, проверка пропущена")
            return summary

        # Прогоны не пересекаются: фоновый цикл и ручной запуск из админки.
        async with self._lock:
            now = self._clock()
            async with self._session_maker() as session:
                due = await list_due_for_verification(session, now=now, limit=self._batch_size)
            logger.info("Проверка рефералок: к проверке {count}", count=len(due))

            for referral_id in due:
                summary.checked += 1
                outcome = await self._verify_one(referral_id, now)
                if outcome == ReferralStatus.ELIGIBLE:
                    summary.eligible += 1
                elif outcome == ReferralStatus.CANCELLED:
                    summary.cancelled += 1
                elif outcome is None:
                    summary.errored += 1

            summary.overdue = await self._cancel_overdue(now)

        logger.info("Проверка рефералок завершена: {summary}", summary=summary.as_dict())
        return summary

    async def _verify_one(self, referral_id: int, now: datetime) -> str | None:
        """Возвращает итоговый статус, "" если менять нечего, None при ошибке."""

        try:
            async with self._session_maker() as session:
                referral = await get_referral(session, referral_id)
                if (
                    referral is None
                    or referral.status != ReferralStatus.ACTIVE
                    or referral.probation_complete
                ):
                    return ""

                status = await self._lookup.get_subscription_status(referral.professional_id)
                if status in SubscriptionStatus.LIVE:
                    self._lifecycle.promote(referral, now)
                elif status == SubscriptionStatus.CANCELLED:
                    self._lifecycle.cancel(
                        referral, now, reason=CancellationReason.SUBSCRIPTION_CANCELLED
                    )
                else:
                    self._lifecycle.cancel(
                        referral, now, reason=CancellationReason.PROFESSIONAL_NOT_FOUND
                    )
                session.add(referral)
                await recompute_stats(session, referral.referrer_id)
                await session.commit()
        except ExternalDependencyError as exc:
            logger.warning(
                "Рефералка {ref_id}: сервис подписок недоступен ({error})",
                ref_id=referral_id,
                error=exc.message,
            )
            return None
        except SQLAlchemyError:
            logger.exception("Рефералка {ref_id}: ошибка БД при проверке", ref_id=referral_id)
            return None
        except Exception:  # noqa: BLE001
            logger.exception("Рефералка {ref_id}: непредвиденная ошибка при проверке", ref_id=referral_id)
            return None

        logger.info(
            "Рефералка {ref_id}: подписка {sub} -> {status}",
            ref_id=referral_id,
            sub=status,
            status=referral.status,
        )
        return referral.status

    async def _cancel_overdue(self, now: datetime) -> int:
        """Закрывает active-рефералки, которые не удаётся проверить дольше грейса."""

        cutoff = now - self._grace
        async with self._session_maker() as session:
            overdue = await list_overdue(session, cutoff=cutoff, limit=self._batch_size)

        closed = 0
        for referral_id in overdue:
            try:
                async with self._session_maker() as session:
                    referral = await get_referral(session, referral_id)
                    if referral is None or referral.status != ReferralStatus.ACTIVE:
                        continue
                    self._lifecycle.cancel(
                        referral,
                        now,
                        reason=CancellationReason.VERIFICATION_OVERDUE,
                        details=f"probation ended {as_utc(referral.probation_ends_at).date()}",
                    )
                    session.add(referral)
                    await recompute_stats(session, referral.referrer_id)
                    await session.commit()
            except Exception:  # noqa: BLE001
                logger.exception("Рефералка {ref_id}: не удалось закрыть просроченную", ref_id=referral_id)
                continue
            closed += 1
            logger.warning("Рефералка {ref_id} закрыта: проверка просрочена", ref_id=referral_id)
        return closed


__all__ = ["VerificationScheduler", "VerificationSummary"]
