"""Реферальная программа: регистрация рефереров, social-proof, кабинет."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import get_settings
from referral_engine.models import (
    Payout,
    Referral,
    Referrer,
    ReferrerStatus,
    SocialVerification,
    VerificationStatus,
    utcnow,
)
from referral_engine.repositories import (
    find_live_referral_by_email,
    get_referrer,
    get_referrer_by_code,
    get_referrer_by_email,
    get_verification,
    list_payouts,
    list_referrals,
    referral_code_exists,
)
from referral_engine.services.exceptions import (
    DuplicateReferrer,
    InvalidAction,
    InvalidTransition,
    ReferrerNotFound,
    ValidationFailed,
    VerificationNotFound,
)
from referral_engine.services.integrations.compliance import ComplianceLookup
from referral_engine.services.rails import RailRegistry
from .stats import recompute_stats

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6
CODE_ATTEMPTS = 10
REVIEW_ACTIONS = ("approve", "reject")


@dataclass(slots=True)
class CodeValidation:
    valid: bool
    reason: str | None = None
    referrer_id: int | None = None
    referrer_name: str | None = None


@dataclass(slots=True)
class Dashboard:
    """Снимок кабинета реферера."""

    referrer: Referrer
    referrals: Sequence[Referral] = field(default_factory=list)
    payouts: Sequence[Payout] = field(default_factory=list)


def _require_email(email: str) -> str:
    value = (email or "").strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValidationFailed(f"Некорректный email: {email!r}")
    return value


def _require_url(url: str | None, what: str) -> str:
    value = (url or "").strip()
    if not value.startswith(("http://", "https://")):
        raise ValidationFailed(f"{what}: нужна публичная http(s)-ссылка")
    return value


class ReferralService:
    """Операции реферера, не затрагивающие деньги напрямую."""

    def __init__(
        self,
        compliance: ComplianceLookup,
        rails: RailRegistry,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        cfg = get_settings().referral
        self._base_url = cfg.base_url
        self._code_prefix = cfg.code_prefix
        self._compliance = compliance
        self._rails = rails
        self._clock = clock

    def build_link(self, code: str) -> str:
        return f"{self._base_url}/join?ref={code}"

    async def register(
        self,
        session: AsyncSession,
        *,
        email: str,
        name: str,
        country: str = "US",
    ) -> Referrer:
        """Регистрирует реферера. Ставка комиссии фиксируется по стране один раз."""

        email = _require_email(email)
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Имя обязательно")
        country = (country or "US").strip().upper()
        if len(country) != 2:
            raise ValidationFailed(f"Код страны должен быть ISO-2: {country!r}")

        if await get_referrer_by_email(session, email):
            raise DuplicateReferrer(f"{email} уже зарегистрирован как реферер")

        tier = self._compliance.commission_tier(country)
        code = await self._generate_code(session)
        referrer = Referrer(
            email=email,
            name=name,
            country=country,
            currency=tier.currency,
            referral_code=code,
            referral_url=self.build_link(code),
            commission_rate_bps=tier.rate_bps,
            status=ReferrerStatus.PENDING,
        )
        session.add(referrer)
        try:
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            raise DuplicateReferrer(f"{email} уже зарегистрирован как реферер") from exc
        await session.refresh(referrer)
        logger.info(
            "Новый реферер {ref}: {email}, код {code}, ставка {bps} б.п.",
            ref=referrer.id,
            email=email,
            code=code,
            bps=tier.rate_bps,
        )
        return referrer

    async def validate_code(
        self,
        session: AsyncSession,
        *,
        code: str,
        email: str | None = None,
    ) -> CodeValidation:
        """Проверка кода до регистрации профессионала (ничего не пишет)."""

        referrer = await get_referrer_by_code(session, code or "")
        if referrer is None:
            return CodeValidation(valid=False, reason="invalid_code")
        if referrer.status != ReferrerStatus.ACTIVE:
            return CodeValidation(valid=False, reason="referrer_not_active")
        if email and await find_live_referral_by_email(session, email):
            return CodeValidation(valid=False, reason="already_referred")
        return CodeValidation(valid=True, referrer_id=referrer.id, referrer_name=referrer.name)

    async def submit_social_verification(
        self,
        session: AsyncSession,
        *,
        referrer_id: int,
        platform: str,
        post_url: str,
        screenshot_url: str | None = None,
    ) -> SocialVerification:
        referrer = await self._get_referrer(session, referrer_id)
        platform = (platform or "").strip().lower()
        if not platform:
            raise ValidationFailed("Платформа обязательна")
        verification = SocialVerification(
            referrer_id=referrer_id,
            platform=platform,
            post_url=_require_url(post_url, "post_url"),
            screenshot_url=_require_url(screenshot_url, "screenshot_url") if screenshot_url else None,
            status=VerificationStatus.PENDING,
        )
        session.add(verification)
        # Первая публикация активирует аккаунт: код начинает принимать рефералов.
        if referrer.status == ReferrerStatus.PENDING:
            referrer.status = ReferrerStatus.ACTIVE
            referrer.touch()
            session.add(referrer)
        await session.commit()
        await session.refresh(verification)
        logger.info(
            "Реферер {ref} отправил публикацию {ver} ({platform})",
            ref=referrer_id,
            ver=verification.id,
            platform=platform,
        )
        return verification

    async def review_social_verification(
        self,
        session: AsyncSession,
        *,
        verification_id: int,
        action: str,
        reviewer: str,
        reason: str | None = None,
    ) -> SocialVerification:
        if action not in REVIEW_ACTIONS:
            raise InvalidAction(f"Действие должно быть одним из {REVIEW_ACTIONS}")
        verification = await get_verification(session, verification_id)
        if verification is None:
            raise VerificationNotFound(f"Публикация {verification_id} не найдена")
        if verification.status != VerificationStatus.PENDING:
            raise InvalidTransition(
                f"Публикация {verification_id} уже рассмотрена ({verification.status})"
            )

        now = self._clock()
        verification.reviewed_by = reviewer
        verification.reviewed_at = now
        if action == "approve":
            verification.status = VerificationStatus.APPROVED
            referrer = await self._get_referrer(session, verification.referrer_id)
            if not referrer.social_verified:
                referrer.social_verified = True
                referrer.social_verified_at = now
                referrer.touch()
                session.add(referrer)
        else:
            verification.status = VerificationStatus.REJECTED
            verification.rejection_reason = reason or "Rejected by admin"
        verification.touch()
        session.add(verification)
        await recompute_stats(session, verification.referrer_id)
        await session.commit()
        await session.refresh(verification)
        logger.info(
            "Публикация {ver} -> {status} ({admin})",
            ver=verification_id,
            status=verification.status,
            admin=reviewer,
        )
        return verification

    async def set_status(
        self,
        session: AsyncSession,
        *,
        referrer_id: int,
        status: str,
        admin: str,
        reason: str | None = None,
    ) -> Referrer:
        """Мягкая смена статуса аккаунта (вместо удаления)."""

        if status not in ReferrerStatus.ALL:
            raise InvalidAction(f"Неизвестный статус реферера: {status!r}")
        referrer = await self._get_referrer(session, referrer_id)
        previous = referrer.status
        referrer.status = status
        note = f"[{self._clock().isoformat()}] {admin}: {previous} -> {status}"
        if reason:
            note += f" ({reason})"
        referrer.admin_notes = f"{referrer.admin_notes}\n{note}".strip()
        referrer.touch()
        session.add(referrer)
        await session.commit()
        await session.refresh(referrer)
        logger.info("Реферер {ref}: статус {old} -> {new} ({admin})", ref=referrer_id, old=previous, new=status, admin=admin)
        return referrer

    async def setup_payout_account(
        self,
        session: AsyncSession,
        *,
        referrer_id: int,
        method: str,
        paypal_email: str | None = None,
    ) -> tuple[Referrer, str]:
        """Создаёт (или переиспользует) аккаунт на рельсе и ссылку онбординга."""

        try:
            rail = self._rails.get(method)
        except ValueError as exc:
            raise InvalidAction(str(exc)) from exc
        referrer = await self._get_referrer(session, referrer_id)
        if paypal_email:
            referrer.paypal_email = _require_email(paypal_email)

        account_id = referrer.account_for(method)
        if account_id is None or paypal_email:
            account_id = await rail.create_account(referrer)
        link = await rail.create_onboarding_link(account_id)

        referrer.payout_method = method
        referrer.payout_account_id = account_id
        referrer.touch()
        session.add(referrer)
        await session.commit()
        await session.refresh(referrer)
        logger.info("Реферер {ref} подключил {method}: {acc}", ref=referrer_id, method=method, acc=account_id)
        return referrer, link

    async def dashboard(self, session: AsyncSession, referrer_id: int) -> Dashboard:
        """Кабинет: статистика выводится из леджера на каждом чтении."""

        await self._get_referrer(session, referrer_id)
        referrer = await recompute_stats(session, referrer_id)
        await session.commit()
        await session.refresh(referrer)
        referrals, _total = await list_referrals(session, referrer_id=referrer_id, limit=50)
        payouts = await list_payouts(session, referrer_id=referrer_id, limit=20)
        return Dashboard(referrer=referrer, referrals=referrals, payouts=payouts)

    async def _get_referrer(self, session: AsyncSession, referrer_id: int) -> Referrer:
        referrer = await get_referrer(session, referrer_id)
        if referrer is None:
            raise ReferrerNotFound(f"Реферер {referrer_id} не найден")
        return referrer

    async def _generate_code(self, session: AsyncSession) -> str:
        for _ in range(CODE_ATTEMPTS):
            suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
            code = f"{self._code_prefix}-{suffix}".upper()
            if not await referral_code_exists(session, code):
                return code
        raise RuntimeError("Не удалось сгенерировать уникальный реферальный код")


__all__ = ["CodeValidation", "Dashboard", "ReferralService"]
