"""FastAPI-зависимости: роль, выключатель программы, сервисы."""

from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from referral_engine import context
from referral_engine.middlewares.db import get_db_session
from referral_engine.services.core.lifecycle import LifecycleManager
from referral_engine.services.core.payouts import PayoutOrchestrator
from referral_engine.services.core.referral_service import ReferralService
from referral_engine.services.core.verification_scheduler import VerificationScheduler
from referral_engine.services.exceptions import AccessDenied, FeatureDisabled
from referral_engine.utils.feature_flags import FeatureToggle
from referral_engine.utils.security import Principal, resolve_principal

bearer_scheme = HTTPBearer(auto_error=False)


def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """Роль определяется один раз на запрос; без токена viewer."""

    return resolve_principal(credentials.credentials if credentials else None)


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise AccessDenied("Требуется роль admin")
    return principal


def require_referrer_or_admin(
    referrer_id: int,
    principal: Principal = Depends(get_principal),
) -> Principal:
    """Токен самого реферера (sub == referrer_id) или admin."""

    if principal.is_admin or principal.subject == str(referrer_id):
        return principal
    raise AccessDenied(f"Нет доступа к рефереру {referrer_id}")


def get_feature_toggle() -> FeatureToggle:
    return context.feature_toggle


def require_enabled(toggle: FeatureToggle = Depends(get_feature_toggle)) -> None:
    if not toggle.enabled:
        raise FeatureDisabled("Реферальная программа выключена")


def get_referral_service() -> ReferralService:
    return context.referral_service


def get_lifecycle() -> LifecycleManager:
    return context.lifecycle


def get_payout_orchestrator() -> PayoutOrchestrator:
    return context.payout_orchestrator


def get_verification_scheduler() -> VerificationScheduler:
    return context.verification_scheduler


__all__ = [
    "bearer_scheme",
    "get_db_session",
    "get_feature_toggle",
    "get_lifecycle",
    "get_payout_orchestrator",
    "get_principal",
    "get_referral_service",
    "get_verification_scheduler",
    "require_admin",
    "require_enabled",
    "require_referrer_or_admin",
]
