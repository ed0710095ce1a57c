"""
Доменные исключения реферального движка.

ValidationFailed: запрос исправляется на стороне клиента.
NotFound: записи нет.
StateConflict: запись уже изменена (гонка или повтор).
AccessDenied: роль или выключенная программа.
ExternalDependencyError: упала рельса или сервис подписок.

Каждое исключение несёт стабильный машиночитаемый code.
"""

from __future__ import annotations


class ReferralEngineError(Exception):
    """Базовое исключение движка"""

    code = "referral_engine_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


# --- Ошибки валидации -------------------------------------------------------

class ValidationFailed(ReferralEngineError):
    """Некорректный запрос, исправляется вызывающей стороной"""

    code = "validation_failed"


class InvalidCode(ValidationFailed):
    """Нет активного реферера с таким кодом"""

    code = "invalid_code"


class InvalidAmount(ValidationFailed):
    """Сумма отрицательная, нулевая или не приводится к копейкам"""

    code = "invalid_amount"


class BelowMinimum(ValidationFailed):
    """Сумма выплаты меньше минимального порога"""

    code = "below_minimum"


class MissingSocialProof(ValidationFailed):
    """Нет ссылки на публикацию или нет одобренной публикации"""

    code = "missing_social_proof"


class InsufficientBalance(ValidationFailed):
    """Запрошено больше, чем доступно к выводу"""

    code = "insufficient_balance"


class MissingPayoutAccount(ValidationFailed):
    """У реферера не подключён аккаунт выбранной рельсы"""

    code = "missing_payout_account"


class InvalidAction(ValidationFailed):
    """Неизвестное действие ревью"""

    code = "invalid_action"


# --- Не найдено -------------------------------------------------------------

class NotFound(ReferralEngineError):
    code = "not_found"


class ReferrerNotFound(NotFound):
    code = "referrer_not_found"


class ReferralNotFound(NotFound):
    code = "referral_not_found"


class VerificationNotFound(NotFound):
    code = "verification_not_found"


class PayoutNotFound(NotFound):
    code = "payout_not_found"


# --- Конфликты состояния ----------------------------------------------------

class StateConflict(ReferralEngineError):
    """Запись уже изменена другим участником"""

    code = "state_conflict"


class DuplicateReferral(StateConflict):
    """Email профессионала уже привязан к живой рефералке"""

    code = "duplicate_referral"


class DuplicateReferrer(StateConflict):
    """Email уже зарегистрирован как реферер"""

    code = "duplicate_referrer"


class NotApproved(StateConflict):
    """Выплата не одобрена администратором"""

    code = "not_approved"


class AlreadyExecuted(StateConflict):
    """Перевод по выплате уже создан (idempotency guard)"""

    code = "already_executed"


class InvalidTransition(StateConflict):
    """Переход статуса запрещён машиной состояний"""

    code = "invalid_transition"


# --- Доступ -----------------------------------------------------------------

class AccessDenied(ReferralEngineError):
    """Роль вызывающего не позволяет операцию"""

    code = "forbidden"


class FeatureDisabled(AccessDenied):
    """Реферальная программа выключена глобальным переключателем"""

    code = "referrals_disabled"


# --- Внешние зависимости ----------------------------------------------------

class ExternalDependencyError(ReferralEngineError):
    code = "external_dependency_error"


class RailError(ExternalDependencyError):
    """Платёжная рельса отклонила операцию"""

    code = "rail_error"

    def __init__(self, message: str | None = None, *, rail_code: str | None = None) -> None:
        super().__init__(message)
        self.rail_code = rail_code or "rail_error"


class RailTimeout(RailError):
    """Рельса не ответила вовремя: исход перевода неизвестен"""

    code = "rail_timeout"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, rail_code="unknown_outcome")


class SubscriptionLookupError(ExternalDependencyError):
    """Сервис статусов подписок недоступен или ответил мусором"""

    code = "subscription_lookup_failed"


__all__ = [
    "AccessDenied",
    "AlreadyExecuted",
    "BelowMinimum",
    "DuplicateReferral",
    "DuplicateReferrer",
    "ExternalDependencyError",
    "FeatureDisabled",
    "InsufficientBalance",
    "InvalidAction",
    "InvalidAmount",
    "InvalidCode",
    "InvalidTransition",
    "MissingPayoutAccount",
    "MissingSocialProof",
    "NotApproved",
    "NotFound",
    "PayoutNotFound",
    "RailError",
    "RailTimeout",
    "ReferralEngineError",
    "ReferralNotFound",
    "ReferrerNotFound",
    "StateConflict",
    "SubscriptionLookupError",
    "ValidationFailed",
    "VerificationNotFound",
]
