"""Глобальные настройки реферального движка.

Настройки разделены по доменам (БД, кеш, реферальная программа, выплаты,
платёжные рельсы и т.д.), что позволяет подключать новые рельсы и страны без
переписывания базового кода. Вся конфигурация загружается из переменных
окружения через Pydantic Settings.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent
ACCESSIBLE_ENV_FILE = BASE_DIR / "config" / "runtime.env"
DEFAULT_ENV_FILE = BASE_DIR / ".env"
ENV_FILE = ACCESSIBLE_ENV_FILE if ACCESSIBLE_ENV_FILE.exists() else DEFAULT_ENV_FILE


class DatabaseSettings(BaseModel):
    """SQLModel + aiosqlite (по умолчанию) и готовность к Postgres."""

    dsn: str = Field(
        "sqlite+aiosqlite:///./database/referrals.db",
        description="Строка подключения SQLAlchemy/SQLModel",
    )
    echo: bool = False


class CacheSettings(BaseModel):
    """Настройки кешей (aiocache поддерживает memory / redis)."""

    backend: Literal["memory", "redis"] = "memory"
    ttl_seconds: int = 30
    redis_dsn: str | None = None


class ReferralSettings(BaseModel):
    """Параметры реферальной программы."""

    enabled: bool = Field(False, description="Глобальный переключатель всей программы")
    base_url: str = Field(
        "https://www.fixloapp.com", description="Адрес клиента для реферальных ссылок"
    )
    code_prefix: str = Field("REF", max_length=12)
    probation_days: PositiveInt = 30
    overdue_grace_days: int = Field(
        5, ge=0, description="Сколько дней ждать проверку после окончания испытательного срока"
    )

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")


class PayoutSettings(BaseModel):
    """Правила выплат."""

    min_amount: Decimal = Field(Decimal("10.00"), gt=0, decimal_places=2)
    rail_timeout_sec: PositiveFloat = 30.0


class SchedulerSettings(BaseModel):
    """Фоновая проверка 30-дневного срока."""

    interval_sec: PositiveInt = 24 * 60 * 60
    run_on_startup: bool = True
    batch_size: PositiveInt = 500


class SubscriptionLookupSettings(BaseModel):
    """Сервис статусов подписок профессионалов."""

    base_url: AnyHttpUrl = Field(
        "http://localhost:3001/api", description="Базовый URL сервиса профессионалов"
    )
    api_token: SecretStr | None = None
    request_timeout: PositiveFloat = 10.0


class StripeSettings(BaseModel):
    """Stripe Connect (выплаты на карты/счета)."""

    api_base: AnyHttpUrl = Field("https://api.stripe.com")
    secret_key: SecretStr | None = None
    refresh_url: str = "https://www.fixloapp.com/earn/payout/refresh"
    return_url: str = "https://www.fixloapp.com/earn/payout/complete"
    request_timeout: PositiveFloat = 15.0


class PayPalSettings(BaseModel):
    """PayPal Payouts."""

    api_base: AnyHttpUrl = Field("https://api-m.paypal.com")
    client_id: str | None = None
    client_secret: SecretStr | None = None
    return_url: str = "https://www.fixloapp.com/earn/payout/complete"
    request_timeout: PositiveFloat = 15.0


class SecuritySettings(BaseModel):
    """JWT для разделения ролей viewer/admin."""

    jwt_secret: SecretStr = Field(..., description="Секрет для подписания JWT")
    jwt_algorithm: str = "HS256"
    jwt_ttl_minutes: int = 60


class ApiSettings(BaseModel):
    """HTTP-сервер (uvicorn)."""

    host: str = "0.0.0.0"
    port: int = 8000


class AppSettings(BaseSettings):
    """Главный контейнер настроек движка."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: Literal["dev", "prod"] = "dev"
    database: DatabaseSettings = DatabaseSettings()
    cache: CacheSettings = CacheSettings()
    referral: ReferralSettings = ReferralSettings()
    payout: PayoutSettings = PayoutSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    subscriptions: SubscriptionLookupSettings = SubscriptionLookupSettings()
    stripe: StripeSettings = StripeSettings()
    paypal: PayPalSettings = PayPalSettings()
    security: SecuritySettings
    api: ApiSettings = ApiSettings()

    @property
    def is_production(self) -> bool:
        """True, если движок запущен в продовой среде."""

        return self.environment == "prod"


# Ленивый синглтон (избегаем глобальных переменных в модулях).
_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """Возвращает единый экземпляр настроек.

    Значения кэшируются, поэтому инициализация .env происходит ровно один раз
    за процесс.
    """

    global _settings
    if _settings is None:
        _settings = AppSettings()  # type: ignore[call-arg]
    return _settings


__all__ = [
    "ApiSettings",
    "AppSettings",
    "CacheSettings",
    "DatabaseSettings",
    "PayPalSettings",
    "PayoutSettings",
    "ReferralSettings",
    "SchedulerSettings",
    "SecuritySettings",
    "StripeSettings",
    "SubscriptionLookupSettings",
    "get_settings",
]
