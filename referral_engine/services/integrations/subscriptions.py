"""Клиент сервиса профессионалов: текущий статус подписки."""

from __future__ import annotations

import asyncio
from typing import Protocol

import aiohttp
from loguru import logger

from config.settings import get_settings
from referral_engine.services.exceptions import SubscriptionLookupError


class SubscriptionStatus(str):
    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"

    LIVE = (ACTIVE, TRIALING)


class SubscriptionStatusLookup(Protocol):
    async def get_subscription_status(self, professional_id: str) -> str: ...


# Статусы Stripe-подписки, которые сервис профессионалов может вернуть как есть.
_STATUS_ALIASES = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "canceled": SubscriptionStatus.CANCELLED,
    "cancelled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
    "unpaid": SubscriptionStatus.CANCELLED,
    "past_due": SubscriptionStatus.CANCELLED,
    "inactive": SubscriptionStatus.CANCELLED,
    "not_found": SubscriptionStatus.NOT_FOUND,
    "notfound": SubscriptionStatus.NOT_FOUND,
}


def normalize_status(raw: str | None) -> str:
    if not raw:
        raise SubscriptionLookupError("Сервис подписок вернул пустой статус")
    status = _STATUS_ALIASES.get(raw.strip().lower())
    if status is None:
        raise SubscriptionLookupError(f"Неизвестный статус подписки: {raw!r}")
    return status


class HttpSubscriptionLookup:
    """GET {base_url}/professionals/{id}/subscription -> {"status": "..."}."""

    def __init__(self) -> None:
        cfg = get_settings().subscriptions
        self._base_url = str(cfg.base_url).rstrip("/")
        self._token = cfg.api_token.get_secret_value() if cfg.api_token else None
        self._timeout = cfg.request_timeout

    async def get_subscription_status(self, professional_id: str) -> str:
        url = f"{self._base_url}/professionals/{professional_id}/subscription"
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            ) as session:
                async with session.get(url, headers=headers) as resp:
                    if resp.status == 404:
                        return SubscriptionStatus.NOT_FOUND
                    if resp.status != 200:
                        raise SubscriptionLookupError(
                            f"Сервис подписок ответил HTTP {resp.status}"
                        )
                    data = await resp.json()
        except SubscriptionLookupError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.warning(
                "Запрос статуса подписки {pro} упал: {error}", pro=professional_id, error=exc
            )
            raise SubscriptionLookupError(str(exc) or exc.__class__.__name__) from exc
        if not isinstance(data, dict):
            raise SubscriptionLookupError("Сервис подписок вернул не JSON-объект")
        return normalize_status(data.get("status"))


__all__ = [
    "HttpSubscriptionLookup",
    "SubscriptionStatus",
    "SubscriptionStatusLookup",
    "normalize_status",
]
