"""Stripe Connect: express-аккаунты, онбординг и переводы на подключённый счёт."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

import aiohttp
from loguru import logger

from config.settings import get_settings
from referral_engine.models import PayoutMethod, Referrer
from referral_engine.services.exceptions import RailError, RailTimeout
from .base import TransferResult


class StripeConnectRail:
    method = PayoutMethod.STRIPE_CONNECT

    def __init__(self) -> None:
        cfg = get_settings().stripe
        self._api_base = str(cfg.api_base).rstrip("/")
        self._secret = cfg.secret_key.get_secret_value() if cfg.secret_key else None
        self._refresh_url = cfg.refresh_url
        self._return_url = cfg.return_url
        self._timeout = cfg.request_timeout

    async def create_account(self, referrer: Referrer) -> str:
        data = await self._post(
            "/v1/accounts",
            {
                "type": "express",
                "email": referrer.email,
                "country": referrer.country,
                "capabilities[transfers][requested]": "true",
                "metadata[referrer_id]": str(referrer.id),
            },
        )
        account_id = data.get("id")
        if not account_id:
            raise RailError("Stripe не вернул id аккаунта", rail_code="invalid_response")
        logger.info("Stripe Connect аккаунт {acc} создан для реферера {ref}", acc=account_id, ref=referrer.id)
        return account_id

    async def create_onboarding_link(self, account_id: str) -> str:
        data = await self._post(
            "/v1/account_links",
            {
                "account": account_id,
                "refresh_url": self._refresh_url,
                "return_url": self._return_url,
                "type": "account_onboarding",
            },
        )
        url = data.get("url")
        if not url:
            raise RailError("Stripe не вернул ссылку онбординга", rail_code="invalid_response")
        return url

    async def create_transfer(
        self,
        account_id: str,
        amount_cents: int,
        currency: str,
        metadata: Mapping[str, str],
        *,
        idempotency_key: str,
    ) -> TransferResult:
        form = {
            "amount": str(amount_cents),
            "currency": currency.lower(),
            "destination": account_id,
        }
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = str(value)
        data = await self._post("/v1/transfers", form, idempotency_key=idempotency_key)
        transfer_id = data.get("id")
        if not transfer_id:
            raise RailError("Stripe не вернул id перевода", rail_code="invalid_response")
        return TransferResult(transfer_id=transfer_id, raw=data)

    async def _post(
        self,
        path: str,
        form: dict[str, str],
        *,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        if not self._secret:
            raise RailError("STRIPE__SECRET_KEY не задан", rail_code="not_configured")
        headers = {"Authorization": f"Bearer {self._secret}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        url = f"{self._api_base}{path}"
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            ) as session:
                async with session.post(url, data=form, headers=headers) as resp:
                    payload = await resp.json(content_type=None)
                    status = resp.status
        except asyncio.TimeoutError as exc:
            raise RailTimeout(f"Stripe не ответил за {self._timeout} c") from exc
        except aiohttp.ClientConnectorError as exc:
            raise RailError(f"Stripe недоступен: {exc}", rail_code="rail_unreachable") from exc
        except aiohttp.ClientError as exc:
            raise RailTimeout(f"Обрыв соединения со Stripe: {exc}") from exc
        if status >= 400 or not isinstance(payload, dict):
            error = payload.get("error", {}) if isinstance(payload, dict) else {}
            raise RailError(
                error.get("message") or f"Stripe HTTP {status}",
                rail_code=error.get("code") or error.get("type") or f"http_{status}",
            )
        return payload


__all__ = ["StripeConnectRail"]
