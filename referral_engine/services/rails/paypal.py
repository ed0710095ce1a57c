"""PayPal Payouts: выплата на email получателя."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Mapping

import aiohttp
from loguru import logger

from config.settings import get_settings
from referral_engine.models import PayoutMethod, Referrer
from referral_engine.services.exceptions import RailError, RailTimeout
from .base import TransferResult


class PayPalRail:
    """Аккаунтом в PayPal считается email получателя, онбординга нет."""

    method = PayoutMethod.PAYPAL

    def __init__(self) -> None:
        cfg = get_settings().paypal
        self._api_base = str(cfg.api_base).rstrip("/")
        self._client_id = cfg.client_id
        self._client_secret = cfg.client_secret.get_secret_value() if cfg.client_secret else None
        self._return_url = cfg.return_url
        self._timeout = cfg.request_timeout

    async def create_account(self, referrer: Referrer) -> str:
        account = referrer.paypal_email or referrer.email
        logger.info("PayPal получатель {acc} закреплён за реферером {ref}", acc=account, ref=referrer.id)
        return account

    async def create_onboarding_link(self, account_id: str) -> str:
        return self._return_url

    async def create_transfer(
        self,
        account_id: str,
        amount_cents: int,
        currency: str,
        metadata: Mapping[str, str],
        *,
        idempotency_key: str,
    ) -> TransferResult:
        value = (Decimal(amount_cents) / 100).quantize(Decimal("0.01"))
        body = {
            "sender_batch_header": {
                "sender_batch_id": idempotency_key,
                "email_subject": "Your referral commission payout",
            },
            "items": [
                {
                    "recipient_type": "EMAIL",
                    "amount": {"value": str(value), "currency": currency.upper()},
                    "receiver": account_id,
                    "sender_item_id": metadata.get("payout_id", idempotency_key),
                    "note": "Referral commission",
                }
            ],
        }
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout)
            ) as session:
                token = await self._access_token(session)
                async with session.post(
                    f"{self._api_base}/v1/payments/payouts",
                    json=body,
                    headers={"Authorization": f"Bearer {token}"},
                ) as resp:
                    payload = await resp.json(content_type=None)
                    status = resp.status
        except asyncio.TimeoutError as exc:
            raise RailTimeout(f"PayPal не ответил за {self._timeout} c") from exc
        except aiohttp.ClientConnectorError as exc:
            raise RailError(f"PayPal недоступен: {exc}", rail_code="rail_unreachable") from exc
        except aiohttp.ClientError as exc:
            raise RailTimeout(f"Обрыв соединения с PayPal: {exc}") from exc
        if status >= 400 or not isinstance(payload, dict):
            payload = payload if isinstance(payload, dict) else {}
            raise RailError(
                payload.get("message") or f"PayPal HTTP {status}",
                rail_code=payload.get("name") or f"http_{status}",
            )
        batch_id = (payload.get("batch_header") or {}).get("payout_batch_id")
        if not batch_id:
            raise RailError("PayPal не вернул payout_batch_id", rail_code="invalid_response")
        return TransferResult(transfer_id=batch_id, raw=payload)

    async def _access_token(self, session: aiohttp.ClientSession) -> str:
        if not self._client_id or not self._client_secret:
            raise RailError("PAYPAL__CLIENT_ID / CLIENT_SECRET не заданы", rail_code="not_configured")
        async with session.post(
            f"{self._api_base}/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=aiohttp.BasicAuth(self._client_id, self._client_secret),
        ) as resp:
            data: dict[str, Any] = await resp.json(content_type=None)
            if resp.status != 200 or "access_token" not in data:
                raise RailError(
                    data.get("error_description") or f"PayPal OAuth HTTP {resp.status}",
                    rail_code=data.get("error") or "auth_failed",
                )
            return data["access_token"]


__all__ = ["PayPalRail"]
