"""Общий контракт платёжной рельсы."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Protocol

from referral_engine.models import Referrer


@dataclass(slots=True)
class TransferResult:
    transfer_id: str
    raw: dict = field(default_factory=dict)


class PaymentRail(Protocol):
    """createAccount / createOnboardingLink / createTransfer."""

    method: str

    async def create_account(self, referrer: Referrer) -> str: ...

    async def create_onboarding_link(self, account_id: str) -> str: ...

    async def create_transfer(
        self,
        account_id: str,
        amount_cents: int,
        currency: str,
        metadata: Mapping[str, str],
        *,
        idempotency_key: str,
    ) -> TransferResult: ...


class RailRegistry:
    """method -> PaymentRail."""

    def __init__(self, rails: list[PaymentRail] | None = None) -> None:
        self._rails: dict[str, PaymentRail] = {}
        for rail in rails or []:
            self.register(rail)

    def register(self, rail: PaymentRail) -> None:
        self._rails[rail.method] = rail

    def get(self, method: str) -> PaymentRail:
        try:
            return self._rails[method]
        except KeyError as exc:
            raise ValueError(f"Рельса {method!r} не подключена") from exc

    def methods(self) -> list[str]:
        return sorted(self._rails)


__all__ = ["PaymentRail", "RailRegistry", "TransferResult"]
