"""Калькулятор комиссий и комиссий за вывод.

Чистые функции без побочных эффектов. Внутри вся арифметика ведётся в целых
копейках (центах); Decimal появляется только на границе (API, отчёты).
Комиссии рельс описаны таблицей стратегий (method, country) -> FeeRule, поэтому
новая рельса или страна добавляется строкой в FEE_SCHEDULE, а не веткой if.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Mapping

from referral_engine.models import PayoutMethod
from referral_engine.services.exceptions import InvalidAmount

CENT = Decimal("0.01")
BPS_DENOMINATOR = 10_000
ANY_COUNTRY = "*"


def _div_half_up(numerator: int, denominator: int) -> int:
    """Целочисленное деление с округлением половины вверх (для неотрицательных)."""

    return (2 * numerator + denominator) // (2 * denominator)


def to_cents(amount: Decimal | int | str) -> int:
    """Переводит сумму в основных единицах в центы (ROUND_HALF_UP)."""

    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"Некорректная сумма: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise InvalidAmount(f"Некорректная сумма: {amount!r}")
    return int((value.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def rate_to_bps(rate: Decimal | str) -> int:
    """0.20 -> 2000 б.п. Ставка должна укладываться в целые базисные пункты."""

    value = Decimal(str(rate))
    bps = value * BPS_DENOMINATOR
    if value < 0 or value > 1 or bps != bps.to_integral_value():
        raise ValueError(f"Ставка {rate} не выражается в целых базисных пунктах")
    return int(bps)


def bps_to_rate(bps: int) -> Decimal:
    return Decimal(bps) / BPS_DENOMINATOR


def commission(amount: Decimal, rate: Decimal) -> Decimal:
    """round2(amount × rate): commission(100.00, 0.20) == 20.00."""

    return (Decimal(str(amount)) * Decimal(str(rate))).quantize(CENT, rounding=ROUND_HALF_UP)


def commission_cents(amount_cents: int, rate_bps: int) -> int:
    """То же самое, но в целых центах и базисных пунктах."""

    if amount_cents < 0 or rate_bps < 0:
        raise InvalidAmount("Сумма и ставка не могут быть отрицательными")
    return _div_half_up(amount_cents * rate_bps, BPS_DENOMINATOR)


@dataclass(frozen=True, slots=True)
class FeeBreakdown:
    """Разбивка выплаты: брутто, комиссия платформы, процессинг, нетто."""

    gross_cents: int
    platform_fee_cents: int
    processing_fee_cents: int

    @property
    def net_cents(self) -> int:
        return self.gross_cents - self.platform_fee_cents - self.processing_fee_cents

    @property
    def total_fees_cents(self) -> int:
        return self.platform_fee_cents + self.processing_fee_cents

    @property
    def gross(self) -> Decimal:
        return from_cents(self.gross_cents)

    @property
    def platform_fee(self) -> Decimal:
        return from_cents(self.platform_fee_cents)

    @property
    def processing_fee(self) -> Decimal:
        return from_cents(self.processing_fee_cents)

    @property
    def net(self) -> Decimal:
        return from_cents(self.net_cents)


@dataclass(frozen=True, slots=True)
class FeeRule:
    """Процент с границами + фиксированный процессинг.

    fee = max(min, min(max, amount × rate)); фиксированная часть идёт в
    processing_fee. Сумма комиссий никогда не превышает брутто.
    """

    rate_bps: int
    min_cents: int = 0
    max_cents: int | None = None
    processing_fixed_cents: int = 0

    def apply(self, amount_cents: int) -> FeeBreakdown:
        if amount_cents < 0:
            raise InvalidAmount("Сумма выплаты не может быть отрицательной")
        fee = _div_half_up(amount_cents * self.rate_bps, BPS_DENOMINATOR)
        if self.max_cents is not None:
            fee = min(self.max_cents, fee)
        fee = max(self.min_cents, fee)
        platform = min(fee, amount_cents)
        processing = min(self.processing_fixed_cents, amount_cents - platform)
        return FeeBreakdown(
            gross_cents=amount_cents,
            platform_fee_cents=platform,
            processing_fee_cents=processing,
        )


FEE_SCHEDULE: dict[tuple[str, str], FeeRule] = {
    # Stripe Connect: 0.25% за выплату, минимум $0.25, максимум $2.00
    (PayoutMethod.STRIPE_CONNECT, ANY_COUNTRY): FeeRule(rate_bps=25, min_cents=25, max_cents=200),
    # PayPal: внутри США бесплатно, международные 2%
    (PayoutMethod.PAYPAL, "US"): FeeRule(rate_bps=0),
    (PayoutMethod.PAYPAL, ANY_COUNTRY): FeeRule(rate_bps=200),
}


def resolve_fee_rule(
    method: str,
    country: str,
    schedule: Mapping[tuple[str, str], FeeRule] = FEE_SCHEDULE,
) -> FeeRule:
    country = (country or "").upper()
    rule = schedule.get((method, country)) or schedule.get((method, ANY_COUNTRY))
    if rule is None:
        raise ValueError(f"Нет правила комиссии для метода {method!r}")
    return rule


def payout_fees_cents(
    amount_cents: int,
    method: str,
    country: str,
    schedule: Mapping[tuple[str, str], FeeRule] = FEE_SCHEDULE,
) -> FeeBreakdown:
    return resolve_fee_rule(method, country, schedule).apply(amount_cents)


def payout_fees(
    amount: Decimal,
    method: str,
    country: str,
    schedule: Mapping[tuple[str, str], FeeRule] = FEE_SCHEDULE,
) -> FeeBreakdown:
    """Decimal-обёртка: payout_fees(20.00, stripe_connect, US).net == 19.75."""

    return payout_fees_cents(to_cents(amount), method, country, schedule)


__all__ = [
    "ANY_COUNTRY",
    "FEE_SCHEDULE",
    "FeeBreakdown",
    "FeeRule",
    "bps_to_rate",
    "commission",
    "commission_cents",
    "from_cents",
    "payout_fees",
    "payout_fees_cents",
    "rate_to_bps",
    "resolve_fee_rule",
    "to_cents",
]
