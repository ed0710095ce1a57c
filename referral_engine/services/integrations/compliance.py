"""Справочник стран: ставка комиссии и валюта выплаты.

Запрашивается один раз, при регистрации реферера; ставка фиксируется в его
записи и больше не перечитывается для каждой рефералки.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol


@dataclass(frozen=True, slots=True)
class CommissionTier:
    rate_bps: int
    currency: str


class ComplianceLookup(Protocol):
    def commission_tier(self, country: str) -> CommissionTier: ...


DEFAULT_TIER = CommissionTier(rate_bps=1500, currency="USD")

COUNTRY_TIERS: dict[str, CommissionTier] = {
    "US": CommissionTier(rate_bps=2000, currency="USD"),
    "CA": CommissionTier(rate_bps=2000, currency="CAD"),
    "GB": CommissionTier(rate_bps=1800, currency="GBP"),
    "AU": CommissionTier(rate_bps=1800, currency="AUD"),
    "NZ": CommissionTier(rate_bps=1800, currency="NZD"),
    "IE": CommissionTier(rate_bps=1800, currency="EUR"),
}


class StaticComplianceLookup:
    """Табличная реализация ComplianceLookup."""

    def __init__(
        self,
        tiers: Mapping[str, CommissionTier] | None = None,
        default: CommissionTier = DEFAULT_TIER,
    ) -> None:
        self._tiers = dict(COUNTRY_TIERS if tiers is None else tiers)
        self._default = default

    def commission_tier(self, country: str) -> CommissionTier:
        return self._tiers.get((country or "").upper(), self._default)


__all__ = [
    "COUNTRY_TIERS",
    "CommissionTier",
    "ComplianceLookup",
    "DEFAULT_TIER",
    "StaticComplianceLookup",
]
