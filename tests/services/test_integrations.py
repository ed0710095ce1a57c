"""
Tests for external collaborators: compliance tiers, subscription lookup, rails registry.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from referral_engine.models import PayoutMethod
from referral_engine.services.exceptions import SubscriptionLookupError
from referral_engine.services.integrations.compliance import (
    CommissionTier,
    StaticComplianceLookup,
)
from referral_engine.services.integrations.subscriptions import (
    HttpSubscriptionLookup,
    SubscriptionStatus,
    normalize_status,
)
from referral_engine.services.rails import RailRegistry
from tests.conftest import FakeRail


class TestCompliance:
    """Tests for StaticComplianceLookup"""

    @pytest.mark.parametrize(
        "country,rate,currency",
        [("US", 2000, "USD"), ("ca", 2000, "CAD"), ("GB", 1800, "GBP"), ("IE", 1800, "EUR"), ("BR", 1500, "USD")],
    )
    def test_country_tiers(self, country, rate, currency):
        tier = StaticComplianceLookup().commission_tier(country)
        assert (tier.rate_bps, tier.currency) == (rate, currency)

    def test_custom_table(self):
        lookup = StaticComplianceLookup({"MX": CommissionTier(1000, "MXN")})
        assert lookup.commission_tier("MX").currency == "MXN"


class TestNormalizeStatus:
    """Tests for subscription status normalization"""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("active", SubscriptionStatus.ACTIVE),
            ("TRIALING", SubscriptionStatus.TRIALING),
            ("canceled", SubscriptionStatus.CANCELLED),
            ("past_due", SubscriptionStatus.CANCELLED),
            ("not_found", SubscriptionStatus.NOT_FOUND),
        ],
    )
    def test_aliases(self, raw, expected):
        assert normalize_status(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "paused-forever"])
    def test_unknown_raises(self, raw):
        with pytest.raises(SubscriptionLookupError):
            normalize_status(raw)


def _fake_client(status: int, payload=None, error: Exception | None = None):
    """aiohttp.ClientSession stand-in returning one canned response."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value="")

    request_ctx = MagicMock()
    if error is not None:
        request_ctx.__aenter__ = AsyncMock(side_effect=error)
    else:
        request_ctx.__aenter__ = AsyncMock(return_value=response)
    request_ctx.__aexit__ = AsyncMock(return_value=False)

    client = MagicMock()
    client.get = MagicMock(return_value=request_ctx)
    client_ctx = MagicMock()
    client_ctx.__aenter__ = AsyncMock(return_value=client)
    client_ctx.__aexit__ = AsyncMock(return_value=False)
    return client_ctx, client


class TestHttpSubscriptionLookup:
    """Tests for HttpSubscriptionLookup"""

    @pytest.mark.asyncio
    async def test_active(self):
        client_ctx, client = _fake_client(200, {"status": "active"})
        with patch("aiohttp.ClientSession", return_value=client_ctx):
            status = await HttpSubscriptionLookup().get_subscription_status("pro-1")

        assert status == SubscriptionStatus.ACTIVE
        assert client.get.call_args[0][0].endswith("/professionals/pro-1/subscription")

    @pytest.mark.asyncio
    async def test_404_is_not_found(self):
        client_ctx, _ = _fake_client(404)
        with patch("aiohttp.ClientSession", return_value=client_ctx):
            status = await HttpSubscriptionLookup().get_subscription_status("pro-1")

        assert status == SubscriptionStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        client_ctx, _ = _fake_client(503)
        with patch("aiohttp.ClientSession", return_value=client_ctx):
            with pytest.raises(SubscriptionLookupError):
                await HttpSubscriptionLookup().get_subscription_status("pro-1")

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        client_ctx, _ = _fake_client(200, error=aiohttp.ClientConnectionError("refused"))
        with patch("aiohttp.ClientSession", return_value=client_ctx):
            with pytest.raises(SubscriptionLookupError):
                await HttpSubscriptionLookup().get_subscription_status("pro-1")


class TestRailRegistry:
    """Tests for RailRegistry"""

    def test_lookup_by_method(self):
        stripe = FakeRail(PayoutMethod.STRIPE_CONNECT)
        paypal = FakeRail(PayoutMethod.PAYPAL)
        registry = RailRegistry([stripe, paypal])

        assert registry.get(PayoutMethod.PAYPAL) is paypal
        assert registry.methods() == [PayoutMethod.PAYPAL, PayoutMethod.STRIPE_CONNECT]

    def test_missing_method(self):
        with pytest.raises(ValueError):
            RailRegistry().get(PayoutMethod.PAYPAL)
