"""
Tests for recompute_stats: counters are always derived from the ledger.
"""
import pytest
from sqlalchemy import update

from referral_engine.models import Referral, ReferralStatus, Referrer
from referral_engine.services.core.stats import recompute_stats
from referral_engine.services.exceptions import ReferrerNotFound
from tests.conftest import make_ready_referrer, reload, track


class TestRecomputeStats:
    """Tests for recompute_stats"""

    @pytest.mark.asyncio
    async def test_counts_and_balances(self, session_maker, referral_service, lifecycle):
        referrer = await make_ready_referrer(session_maker, referral_service)
        statuses = [
            ReferralStatus.ACTIVE,
            ReferralStatus.ELIGIBLE,
            ReferralStatus.ELIGIBLE,
            ReferralStatus.PAID,
            ReferralStatus.CANCELLED,
        ]
        for idx, status in enumerate(statuses):
            referral = await track(
                session_maker, lifecycle, referrer, email=f"p{idx}@example.com", professional_id=f"p{idx}"
            )
            async with session_maker() as session:
                await session.exec(
                    update(Referral).where(Referral.id == referral.id).values(status=status)
                )
                await session.commit()

        async with session_maker() as session:
            await recompute_stats(session, referrer.id)
            await session.commit()

        stored = await reload(session_maker, Referrer, referrer.id)
        assert stored.total_referrals == 5
        assert stored.active_referrals == 1
        assert stored.eligible_referrals == 2
        assert stored.paid_referrals == 1
        assert stored.cancelled_referrals == 1
        assert stored.total_earned_cents == 6000
        assert stored.total_paid_cents == 2000
        assert stored.available_balance_cents == 4000
        assert stored.pending_balance_cents == 2000

    @pytest.mark.asyncio
    async def test_drifted_counters_are_overwritten(self, session_maker, referral_service):
        """Stored counters are never trusted"""
        referrer = await make_ready_referrer(session_maker, referral_service)
        async with session_maker() as session:
            await session.exec(
                update(Referrer)
                .where(Referrer.id == referrer.id)
                .values(total_referrals=42, available_balance_cents=99999)
            )
            await session.commit()

        async with session_maker() as session:
            await recompute_stats(session, referrer.id)
            await session.commit()

        stored = await reload(session_maker, Referrer, referrer.id)
        assert stored.total_referrals == 0
        assert stored.available_balance_cents == 0

    @pytest.mark.asyncio
    async def test_missing_referrer(self, session):
        with pytest.raises(ReferrerNotFound):
            await recompute_stats(session, 999)
