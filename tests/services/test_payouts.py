"""
Tests for the payout orchestrator: request, review, execute.
"""
import asyncio
from decimal import Decimal

import pytest
from sqlmodel import select

from referral_engine.models import (
    Payout,
    PayoutMethod,
    PayoutStatus,
    Referral,
    ReferralStatus,
    Referrer,
)
from referral_engine.services.exceptions import (
    AlreadyExecuted,
    BelowMinimum,
    InsufficientBalance,
    InvalidTransition,
    MissingPayoutAccount,
    MissingSocialProof,
    NotApproved,
    PayoutNotFound,
    RailError,
    RailTimeout,
)
from tests.conftest import make_ready_referrer, reload, track

PROOF_URL = "https://facebook.com/posts/fixlo-123"


async def _eligible_referrer(session_maker, referral_service, lifecycle, scheduler, clock, *, count=1):
    referrer = await make_ready_referrer(session_maker, referral_service)
    referrals = []
    for idx in range(count):
        referrals.append(
            await track(
                session_maker,
                lifecycle,
                referrer,
                email=f"pro{idx}@example.com",
                professional_id=f"pro-{idx}",
            )
        )
        clock.advance(minutes=1)
    clock.advance(days=31)
    await scheduler.run_once()
    return referrer, referrals


async def _approved_payout(session_maker, orchestrator, referrer, amount="20.00"):
    async with session_maker() as session:
        payout = await orchestrator.request_payout(
            session,
            referrer_id=referrer.id,
            amount=Decimal(amount),
            method=PayoutMethod.STRIPE_CONNECT,
            social_proof_url=PROOF_URL,
        )
        return await orchestrator.review_payout(
            session, payout_id=payout.id, action="approve", reviewer="admin@fixlo"
        )


class TestEndToEnd:
    """Day 0 tracking -> day 31 verification -> payout -> completed"""

    @pytest.mark.asyncio
    async def test_full_cycle(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, fake_rail, clock
    ):
        referrer = await make_ready_referrer(session_maker, referral_service)
        referral = await track(session_maker, lifecycle, referrer, amount=Decimal("100.00"))
        assert referral.commission_cents == 2000

        clock.advance(days=31)
        summary = await scheduler.run_once()
        assert summary.eligible == 1

        async with session_maker() as session:
            payout = await orchestrator.request_payout(
                session,
                referrer_id=referrer.id,
                amount=Decimal("20.00"),
                method=PayoutMethod.STRIPE_CONNECT,
                social_proof_url=PROOF_URL,
            )
        assert payout.status == PayoutStatus.PENDING
        assert payout.requested_cents == 2000
        assert payout.platform_fee_cents == 25
        assert payout.net_cents == 1975
        assert payout.referral_ids == [referral.id]

        async with session_maker() as session:
            approved = await orchestrator.review_payout(
                session, payout_id=payout.id, action="approve", reviewer="admin@fixlo"
            )
        assert approved.status == PayoutStatus.APPROVED
        assert approved.approved_by == "admin@fixlo"

        async with session_maker() as session:
            done = await orchestrator.execute_payout(session, payout.id)

        assert done.status == PayoutStatus.COMPLETED
        assert done.transfer_id == "tr_test_1"
        assert fake_rail.transfers == [
            {
                "account_id": f"acct_test_{referrer.id}",
                "amount_cents": 1975,
                "currency": "USD",
                "metadata": {"payout_id": str(payout.id), "referrer_id": str(referrer.id)},
                "idempotency_key": f"payout-{payout.id}",
            }
        ]
        paid = await reload(session_maker, Referral, referral.id)
        assert paid.status == ReferralStatus.PAID
        assert paid.payout_id == payout.id
        assert paid.probation_complete is True

        stored = await reload(session_maker, Referrer, referrer.id)
        assert stored.paid_referrals == 1
        assert stored.total_earned_cents == 2000
        assert stored.total_paid_cents == 2000
        assert stored.available_balance_cents == 0


class TestRequestPayout:
    """Tests for PayoutOrchestrator.request_payout"""

    @pytest.mark.asyncio
    async def test_missing_social_proof_url(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, clock
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )

        async with session_maker() as session:
            with pytest.raises(MissingSocialProof):
                await orchestrator.request_payout(
                    session,
                    referrer_id=referrer.id,
                    amount=Decimal("20.00"),
                    method=PayoutMethod.STRIPE_CONNECT,
                    social_proof_url="   ",
                )
            assert (await session.exec(select(Payout))).all() == []

    @pytest.mark.asyncio
    async def test_unverified_referrer_is_rejected(self, session_maker, referral_service, orchestrator):
        """A proof URL alone is not enough without an approved verification"""
        async with session_maker() as session:
            referrer = await referral_service.register(session, email="r@example.com", name="R")
            await referral_service.submit_social_verification(
                session, referrer_id=referrer.id, platform="x", post_url="https://x.com/1"
            )
            with pytest.raises(MissingSocialProof):
                await orchestrator.request_payout(
                    session,
                    referrer_id=referrer.id,
                    amount=Decimal("20.00"),
                    method=PayoutMethod.STRIPE_CONNECT,
                    social_proof_url=PROOF_URL,
                )

    @pytest.mark.asyncio
    async def test_below_minimum(self, session_maker, referral_service, orchestrator):
        referrer = await make_ready_referrer(session_maker, referral_service)

        async with session_maker() as session:
            with pytest.raises(BelowMinimum):
                await orchestrator.request_payout(
                    session,
                    referrer_id=referrer.id,
                    amount=Decimal("9.99"),
                    method=PayoutMethod.STRIPE_CONNECT,
                    social_proof_url=PROOF_URL,
                )

    @pytest.mark.asyncio
    async def test_insufficient_balance_creates_nothing(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, clock
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )

        async with session_maker() as session:
            with pytest.raises(InsufficientBalance):
                await orchestrator.request_payout(
                    session,
                    referrer_id=referrer.id,
                    amount=Decimal("20.01"),
                    method=PayoutMethod.STRIPE_CONNECT,
                    social_proof_url=PROOF_URL,
                )
        async with session_maker() as session:
            assert (await session.exec(select(Payout))).all() == []

    @pytest.mark.asyncio
    async def test_active_referrals_are_not_claimable(
        self, session_maker, referral_service, lifecycle, orchestrator
    ):
        referrer = await make_ready_referrer(session_maker, referral_service)
        await track(session_maker, lifecycle, referrer)

        async with session_maker() as session:
            with pytest.raises(InsufficientBalance):
                await orchestrator.request_payout(
                    session,
                    referrer_id=referrer.id,
                    amount=Decimal("20.00"),
                    method=PayoutMethod.STRIPE_CONNECT,
                    social_proof_url=PROOF_URL,
                )

    @pytest.mark.asyncio
    async def test_missing_payout_account(self, session_maker, referral_service, orchestrator):
        referrer = await make_ready_referrer(session_maker, referral_service, with_account=False)

        async with session_maker() as session:
            with pytest.raises(MissingPayoutAccount):
                await orchestrator.request_payout(
                    session,
                    referrer_id=referrer.id,
                    amount=Decimal("20.00"),
                    method=PayoutMethod.STRIPE_CONNECT,
                    social_proof_url=PROOF_URL,
                )

    @pytest.mark.asyncio
    async def test_claims_oldest_first_without_exceeding_amount(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, clock
    ):
        """Three 20.00 commissions, request 45.00 -> two claimed, gross 40.00"""
        referrer, referrals = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock, count=3
        )

        async with session_maker() as session:
            payout = await orchestrator.request_payout(
                session,
                referrer_id=referrer.id,
                amount=Decimal("45.00"),
                method=PayoutMethod.STRIPE_CONNECT,
                social_proof_url=PROOF_URL,
            )

        assert payout.requested_cents == 4000
        assert payout.referral_ids == [referrals[0].id, referrals[1].id]
        untouched = await reload(session_maker, Referral, referrals[2].id)
        assert untouched.payout_id is None

    @pytest.mark.asyncio
    async def test_claimed_referrals_are_not_claimed_twice(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, clock
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        await _approved_payout(session_maker, orchestrator, referrer)

        async with session_maker() as session:
            with pytest.raises(InsufficientBalance):
                await orchestrator.request_payout(
                    session,
                    referrer_id=referrer.id,
                    amount=Decimal("20.00"),
                    method=PayoutMethod.STRIPE_CONNECT,
                    social_proof_url=PROOF_URL,
                )


class TestReviewPayout:
    """Tests for PayoutOrchestrator.review_payout"""

    @pytest.mark.asyncio
    async def test_reject_releases_referrals(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, clock
    ):
        referrer, (referral,) = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        async with session_maker() as session:
            payout = await orchestrator.request_payout(
                session,
                referrer_id=referrer.id,
                amount=Decimal("20.00"),
                method=PayoutMethod.STRIPE_CONNECT,
                social_proof_url=PROOF_URL,
            )
            rejected = await orchestrator.review_payout(
                session, payout_id=payout.id, action="reject", reviewer="admin", reason="Fake post"
            )

        assert rejected.status == PayoutStatus.CANCELLED
        assert rejected.cancellation_reason == "Fake post"
        released = await reload(session_maker, Referral, referral.id)
        assert released.payout_id is None
        assert released.status == ReferralStatus.ELIGIBLE

    @pytest.mark.asyncio
    async def test_only_pending_can_be_reviewed(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, clock
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        payout = await _approved_payout(session_maker, orchestrator, referrer)

        async with session_maker() as session:
            with pytest.raises(InvalidTransition) as exc_info:
                await orchestrator.review_payout(
                    session, payout_id=payout.id, action="reject", reviewer="admin"
                )
            assert "approved" in exc_info.value.message
            with pytest.raises(InvalidTransition):
                await orchestrator.review_payout(
                    session, payout_id=payout.id, action="archive", reviewer="admin"
                )

    @pytest.mark.asyncio
    async def test_missing_payout(self, session, orchestrator):
        with pytest.raises(PayoutNotFound):
            await orchestrator.review_payout(session, payout_id=1, action="approve", reviewer="a")


class TestExecutePayout:
    """Tests for PayoutOrchestrator.execute_payout"""

    @pytest.mark.asyncio
    async def test_requires_approval(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, fake_rail, clock
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        async with session_maker() as session:
            payout = await orchestrator.request_payout(
                session,
                referrer_id=referrer.id,
                amount=Decimal("20.00"),
                method=PayoutMethod.STRIPE_CONNECT,
                social_proof_url=PROOF_URL,
            )
            with pytest.raises(NotApproved):
                await orchestrator.execute_payout(session, payout.id)

        assert fake_rail.transfers == []

    @pytest.mark.asyncio
    async def test_second_execution_is_rejected(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, fake_rail, clock
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        payout = await _approved_payout(session_maker, orchestrator, referrer)
        async with session_maker() as session:
            await orchestrator.execute_payout(session, payout.id)

        async with session_maker() as session:
            with pytest.raises(AlreadyExecuted):
                await orchestrator.execute_payout(session, payout.id)

        assert len(fake_rail.transfers) == 1

    @pytest.mark.asyncio
    async def test_concurrent_executions_make_one_transfer(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, fake_rail, clock
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        payout = await _approved_payout(session_maker, orchestrator, referrer)
        fake_rail.delay = 0.05

        async def execute():
            async with session_maker() as session:
                return await orchestrator.execute_payout(session, payout.id)

        results = await asyncio.gather(execute(), execute(), return_exceptions=True)

        completed = [r for r in results if isinstance(r, Payout)]
        conflicts = [r for r in results if isinstance(r, AlreadyExecuted)]
        assert len(completed) == 1
        assert len(conflicts) == 1
        assert len(fake_rail.transfers) == 1

    @pytest.mark.asyncio
    async def test_rail_error_marks_failed(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, fake_rail, clock
    ):
        referrer, (referral,) = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        payout = await _approved_payout(session_maker, orchestrator, referrer)
        fake_rail.error = RailError("Insufficient platform balance", rail_code="balance_insufficient")

        async with session_maker() as session:
            with pytest.raises(RailError):
                await orchestrator.execute_payout(session, payout.id)

        failed = await reload(session_maker, Payout, payout.id)
        assert failed.status == PayoutStatus.FAILED
        assert failed.failure_code == "balance_insufficient"
        assert failed.failure_reason == "Insufficient platform balance"
        assert failed.retry_count == 1
        assert failed.transfer_id is None
        still_tagged = await reload(session_maker, Referral, referral.id)
        assert still_tagged.payout_id == payout.id
        assert still_tagged.status == ReferralStatus.ELIGIBLE

        async with session_maker() as session:
            with pytest.raises(NotApproved):
                await orchestrator.execute_payout(session, payout.id)

    @pytest.mark.asyncio
    async def test_timeout_is_unknown_outcome(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, fake_rail, clock,
        monkeypatch,
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        payout = await _approved_payout(session_maker, orchestrator, referrer)
        fake_rail.delay = 1.0
        monkeypatch.setattr(orchestrator, "_timeout", 0.05)

        async with session_maker() as session:
            with pytest.raises(RailTimeout):
                await orchestrator.execute_payout(session, payout.id)

        failed = await reload(session_maker, Payout, payout.id)
        assert failed.status == PayoutStatus.FAILED
        assert failed.failure_code == "unknown_outcome"
        assert fake_rail.transfers == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_unknown_outcome(
        self, session_maker, referral_service, lifecycle, scheduler, orchestrator, fake_rail, clock
    ):
        referrer, _ = await _eligible_referrer(
            session_maker, referral_service, lifecycle, scheduler, clock
        )
        payout = await _approved_payout(session_maker, orchestrator, referrer)
        fake_rail.error = ConnectionResetError("peer reset")

        async with session_maker() as session:
            with pytest.raises(RailError) as exc_info:
                await orchestrator.execute_payout(session, payout.id)

        assert exc_info.value.rail_code == "unknown_outcome"
        failed = await reload(session_maker, Payout, payout.id)
        assert failed.failure_code == "unknown_outcome"
