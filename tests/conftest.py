"""
Pytest configuration and shared fixtures.

Each test gets its own SQLite file: services and the scheduler open separate
sessions the same way they do in production.
"""
import os

os.environ.setdefault("SECURITY__JWT_SECRET", "test-secret-key-for-jwt-signing-32b")
os.environ["REFERRAL__ENABLED"] = "true"
os.environ["REFERRAL__BASE_URL"] = "https://www.fixloapp.com"
os.environ["DATABASE__DSN"] = "sqlite+aiosqlite:///:memory:"
os.environ["CACHE__BACKEND"] = "memory"

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from referral_engine import models  # noqa: F401
from referral_engine.models import PayoutMethod, Referrer
from referral_engine.services.core.lifecycle import LifecycleManager
from referral_engine.services.core.payouts import PayoutOrchestrator
from referral_engine.services.core.referral_service import ReferralService
from referral_engine.services.core.verification_scheduler import VerificationScheduler
from referral_engine.services.exceptions import SubscriptionLookupError
from referral_engine.services.integrations.compliance import StaticComplianceLookup
from referral_engine.services.integrations.subscriptions import SubscriptionStatus
from referral_engine.services.rails import RailRegistry, TransferResult
from referral_engine.utils.feature_flags import FeatureToggle


class FakeClock:
    """Controllable clock passed to services instead of utcnow."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeRail:
    """In-memory payment rail recording every transfer."""

    def __init__(self, method: str = PayoutMethod.STRIPE_CONNECT) -> None:
        self.method = method
        self.transfers: list[dict] = []
        self.error: Exception | None = None
        self.delay: float = 0.0

    async def create_account(self, referrer: Referrer) -> str:
        return f"acct_test_{referrer.id}"

    async def create_onboarding_link(self, account_id: str) -> str:
        return f"https://connect.test/onboarding/{account_id}"

    async def create_transfer(self, account_id, amount_cents, currency, metadata, *, idempotency_key):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.transfers.append(
            {
                "account_id": account_id,
                "amount_cents": amount_cents,
                "currency": currency,
                "metadata": dict(metadata),
                "idempotency_key": idempotency_key,
            }
        )
        return TransferResult(transfer_id=f"tr_test_{len(self.transfers)}", raw={})


class FakeSubscriptionLookup:
    """professional_id -> status (or exception to raise); default active."""

    def __init__(self) -> None:
        self.statuses: dict[str, object] = {}
        self.calls: list[str] = []

    async def get_subscription_status(self, professional_id: str) -> str:
        self.calls.append(professional_id)
        value = self.statuses.get(professional_id, SubscriptionStatus.ACTIVE)
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'referrals.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_rail():
    return FakeRail()


@pytest.fixture
def rails(fake_rail):
    return RailRegistry([fake_rail])


@pytest.fixture
def lookup():
    return FakeSubscriptionLookup()


@pytest.fixture
def toggle():
    return FeatureToggle(enabled=True)


@pytest.fixture
def referral_service(rails, clock):
    return ReferralService(compliance=StaticComplianceLookup(), rails=rails, clock=clock)


@pytest.fixture
def lifecycle(clock):
    return LifecycleManager(clock=clock)


@pytest.fixture
def orchestrator(rails, clock):
    return PayoutOrchestrator(rails, clock=clock)


@pytest.fixture
def scheduler(session_maker, lookup, lifecycle, toggle, clock):
    return VerificationScheduler(
        session_maker,
        lookup=lookup,
        lifecycle=lifecycle,
        toggle=toggle,
        clock=clock,
    )


@pytest.fixture
def lookup_error():
    return SubscriptionLookupError("professionals service unavailable")


async def reload(session_maker, model, pk):
    """Reads a row through a fresh session, bypassing any identity map."""

    async with session_maker() as session:
        return await session.get(model, pk)


async def make_ready_referrer(
    session_maker,
    service: ReferralService,
    *,
    email: str = "referrer@example.com",
    country: str = "US",
    with_account: bool = True,
) -> Referrer:
    """Registered, activated, social-verified referrer with a Stripe account."""

    async with session_maker() as session:
        referrer = await service.register(session, email=email, name="Jane Referrer", country=country)
        verification = await service.submit_social_verification(
            session,
            referrer_id=referrer.id,
            platform="facebook",
            post_url="https://facebook.com/posts/fixlo-123",
        )
        await service.review_social_verification(
            session, verification_id=verification.id, action="approve", reviewer="admin@fixlo"
        )
        if with_account:
            await service.setup_payout_account(
                session, referrer_id=referrer.id, method=PayoutMethod.STRIPE_CONNECT
            )
    return await reload(session_maker, Referrer, referrer.id)


async def track(
    session_maker,
    lifecycle: LifecycleManager,
    referrer: Referrer,
    *,
    email: str = "pro@example.com",
    professional_id: str = "pro-1",
    amount: Decimal = Decimal("100.00"),
):
    async with session_maker() as session:
        return await lifecycle.attribute_referral(
            session,
            code=referrer.referral_code,
            professional_id=professional_id,
            referred_email=email,
            subscription_id=f"sub_{professional_id}",
            subscription_amount=amount,
        )
