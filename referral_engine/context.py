"""Глобальные сервисы и зависимости реферального движка."""

from __future__ import annotations

from config.settings import get_settings
from .middlewares.db import get_session_maker
from .services.core.lifecycle import LifecycleManager
from .services.core.payouts import PayoutOrchestrator
from .services.core.referral_service import ReferralService
from .services.core.verification_scheduler import VerificationScheduler
from .services.integrations.compliance import StaticComplianceLookup
from .services.integrations.subscriptions import HttpSubscriptionLookup
from .services.rails import PayPalRail, RailRegistry, StripeConnectRail
from .utils.feature_flags import FeatureToggle

settings = get_settings()

session_maker = get_session_maker()
feature_toggle = FeatureToggle()

compliance = StaticComplianceLookup()
subscription_lookup = HttpSubscriptionLookup()
rails = RailRegistry([StripeConnectRail(), PayPalRail()])

referral_service = ReferralService(compliance=compliance, rails=rails)
lifecycle = LifecycleManager()
payout_orchestrator = PayoutOrchestrator(rails)
verification_scheduler = VerificationScheduler(
    session_maker,
    lookup=subscription_lookup,
    lifecycle=lifecycle,
    toggle=feature_toggle,
)

__all__ = [
    "compliance",
    "feature_toggle",
    "lifecycle",
    "payout_orchestrator",
    "rails",
    "referral_service",
    "session_maker",
    "settings",
    "subscription_lookup",
    "verification_scheduler",
]
