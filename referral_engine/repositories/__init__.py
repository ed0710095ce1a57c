"""Репозитории для работы с БД."""

from .payout_repo import (
    begin_processing,
    count_payouts,
    get_payout,
    list_payouts,
    transition,
)
from .referral_repo import (
    claim_for_payout,
    claimable_balance_cents,
    commission_sums,
    find_live_referral_by_email,
    get_referral,
    list_claimable,
    list_due_for_verification,
    list_overdue,
    list_referrals,
    mark_paid_for_payout,
    release_payout,
    status_counts,
)
from .referrer_repo import (
    count_referrers,
    get_referrer,
    get_referrer_by_code,
    get_referrer_by_email,
    list_referrers,
    referral_code_exists,
)
from .verification_repo import (
    count_verifications,
    get_verification,
    latest_approved,
    list_verifications,
)

__all__ = [
    "begin_processing",
    "claim_for_payout",
    "claimable_balance_cents",
    "commission_sums",
    "count_payouts",
    "count_referrers",
    "count_verifications",
    "find_live_referral_by_email",
    "get_payout",
    "get_referral",
    "get_referrer",
    "get_referrer_by_code",
    "get_referrer_by_email",
    "get_verification",
    "latest_approved",
    "list_claimable",
    "list_due_for_verification",
    "list_overdue",
    "list_payouts",
    "list_referrals",
    "list_referrers",
    "list_verifications",
    "mark_paid_for_payout",
    "referral_code_exists",
    "release_payout",
    "status_counts",
    "transition",
]
