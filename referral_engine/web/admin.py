"""Админка: разбор рефералок, публикаций и выплат, отчёты."""

from __future__ import annotations

import csv
import io
from collections import defaultdict
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import get_settings
from .deps import (
    get_db_session,
    get_feature_toggle,
    get_lifecycle,
    get_payout_orchestrator,
    get_referral_service,
    get_verification_scheduler,
    require_admin,
    require_enabled,
)
from .schemas import (
    FeatureToggleRequest,
    FeatureToggleResponse,
    PayoutList,
    PayoutResponse,
    PayoutView,
    ReferralPage,
    ReferralResponse,
    ReferralView,
    ReferrerPage,
    ReferrerResponse,
    ReferrerStatusRequest,
    ReferrerView,
    ReviewRequest,
    SocialVerificationList,
    SocialVerificationResponse,
    SocialVerificationView,
    VerificationRunResponse,
)
from referral_engine.models import PayoutStatus, ReferrerStatus, VerificationStatus, as_utc
from referral_engine.repositories import (
    commission_sums,
    count_payouts,
    count_referrers,
    count_verifications,
    list_payouts,
    list_referrals,
    list_referrers,
    list_verifications,
    status_counts,
)
from referral_engine.services.core.commission import from_cents
from referral_engine.services.core.lifecycle import LifecycleManager
from referral_engine.services.core.payouts import PayoutOrchestrator
from referral_engine.services.core.referral_service import ReferralService
from referral_engine.services.core.verification_scheduler import VerificationScheduler
from referral_engine.utils.cache import STATS_CACHE_KEY, cached_call, invalidate_program_stats
from referral_engine.utils.feature_flags import FeatureToggle
from referral_engine.utils.security import Principal

EXPORT_COLUMNS = (
    "id",
    "referrer_id",
    "referral_code",
    "professional_id",
    "referred_email",
    "subscription_id",
    "status",
    "subscription_amount",
    "commission",
    "currency",
    "country",
    "probation_ends_at",
    "eligible_at",
    "payout_id",
    "paid_at",
    "cancellation_reason",
    "created_at",
)

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_enabled), Depends(require_admin)],
)
# Переключатель доступен и при выключенной программе.
toggle_router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/referrers", response_model=ReferrerPage)
async def admin_list_referrers(
    status: Optional[str] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_db_session),
) -> ReferrerPage:
    items, total = await list_referrers(session, status=status, offset=offset, limit=limit)
    return ReferrerPage(
        items=[ReferrerView.from_model(item) for item in items],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.post("/referrers/{referrer_id}/status", response_model=ReferrerResponse)
async def admin_set_referrer_status(
    referrer_id: int,
    payload: ReferrerStatusRequest,
    principal: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    service: ReferralService = Depends(get_referral_service),
) -> ReferrerResponse:
    referrer = await service.set_status(
        session,
        referrer_id=referrer_id,
        status=payload.status,
        admin=principal.subject,
        reason=payload.reason,
    )
    await invalidate_program_stats()
    return ReferrerResponse(referrer=ReferrerView.from_model(referrer))


@router.get("/referrals", response_model=ReferralPage)
async def admin_list_referrals(
    status: Optional[str] = Query(None),
    referrer_id: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    session: AsyncSession = Depends(get_db_session),
) -> ReferralPage:
    items, total = await list_referrals(
        session, status=status, referrer_id=referrer_id, offset=offset, limit=limit
    )
    return ReferralPage(
        items=[ReferralView.from_model(item) for item in items],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.post("/referrals/{referral_id}/review", response_model=ReferralResponse)
async def admin_review_referral(
    referral_id: int,
    payload: ReviewRequest,
    principal: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> ReferralResponse:
    referral = await lifecycle.review_referral(
        session,
        referral_id=referral_id,
        action=payload.action,
        reviewer=principal.subject,
        reason=payload.reason,
    )
    await invalidate_program_stats()
    return ReferralResponse(referral=ReferralView.from_model(referral))


@router.get("/social-verifications", response_model=SocialVerificationList)
async def admin_list_social_verifications(
    status: Optional[str] = Query(VerificationStatus.PENDING),
    referrer_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_db_session),
) -> SocialVerificationList:
    items = await list_verifications(session, status=status, referrer_id=referrer_id)
    return SocialVerificationList(items=[SocialVerificationView.from_model(item) for item in items])


@router.post(
    "/social-verifications/{verification_id}/review",
    response_model=SocialVerificationResponse,
)
async def admin_review_social_verification(
    verification_id: int,
    payload: ReviewRequest,
    principal: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    service: ReferralService = Depends(get_referral_service),
) -> SocialVerificationResponse:
    verification = await service.review_social_verification(
        session,
        verification_id=verification_id,
        action=payload.action,
        reviewer=principal.subject,
        reason=payload.reason,
    )
    await invalidate_program_stats()
    return SocialVerificationResponse(verification=SocialVerificationView.from_model(verification))


@router.get("/payouts", response_model=PayoutList)
async def admin_list_payouts(
    status: Optional[str] = Query(None),
    referrer_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_db_session),
) -> PayoutList:
    """Без фильтра отдаёт очередь: pending, approved, processing."""

    statuses = None if status else PayoutStatus.OPEN
    items = await list_payouts(session, status=status, statuses=statuses, referrer_id=referrer_id)
    return PayoutList(items=[PayoutView.from_model(item) for item in items])


@router.post("/payouts/{payout_id}/review", response_model=PayoutResponse)
async def admin_review_payout(
    payout_id: int,
    payload: ReviewRequest,
    principal: Principal = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutResponse:
    payout = await orchestrator.review_payout(
        session,
        payout_id=payout_id,
        action=payload.action,
        reviewer=principal.subject,
        reason=payload.reason,
    )
    await invalidate_program_stats()
    return PayoutResponse(payout=PayoutView.from_model(payout))


@router.post("/payouts/{payout_id}/execute", response_model=PayoutResponse)
async def admin_execute_payout(
    payout_id: int,
    session: AsyncSession = Depends(get_db_session),
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutResponse:
    try:
        payout = await orchestrator.execute_payout(session, payout_id)
    finally:
        # failed тоже меняет сводку
        await invalidate_program_stats()
    return PayoutResponse(payout=PayoutView.from_model(payout))


@router.get("/export")
async def admin_export_referrals(
    status: Optional[str] = Query(None),
    referrer_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_db_session),
) -> Response:
    items, _total = await list_referrals(session, status=status, referrer_id=referrer_id, limit=None)
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for item in items:
        writer.writerow(
            [
                item.id,
                item.referrer_id,
                item.referral_code,
                item.professional_id,
                item.referred_email,
                item.subscription_id,
                item.status,
                from_cents(item.subscription_amount_cents),
                from_cents(item.commission_cents),
                item.currency,
                item.country,
                _iso(item.probation_ends_at),
                _iso(item.eligible_at),
                item.payout_id or "",
                _iso(item.paid_at),
                item.cancellation_reason or "",
                _iso(item.created_at),
            ]
        )
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="referrals.csv"'},
    )


@router.post("/verify-now", response_model=VerificationRunResponse)
async def admin_verify_now(
    scheduler: VerificationScheduler = Depends(get_verification_scheduler),
) -> VerificationRunResponse:
    summary = await scheduler.run_once()
    await invalidate_program_stats()
    return VerificationRunResponse(**summary.as_dict())


@router.get("/stats")
async def admin_program_stats(session: AsyncSession = Depends(get_db_session)) -> dict[str, Any]:
    stats = await cached_call(
        STATS_CACHE_KEY,
        get_settings().cache.ttl_seconds,
        lambda: _collect_program_stats(session),
    )
    return {"ok": True, **stats}


@toggle_router.post("/feature", response_model=FeatureToggleResponse)
async def admin_set_feature(
    payload: FeatureToggleRequest,
    principal: Principal = Depends(require_admin),
    toggle: FeatureToggle = Depends(get_feature_toggle),
) -> FeatureToggleResponse:
    return FeatureToggleResponse(enabled=toggle.set(payload.enabled, actor=principal.subject))


async def _collect_program_stats(session: AsyncSession) -> dict[str, Any]:
    commissions: dict[str, dict[str, str]] = defaultdict(dict)
    for (currency, status), cents in (await commission_sums(session)).items():
        commissions[currency][status] = str(from_cents(cents))
    return {
        "referrers": {
            status: await count_referrers(session, status=status) for status in ReferrerStatus.ALL
        },
        "referrals": await status_counts(session),
        "commissions": dict(commissions),
        "pending_social_verifications": await count_verifications(
            session, status=VerificationStatus.PENDING
        ),
        "payouts": {status: await count_payouts(session, status=status) for status in PayoutStatus.ALL},
    }


def _iso(value) -> str:
    value = as_utc(value)
    return value.isoformat() if value else ""


__all__ = ["router", "toggle_router"]
