"""Маршруты реферера: регистрация, трекинг, кабинет, social-proof."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .deps import (
    get_db_session,
    get_lifecycle,
    get_referral_service,
    require_enabled,
    require_referrer_or_admin,
)
from .schemas import (
    CodeValidationResponse,
    DashboardResponse,
    PayoutAccountRequest,
    PayoutAccountResponse,
    PayoutView,
    ReferralView,
    ReferrerResponse,
    ReferrerView,
    RegisterRequest,
    SocialVerificationRequest,
    SocialVerificationResponse,
    SocialVerificationView,
    TrackRequest,
    TrackResponse,
    ValidateCodeRequest,
)
from referral_engine.models import as_utc
from referral_engine.services.core.commission import from_cents
from referral_engine.services.core.lifecycle import LifecycleManager
from referral_engine.services.core.referral_service import ReferralService
from referral_engine.utils.cache import invalidate_program_stats

router = APIRouter(prefix="/api/referrals", tags=["referrals"], dependencies=[Depends(require_enabled)])


@router.post("/register", response_model=ReferrerResponse, status_code=status.HTTP_201_CREATED)
async def register_referrer(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_db_session),
    service: ReferralService = Depends(get_referral_service),
) -> ReferrerResponse:
    referrer = await service.register(
        session, email=payload.email, name=payload.name, country=payload.country
    )
    await invalidate_program_stats()
    return ReferrerResponse(referrer=ReferrerView.from_model(referrer))


@router.post("/validate", response_model=CodeValidationResponse)
async def validate_code(
    payload: ValidateCodeRequest,
    session: AsyncSession = Depends(get_db_session),
    service: ReferralService = Depends(get_referral_service),
) -> CodeValidationResponse:
    result = await service.validate_code(session, code=payload.code, email=payload.email)
    return CodeValidationResponse(
        valid=result.valid,
        reason=result.reason,
        referrer_id=result.referrer_id,
        referrer_name=result.referrer_name,
    )


@router.post("/track", response_model=TrackResponse, status_code=status.HTTP_201_CREATED)
async def track_referral(
    payload: TrackRequest,
    session: AsyncSession = Depends(get_db_session),
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> TrackResponse:
    """Вызывается сервисом профессионалов после первой успешной оплаты подписки."""

    referral = await lifecycle.attribute_referral(
        session,
        code=payload.code,
        professional_id=payload.professional_id,
        referred_email=payload.email,
        subscription_id=payload.subscription_id,
        subscription_amount=payload.amount,
        country=payload.country,
    )
    await invalidate_program_stats()
    return TrackResponse(
        referral_id=referral.id,
        commission=from_cents(referral.commission_cents),
        currency=referral.currency,
        probation_ends_at=as_utc(referral.probation_ends_at),
    )


@router.get("/dashboard/{referrer_id}", response_model=DashboardResponse)
async def dashboard(
    referrer_id: int,
    session: AsyncSession = Depends(get_db_session),
    service: ReferralService = Depends(get_referral_service),
) -> DashboardResponse:
    snapshot = await service.dashboard(session, referrer_id)
    return DashboardResponse(
        referrer=ReferrerView.from_model(snapshot.referrer),
        referrals=[ReferralView.from_model(item) for item in snapshot.referrals],
        payouts=[PayoutView.from_model(item) for item in snapshot.payouts],
    )


@router.post(
    "/social-verification",
    response_model=SocialVerificationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_social_verification(
    payload: SocialVerificationRequest,
    session: AsyncSession = Depends(get_db_session),
    service: ReferralService = Depends(get_referral_service),
) -> SocialVerificationResponse:
    verification = await service.submit_social_verification(
        session,
        referrer_id=payload.referrer_id,
        platform=payload.platform,
        post_url=payload.post_url,
        screenshot_url=payload.screenshot_url,
    )
    await invalidate_program_stats()
    return SocialVerificationResponse(verification=SocialVerificationView.from_model(verification))


@router.post(
    "/{referrer_id}/payout-account",
    response_model=PayoutAccountResponse,
    dependencies=[Depends(require_referrer_or_admin)],
)
async def setup_payout_account(
    referrer_id: int,
    payload: PayoutAccountRequest,
    session: AsyncSession = Depends(get_db_session),
    service: ReferralService = Depends(get_referral_service),
) -> PayoutAccountResponse:
    referrer, link = await service.setup_payout_account(
        session,
        referrer_id=referrer_id,
        method=payload.method,
        paypal_email=payload.paypal_email,
    )
    return PayoutAccountResponse(referrer=ReferrerView.from_model(referrer), onboarding_url=link)


__all__ = ["router"]
