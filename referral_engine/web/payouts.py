"""Заявка реферера на выплату."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from .deps import get_db_session, get_payout_orchestrator, require_enabled
from .schemas import PayoutRequest, PayoutResponse, PayoutView
from referral_engine.services.core.payouts import PayoutOrchestrator
from referral_engine.utils.cache import invalidate_program_stats

router = APIRouter(prefix="/api/payouts", tags=["payouts"], dependencies=[Depends(require_enabled)])


@router.post("/request", response_model=PayoutResponse, status_code=status.HTTP_201_CREATED)
async def request_payout(
    payload: PayoutRequest,
    session: AsyncSession = Depends(get_db_session),
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutResponse:
    payout = await orchestrator.request_payout(
        session,
        referrer_id=payload.referrer_id,
        amount=payload.amount,
        method=payload.method,
        social_proof_url=payload.social_proof_url,
    )
    await invalidate_program_stats()
    return PayoutResponse(payout=PayoutView.from_model(payout))


__all__ = ["router"]
