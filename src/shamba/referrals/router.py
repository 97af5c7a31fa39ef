"""Referral API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.auth.dependencies import get_current_user_id
from shamba.database import get_session
from shamba.dependencies import get_redis_dep
from shamba.referrals.referral_service import (
    activate_referral,
    check_milestones,
    create_referral,
    get_referral_stats,
    record_referral_share,
)
from shamba.referrals.schemas import (
    ActivateReferralRequest,
    ActivationResponse,
    CreateReferralRequest,
    MilestoneCheckResponse,
    ReferralResponse,
    ReferralStatsResponse,
    ShareRequest,
    ShareResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Referrals"])


@router.get("/users/me/referrals", response_model=ReferralStatsResponse)
async def get_my_referrals(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Referral code (created on first call), counters and referred users."""
    stats = await get_referral_stats(db, user_id)
    await db.commit()
    stats["referrals"] = [ReferralResponse.model_validate(r) for r in stats["referrals"]]
    return ReferralStatsResponse(**stats)


@router.post("/referrals", response_model=ReferralResponse, status_code=201)
async def create_referral_endpoint(
    body: CreateReferralRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Register the caller as referred by the owner of ``code``."""
    referral = await create_referral(db, body.code, user_id)
    await db.commit()
    return ReferralResponse.model_validate(referral)


@router.post("/users/me/referrals/activate", response_model=ActivationResponse)
async def activate_my_referral(
    body: ActivateReferralRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Activate the caller's pending referral. 404 when there is none."""
    result = await activate_referral(db, redis, user_id, body.first_action)
    await db.commit()
    return ActivationResponse(**result)


@router.post("/users/me/referrals/milestones/check", response_model=MilestoneCheckResponse)
async def check_my_milestones(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    claimed = await check_milestones(db, redis, user_id)
    await db.commit()
    return MilestoneCheckResponse(claimed=claimed)


@router.post("/users/me/referrals/shares", response_model=ShareResponse, status_code=201)
async def record_my_share(
    body: ShareRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    result = await record_referral_share(db, redis, user_id, body.channel)
    await db.commit()
    return ShareResponse(**result)
