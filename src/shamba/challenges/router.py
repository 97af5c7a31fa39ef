"""Challenge API endpoints (individual and team)."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.auth.dependencies import get_current_user_id
from shamba.challenges.challenge_service import Subject, list_challenges, update_progress
from shamba.challenges.schemas import (
    ChallengeListResponse,
    ChallengeProgressRequest,
    ChallengeProgressResponse,
    ChallengeResponse,
    ChallengeUpdateResponse,
)
from shamba.database import get_session
from shamba.dependencies import get_redis_dep
from shamba.teams.team_service import require_membership

router = APIRouter(prefix="/api/v1", tags=["Challenges"])


@router.get("/challenges", response_model=ChallengeListResponse)
async def list_my_challenges(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Current windows first, then past ones."""
    views = await list_challenges(db, Subject.individual(user_id))
    return ChallengeListResponse(challenges=[ChallengeResponse(**v) for v in views])


@router.post("/challenges/progress", response_model=ChallengeProgressResponse)
async def report_my_progress(
    body: ChallengeProgressRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    updates = await update_progress(db, redis, Subject.individual(user_id), body.action_key, body.increment)
    await db.commit()
    return ChallengeProgressResponse(updates=[ChallengeUpdateResponse.model_validate(u) for u in updates])


@router.get("/teams/{team_id}/challenges", response_model=ChallengeListResponse)
async def list_team_challenges(
    team_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Team challenges. Members only."""
    await require_membership(db, team_id, user_id)
    views = await list_challenges(db, Subject.team(team_id))
    return ChallengeListResponse(challenges=[ChallengeResponse(**v) for v in views])


@router.post("/teams/{team_id}/challenges/progress", response_model=ChallengeProgressResponse)
async def report_team_progress(
    team_id: int,
    body: ChallengeProgressRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Advance team challenges. Members only; completion pays every member."""
    await require_membership(db, team_id, user_id)
    updates = await update_progress(db, redis, Subject.team(team_id), body.action_key, body.increment)
    await db.commit()
    return ChallengeProgressResponse(updates=[ChallengeUpdateResponse.model_validate(u) for u in updates])
