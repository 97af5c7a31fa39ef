"""Mission API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.auth.dependencies import get_current_user_id
from shamba.database import get_session
from shamba.db.models import UserMission
from shamba.dependencies import get_redis_dep
from shamba.missions.mission_service import (
    abandon_mission,
    complete_step,
    get_user_mission,
    list_missions,
    list_user_missions,
    start_mission,
)
from shamba.missions.schemas import (
    CompleteStepRequest,
    MissionListResponse,
    MissionResponse,
    StartMissionRequest,
    StepCompletionResponse,
    StepProgressResponse,
    UserMissionListResponse,
    UserMissionResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Missions"])


def _build_user_mission_response(um: UserMission, with_steps: bool = True) -> UserMissionResponse:
    return UserMissionResponse(
        id=um.id,
        mission_id=um.mission_id,
        mission_name=um.mission.name,
        crop_type=um.mission.crop_type,
        field_id=um.field_key or None,
        status=um.status,
        current_step=um.current_step,
        completed_steps=um.completed_steps,
        total_steps=um.total_steps,
        progress_percentage=um.progress_percentage,
        started_at=um.started_at,
        target_date=um.target_date,
        completed_at=um.completed_at,
        xp_earned=um.xp_earned,
        points_earned=um.points_earned,
        steps=[StepProgressResponse.model_validate(s) for s in um.steps] if with_steps else [],
    )


# ── Public endpoints ──


@router.get("/missions", response_model=MissionListResponse)
async def list_missions_endpoint(
    crop_type: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_session),
):
    missions = await list_missions(db, crop_type)
    return MissionListResponse(missions=[MissionResponse.model_validate(m) for m in missions])


# ── Authenticated endpoints ──


@router.post("/missions/{mission_id}/start", response_model=UserMissionResponse, status_code=201)
async def start_mission_endpoint(
    mission_id: int,
    body: StartMissionRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Start a mission. 409 if the same mission is already active for the field."""
    user_mission = await start_mission(db, user_id, mission_id, body.field_id if body else None)
    await db.commit()
    return _build_user_mission_response(await get_user_mission(db, user_id, user_mission.id))


@router.get("/users/me/missions", response_model=UserMissionListResponse)
async def list_my_missions(
    status: str | None = Query(None, pattern="^(active|completed|failed|abandoned)$"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    missions = await list_user_missions(db, user_id, status)
    return UserMissionListResponse(missions=[_build_user_mission_response(m, with_steps=False) for m in missions])


@router.get("/users/me/missions/{user_mission_id}", response_model=UserMissionResponse)
async def get_my_mission(
    user_mission_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    return _build_user_mission_response(await get_user_mission(db, user_id, user_mission_id))


@router.post(
    "/users/me/missions/{user_mission_id}/steps/{step_index}/complete",
    response_model=StepCompletionResponse,
)
async def complete_step_endpoint(
    user_mission_id: int,
    step_index: int,
    body: CompleteStepRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Complete one step. Repeating a completed step is a no-op."""
    result = await complete_step(
        db, redis, user_id, user_mission_id, step_index,
        evidence_url=body.evidence_url if body else None,
        notes=body.notes if body else None,
    )
    await db.commit()
    return StepCompletionResponse.model_validate(result)


@router.post("/users/me/missions/{user_mission_id}/abandon", response_model=UserMissionResponse)
async def abandon_mission_endpoint(
    user_mission_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    user_mission = await abandon_mission(db, user_id, user_mission_id)
    await db.commit()
    return _build_user_mission_response(user_mission)
