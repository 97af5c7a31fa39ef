"""Team API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.auth.dependencies import get_current_user_id
from shamba.database import get_session
from shamba.db.models import Team
from shamba.errors import NotFoundError
from shamba.teams.schemas import (
    CreateTeamRequest,
    JoinTeamRequest,
    LeaveTeamResponse,
    TeamAchievementResponse,
    TeamListResponse,
    TeamMemberResponse,
    TeamResponse,
)
from shamba.teams.team_service import (
    create_team,
    get_membership,
    get_team,
    get_team_members,
    get_team_stats,
    join_team,
    leave_team,
    list_team_achievements,
    list_user_teams,
)

router = APIRouter(prefix="/api/v1", tags=["Teams"])


# ── Helper ──


async def _build_team_response(
    db: AsyncSession,
    team: Team,
    role: str | None = None,
    detailed: bool = False,
) -> TeamResponse:
    """Build a TeamResponse. Members and achievements only when ``detailed``."""
    stats = await get_team_stats(db, team.id)
    response = TeamResponse(
        id=team.id,
        name=team.name,
        description=team.description,
        team_type=team.team_type,
        leader_id=team.leader_id,
        location=team.location,
        member_count=team.member_count,
        max_members=team.max_members,
        total_xp=stats.total_xp if stats else 0,
        challenges_completed=stats.challenges_completed if stats else 0,
        role=role,
        invite_code=team.invite_code if role else None,
    )
    if detailed:
        response.members = [TeamMemberResponse.model_validate(m) for m in await get_team_members(db, team.id)]
        response.achievements = [
            TeamAchievementResponse.model_validate(a) for a in await list_team_achievements(db, team.id)
        ]
    return response


# ── Endpoints ──


@router.post("/teams", response_model=TeamResponse, status_code=201)
async def create_team_endpoint(
    body: CreateTeamRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Create a team. The creator becomes its leader."""
    team = await create_team(db, user_id, body.name, body.team_type, body.description, body.location)
    await db.commit()
    return await _build_team_response(db, team, role="leader", detailed=True)


@router.post("/teams/join", response_model=TeamResponse)
async def join_team_endpoint(
    body: JoinTeamRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    member = await join_team(db, user_id, body.invite_code)
    await db.commit()
    team = await get_team(db, member.team_id)
    if team is None:
        raise NotFoundError("Team not found")
    await db.refresh(team)
    return await _build_team_response(db, team, role=member.role, detailed=True)


@router.post("/teams/{team_id}/leave", response_model=LeaveTeamResponse)
async def leave_team_endpoint(
    team_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Leave a team. A leader alone in the team deletes it."""
    deleted = await leave_team(db, user_id, team_id)
    await db.commit()
    return LeaveTeamResponse(left=True, team_deleted=deleted)


@router.get("/users/me/teams", response_model=TeamListResponse)
async def list_my_teams(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    teams = [await _build_team_response(db, team, role=member.role) for team, member in await list_user_teams(db, user_id)]
    return TeamListResponse(teams=teams)


@router.get("/teams/{team_id}", response_model=TeamResponse)
async def get_team_endpoint(
    team_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Team detail. The invite code and roster are shown to members only."""
    team = await get_team(db, team_id)
    if team is None:
        raise NotFoundError("Team not found")
    membership = await get_membership(db, team_id, user_id)
    role = membership.role if membership else None
    return await _build_team_response(db, team, role=role, detailed=role is not None)
