"""Team business logic.

Rules:
- Max members per team from settings (default 50)
- A user may belong to several teams
- Invite codes are server-generated, 6-char A-Z0-9
- The leader cannot leave while other members remain
- A leader leaving alone deletes the team
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.codes import TEAM_INVITE_LENGTH, generate_unique_code, normalize_code
from shamba.config import get_settings
from shamba.db.models import Team, TeamAchievement, TeamMember, TeamStats
from shamba.errors import ConflictError, NotFoundError, NotTeamMemberError, TeamFullError, ValidationError

logger = logging.getLogger(__name__)

TEAM_TYPES = frozenset({"cooperative", "church", "youth_group", "village", "other"})


async def get_team(db: AsyncSession, team_id: int) -> Team | None:
    """Get an active team by ID."""
    result = await db.execute(select(Team).where(Team.id == team_id, Team.is_active.is_(True)))
    return result.scalar_one_or_none()


async def get_membership(db: AsyncSession, team_id: int, user_id: str) -> TeamMember | None:
    result = await db.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def require_membership(
    db: AsyncSession,
    team_id: int,
    user_id: str,
    role: str | None = None,
) -> TeamMember:
    """Return the caller's membership or raise.

    With ``role`` set, the member must hold exactly that role.
    """
    if await get_team(db, team_id) is None:
        raise NotFoundError("Team not found")
    membership = await get_membership(db, team_id, user_id)
    if membership is None:
        raise NotTeamMemberError()
    if role is not None and membership.role != role:
        raise NotTeamMemberError()
    return membership


async def create_team(
    db: AsyncSession,
    leader_id: str,
    name: str,
    team_type: str = "other",
    description: str | None = None,
    location: str | None = None,
) -> Team:
    """Create a new team. The creator becomes the leader."""
    name = name.strip()
    if not name:
        raise ValidationError("Team name is required")
    if team_type not in TEAM_TYPES:
        raise ValidationError(f"Unknown team type: {team_type}")

    now = datetime.now(timezone.utc)
    team = Team(
        name=name,
        description=description,
        team_type=team_type,
        leader_id=leader_id,
        invite_code=await generate_unique_code(db, Team.invite_code, TEAM_INVITE_LENGTH),
        location=location,
        max_members=get_settings().team_max_members,
        member_count=1,
        created_at=now,
        updated_at=now,
    )
    db.add(team)
    await db.flush()

    db.add(TeamMember(team_id=team.id, user_id=leader_id, role="leader", joined_at=now))
    db.add(TeamStats(team_id=team.id, updated_at=now))
    await db.flush()

    logger.info("Team created: %s (id=%d, leader=%s)", name, team.id, leader_id)
    return team


async def join_team(db: AsyncSession, user_id: str, invite_code: str) -> TeamMember:
    """Join a team using an invite code."""
    code = normalize_code(invite_code)
    result = await db.execute(
        select(Team).where(Team.invite_code == code, Team.is_active.is_(True))
    )
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError("Invalid invite code")

    if await get_membership(db, team.id, user_id) is not None:
        raise ConflictError("You are already a member of this team")

    # Seat claimed in SQL so two joins cannot both take the last seat
    claimed = await db.execute(
        update(Team)
        .where(Team.id == team.id, Team.member_count < Team.max_members)
        .values(member_count=Team.member_count + 1, updated_at=datetime.now(timezone.utc))
    )
    if claimed.rowcount != 1:
        raise TeamFullError(f"This team is full ({team.max_members} members maximum)")

    member = TeamMember(
        team_id=team.id,
        user_id=user_id,
        role="member",
        joined_at=datetime.now(timezone.utc),
    )
    db.add(member)
    await db.flush()
    logger.info("User %s joined team %d via invite code", user_id, team.id)
    return member


async def leave_team(db: AsyncSession, user_id: str, team_id: int) -> bool:
    """Leave a team. Returns True if the team was deleted."""
    membership = await require_membership(db, team_id, user_id)
    team = await get_team(db, team_id)
    if team is None:
        raise NotFoundError("Team not found")

    if membership.role == "leader":
        if team.member_count > 1:
            raise ConflictError("Team leader cannot leave while other members remain")
        await db.execute(delete(TeamMember).where(TeamMember.team_id == team_id))
        await db.execute(delete(TeamStats).where(TeamStats.team_id == team_id))
        await db.execute(delete(TeamAchievement).where(TeamAchievement.team_id == team_id))
        await db.delete(team)
        await db.flush()
        logger.info("Team %d deleted by leader %s", team_id, user_id)
        return True

    await db.delete(membership)
    await db.execute(
        update(Team)
        .where(Team.id == team_id)
        .values(member_count=Team.member_count - 1, updated_at=datetime.now(timezone.utc))
    )
    await db.flush()
    logger.info("User %s left team %d", user_id, team_id)
    return False


async def list_user_teams(db: AsyncSession, user_id: str) -> list[tuple[Team, TeamMember]]:
    """Teams the user belongs to, oldest membership first."""
    result = await db.execute(
        select(Team, TeamMember)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == user_id, Team.is_active.is_(True))
        .order_by(TeamMember.joined_at.asc(), Team.id.asc())
    )
    return [(row.Team, row.TeamMember) for row in result]


async def list_user_team_ids(db: AsyncSession, user_id: str) -> list[int]:
    result = await db.execute(
        select(TeamMember.team_id)
        .join(Team, Team.id == TeamMember.team_id)
        .where(TeamMember.user_id == user_id, Team.is_active.is_(True))
        .order_by(TeamMember.team_id)
    )
    return list(result.scalars().all())


async def get_team_members(db: AsyncSession, team_id: int) -> list[TeamMember]:
    result = await db.execute(
        select(TeamMember)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.joined_at.asc(), TeamMember.id.asc())
    )
    return list(result.scalars().all())


async def get_team_stats(db: AsyncSession, team_id: int) -> TeamStats | None:
    result = await db.execute(
        select(TeamStats)
        .where(TeamStats.team_id == team_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_team_achievements(db: AsyncSession, team_id: int) -> list[TeamAchievement]:
    result = await db.execute(
        select(TeamAchievement)
        .where(TeamAchievement.team_id == team_id)
        .order_by(TeamAchievement.earned_at.asc())
    )
    return list(result.scalars().all())
