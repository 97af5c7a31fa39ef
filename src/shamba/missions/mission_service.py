"""Seasonal farm missions: multi-step guided tasks with per-step rewards.

Steps complete strictly in index order. Every status change is a
compare-and-set, so a repeated or concurrent completion never pays twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.challenges.challenge_service import Subject, update_progress
from shamba.config import get_settings
from shamba.db.models import Mission, MissionStepProgress, UserMission, UserPerk
from shamba.errors import (
    ConflictError,
    MissionAlreadyActiveError,
    NotFoundError,
    StepOutOfOrderError,
    ValidationError,
)
from shamba.gamification.badge_service import award_badge
from shamba.gamification.farmer_score import recalculate_farmer_score
from shamba.gamification.points_service import earn_points
from shamba.gamification.xp_service import grant_xp, increment_stat, publish_event

logger = logging.getLogger(__name__)

COMPLETION_PERKS = ("priority_market_access", "double_referral_points")


@dataclass
class StepCompletion:
    """Result of CompleteStep."""

    user_mission_id: int
    step_index: int
    already_completed: bool = False
    xp_awarded: int = 0
    points_awarded: int = 0
    completed_steps: int = 0
    total_steps: int = 0
    progress_percentage: float = 0.0
    mission_completed: bool = False
    mission_xp: int = 0
    mission_points: int = 0
    badge: str | None = None
    perks: list[str] = field(default_factory=list)


async def list_missions(db: AsyncSession, crop_type: str | None = None) -> list[Mission]:
    """Active mission templates, optionally filtered by crop."""
    query = select(Mission).where(Mission.is_active.is_(True))
    if crop_type:
        query = query.where(Mission.crop_type == crop_type)
    result = await db.execute(query.order_by(Mission.id))
    return list(result.scalars().all())


async def get_mission(db: AsyncSession, mission_id: int) -> Mission | None:
    result = await db.execute(
        select(Mission).where(Mission.id == mission_id, Mission.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def get_user_mission(db: AsyncSession, user_id: str, user_mission_id: int) -> UserMission:
    """Load a user's mission instance with its steps, fresh from the database."""
    result = await db.execute(
        select(UserMission)
        .where(UserMission.id == user_mission_id, UserMission.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    user_mission = result.unique().scalar_one_or_none()
    if user_mission is None:
        raise NotFoundError("Mission not found")
    return user_mission


async def list_user_missions(
    db: AsyncSession,
    user_id: str,
    status: str | None = None,
) -> list[UserMission]:
    query = select(UserMission).where(UserMission.user_id == user_id)
    if status:
        query = query.where(UserMission.status == status)
    result = await db.execute(
        query.order_by(UserMission.started_at.desc(), UserMission.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.unique().scalars().all())


async def start_mission(
    db: AsyncSession,
    user_id: str,
    mission_id: int,
    field_id: str | None = None,
    now: datetime | None = None,
) -> UserMission:
    """Start a mission, optionally for one of the user's fields."""
    if now is None:
        now = datetime.now(timezone.utc)
    mission = await get_mission(db, mission_id)
    if mission is None:
        raise NotFoundError("Mission not found")
    if not mission.steps:
        raise ValidationError("Mission has no steps")

    field_key = field_id or ""
    existing = await db.execute(
        select(UserMission.id).where(
            UserMission.user_id == user_id,
            UserMission.mission_id == mission.id,
            UserMission.field_key == field_key,
            UserMission.status == "active",
        )
    )
    if existing.first() is not None:
        raise MissionAlreadyActiveError()

    steps = [
        MissionStepProgress(
            step_index=index,
            step_name=step.get("name", f"Step {index + 1}"),
            step_description=step.get("description"),
            status="in_progress" if index == 0 else "pending",
            due_date=now + timedelta(days=int(step.get("day_offset", 0))),
            xp_awarded=0,
        )
        for index, step in enumerate(mission.steps)
    ]
    user_mission = UserMission(
        user_id=user_id,
        mission=mission,
        field_key=field_key,
        status="active",
        current_step=0,
        completed_steps=0,
        total_steps=len(steps),
        progress_percentage=0.0,
        started_at=now,
        target_date=now + timedelta(days=mission.duration_days),
        xp_earned=0,
        points_earned=0,
        steps=steps,
    )

    # The partial unique index is the final word on concurrent starts
    db.add(user_mission)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise MissionAlreadyActiveError() from None

    logger.info("Mission %s started by %s (field=%r)", mission.slug, user_id, field_key)
    return user_mission


async def complete_step(
    db: AsyncSession,
    redis: object,
    user_id: str,
    user_mission_id: int,
    step_index: int,
    evidence_url: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> StepCompletion:
    """Complete one step; completing the last step completes the mission."""
    if now is None:
        now = datetime.now(timezone.utc)
    settings = get_settings()

    user_mission = await get_user_mission(db, user_id, user_mission_id)
    if step_index < 0 or step_index >= user_mission.total_steps:
        raise ValidationError(f"Step index {step_index} out of range")

    steps = {s.step_index: s for s in user_mission.steps}
    step = steps.get(step_index)
    if step is None:
        raise NotFoundError("Step not found")

    result = StepCompletion(
        user_mission_id=user_mission.id,
        step_index=step_index,
        completed_steps=user_mission.completed_steps,
        total_steps=user_mission.total_steps,
        progress_percentage=round(user_mission.progress_percentage, 2),
    )
    if step.status == "completed":
        result.already_completed = True
        return result
    if user_mission.status != "active":
        raise ConflictError(f"Mission is {user_mission.status}")
    for index in range(step_index):
        if steps[index].status != "completed":
            raise StepOutOfOrderError(step_index)

    step_defs = user_mission.mission.steps or []
    step_def = step_defs[step_index] if step_index < len(step_defs) else {}
    step_xp = int(step_def.get("xp_reward") or settings.mission_step_xp)

    claimed = await db.execute(
        update(MissionStepProgress)
        .where(MissionStepProgress.id == step.id, MissionStepProgress.status != "completed")
        .values(
            status="completed",
            completed_at=now,
            evidence_url=evidence_url,
            notes=notes,
            xp_awarded=step_xp,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        result.already_completed = True
        return result

    if step_xp > 0:
        await grant_xp(
            db, redis, user_id, step_xp, "mission_step",
            source_id=f"{user_mission.id}:{step_index}",
            description=f"{user_mission.mission.name}: {step.step_name}",
            idempotency_key=f"mission_step:{user_mission.id}:{step_index}",
        )
        result.xp_awarded = step_xp

    if evidence_url:
        bonus_xp = settings.mission_evidence_bonus_xp
        bonus_points = settings.mission_evidence_bonus_points
        if bonus_xp > 0:
            await grant_xp(
                db, redis, user_id, bonus_xp, "mission_evidence",
                source_id=f"{user_mission.id}:{step_index}",
                description="Photo evidence bonus",
                idempotency_key=f"mission_evidence:{user_mission.id}:{step_index}",
            )
            result.xp_awarded += bonus_xp
        if bonus_points > 0:
            await earn_points(
                db, user_id, bonus_points, "mission_evidence",
                reference_id=f"{user_mission.id}:{step_index}",
                description="Photo evidence bonus",
            )
            result.points_awarded += bonus_points
        await increment_stat(db, user_id, "photo_uploads")

    await db.execute(
        update(MissionStepProgress)
        .where(
            MissionStepProgress.user_mission_id == user_mission.id,
            MissionStepProgress.step_index == step_index + 1,
            MissionStepProgress.status == "pending",
        )
        .values(status="in_progress")
        .execution_options(synchronize_session=False)
    )

    counted = await db.execute(
        update(UserMission)
        .where(UserMission.id == user_mission.id)
        .values(
            completed_steps=UserMission.completed_steps + 1,
            current_step=min(step_index + 1, user_mission.total_steps - 1),
            progress_percentage=(UserMission.completed_steps + 1) * 100.0 / UserMission.total_steps,
            xp_earned=UserMission.xp_earned + result.xp_awarded,
            points_earned=UserMission.points_earned + result.points_awarded,
        )
        .returning(UserMission.completed_steps, UserMission.total_steps)
        .execution_options(synchronize_session=False)
    )
    completed_steps, total_steps = counted.one()
    result.completed_steps = completed_steps
    result.total_steps = total_steps
    result.progress_percentage = round(completed_steps / total_steps * 100, 2)

    if completed_steps >= total_steps:
        await _complete_mission(db, redis, user_mission, result, now)

    await db.flush()
    return result


async def _complete_mission(
    db: AsyncSession,
    redis: object,
    user_mission: UserMission,
    result: StepCompletion,
    now: datetime,
) -> None:
    flipped = await db.execute(
        update(UserMission)
        .where(
            UserMission.id == user_mission.id,
            UserMission.status == "active",
            UserMission.completed_steps >= UserMission.total_steps,
        )
        .values(status="completed", completed_at=now, progress_percentage=100.0)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        return

    mission = user_mission.mission
    user_id = user_mission.user_id
    mission_xp = max(mission.xp_reward or 0, 0)
    mission_points = max(mission.points_reward or 0, 0)
    if mission_xp > 0:
        await grant_xp(
            db, redis, user_id, mission_xp, "mission_complete",
            source_id=str(user_mission.id),
            description=f"Completed mission: {mission.name}",
            idempotency_key=f"mission_complete:{user_mission.id}",
        )
    if mission_points > 0:
        await earn_points(
            db, user_id, mission_points, "mission_complete",
            reference_id=str(user_mission.id),
            description=f"Completed mission: {mission.name}",
        )
    if mission_xp or mission_points:
        await db.execute(
            update(UserMission)
            .where(UserMission.id == user_mission.id)
            .values(
                xp_earned=UserMission.xp_earned + mission_xp,
                points_earned=UserMission.points_earned + mission_points,
            )
            .execution_options(synchronize_session=False)
        )

    badge = f"seasonal_{(mission.crop_type or mission.slug).lower().replace(' ', '_')}_master"
    await award_badge(db, redis, user_id, badge, "mission", metadata={"mission": mission.slug})

    perk_days = get_settings().mission_perk_days
    for perk in COMPLETION_PERKS:
        db.add(UserPerk(
            user_id=user_id,
            perk=perk,
            source=f"mission:{mission.slug}",
            granted_at=now,
            expires_at=now + timedelta(days=perk_days),
        ))

    await increment_stat(db, user_id, "missions_completed")
    await update_progress(db, redis, Subject.individual(user_id), "mission_complete", now=now)
    await recalculate_farmer_score(db, user_id, now.date())

    result.mission_completed = True
    result.mission_xp = mission_xp
    result.mission_points = mission_points
    result.badge = badge
    result.perks = list(COMPLETION_PERKS)

    logger.info("Mission %s completed by %s", mission.slug, user_id)
    await publish_event(redis, "pubsub:mission_completed", {
        "user_id": user_id,
        "mission": mission.slug,
        "xp_reward": mission_xp,
        "points_reward": mission_points,
    })


async def abandon_mission(db: AsyncSession, user_id: str, user_mission_id: int) -> UserMission:
    user_mission = await get_user_mission(db, user_id, user_mission_id)
    flipped = await db.execute(
        update(UserMission)
        .where(UserMission.id == user_mission.id, UserMission.status == "active")
        .values(status="abandoned")
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        raise ConflictError(f"Mission is {user_mission.status}")
    logger.info("Mission instance %d abandoned by %s", user_mission.id, user_id)
    return await get_user_mission(db, user_id, user_mission_id)


async def has_active_perk(
    db: AsyncSession,
    user_id: str,
    perk: str,
    now: datetime | None = None,
) -> bool:
    if now is None:
        now = datetime.now(timezone.utc)
    result = await db.execute(
        select(UserPerk.id).where(
            UserPerk.user_id == user_id,
            UserPerk.perk == perk,
            UserPerk.expires_at > now,
        )
    )
    return result.first() is not None


async def list_active_perks(db: AsyncSession, user_id: str, now: datetime | None = None) -> list[UserPerk]:
    if now is None:
        now = datetime.now(timezone.utc)
    result = await db.execute(
        select(UserPerk)
        .where(UserPerk.user_id == user_id, UserPerk.expires_at > now)
        .order_by(UserPerk.expires_at)
    )
    return list(result.scalars().all())
