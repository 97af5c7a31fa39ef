"""Challenge progress for individuals and teams.

One implementation serves both scopes; the ``Subject`` decides which
templates apply and who gets paid. Progress rows are keyed by
(subject, template, window) so a new week never inherits last week's count.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.challenges.windows import is_open, window_ends_on, window_key
from shamba.db.base import dialect_insert
from shamba.db.models import ChallengeDayMark, ChallengeProgress, ChallengeTemplate, TeamAchievement, TeamStats
from shamba.errors import ValidationError
from shamba.gamification.badge_service import award_badge
from shamba.gamification.points_service import earn_points
from shamba.gamification.xp_service import grant_xp, publish_event
from shamba.teams.team_service import get_team_members

logger = logging.getLogger(__name__)

INDIVIDUAL = "individual"
TEAM = "team"


@dataclass(frozen=True)
class Subject:
    """Who a challenge is tracked for: a single user or a team."""

    kind: str
    id: str

    @classmethod
    def individual(cls, user_id: str) -> Subject:
        return cls(INDIVIDUAL, user_id)

    @classmethod
    def team(cls, team_id: int) -> Subject:
        return cls(TEAM, str(team_id))

    @property
    def is_team(self) -> bool:
        return self.kind == TEAM


@dataclass
class ChallengeUpdate:
    """Outcome of one template touched by UpdateProgress."""

    template_id: int
    slug: str
    name: str
    window_key: str
    current_progress: int
    target_progress: int
    status: str
    counted: bool
    just_completed: bool = False
    xp_awarded: int = 0
    points_awarded: int = 0
    members_paid: int = 0


async def _open_templates(
    db: AsyncSession,
    subject: Subject,
    today: date,
    action_key: str | None = None,
) -> list[ChallengeTemplate]:
    conditions = [
        ChallengeTemplate.scope == subject.kind,
        ChallengeTemplate.is_active.is_(True),
        ChallengeTemplate.start_date <= today,
        or_(ChallengeTemplate.end_date.is_(None), ChallengeTemplate.end_date > today),
    ]
    if action_key is not None:
        conditions.append(ChallengeTemplate.target_action == action_key)
    result = await db.execute(
        select(ChallengeTemplate).where(*conditions).order_by(ChallengeTemplate.id)
    )
    return list(result.scalars().all())


async def _expire_stale(db: AsyncSession, subject: Subject, template_id: int, key: str) -> None:
    await db.execute(
        update(ChallengeProgress)
        .where(
            ChallengeProgress.subject_type == subject.kind,
            ChallengeProgress.subject_id == subject.id,
            ChallengeProgress.template_id == template_id,
            ChallengeProgress.window_key != key,
            ChallengeProgress.status == "active",
        )
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )


async def _get_progress(db: AsyncSession, progress_id: int) -> ChallengeProgress:
    result = await db.execute(
        select(ChallengeProgress)
        .where(ChallengeProgress.id == progress_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _get_or_create_progress(
    db: AsyncSession,
    subject: Subject,
    template: ChallengeTemplate,
    key: str,
    now: datetime,
) -> int:
    await db.execute(
        dialect_insert(db, ChallengeProgress)
        .values(
            subject_type=subject.kind,
            subject_id=subject.id,
            template_id=template.id,
            window_key=key,
            current_progress=0,
            target_progress=template.target_count,
            status="active",
            started_at=now,
        )
        .on_conflict_do_nothing(
            index_elements=["subject_type", "subject_id", "template_id", "window_key"]
        )
    )
    result = await db.execute(
        select(ChallengeProgress.id).where(
            ChallengeProgress.subject_type == subject.kind,
            ChallengeProgress.subject_id == subject.id,
            ChallengeProgress.template_id == template.id,
            ChallengeProgress.window_key == key,
        )
    )
    return result.scalar_one()


async def update_progress(
    db: AsyncSession,
    redis: object,
    subject: Subject,
    action_key: str,
    increment: int = 1,
    now: datetime | None = None,
) -> list[ChallengeUpdate]:
    """Advance every open template of the subject's scope that tracks ``action_key``.

    The increment is clamped to the target in SQL. Completion is a
    compare-and-set on ``status``, so the reward is paid by exactly one caller.
    """
    if isinstance(increment, bool) or not isinstance(increment, int) or increment < 1:
        raise ValidationError(f"Increment must be a positive integer, got {increment!r}")
    if now is None:
        now = datetime.now(timezone.utc)
    today = now.date()

    updates: list[ChallengeUpdate] = []
    for template in await _open_templates(db, subject, today, action_key):
        key = window_key(template, today)
        await _expire_stale(db, subject, template.id, key)
        progress_id = await _get_or_create_progress(db, subject, template, key, now)

        step = increment
        if template.counts_distinct_days:
            marked = await db.execute(
                dialect_insert(db, ChallengeDayMark)
                .values(progress_id=progress_id, activity_date=today)
                .on_conflict_do_nothing(index_elements=["progress_id", "activity_date"])
                .returning(ChallengeDayMark.id)
            )
            step = 1 if marked.scalar_one_or_none() is not None else 0

        advanced = False
        if step > 0:
            result = await db.execute(
                update(ChallengeProgress)
                .where(ChallengeProgress.id == progress_id, ChallengeProgress.status == "active")
                .values(
                    current_progress=case(
                        (
                            ChallengeProgress.current_progress + step > ChallengeProgress.target_progress,
                            ChallengeProgress.target_progress,
                        ),
                        else_=ChallengeProgress.current_progress + step,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            advanced = result.rowcount == 1

        flipped = await db.execute(
            update(ChallengeProgress)
            .where(
                ChallengeProgress.id == progress_id,
                ChallengeProgress.status == "active",
                ChallengeProgress.current_progress >= ChallengeProgress.target_progress,
            )
            .values(
                status="completed",
                completed_at=now,
                xp_awarded=template.xp_reward,
                points_awarded=template.points_reward,
            )
            .execution_options(synchronize_session=False)
        )

        outcome = ChallengeUpdate(
            template_id=template.id,
            slug=template.slug,
            name=template.name,
            window_key=key,
            current_progress=0,
            target_progress=template.target_count,
            status="active",
            counted=advanced,
        )
        if flipped.rowcount == 1:
            outcome.just_completed = True
            outcome.xp_awarded = template.xp_reward
            outcome.points_awarded = template.points_reward
            outcome.members_paid = await _pay_completion(db, redis, subject, template, progress_id)

        row = await _get_progress(db, progress_id)
        outcome.current_progress = row.current_progress
        outcome.target_progress = row.target_progress
        outcome.status = row.status
        updates.append(outcome)

    await db.flush()
    return updates


async def _pay_completion(
    db: AsyncSession,
    redis: object,
    subject: Subject,
    template: ChallengeTemplate,
    progress_id: int,
) -> int:
    """Pay the completion reward. Returns the number of users paid."""
    reference = f"challenge:{progress_id}"
    if not subject.is_team:
        await _pay_user(db, redis, subject.id, template, reference)
        if template.badge_name:
            await award_badge(
                db, redis, subject.id, template.badge_name, "challenge",
                metadata={"challenge": template.slug},
            )
        logger.info("Challenge %s completed by user %s", template.slug, subject.id)
        await publish_event(redis, "pubsub:challenge_completed", {
            "subject_type": subject.kind,
            "subject_id": subject.id,
            "challenge": template.slug,
        })
        return 1

    team_id = int(subject.id)
    members = await get_team_members(db, team_id)
    for member in members:
        await _pay_user(db, redis, member.user_id, template, f"{reference}:{member.user_id}")

    await db.execute(
        update(TeamStats)
        .where(TeamStats.team_id == team_id)
        .values(
            total_xp=TeamStats.total_xp + template.xp_reward,
            challenges_completed=TeamStats.challenges_completed + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if template.badge_name:
        await db.execute(
            dialect_insert(db, TeamAchievement)
            .values(
                team_id=team_id,
                achievement_name=template.badge_name,
                description=f"Completed {template.name}",
            )
            .on_conflict_do_nothing(index_elements=["team_id", "achievement_name"])
        )

    logger.info("Team challenge %s completed by team %d (%d members paid)", template.slug, team_id, len(members))
    await publish_event(redis, "pubsub:challenge_completed", {
        "subject_type": subject.kind,
        "subject_id": subject.id,
        "challenge": template.slug,
        "members_paid": len(members),
    })
    return len(members)


async def _pay_user(
    db: AsyncSession,
    redis: object,
    user_id: str,
    template: ChallengeTemplate,
    reference: str,
) -> None:
    if template.points_reward > 0:
        await earn_points(
            db, user_id, template.points_reward, "challenge",
            reference_id=reference,
            description=template.name,
        )
    if template.xp_reward > 0:
        await grant_xp(
            db, redis, user_id, template.xp_reward, "challenge",
            source_id=template.slug,
            description=f"Completed challenge: {template.name}",
            idempotency_key=reference,
        )


async def list_challenges(
    db: AsyncSession,
    subject: Subject,
    now: datetime | None = None,
) -> list[dict]:
    """Open challenges with the subject's current-window progress, then history.

    Pure read: rows of earlier windows still marked ``active`` are reported
    as ``expired`` without being written.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = now.date()

    rows_result = await db.execute(
        select(ChallengeProgress)
        .where(
            ChallengeProgress.subject_type == subject.kind,
            ChallengeProgress.subject_id == subject.id,
        )
        .order_by(ChallengeProgress.started_at.desc(), ChallengeProgress.id.desc())
    )
    rows = list(rows_result.scalars().unique().all())

    current: list[dict] = []
    seen: set[int] = set()
    for template in await _open_templates(db, subject, today):
        key = window_key(template, today)
        row = next((r for r in rows if r.template_id == template.id and r.window_key == key), None)
        if row is not None:
            seen.add(row.id)
        current.append(_challenge_view(template, key, row, today, is_current=True))

    history = []
    for row in rows:
        if row.id in seen:
            continue
        template = row.template
        expired = row.status == "active" and (
            not is_open(template, today) or row.window_key != window_key(template, today)
        )
        view = _challenge_view(template, row.window_key, row, today, is_current=False)
        if expired:
            view["status"] = "expired"
        history.append(view)

    return current + history


def _challenge_view(
    template: ChallengeTemplate,
    key: str,
    row: ChallengeProgress | None,
    today: date,
    is_current: bool,
) -> dict:
    ends_on = window_ends_on(template, today) if is_current else None
    return {
        "template_id": template.id,
        "slug": template.slug,
        "name": template.name,
        "description": template.description,
        "scope": template.scope,
        "target_action": template.target_action,
        "counts_distinct_days": template.counts_distinct_days,
        "window_key": key,
        "current_progress": row.current_progress if row else 0,
        "target_progress": row.target_progress if row else template.target_count,
        "status": row.status if row else "active",
        "xp_reward": template.xp_reward,
        "points_reward": template.points_reward,
        "badge_name": template.badge_name,
        "completed_at": row.completed_at if row else None,
        "ends_on": ends_on,
        "is_current": is_current,
    }
