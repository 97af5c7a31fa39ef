"""Badge awards and repeat-action badge progress."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.db.base import dialect_insert
from shamba.db.models import BadgeProgress, UserBadge
from shamba.gamification.xp_service import grant_xp, publish_event

logger = logging.getLogger(__name__)


async def has_badge(db: AsyncSession, user_id: str, badge_slug: str) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_slug == badge_slug,
        )
    )
    return result.first() is not None


async def award_badge(
    db: AsyncSession,
    redis: object,
    user_id: str,
    badge_slug: str,
    source: str,
    bonus_xp: int = 0,
    metadata: dict | None = None,
) -> bool:
    """Award a badge to a user.

    Returns True if awarded, False if already earned. The UNIQUE
    (user_id, badge_slug) constraint decides races: only the insert that
    lands pays ``bonus_xp``.
    """
    result = await db.execute(
        dialect_insert(db, UserBadge)
        .values(
            user_id=user_id,
            badge_slug=badge_slug,
            source=source,
            badge_metadata=metadata or {},
            earned_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing(index_elements=["user_id", "badge_slug"])
        .returning(UserBadge.id)
    )
    if result.scalar_one_or_none() is None:
        return False

    if bonus_xp > 0:
        await grant_xp(
            db, redis, user_id, bonus_xp, "badge",
            source_id=badge_slug,
            description=f"Earned badge: {badge_slug}",
            idempotency_key=f"badge:{badge_slug}:{user_id}",
        )

    logger.info("Badge %s awarded to %s (%s)", badge_slug, user_id, source)
    await publish_event(redis, "pubsub:badge_earned", {
        "user_id": user_id,
        "badge_slug": badge_slug,
        "source": source,
        "xp_reward": bonus_xp,
    })
    return True


async def list_badges(db: AsyncSession, user_id: str) -> list[UserBadge]:
    result = await db.execute(
        select(UserBadge).where(UserBadge.user_id == user_id).order_by(UserBadge.earned_at, UserBadge.id)
    )
    return list(result.scalars().all())


async def increment_badge_progress(
    db: AsyncSession,
    user_id: str,
    badge_type: str,
    target: int,
) -> tuple[BadgeProgress, bool]:
    """Add one to a repeat-action badge counter, clamped to its target.

    Returns (progress_row, just_completed). ``just_completed`` is True only
    for the single call that flips ``is_completed``.
    """
    await db.execute(
        dialect_insert(db, BadgeProgress)
        .values(user_id=user_id, badge_type=badge_type, current_progress=0, target_progress=target)
        .on_conflict_do_nothing(index_elements=["user_id", "badge_type"])
    )
    await db.execute(
        update(BadgeProgress)
        .where(
            BadgeProgress.user_id == user_id,
            BadgeProgress.badge_type == badge_type,
            BadgeProgress.is_completed.is_(False),
        )
        .values(
            current_progress=case(
                (BadgeProgress.current_progress + 1 > BadgeProgress.target_progress, BadgeProgress.target_progress),
                else_=BadgeProgress.current_progress + 1,
            )
        )
        .execution_options(synchronize_session=False)
    )
    flipped = await db.execute(
        update(BadgeProgress)
        .where(
            BadgeProgress.user_id == user_id,
            BadgeProgress.badge_type == badge_type,
            BadgeProgress.is_completed.is_(False),
            BadgeProgress.current_progress >= BadgeProgress.target_progress,
        )
        .values(is_completed=True, completed_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )

    result = await db.execute(
        select(BadgeProgress)
        .where(BadgeProgress.user_id == user_id, BadgeProgress.badge_type == badge_type)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one(), flipped.rowcount == 1


async def list_badge_progress(db: AsyncSession, user_id: str) -> list[BadgeProgress]:
    result = await db.execute(
        select(BadgeProgress).where(BadgeProgress.user_id == user_id).order_by(BadgeProgress.badge_type)
    )
    return list(result.scalars().all())
