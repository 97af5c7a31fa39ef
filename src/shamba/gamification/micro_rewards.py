"""Micro-rewards: small points/XP payouts for everyday app actions.

Each action type has a catalog row with its reward, a cooldown and a daily
cap. Rejected calls (unknown action, cap reached, cooldown) are normal
results with ``rewarded=False`` and leave no trace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.config import get_settings
from shamba.db.base import dialect_insert
from shamba.db.models import DailyActionCount, MicroActionReward, UserMicroAction
from shamba.gamification.badge_service import award_badge, increment_badge_progress
from shamba.gamification.points_service import earn_points
from shamba.gamification.xp_service import grant_xp

logger = logging.getLogger(__name__)

REASON_UNKNOWN = "unknown action type"
REASON_DAILY_LIMIT = "daily limit reached"
REASON_COOLDOWN = "cooldown active"


@dataclass
class ActionReward:
    """Outcome of one micro-reward resolution."""

    rewarded: bool
    reason: str | None = None
    points_awarded: int = 0
    xp_awarded: int = 0
    daily_count: int = 0
    daily_limit: int = 0
    next_reward_at: datetime | None = None
    feedback_message: str | None = None
    badge_progress: dict | None = None


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_action_reward(db: AsyncSession, action_type: str) -> MicroActionReward | None:
    result = await db.execute(
        select(MicroActionReward).where(
            MicroActionReward.action_type == action_type,
            MicroActionReward.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def list_action_rewards(db: AsyncSession) -> list[MicroActionReward]:
    result = await db.execute(
        select(MicroActionReward)
        .where(MicroActionReward.is_active.is_(True))
        .order_by(MicroActionReward.action_type)
    )
    return list(result.scalars().all())


async def get_daily_count(db: AsyncSession, user_id: str, action_type: str, day: date) -> int:
    result = await db.execute(
        select(DailyActionCount.count).where(
            DailyActionCount.user_id == user_id,
            DailyActionCount.action_type == action_type,
            DailyActionCount.action_date == day,
        )
    )
    return result.scalar_one_or_none() or 0


async def get_daily_action_total(db: AsyncSession, user_id: str, day: date) -> int:
    """Rewarded micro-actions of any type on ``day``."""
    result = await db.execute(
        select(func.coalesce(func.sum(DailyActionCount.count), 0)).where(
            DailyActionCount.user_id == user_id,
            DailyActionCount.action_date == day,
        )
    )
    return int(result.scalar_one())


async def resolve_action(
    db: AsyncSession,
    redis: object,
    user_id: str,
    action_type: str,
    context: dict | None = None,
    now: datetime | None = None,
) -> ActionReward:
    """Reward one occurrence of ``action_type`` if cap and cooldown allow."""
    if now is None:
        now = datetime.now(timezone.utc)
    today = now.date()

    reward = await get_action_reward(db, action_type)
    if reward is None:
        return ActionReward(rewarded=False, reason=REASON_UNKNOWN)

    count = await get_daily_count(db, user_id, action_type, today)
    if reward.daily_limit > 0 and count >= reward.daily_limit:
        return ActionReward(
            rewarded=False,
            reason=REASON_DAILY_LIMIT,
            daily_count=count,
            daily_limit=reward.daily_limit,
        )

    if reward.cooldown_minutes > 0:
        cooldown = timedelta(minutes=reward.cooldown_minutes)
        last = await db.execute(
            select(func.max(UserMicroAction.created_at)).where(
                UserMicroAction.user_id == user_id,
                UserMicroAction.action_type == action_type,
                UserMicroAction.created_at > now - cooldown,
            )
        )
        last_at = last.scalar_one_or_none()
        if last_at is not None:
            return ActionReward(
                rewarded=False,
                reason=REASON_COOLDOWN,
                daily_count=count,
                daily_limit=reward.daily_limit,
                next_reward_at=_as_utc(last_at) + cooldown,
            )

    # Claim a slot under the cap; a concurrent caller that took the last
    # slot leaves this UPDATE with no row.
    await db.execute(
        dialect_insert(db, DailyActionCount)
        .values(user_id=user_id, action_type=action_type, action_date=today, count=0)
        .on_conflict_do_nothing(index_elements=["user_id", "action_type", "action_date"])
    )
    conditions = [
        DailyActionCount.user_id == user_id,
        DailyActionCount.action_type == action_type,
        DailyActionCount.action_date == today,
    ]
    if reward.daily_limit > 0:
        conditions.append(DailyActionCount.count < reward.daily_limit)
    claimed = await db.execute(
        update(DailyActionCount)
        .where(*conditions)
        .values(count=DailyActionCount.count + 1)
        .returning(DailyActionCount.count)
        .execution_options(synchronize_session=False)
    )
    new_count = claimed.scalar_one_or_none()
    if new_count is None:
        return ActionReward(
            rewarded=False,
            reason=REASON_DAILY_LIMIT,
            daily_count=reward.daily_limit,
            daily_limit=reward.daily_limit,
        )

    db.add(UserMicroAction(
        user_id=user_id,
        action_type=action_type,
        points_awarded=reward.points_reward,
        xp_awarded=reward.xp_reward,
        context_data=context or {},
        created_at=now,
    ))

    if reward.points_reward > 0:
        await earn_points(
            db, user_id, reward.points_reward, "micro_action",
            reference_id=action_type,
            description=reward.action_name,
        )
    if reward.xp_reward > 0:
        await grant_xp(
            db, redis, user_id, reward.xp_reward, "micro_action",
            source_id=action_type,
            description=reward.action_name,
        )

    badge_progress = None
    if reward.badge_type:
        progress, just_completed = await increment_badge_progress(
            db, user_id, reward.badge_type, reward.badge_target
        )
        badge_progress = {
            "badge_type": progress.badge_type,
            "current": progress.current_progress,
            "target": progress.target_progress,
            "completed": progress.is_completed,
        }
        if just_completed:
            await award_badge(
                db, redis, user_id, reward.badge_type, "micro_action",
                bonus_xp=get_settings().micro_badge_bonus_xp,
                metadata={"action_type": action_type, "target": progress.target_progress},
            )

    await db.flush()
    return ActionReward(
        rewarded=True,
        points_awarded=reward.points_reward,
        xp_awarded=reward.xp_reward,
        daily_count=new_count,
        daily_limit=reward.daily_limit,
        feedback_message=reward.feedback_message,
        badge_progress=badge_progress,
    )
