"""Farmer trust score: a 0-100 composite of four 25-point sub-scores.

The score is always recomputed from counters, never adjusted incrementally,
so replaying the same counters yields the same score.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.db.base import dialect_insert
from shamba.db.models import FarmerScore, UserProfile
from shamba.gamification.micro_rewards import get_daily_action_total
from shamba.gamification.streak_service import BROKEN, COLD, classify, get_streak

SUB_SCORE_CAP = 25.0

# (minimum total, tier), highest first
TIER_THRESHOLDS = [
    (91.0, "champion"),
    (71.0, "gold"),
    (41.0, "silver"),
    (0.0, "bronze"),
]


@dataclass(frozen=True)
class ScoreInputs:
    articles_completed: int = 0
    videos_completed: int = 0
    missions_completed: int = 0
    current_streak: int = 0
    daily_actions: int = 0
    photo_uploads: int = 0


@dataclass(frozen=True)
class FarmerScoreBreakdown:
    learning_score: float
    mission_score: float
    engagement_score: float
    reliability_score: float
    total_score: float
    tier: str

    def to_dict(self) -> dict:
        return asdict(self)


def tier_for(total: float) -> str:
    for threshold, tier in TIER_THRESHOLDS:
        if total >= threshold:
            return tier
    return "bronze"


def compute_farmer_score(inputs: ScoreInputs) -> FarmerScoreBreakdown:
    """Pure score computation."""
    learning = min(SUB_SCORE_CAP, (inputs.articles_completed + inputs.videos_completed * 1.5) / 50 * 25)
    missions = min(SUB_SCORE_CAP, inputs.missions_completed / 10 * 25)
    engagement = min(
        SUB_SCORE_CAP,
        min(inputs.current_streak, 30) / 30 * 15 + min(inputs.daily_actions, 5) / 5 * 10,
    )
    # base 10, up to 5 for photo uploads, fixed 5 for data quality
    reliability = min(SUB_SCORE_CAP, 10 + min(inputs.photo_uploads, 10) / 10 * 5 + 5)

    learning = round(learning, 2)
    missions = round(missions, 2)
    engagement = round(engagement, 2)
    reliability = round(reliability, 2)
    total = round(learning + missions + engagement + reliability, 2)
    return FarmerScoreBreakdown(
        learning_score=learning,
        mission_score=missions,
        engagement_score=engagement,
        reliability_score=reliability,
        total_score=total,
        tier=tier_for(total),
    )


async def gather_score_inputs(db: AsyncSession, user_id: str, today: date | None = None) -> ScoreInputs:
    """Read the counters that feed the score."""
    if today is None:
        today = datetime.now(timezone.utc).date()

    result = await db.execute(select(UserProfile).where(UserProfile.user_id == user_id))
    profile = result.scalar_one_or_none()

    streak = await get_streak(db, user_id)
    current_streak = 0
    if classify(streak, today) not in (COLD, BROKEN) and streak is not None:
        current_streak = streak.current_streak

    return ScoreInputs(
        articles_completed=profile.articles_completed if profile else 0,
        videos_completed=profile.videos_completed if profile else 0,
        missions_completed=profile.missions_completed if profile else 0,
        current_streak=current_streak,
        daily_actions=await get_daily_action_total(db, user_id, today),
        photo_uploads=profile.photo_uploads if profile else 0,
    )


async def get_farmer_score(db: AsyncSession, user_id: str, today: date | None = None) -> FarmerScoreBreakdown:
    """Compute the current score without storing it."""
    return compute_farmer_score(await gather_score_inputs(db, user_id, today))


async def recalculate_farmer_score(
    db: AsyncSession,
    user_id: str,
    today: date | None = None,
) -> FarmerScoreBreakdown:
    """Recompute and store the score snapshot."""
    breakdown = await get_farmer_score(db, user_id, today)
    values = breakdown.to_dict()
    values["updated_at"] = datetime.now(timezone.utc)

    stmt = dialect_insert(db, FarmerScore).values(user_id=user_id, **values)
    stmt = stmt.on_conflict_do_update(index_elements=["user_id"], set_=values)
    await db.execute(stmt)
    return breakdown


async def get_stored_score(db: AsyncSession, user_id: str) -> FarmerScore | None:
    result = await db.execute(select(FarmerScore).where(FarmerScore.user_id == user_id))
    return result.scalar_one_or_none()
