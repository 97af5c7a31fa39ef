"""Action pipeline: the ordered cascade run for every tracked user action.

Steps run inside the caller's transaction, in this order:
1. micro-reward (capped per day, cooldown)
2. activity counters for the trust score
3. daily streak
4. individual challenges
5. team challenges for every team the user belongs to
6. pending referral activation

Every step is idempotent or capped, so UI code may call this speculatively.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.challenges.challenge_service import ChallengeUpdate, Subject, update_progress
from shamba.db.models import Referral
from shamba.gamification.micro_rewards import REASON_UNKNOWN, ActionReward, resolve_action
from shamba.gamification.streak_service import StreakUpdate, record_activity
from shamba.gamification.xp_service import increment_stat
from shamba.referrals.referral_service import activate_referral
from shamba.teams.team_service import list_user_team_ids

logger = logging.getLogger(__name__)

# Action types that bump a trust-score counter
ACTION_COUNTERS = {
    "article_read": "articles_completed",
    "video_watch": "videos_completed",
    "photo_upload": "photo_uploads",
}

# Action types that count as a day of activity for the streak
STREAK_ACTIONS = frozenset({
    "price_check",
    "price_compare",
    "weather_check",
    "weather_forecast",
    "task_complete",
    "task_create",
    "field_visit",
    "article_read",
    "video_watch",
    "quiz_attempt",
    "community_post",
    "community_comment",
    "photo_upload",
    "pest_report",
    "expense_logged",
    "income_logged",
    "inventory_update",
})


@dataclass
class PipelineResult:
    """Outcome of each pipeline step for one action."""

    action_type: str
    reward: ActionReward | None = None
    counter: str | None = None
    streak: StreakUpdate | None = None
    challenges: list[ChallengeUpdate] = field(default_factory=list)
    team_challenges: dict[int, list[ChallengeUpdate]] = field(default_factory=dict)
    referral: dict | None = None


class ActionPipeline:
    """Runs the reward cascade for raw action events."""

    def __init__(self, db: AsyncSession, redis: object) -> None:
        self.db = db
        self.redis = redis

    async def process(
        self,
        user_id: str,
        action_type: str,
        context: dict | None = None,
        now: datetime | None = None,
    ) -> PipelineResult:
        if now is None:
            now = datetime.now(timezone.utc)
        result = PipelineResult(action_type=action_type)

        result.reward = await resolve_action(self.db, self.redis, user_id, action_type, context, now)

        # Counters only move for rewarded occurrences
        counter = ACTION_COUNTERS.get(action_type)
        if counter and result.reward.rewarded:
            await increment_stat(self.db, user_id, counter)
            result.counter = counter

        if action_type in STREAK_ACTIONS:
            result.streak = await record_activity(self.db, self.redis, user_id, action_type, now.date())

        result.challenges = await update_progress(
            self.db, self.redis, Subject.individual(user_id), action_type, now=now
        )
        for team_id in await list_user_team_ids(self.db, user_id):
            updates = await update_progress(self.db, self.redis, Subject.team(team_id), action_type, now=now)
            if updates:
                result.team_challenges[team_id] = updates

        if result.reward.reason != REASON_UNKNOWN:
            result.referral = await self._activate_referral(user_id, action_type, now)

        await self.db.flush()
        return result

    async def _activate_referral(self, user_id: str, action_type: str, now: datetime) -> dict | None:
        pending = await self.db.execute(
            select(Referral.id).where(Referral.referred_id == user_id, Referral.status == "pending")
        )
        if pending.first() is None:
            return None
        logger.info("Activating referral for %s on first action %s", user_id, action_type)
        return await activate_referral(self.db, self.redis, user_id, action_type, now)
