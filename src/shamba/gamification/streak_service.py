"""Daily streak tracking: recording, freezes, saves and run milestones."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.config import get_settings
from shamba.db.base import dialect_insert
from shamba.db.models import (
    StreakActivityLog,
    StreakMilestone,
    StreakMilestoneClaim,
    UserStreak,
)
from shamba.errors import NotFoundError, ValidationError
from shamba.gamification.badge_service import award_badge
from shamba.gamification.points_service import earn_points
from shamba.gamification.xp_service import grant_xp, publish_event
from shamba.raffles.raffle_service import award_streak_entries

logger = logging.getLogger(__name__)

COLD = "cold"
WARM = "warm"
AT_RISK = "at_risk"
BROKEN = "broken"

RECOVERY_ACTIONS = frozenset({"photo_upload", "price_check", "complete_task"})


@dataclass
class StreakUpdate:
    """Result of RecordActivity."""

    current_streak: int
    longest_streak: int
    freezes_available: int
    extended: bool = False
    freeze_used: bool = False
    streak_reset: bool = False
    xp_awarded: int = 0
    raffle_tickets: int = 0
    milestones: list[dict] = field(default_factory=list)


@dataclass
class SaveEligibility:
    can_save: bool
    reason: str | None = None


@dataclass
class SaveResult:
    saved: bool
    reason: str | None = None
    current_streak: int = 0
    freezes_available: int = 0
    xp_awarded: int = 0
    raffle_tickets: int = 0
    milestones: list[dict] = field(default_factory=list)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def daily_streak_xp(streak: int) -> int:
    """XP for the first qualifying activity of a day at the given streak length."""
    settings = get_settings()
    return min(
        settings.streak_daily_xp_base + (max(streak, 1) - 1) * settings.streak_daily_xp_step,
        settings.streak_daily_xp_cap,
    )


def classify(record: UserStreak | None, today: date) -> str:
    """Map a streak record to cold / warm / at_risk / broken."""
    if record is None or record.current_streak <= 0 or record.last_activity_date is None:
        return COLD
    last = record.last_activity_date
    if last >= today:
        return WARM
    if last == today - timedelta(days=1):
        return AT_RISK
    if record.freezes_available > 0:
        return AT_RISK
    return BROKEN


async def get_streak(db: AsyncSession, user_id: str) -> UserStreak | None:
    result = await db.execute(
        select(UserStreak)
        .where(UserStreak.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_streak(db: AsyncSession, user_id: str) -> UserStreak:
    await db.execute(
        dialect_insert(db, UserStreak)
        .values(user_id=user_id, freezes_available=get_settings().streak_starting_freezes)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    return await _require_streak(db, user_id)


async def _require_streak(db: AsyncSession, user_id: str) -> UserStreak:
    record = await get_streak(db, user_id)
    if record is None:
        raise NotFoundError(f"No streak record for {user_id}")
    return record


async def _log_activity(db: AsyncSession, user_id: str, day: date, activity_type: str) -> None:
    await db.execute(
        dialect_insert(db, StreakActivityLog)
        .values(user_id=user_id, activity_date=day, activity_type=activity_type)
        .on_conflict_do_nothing(index_elements=["user_id", "activity_date", "activity_type"])
    )


def _capped_freeze_add() -> object:
    cap = get_settings().streak_max_freezes
    return case(
        (UserStreak.freezes_available + 1 > cap, cap),
        else_=UserStreak.freezes_available + 1,
    )


async def record_activity(
    db: AsyncSession,
    redis: object,
    user_id: str,
    activity_type: str,
    today: date | None = None,
) -> StreakUpdate:
    """Record a qualifying activity for ``today``.

    Same-day calls are no-ops for the streak. The row is written with a
    compare-and-set on the previously read ``last_activity_date``; a caller
    that loses the race re-reads and returns the winner's state.
    """
    if today is None:
        today = utc_today()

    await _log_activity(db, user_id, today, activity_type)
    record = await get_or_create_streak(db, user_id)
    previous = record.last_activity_date

    if previous is not None and previous >= today:
        return StreakUpdate(
            current_streak=record.current_streak,
            longest_streak=record.longest_streak,
            freezes_available=record.freezes_available,
        )

    freezes = record.freezes_available
    freeze_used = False
    run_started_on = record.run_started_on
    if previous == today - timedelta(days=1) and record.current_streak > 0:
        new_streak = record.current_streak + 1
    elif previous is not None and record.current_streak > 0 and freezes > 0:
        new_streak = record.current_streak + 1
        freezes -= 1
        freeze_used = True
    else:
        new_streak = 1
        run_started_on = today
    if run_started_on is None:
        run_started_on = today
    longest = max(record.longest_streak, new_streak)

    previous_clause = (
        UserStreak.last_activity_date.is_(None)
        if previous is None
        else UserStreak.last_activity_date == previous
    )
    result = await db.execute(
        update(UserStreak)
        .where(UserStreak.user_id == user_id, previous_clause)
        .values(
            current_streak=new_streak,
            longest_streak=longest,
            last_activity_date=today,
            run_started_on=run_started_on,
            freezes_available=freezes,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        winner = await _require_streak(db, user_id)
        return StreakUpdate(
            current_streak=winner.current_streak,
            longest_streak=winner.longest_streak,
            freezes_available=winner.freezes_available,
        )

    xp = daily_streak_xp(new_streak)
    await grant_xp(
        db, redis, user_id, xp, "streak",
        source_id=today.isoformat(),
        description=f"Day {new_streak} streak",
        idempotency_key=f"streak_daily:{user_id}:{today.isoformat()}",
    )

    milestones = await _claim_milestones(db, redis, user_id, new_streak, run_started_on)
    tickets = await award_streak_entries(db, redis, user_id, new_streak - 1, new_streak, today)
    if freeze_used:
        logger.info("Streak freeze used by %s, streak now %d", user_id, new_streak)

    refreshed = await _require_streak(db, user_id)
    await publish_event(redis, "pubsub:streak_update", {
        "user_id": user_id,
        "event": "streak_extended" if new_streak > 1 else "streak_started",
        "current_streak": new_streak,
    })
    return StreakUpdate(
        current_streak=refreshed.current_streak,
        longest_streak=refreshed.longest_streak,
        freezes_available=refreshed.freezes_available,
        extended=new_streak > 1,
        freeze_used=freeze_used,
        streak_reset=previous is not None and new_streak == 1,
        xp_awarded=xp,
        raffle_tickets=tickets.tickets,
        milestones=milestones,
    )


async def list_milestones(db: AsyncSession) -> list[StreakMilestone]:
    result = await db.execute(select(StreakMilestone).order_by(StreakMilestone.days))
    return list(result.scalars().all())


async def _claim_milestones(
    db: AsyncSession,
    redis: object,
    user_id: str,
    streak: int,
    run_started_on: date,
) -> list[dict]:
    """Claim every milestone reached in this run that has not been claimed yet."""
    result = await db.execute(
        select(StreakMilestone).where(StreakMilestone.days <= streak).order_by(StreakMilestone.days)
    )
    claimed: list[dict] = []
    for milestone in result.scalars().all():
        inserted = await db.execute(
            dialect_insert(db, StreakMilestoneClaim)
            .values(user_id=user_id, days=milestone.days, run_started_on=run_started_on)
            .on_conflict_do_nothing(index_elements=["user_id", "days", "run_started_on"])
            .returning(StreakMilestoneClaim.id)
        )
        if inserted.scalar_one_or_none() is None:
            continue
        claimed.append(await _pay_milestone(db, redis, user_id, milestone, run_started_on))
    return claimed


async def _pay_milestone(
    db: AsyncSession,
    redis: object,
    user_id: str,
    milestone: StreakMilestone,
    run_started_on: date,
) -> dict:
    key = f"{user_id}:{milestone.days}:{run_started_on.isoformat()}"
    payload: dict = {
        "days": milestone.days,
        "name": milestone.name,
        "reward_type": milestone.reward_type,
        "reward_value": milestone.reward_value,
        "bonus_xp": milestone.bonus_xp,
        "freeze_granted": milestone.grants_freeze,
    }

    if milestone.reward_type == "points" and milestone.reward_value > 0:
        await earn_points(
            db, user_id, milestone.reward_value, "streak_milestone",
            reference_id=key,
            description=milestone.name,
        )
    elif milestone.reward_type == "badge":
        payload["badge"] = f"streak_{milestone.days}_day"
        await award_badge(db, redis, user_id, payload["badge"], "streak_milestone")
    elif milestone.reward_type == "voice_tip":
        payload["voice_tip_key"] = milestone.voice_tip_key

    if milestone.grants_freeze:
        await db.execute(
            update(UserStreak)
            .where(UserStreak.user_id == user_id)
            .values(freezes_available=_capped_freeze_add())
            .execution_options(synchronize_session=False)
        )

    if milestone.bonus_xp > 0:
        await grant_xp(
            db, redis, user_id, milestone.bonus_xp, "streak_milestone",
            source_id=str(milestone.days),
            description=milestone.name,
            idempotency_key=f"streak_milestone:{key}",
        )

    logger.info("Streak milestone %d claimed by %s", milestone.days, user_id)
    await publish_event(redis, "pubsub:streak_update", {
        "user_id": user_id,
        "event": "milestone",
        "days": milestone.days,
        "name": milestone.name,
    })
    return payload


async def can_save(db: AsyncSession, user_id: str, today: date | None = None) -> SaveEligibility:
    """Whether the streak is at risk and can be rescued right now. Read-only."""
    if today is None:
        today = utc_today()
    settings = get_settings()
    record = await get_streak(db, user_id)
    state = classify(record, today)

    if state == COLD or record is None or record.last_activity_date is None:
        return SaveEligibility(False, "No streak to save")
    if state == WARM:
        return SaveEligibility(False, "Streak already recorded today")
    if record.freezes_available <= 0:
        return SaveEligibility(False, "No streak freezes available")
    if record.current_streak < settings.streak_save_min_streak:
        return SaveEligibility(False, f"Streak must be at least {settings.streak_save_min_streak} days")
    if record.last_activity_date < today - timedelta(days=settings.streak_save_window_days):
        return SaveEligibility(False, "Recovery window expired")
    if record.last_saved_on is not None and record.last_saved_on > today - timedelta(
        days=settings.streak_save_cooldown_days
    ):
        return SaveEligibility(False, "Already used streak save this week")
    return SaveEligibility(True)


async def save_streak(
    db: AsyncSession,
    redis: object,
    user_id: str,
    recovery_action: str,
    today: date | None = None,
) -> SaveResult:
    """Rescue an at-risk streak by completing a recovery action.

    Consumes a freeze and counts today as the next streak day. Ineligible
    calls return ``saved=False`` with the reason.
    """
    if recovery_action not in RECOVERY_ACTIONS:
        raise ValidationError(
            f"Recovery action must be one of {', '.join(sorted(RECOVERY_ACTIONS))}"
        )
    if today is None:
        today = utc_today()

    eligibility = await can_save(db, user_id, today)
    record = await get_streak(db, user_id)
    if not eligibility.can_save or record is None:
        return SaveResult(
            saved=False,
            reason=eligibility.reason,
            current_streak=record.current_streak if record else 0,
            freezes_available=record.freezes_available if record else 0,
        )

    previous = record.last_activity_date
    new_streak = record.current_streak + 1
    result = await db.execute(
        update(UserStreak)
        .where(
            UserStreak.user_id == user_id,
            UserStreak.last_activity_date == previous,
            UserStreak.freezes_available > 0,
        )
        .values(
            current_streak=new_streak,
            longest_streak=max(record.longest_streak, new_streak),
            last_activity_date=today,
            freezes_available=UserStreak.freezes_available - 1,
            last_saved_on=today,
            saves_used=UserStreak.saves_used + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = await get_streak(db, user_id)
        return SaveResult(
            saved=False,
            reason="Streak changed, try again",
            current_streak=current.current_streak if current else 0,
            freezes_available=current.freezes_available if current else 0,
        )

    await _log_activity(db, user_id, today, "streak_save")
    xp = get_settings().streak_save_xp
    await grant_xp(
        db, redis, user_id, xp, "streak_save",
        source_id=recovery_action,
        description="Streak recovery challenge",
        idempotency_key=f"streak_save:{user_id}:{today.isoformat()}",
    )
    run_started_on = record.run_started_on or today
    milestones = await _claim_milestones(db, redis, user_id, new_streak, run_started_on)
    tickets = await award_streak_entries(db, redis, user_id, new_streak - 1, new_streak, today)

    saved = await _require_streak(db, user_id)
    logger.info("Streak saved by %s via %s, streak now %d", user_id, recovery_action, new_streak)
    return SaveResult(
        saved=True,
        current_streak=saved.current_streak,
        freezes_available=saved.freezes_available,
        xp_awarded=xp,
        raffle_tickets=tickets.tickets,
        milestones=milestones,
    )


async def get_streak_status(db: AsyncSession, user_id: str, today: date | None = None) -> dict:
    """Read-only streak view with the next milestone and save eligibility."""
    if today is None:
        today = utc_today()
    record = await get_streak(db, user_id)
    state = classify(record, today)
    current = record.current_streak if record else 0

    # A broken streak reads as 0 even though the row keeps the old value
    # until the next recorded activity resets it.
    display_streak = 0 if state in (COLD, BROKEN) else current

    next_milestone = None
    for milestone in await list_milestones(db):
        if milestone.days > display_streak:
            next_milestone = {
                "days": milestone.days,
                "name": milestone.name,
                "reward_type": milestone.reward_type,
                "days_remaining": milestone.days - display_streak,
            }
            break

    eligibility = await can_save(db, user_id, today)
    return {
        "state": state,
        "current_streak": display_streak,
        "longest_streak": record.longest_streak if record else 0,
        "last_activity_date": record.last_activity_date if record else None,
        "run_started_on": record.run_started_on if record else None,
        "freezes_available": record.freezes_available if record else get_settings().streak_starting_freezes,
        "today_recorded": state == WARM,
        "can_save": eligibility.can_save,
        "save_reason": eligibility.reason,
        "next_milestone": next_milestone,
    }
