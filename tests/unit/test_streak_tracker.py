"""Daily streak tracking, freezes, milestones and streak saves."""

from datetime import date, timedelta

import pytest
from sqlalchemy import select, update

from shamba.db.models import RaffleEntry, UserProfile, UserStreak
from shamba.gamification.badge_service import has_badge
from shamba.errors import ValidationError
from shamba.gamification.points_service import get_balance
from shamba.gamification.streak_service import (
    AT_RISK,
    BROKEN,
    COLD,
    WARM,
    can_save,
    classify,
    daily_streak_xp,
    get_streak_status,
    record_activity,
    save_streak,
)

D1 = date(2026, 3, 2)


def _day(n: int) -> date:
    """Day ``n`` of the test calendar, 1-based."""
    return D1 + timedelta(days=n - 1)


async def _run(db, redis, user_id, days):
    update_ = None
    for n in days:
        update_ = await record_activity(db, redis, user_id, "task_complete", today=_day(n))
    return update_


async def _profile(db, user_id):
    result = await db.execute(
        select(UserProfile).where(UserProfile.user_id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _total_xp(db, user_id):
    result = await db.execute(select(UserProfile.total_xp).where(UserProfile.user_id == user_id))
    return result.scalar_one_or_none() or 0


class TestDailyStreakXP:
    @pytest.mark.parametrize(
        "streak,expected",
        [(1, 5), (2, 7), (10, 23), (23, 49), (24, 50), (365, 50), (0, 5)],
    )
    def test_formula(self, streak, expected):
        assert daily_streak_xp(streak) == expected


class TestClassify:
    def test_no_record_is_cold(self):
        assert classify(None, D1) == COLD

    def test_active_today_is_warm(self):
        record = UserStreak(user_id="u", current_streak=4, last_activity_date=D1, freezes_available=0)
        assert classify(record, D1) == WARM

    def test_yesterday_is_at_risk(self):
        record = UserStreak(user_id="u", current_streak=4, last_activity_date=D1, freezes_available=0)
        assert classify(record, _day(2)) == AT_RISK

    def test_gap_with_freeze_is_at_risk(self):
        record = UserStreak(user_id="u", current_streak=4, last_activity_date=D1, freezes_available=1)
        assert classify(record, _day(5)) == AT_RISK

    def test_gap_without_freeze_is_broken(self):
        record = UserStreak(user_id="u", current_streak=4, last_activity_date=D1, freezes_available=0)
        assert classify(record, _day(3)) == BROKEN


class TestRecordActivity:
    @pytest.mark.asyncio
    async def test_first_activity_starts_streak(self, db_session, redis):
        result = await record_activity(db_session, redis, "u1", "photo_upload", today=D1)
        assert result.current_streak == 1
        assert result.longest_streak == 1
        assert result.xp_awarded == 5
        assert result.extended is False
        assert result.streak_reset is False
        assert result.freezes_available == 1

    @pytest.mark.asyncio
    async def test_same_day_is_noop(self, db_session, redis):
        await record_activity(db_session, redis, "u1", "photo_upload", today=D1)
        again = await record_activity(db_session, redis, "u1", "price_check", today=D1)
        assert again.current_streak == 1
        assert again.xp_awarded == 0
        assert await _total_xp(db_session, "u1") == 5

    @pytest.mark.asyncio
    async def test_consecutive_days_extend(self, db_session, redis):
        result = await _run(db_session, redis, "u1", [1, 2, 3])
        assert result.current_streak == 3
        assert result.extended is True
        # 5 + 7 + 9 daily XP plus the day-3 milestone bonus
        assert await _total_xp(db_session, "u1") == 26
        assert [m["days"] for m in result.milestones] == [3]
        assert result.milestones[0]["voice_tip_key"] == "streak_3_tip"

    @pytest.mark.asyncio
    async def test_gap_consumes_freeze(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2])
        result = await record_activity(db_session, redis, "u1", "task_complete", today=_day(5))
        assert result.freeze_used is True
        assert result.current_streak == 3
        assert result.freezes_available == 0

    @pytest.mark.asyncio
    async def test_gap_without_freeze_resets(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2])
        await record_activity(db_session, redis, "u1", "task_complete", today=_day(4))  # uses the freeze
        result = await record_activity(db_session, redis, "u1", "task_complete", today=_day(7))
        assert result.streak_reset is True
        assert result.current_streak == 1
        assert result.longest_streak == 3

    @pytest.mark.asyncio
    async def test_week_milestone_pays_points_and_freeze(self, db_session, redis):
        result = await _run(db_session, redis, "u1", range(1, 8))
        assert result.current_streak == 7
        seven = [m for m in result.milestones if m["days"] == 7]
        assert seven and seven[0]["freeze_granted"] is True
        assert result.freezes_available == 2
        assert await get_balance(db_session, "u1") == 10

    @pytest.mark.asyncio
    async def test_freezes_capped(self, db_session, redis):
        await _run(db_session, redis, "u1", range(1, 7))
        await db_session.execute(
            update(UserStreak).where(UserStreak.user_id == "u1").values(freezes_available=3)
        )
        result = await record_activity(db_session, redis, "u1", "task_complete", today=_day(7))
        assert result.freezes_available == 3

    @pytest.mark.asyncio
    async def test_milestone_claimed_once_per_run(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2, 3])
        result = await record_activity(db_session, redis, "u1", "task_complete", today=_day(4))
        assert result.milestones == []

    @pytest.mark.asyncio
    async def test_new_run_can_claim_again(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2, 3])
        await record_activity(db_session, redis, "u1", "task_complete", today=_day(5))  # freeze
        await record_activity(db_session, redis, "u1", "task_complete", today=_day(10))  # reset
        result = await _run(db_session, redis, "u1", [11, 12])
        assert result.current_streak == 3
        assert [m["days"] for m in result.milestones] == [3]

    @pytest.mark.asyncio
    async def test_fifth_day_earns_raffle_ticket(self, db_session, redis):
        result = await _run(db_session, redis, "u1", range(1, 6))
        assert result.current_streak == 5
        assert result.raffle_tickets == 1
        assert (await _profile(db_session, "u1")).raffle_entries == 1
        assert "pubsub:raffle_entry" in redis.channels()

    @pytest.mark.asyncio
    async def test_ten_day_run_earns_two_tickets(self, db_session, redis):
        await _run(db_session, redis, "u1", range(1, 10))
        result = await record_activity(db_session, redis, "u1", "task_complete", today=_day(10))
        assert result.raffle_tickets == 1
        assert (await _profile(db_session, "u1")).raffle_entries == 2
        sources = await db_session.execute(
            select(RaffleEntry.source_id).where(RaffleEntry.user_id == "u1").order_by(RaffleEntry.id)
        )
        assert sources.scalars().all() == ["streak_milestone_5", "streak_milestone_10"]

    @pytest.mark.asyncio
    async def test_off_interval_days_earn_nothing(self, db_session, redis):
        result = await _run(db_session, redis, "u1", range(1, 5))
        assert result.raffle_tickets == 0
        assert (await _profile(db_session, "u1")).raffle_entries == 0

    @pytest.mark.asyncio
    async def test_ticket_paid_once_per_month_after_reset(self, db_session, redis):
        await _run(db_session, redis, "u1", range(1, 6))
        await record_activity(db_session, redis, "u1", "task_complete", today=_day(8))  # freeze
        await record_activity(db_session, redis, "u1", "task_complete", today=_day(12))  # reset
        result = await _run(db_session, redis, "u1", range(13, 17))
        assert result.current_streak == 5
        assert result.raffle_tickets == 0
        assert (await _profile(db_session, "u1")).raffle_entries == 1

    @pytest.mark.asyncio
    async def test_month_milestone_awards_badge(self, db_session, redis):
        result = await _run(db_session, redis, "u1", range(1, 31))
        thirty = [m for m in result.milestones if m["days"] == 30]
        assert thirty and thirty[0]["badge"] == "streak_30_day"
        assert await has_badge(db_session, "u1", "streak_30_day")
        assert (await _profile(db_session, "u1")).raffle_entries == 6


class TestStreakSave:
    @pytest.mark.asyncio
    async def test_save_at_risk_streak(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2, 3])
        assert (await can_save(db_session, "u1", today=_day(4))).can_save is True

        result = await save_streak(db_session, redis, "u1", "photo_upload", today=_day(4))
        assert result.saved is True
        assert result.current_streak == 4
        assert result.freezes_available == 0
        assert result.xp_awarded == 10

    @pytest.mark.asyncio
    async def test_unknown_recovery_action(self, db_session, redis):
        with pytest.raises(ValidationError):
            await save_streak(db_session, redis, "u1", "dance", today=_day(4))

    @pytest.mark.asyncio
    async def test_short_streak_cannot_be_saved(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2])
        result = await save_streak(db_session, redis, "u1", "price_check", today=_day(3))
        assert result.saved is False
        assert "at least 3" in result.reason
        assert result.current_streak == 2

    @pytest.mark.asyncio
    async def test_warm_streak_cannot_be_saved(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2, 3])
        result = await save_streak(db_session, redis, "u1", "price_check", today=_day(3))
        assert result.saved is False
        assert result.reason == "Streak already recorded today"

    @pytest.mark.asyncio
    async def test_no_streak_cannot_be_saved(self, db_session, redis):
        result = await save_streak(db_session, redis, "nobody", "price_check", today=D1)
        assert result.saved is False
        assert result.reason == "No streak to save"

    @pytest.mark.asyncio
    async def test_recovery_window_expired(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2, 3])
        eligibility = await can_save(db_session, "u1", today=_day(7))
        assert eligibility.can_save is False
        assert eligibility.reason == "Recovery window expired"

    @pytest.mark.asyncio
    async def test_one_save_per_week(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2, 3])
        await save_streak(db_session, redis, "u1", "complete_task", today=_day(4))
        await _run(db_session, redis, "u1", [5, 6, 7])  # day 7 milestone grants a freeze

        eligibility = await can_save(db_session, "u1", today=_day(8))
        assert eligibility.can_save is False
        assert eligibility.reason == "Already used streak save this week"


class TestStreakStatus:
    @pytest.mark.asyncio
    async def test_status_for_new_user(self, db_session):
        status = await get_streak_status(db_session, "new", today=D1)
        assert status["state"] == COLD
        assert status["current_streak"] == 0
        assert status["freezes_available"] == 1
        assert status["next_milestone"]["days"] == 3

    @pytest.mark.asyncio
    async def test_broken_streak_reads_zero(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2])
        await record_activity(db_session, redis, "u1", "task_complete", today=_day(4))  # freeze
        status = await get_streak_status(db_session, "u1", today=_day(8))
        assert status["state"] == BROKEN
        assert status["current_streak"] == 0
        assert status["longest_streak"] == 3

    @pytest.mark.asyncio
    async def test_next_milestone_counts_down(self, db_session, redis):
        await _run(db_session, redis, "u1", [1, 2, 3, 4])
        status = await get_streak_status(db_session, "u1", today=_day(4))
        assert status["state"] == WARM
        assert status["today_recorded"] is True
        assert status["next_milestone"]["days"] == 7
        assert status["next_milestone"]["days_remaining"] == 3
