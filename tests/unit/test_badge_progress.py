"""Badge awards and repeat-action badge progress."""

import pytest
from sqlalchemy import select

from shamba.db.models import UserProfile
from shamba.gamification.badge_service import (
    award_badge,
    has_badge,
    increment_badge_progress,
    list_badge_progress,
    list_badges,
)


class TestAwardBadge:
    @pytest.mark.asyncio
    async def test_first_award_lands(self, db_session, redis):
        assert await award_badge(db_session, redis, "u1", "early_adopter", "admin") is True
        assert await has_badge(db_session, "u1", "early_adopter") is True
        assert redis.channels() == ["pubsub:badge_earned"]

    @pytest.mark.asyncio
    async def test_duplicate_award_is_noop(self, db_session, redis):
        await award_badge(db_session, redis, "u1", "recruiter", "referral", bonus_xp=20)
        again = await award_badge(db_session, redis, "u1", "recruiter", "referral", bonus_xp=20)
        assert again is False

        badges = await list_badges(db_session, "u1")
        assert [b.badge_slug for b in badges] == ["recruiter"]

        result = await db_session.execute(select(UserProfile.total_xp).where(UserProfile.user_id == "u1"))
        assert result.scalar_one() == 20
        assert redis.channels().count("pubsub:badge_earned") == 1

    @pytest.mark.asyncio
    async def test_metadata_is_kept(self, db_session, redis):
        await award_badge(db_session, redis, "u1", "season_finisher", "challenge", metadata={"challenge": "x"})
        badge = (await list_badges(db_session, "u1"))[0]
        assert badge.source == "challenge"
        assert badge.badge_metadata == {"challenge": "x"}

    @pytest.mark.asyncio
    async def test_badges_are_per_user(self, db_session, redis):
        await award_badge(db_session, redis, "u1", "recruiter", "referral")
        assert await has_badge(db_session, "u2", "recruiter") is False


class TestBadgeProgress:
    @pytest.mark.asyncio
    async def test_progress_counts_up(self, db_session):
        row, done = await increment_badge_progress(db_session, "u1", "weather_guru", 7)
        assert row.current_progress == 1
        assert row.target_progress == 7
        assert done is False

    @pytest.mark.asyncio
    async def test_completion_flips_once_and_clamps(self, db_session):
        flips = []
        for _ in range(5):
            row, done = await increment_badge_progress(db_session, "u1", "photo_journalist", 3)
            flips.append(done)
        assert flips == [False, False, True, False, False]
        assert row.current_progress == 3
        assert row.is_completed is True
        assert row.completed_at is not None

    @pytest.mark.asyncio
    async def test_list_progress(self, db_session):
        await increment_badge_progress(db_session, "u1", "weather_guru", 7)
        await increment_badge_progress(db_session, "u1", "field_inspector", 15)
        rows = await list_badge_progress(db_session, "u1")
        assert [r.badge_type for r in rows] == ["field_inspector", "weather_guru"]
