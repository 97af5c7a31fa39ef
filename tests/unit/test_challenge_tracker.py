"""Challenge progress for individuals and teams."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from shamba.challenges.challenge_service import Subject, list_challenges, update_progress
from shamba.db.models import UserProfile
from shamba.errors import ValidationError
from shamba.gamification.badge_service import has_badge
from shamba.gamification.points_service import get_balance
from shamba.teams.team_service import create_team, get_team_stats, join_team, list_team_achievements

WEDNESDAY = datetime(2026, 2, 25, 9, 0, tzinfo=timezone.utc)  # 2026-W09
NEXT_WEEK = WEDNESDAY + timedelta(days=7)  # 2026-W10

ME = Subject.individual("u1")


def _only(updates, slug):
    matching = [u for u in updates if u.slug == slug]
    assert len(matching) == 1
    return matching[0]


async def _total_xp(db, user_id):
    result = await db.execute(select(UserProfile.total_xp).where(UserProfile.user_id == user_id))
    return result.scalar_one_or_none() or 0


class TestIndividualProgress:
    @pytest.mark.asyncio
    async def test_progress_counts_up(self, db_session, redis):
        updates = await update_progress(db_session, redis, ME, "photo_upload", now=WEDNESDAY)
        photo = _only(updates, "photo-patrol")
        assert photo.window_key == "2026-W09"
        assert photo.current_progress == 1
        assert photo.target_progress == 3
        assert photo.counted is True
        assert photo.status == "active"

    @pytest.mark.asyncio
    async def test_only_matching_templates_touched(self, db_session, redis):
        updates = await update_progress(db_session, redis, ME, "photo_upload", now=WEDNESDAY)
        assert [u.slug for u in updates] == ["photo-patrol"]

    @pytest.mark.asyncio
    async def test_unknown_action_touches_nothing(self, db_session, redis):
        assert await update_progress(db_session, redis, ME, "juggling", now=WEDNESDAY) == []

    @pytest.mark.asyncio
    async def test_completion_pays_once(self, db_session, redis):
        for _ in range(3):
            updates = await update_progress(db_session, redis, ME, "photo_upload", now=WEDNESDAY)
        photo = _only(updates, "photo-patrol")
        assert photo.just_completed is True
        assert photo.status == "completed"
        assert photo.xp_awarded == 20
        assert photo.points_awarded == 10

        extra = _only(await update_progress(db_session, redis, ME, "photo_upload", now=WEDNESDAY), "photo-patrol")
        assert extra.just_completed is False
        assert extra.counted is False
        assert extra.current_progress == 3

        assert await get_balance(db_session, "u1") == 10
        assert await _total_xp(db_session, "u1") == 20
        assert redis.channels().count("pubsub:challenge_completed") == 1

    @pytest.mark.asyncio
    async def test_increment_clamped_to_target(self, db_session, redis):
        updates = await update_progress(db_session, redis, ME, "task_complete", increment=50, now=WEDNESDAY)
        task = _only(updates, "task-master")
        assert task.current_progress == 5
        assert task.just_completed is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("increment", [0, -1, True])
    async def test_invalid_increment(self, db_session, redis, increment):
        with pytest.raises(ValidationError):
            await update_progress(db_session, redis, ME, "photo_upload", increment=increment, now=WEDNESDAY)

    @pytest.mark.asyncio
    async def test_distinct_days_count_once_per_day(self, db_session, redis):
        first = await update_progress(db_session, redis, ME, "price_check", now=WEDNESDAY)
        same_day = await update_progress(db_session, redis, ME, "price_check", now=WEDNESDAY + timedelta(hours=3))
        next_day = await update_progress(db_session, redis, ME, "price_check", now=WEDNESDAY + timedelta(days=1))

        assert _only(first, "price-checker").current_progress == 1
        assert _only(same_day, "price-checker").counted is False
        assert _only(same_day, "price-checker").current_progress == 1
        assert _only(next_day, "price-checker").current_progress == 2

    @pytest.mark.asyncio
    async def test_new_week_starts_fresh(self, db_session, redis):
        await update_progress(db_session, redis, ME, "photo_upload", now=WEDNESDAY)
        await update_progress(db_session, redis, ME, "photo_upload", now=WEDNESDAY)

        updates = await update_progress(db_session, redis, ME, "photo_upload", now=NEXT_WEEK)
        photo = _only(updates, "photo-patrol")
        assert photo.window_key == "2026-W10"
        assert photo.current_progress == 1

    @pytest.mark.asyncio
    async def test_one_off_badge_challenge(self, db_session, redis):
        updates = await update_progress(db_session, redis, ME, "mission_complete", now=WEDNESDAY)
        finisher = _only(updates, "season-finisher")
        assert finisher.window_key == "once"
        assert finisher.just_completed is True
        assert await has_badge(db_session, "u1", "season_finisher") is True

        later = await update_progress(db_session, redis, ME, "mission_complete", now=NEXT_WEEK)
        assert _only(later, "season-finisher").just_completed is False


class TestListChallenges:
    @pytest.mark.asyncio
    async def test_lists_open_individual_templates(self, db_session):
        views = await list_challenges(db_session, ME, now=WEDNESDAY)
        slugs = {v["slug"] for v in views}
        assert "photo-patrol" in slugs
        assert "team-photo-patrol" not in slugs
        assert all(v["is_current"] for v in views)
        assert all(v["current_progress"] == 0 for v in views)

    @pytest.mark.asyncio
    async def test_current_window_end(self, db_session):
        views = await list_challenges(db_session, ME, now=WEDNESDAY)
        photo = next(v for v in views if v["slug"] == "photo-patrol")
        assert photo["window_key"] == "2026-W09"
        assert photo["ends_on"].isoformat() == "2026-03-01"

    @pytest.mark.asyncio
    async def test_unfinished_last_week_reads_expired(self, db_session, redis):
        await update_progress(db_session, redis, ME, "photo_upload", now=WEDNESDAY)

        views = await list_challenges(db_session, ME, now=NEXT_WEEK)
        history = [v for v in views if not v["is_current"]]
        assert len(history) == 1
        assert history[0]["slug"] == "photo-patrol"
        assert history[0]["window_key"] == "2026-W09"
        assert history[0]["status"] == "expired"

        current = next(v for v in views if v["is_current"] and v["slug"] == "photo-patrol")
        assert current["current_progress"] == 0

    @pytest.mark.asyncio
    async def test_completed_last_week_stays_completed(self, db_session, redis):
        await update_progress(db_session, redis, ME, "photo_upload", increment=3, now=WEDNESDAY)
        views = await list_challenges(db_session, ME, now=NEXT_WEEK)
        history = [v for v in views if not v["is_current"]]
        assert history[0]["status"] == "completed"


class TestTeamProgress:
    @pytest.mark.asyncio
    async def test_team_completion_pays_every_member(self, db_session, redis):
        team = await create_team(db_session, "leader", "Photo Crew")
        await join_team(db_session, "m1", team.invite_code)
        await join_team(db_session, "m2", team.invite_code)
        subject = Subject.team(team.id)

        await update_progress(db_session, redis, subject, "photo_upload", increment=100, now=WEDNESDAY)
        updates = await update_progress(db_session, redis, subject, "photo_upload", increment=100, now=WEDNESDAY)

        patrol = _only(updates, "team-photo-patrol")
        assert patrol.just_completed is True
        assert patrol.members_paid == 3
        for user_id in ("leader", "m1", "m2"):
            assert await get_balance(db_session, user_id) == 50
            assert await _total_xp(db_session, user_id) == 100

        stats = await get_team_stats(db_session, team.id)
        assert stats.total_xp == 100
        assert stats.challenges_completed == 1
        achievements = await list_team_achievements(db_session, team.id)
        assert [a.achievement_name for a in achievements] == ["Photo Patrol"]

    @pytest.mark.asyncio
    async def test_team_and_individual_progress_are_separate(self, db_session, redis):
        team = await create_team(db_session, "leader", "Crew")
        await update_progress(db_session, redis, Subject.team(team.id), "photo_upload", now=WEDNESDAY)

        views = await list_challenges(db_session, Subject.individual("leader"), now=WEDNESDAY)
        photo = next(v for v in views if v["slug"] == "photo-patrol")
        assert photo["current_progress"] == 0
