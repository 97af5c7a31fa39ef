"""Monthly raffle tickets, status, standings and the weighted draw."""

import random
from datetime import date

import pytest
from sqlalchemy import func, select

from shamba.db.models import MonthlyRaffle, UserProfile
from shamba.errors import ConflictError, NotFoundError, ValidationError
from shamba.raffles.raffle_service import (
    award_raffle_entry,
    draw_date_for,
    draw_raffle_winner,
    get_or_create_monthly_raffle,
    get_raffle_leaderboard,
    get_user_raffle_status,
    list_past_winners,
    pick_weighted,
)

TODAY = date(2026, 3, 10)


class _FixedTicket:
    """Random source that always returns the same ticket index."""

    def __init__(self, ticket: int) -> None:
        self.ticket = ticket

    def randrange(self, stop: int) -> int:
        return self.ticket


async def _raffle_count(db):
    result = await db.execute(select(func.count()).select_from(MonthlyRaffle))
    return result.scalar_one()


async def _give(db, redis, user_id, tickets):
    await award_raffle_entry(db, redis, user_id, "admin_grant", f"grant-{user_id}", tickets, today=TODAY)


class TestDrawDate:
    def test_last_day_of_month(self):
        assert draw_date_for(date(2026, 3, 10)) == date(2026, 3, 31)
        assert draw_date_for(date(2028, 2, 1)) == date(2028, 2, 29)


class TestAwardEntry:
    @pytest.mark.asyncio
    async def test_first_entry_opens_raffle_with_prize(self, db_session, redis):
        assert await award_raffle_entry(db_session, redis, "u1", "streak_5", "streak_milestone_5", today=TODAY)
        raffle = await get_or_create_monthly_raffle(db_session, TODAY)
        assert (raffle.year, raffle.month) == (2026, 3)
        assert raffle.status == "active"
        assert raffle.total_entries == 1
        assert raffle.draw_date == date(2026, 3, 31)
        assert raffle.prize.name == "Solar Panel Kit"
        assert "pubsub:raffle_entry" in redis.channels()

    @pytest.mark.asyncio
    async def test_same_source_pays_once(self, db_session, redis):
        assert await award_raffle_entry(db_session, redis, "u1", "streak_5", "streak_milestone_5", today=TODAY)
        assert not await award_raffle_entry(db_session, redis, "u1", "streak_5", "streak_milestone_5", today=TODAY)
        profile = await db_session.execute(
            select(UserProfile).where(UserProfile.user_id == "u1").execution_options(populate_existing=True)
        )
        assert profile.scalar_one().raffle_entries == 1

    @pytest.mark.asyncio
    async def test_same_source_pays_again_next_month(self, db_session, redis):
        await award_raffle_entry(db_session, redis, "u1", "streak_5", "streak_milestone_5", today=TODAY)
        assert await award_raffle_entry(
            db_session, redis, "u1", "streak_5", "streak_milestone_5", today=date(2026, 4, 2)
        )
        assert await _raffle_count(db_session) == 2

    @pytest.mark.parametrize("count", [0, -1, True, 1.5])
    @pytest.mark.asyncio
    async def test_entry_count_must_be_positive_int(self, db_session, redis, count):
        with pytest.raises(ValidationError):
            await award_raffle_entry(db_session, redis, "u1", "admin_grant", entry_count=count, today=TODAY)


class TestRaffleStatus:
    @pytest.mark.asyncio
    async def test_status_before_any_ticket(self, db_session):
        status = await get_user_raffle_status(db_session, "nobody", today=TODAY)
        assert status["raffle_id"] is None
        assert status["status"] == "active"
        assert status["user_entries"] == 0
        assert status["entry_sources"] == []
        assert status["draw_date"] == date(2026, 3, 31)
        assert status["days_remaining"] == 21
        assert status["prize"]["name"] == "Solar Panel Kit"
        assert await _raffle_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_status_sums_sources(self, db_session, redis):
        await award_raffle_entry(db_session, redis, "u1", "streak_5", "streak_milestone_5", today=TODAY)
        await award_raffle_entry(db_session, redis, "u1", "admin_grant", "promo", 3, today=TODAY)
        await _give(db_session, redis, "u2", 2)

        status = await get_user_raffle_status(db_session, "u1", today=TODAY)
        assert status["raffle_id"] is not None
        assert status["user_entries"] == 4
        assert [s["source"] for s in status["entry_sources"]] == ["streak_5", "admin_grant"]
        assert status["total_entries"] == 6
        assert status["total_participants"] == 2


class TestRaffleLeaderboard:
    @pytest.mark.asyncio
    async def test_most_tickets_first(self, db_session, redis):
        await _give(db_session, redis, "u1", 1)
        await _give(db_session, redis, "u2", 4)
        await _give(db_session, redis, "u3", 2)
        standings = await get_raffle_leaderboard(db_session, limit=2, today=TODAY)
        assert [(s["rank"], s["user_id"], s["total_entries"]) for s in standings] == [(1, "u2", 4), (2, "u3", 2)]

    @pytest.mark.asyncio
    async def test_empty_month(self, db_session):
        assert await get_raffle_leaderboard(db_session, today=TODAY) == []


class TestPickWeighted:
    def test_ticket_index_maps_to_holder(self):
        totals = [("a", 1), ("b", 3)]
        assert pick_weighted(totals, _FixedTicket(0)) == ("a", 1)
        assert pick_weighted(totals, _FixedTicket(1)) == ("b", 3)
        assert pick_weighted(totals, _FixedTicket(3)) == ("b", 3)

    def test_odds_follow_tickets(self):
        rng = random.Random(7)
        totals = [("a", 1), ("b", 3)]
        wins = sum(pick_weighted(totals, rng)[0] == "b" for _ in range(4000))
        assert 0.7 < wins / 4000 < 0.8


class TestDraw:
    @pytest.mark.asyncio
    async def test_draw_completes_raffle(self, db_session, redis):
        await _give(db_session, redis, "u1", 1)
        await _give(db_session, redis, "u2", 3)
        raffle = await get_or_create_monthly_raffle(db_session, TODAY)

        result = await draw_raffle_winner(db_session, redis, raffle.id, rng=_FixedTicket(0))
        assert result.winner_id == "u1"
        assert result.winner_entries == 1
        assert result.total_entries == 4
        assert result.total_participants == 2
        assert result.prize_name == "Solar Panel Kit"
        assert "pubsub:raffle_winner" in redis.channels()

        drawn = await get_or_create_monthly_raffle(db_session, TODAY)
        assert drawn.status == "completed"
        assert drawn.winner_id == "u1"
        assert drawn.drawn_at is not None

    @pytest.mark.asyncio
    async def test_second_draw_rejected(self, db_session, redis):
        await _give(db_session, redis, "u1", 2)
        raffle = await get_or_create_monthly_raffle(db_session, TODAY)
        await draw_raffle_winner(db_session, redis, raffle.id, rng=random.Random(3))
        with pytest.raises(ConflictError):
            await draw_raffle_winner(db_session, redis, raffle.id, rng=random.Random(3))

    @pytest.mark.asyncio
    async def test_no_tickets_after_draw(self, db_session, redis):
        await _give(db_session, redis, "u1", 2)
        raffle = await get_or_create_monthly_raffle(db_session, TODAY)
        await draw_raffle_winner(db_session, redis, raffle.id)
        assert not await award_raffle_entry(db_session, redis, "u2", "admin_grant", "late", today=TODAY)

    @pytest.mark.asyncio
    async def test_empty_raffle_rejected(self, db_session, redis):
        raffle = await get_or_create_monthly_raffle(db_session, TODAY)
        with pytest.raises(ConflictError):
            await draw_raffle_winner(db_session, redis, raffle.id)
        assert (await get_or_create_monthly_raffle(db_session, TODAY)).status == "active"

    @pytest.mark.asyncio
    async def test_unknown_raffle(self, db_session, redis):
        with pytest.raises(NotFoundError):
            await draw_raffle_winner(db_session, redis, 999)

    @pytest.mark.asyncio
    async def test_past_winners_newest_first(self, db_session, redis):
        for day in (date(2026, 1, 5), date(2026, 2, 5)):
            await award_raffle_entry(db_session, redis, "u1", "admin_grant", "promo", today=day)
            raffle = await get_or_create_monthly_raffle(db_session, day)
            await draw_raffle_winner(db_session, redis, raffle.id, rng=random.Random(1))
        await _give(db_session, redis, "u2", 1)

        winners = await list_past_winners(db_session)
        assert [(w.year, w.month) for w in winners] == [(2026, 2), (2026, 1)]
        assert all(w.winner_id == "u1" for w in winners)
