"""XP grants and the points ledger."""

import pytest
from sqlalchemy import func, select

from shamba.db.models import PointsTransaction, UserProfile, XPLedger
from shamba.errors import InsufficientBalanceError, ValidationError
from shamba.gamification.points_service import (
    earn_points,
    get_account,
    get_balance,
    get_ledger_sum,
    get_points_history,
    redeem_points,
)
from shamba.gamification.xp_service import grant_xp, increment_stat


class TestGrantXP:
    @pytest.mark.asyncio
    async def test_grant_adds_to_total(self, db_session, redis):
        granted = await grant_xp(db_session, redis, "u1", 40, "action")
        assert granted is True
        result = await db_session.execute(
            select(UserProfile).where(UserProfile.user_id == "u1").execution_options(populate_existing=True)
        )
        profile = result.scalar_one()
        assert profile.total_xp == 40
        assert profile.level == 1

    @pytest.mark.asyncio
    async def test_idempotency_key_blocks_duplicate(self, db_session, redis):
        assert await grant_xp(db_session, redis, "u1", 10, "action", idempotency_key="k1") is True
        assert await grant_xp(db_session, redis, "u1", 10, "action", idempotency_key="k1") is False

        count = await db_session.execute(
            select(func.count()).select_from(XPLedger).where(XPLedger.user_id == "u1")
        )
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_level_up_published(self, db_session, redis):
        await grant_xp(db_session, redis, "u1", 260, "mission")

        result = await db_session.execute(
            select(UserProfile).where(UserProfile.user_id == "u1").execution_options(populate_existing=True)
        )
        profile = result.scalar_one()
        assert profile.level == 3
        assert profile.level_title == "Growing"
        assert "pubsub:level_up" in redis.channels()

    @pytest.mark.asyncio
    async def test_no_level_up_event_within_level(self, db_session, redis):
        await grant_xp(db_session, redis, "u1", 5, "action")
        assert "pubsub:level_up" not in redis.channels()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, True])
    async def test_rejects_non_positive_amount(self, db_session, redis, amount):
        with pytest.raises(ValidationError):
            await grant_xp(db_session, redis, "u1", amount, "action")

    @pytest.mark.asyncio
    async def test_missing_redis_is_tolerated(self, db_session):
        assert await grant_xp(db_session, None, "u1", 500, "mission") is True


class TestProfileCounters:
    @pytest.mark.asyncio
    async def test_increment_known_counter(self, db_session):
        await increment_stat(db_session, "u1", "photo_uploads")
        await increment_stat(db_session, "u1", "photo_uploads", by=2)
        result = await db_session.execute(
            select(UserProfile.photo_uploads).where(UserProfile.user_id == "u1")
        )
        assert result.scalar_one() == 3

    @pytest.mark.asyncio
    async def test_unknown_counter_rejected(self, db_session):
        with pytest.raises(ValidationError):
            await increment_stat(db_session, "u1", "total_xp")


class TestPointsLedger:
    @pytest.mark.asyncio
    async def test_earn_creates_account_and_entry(self, db_session):
        entry = await earn_points(db_session, "u1", 30, "action", reference_id="a1")
        assert entry.amount == 30
        assert entry.transaction_type == "earn"
        assert await get_account(db_session, "u1") == (30, 30)

    @pytest.mark.asyncio
    async def test_redeem_debits_balance_not_lifetime(self, db_session):
        await earn_points(db_session, "u1", 100, "action")
        entry = await redeem_points(db_session, "u1", 40, "shop")
        assert entry.amount == -40
        assert entry.transaction_type == "redeem"
        assert await get_account(db_session, "u1") == (60, 100)

    @pytest.mark.asyncio
    async def test_redeem_over_balance_fails_closed(self, db_session):
        await earn_points(db_session, "u1", 10, "action")
        with pytest.raises(InsufficientBalanceError) as exc_info:
            await redeem_points(db_session, "u1", 11, "shop")
        assert exc_info.value.balance == 10
        assert exc_info.value.requested == 11

        assert await get_balance(db_session, "u1") == 10
        count = await db_session.execute(
            select(func.count()).select_from(PointsTransaction).where(
                PointsTransaction.user_id == "u1",
                PointsTransaction.transaction_type == "redeem",
            )
        )
        assert count.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_redeem_without_account_fails(self, db_session):
        with pytest.raises(InsufficientBalanceError):
            await redeem_points(db_session, "nobody", 1, "shop")

    @pytest.mark.asyncio
    async def test_balance_equals_ledger_sum(self, db_session):
        await earn_points(db_session, "u1", 50, "action")
        await earn_points(db_session, "u1", 25, "referral")
        await redeem_points(db_session, "u1", 30, "shop")
        await earn_points(db_session, "u1", 5, "streak")
        assert await get_balance(db_session, "u1") == await get_ledger_sum(db_session, "u1") == 50

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1, 2.5])
    async def test_invalid_amounts_rejected(self, db_session, amount):
        with pytest.raises(ValidationError):
            await earn_points(db_session, "u1", amount, "action")
        with pytest.raises(ValidationError):
            await redeem_points(db_session, "u1", amount, "shop")

    @pytest.mark.asyncio
    async def test_unknown_user_balance_is_zero(self, db_session):
        assert await get_balance(db_session, "ghost") == 0
        assert await get_account(db_session, "ghost") == (0, 0)


class TestPointsHistory:
    @pytest.mark.asyncio
    async def test_history_is_paginated(self, db_session):
        for i in range(5):
            await earn_points(db_session, "u1", i + 1, "action", reference_id=f"r{i}")

        entries, total = await get_points_history(db_session, "u1", page=1, per_page=2)
        assert total == 5
        assert len(entries) == 2

        entries, _ = await get_points_history(db_session, "u1", page=3, per_page=2)
        assert len(entries) == 1
