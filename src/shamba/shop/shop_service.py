"""Rewards shop: catalog items bought with points."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.codes import REDEMPTION_CODE_LENGTH, generate_unique_code
from shamba.db.models import RewardItem, UserRedemption
from shamba.errors import InsufficientPointsError, NotFoundError, OutOfStockError, ValidationError
from shamba.gamification.points_service import get_balance, redeem_points

logger = logging.getLogger(__name__)

UNLIMITED_STOCK = -1
CATEGORIES = frozenset({"seeds", "fertilizer", "tools", "vouchers", "services"})


async def list_reward_items(db: AsyncSession, category: str | None = None) -> list[RewardItem]:
    """Active catalog items, featured first."""
    query = select(RewardItem).where(RewardItem.is_active.is_(True))
    if category:
        query = query.where(RewardItem.category == category)
    result = await db.execute(
        query.order_by(RewardItem.is_featured.desc(), RewardItem.points_cost.asc(), RewardItem.id.asc())
    )
    return list(result.scalars().all())


async def get_reward_item(db: AsyncSession, item_id: int) -> RewardItem | None:
    result = await db.execute(
        select(RewardItem)
        .where(RewardItem.id == item_id, RewardItem.is_active.is_(True))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def redeem_item(
    db: AsyncSession,
    user_id: str,
    item_id: int,
    quantity: int = 1,
) -> UserRedemption:
    """Buy ``quantity`` of an item.

    Fails with OutOfStockError or InsufficientPointsError. Both the points
    debit and the stock decrement are conditional updates, and the caller's
    transaction is rolled back on failure, so nothing is half-applied.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    item = await get_reward_item(db, item_id)
    if item is None:
        raise NotFoundError("Reward item not found")

    if item.stock_quantity != UNLIMITED_STOCK and item.stock_quantity < quantity:
        raise OutOfStockError(item.id, item.stock_quantity, quantity)

    total_cost = item.points_cost * quantity
    balance = await get_balance(db, user_id)
    if balance < total_cost:
        raise InsufficientPointsError(balance, total_cost)

    code = await generate_unique_code(db, UserRedemption.redemption_code, REDEMPTION_CODE_LENGTH)
    await redeem_points(
        db, user_id, total_cost, "shop",
        reference_id=code,
        description=f"Redeemed {quantity} x {item.name}",
        error_cls=InsufficientPointsError,
    )

    if item.stock_quantity != UNLIMITED_STOCK:
        taken = await db.execute(
            update(RewardItem)
            .where(RewardItem.id == item.id, RewardItem.stock_quantity >= quantity)
            .values(stock_quantity=RewardItem.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        if taken.rowcount != 1:
            fresh = await get_reward_item(db, item.id)
            raise OutOfStockError(item.id, fresh.stock_quantity if fresh else 0, quantity)

    redemption = UserRedemption(
        user_id=user_id,
        item=item,
        quantity=quantity,
        points_spent=total_cost,
        status="pending",
        redemption_code=code,
        created_at=datetime.now(timezone.utc),
    )
    db.add(redemption)
    await db.flush()
    logger.info("User %s redeemed %d x %s for %d points (%s)", user_id, quantity, item.slug, total_cost, code)
    return redemption


async def list_redemptions(db: AsyncSession, user_id: str) -> list[UserRedemption]:
    result = await db.execute(
        select(UserRedemption)
        .where(UserRedemption.user_id == user_id)
        .order_by(UserRedemption.created_at.desc(), UserRedemption.id.desc())
    )
    return list(result.unique().scalars().all())
