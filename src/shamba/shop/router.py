"""Rewards shop API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.auth.dependencies import get_current_user_id
from shamba.database import get_session
from shamba.db.models import UserRedemption
from shamba.errors import ValidationError
from shamba.gamification.points_service import get_balance
from shamba.shop.schemas import (
    RedeemRequest,
    RedemptionListResponse,
    RedemptionResponse,
    RewardItemListResponse,
    RewardItemResponse,
)
from shamba.shop.shop_service import CATEGORIES, list_redemptions, list_reward_items, redeem_item

router = APIRouter(prefix="/api/v1", tags=["Shop"])


def _build_redemption_response(r: UserRedemption, balance: int | None = None) -> RedemptionResponse:
    return RedemptionResponse(
        id=r.id,
        item_id=r.item_id,
        item_name=r.item.name,
        quantity=r.quantity,
        points_spent=r.points_spent,
        status=r.status,
        redemption_code=r.redemption_code,
        created_at=r.created_at,
        balance=balance,
    )


@router.get("/shop/items", response_model=RewardItemListResponse)
async def list_items(
    category: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
):
    """Active catalog items, featured first."""
    if category is not None and category not in CATEGORIES:
        raise ValidationError(f"Unknown category: {category}")
    items = await list_reward_items(db, category)
    return RewardItemListResponse(items=[RewardItemResponse.model_validate(i) for i in items])


@router.post("/shop/redeem", response_model=RedemptionResponse, status_code=201)
async def redeem(
    body: RedeemRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Buy an item with points. 409 when out of stock or short on points."""
    redemption = await redeem_item(db, user_id, body.item_id, body.quantity)
    await db.commit()
    return _build_redemption_response(redemption, balance=await get_balance(db, user_id))


@router.get("/users/me/redemptions", response_model=RedemptionListResponse)
async def list_my_redemptions(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    redemptions = await list_redemptions(db, user_id)
    return RedemptionListResponse(redemptions=[_build_redemption_response(r) for r in redemptions])
