"""Pydantic schemas for shop endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RewardItemResponse(BaseModel):
    id: int
    slug: str
    name: str
    description: str | None = None
    category: str
    points_cost: int
    stock_quantity: int
    partner_name: str | None = None
    is_featured: bool

    model_config = {"from_attributes": True}


class RewardItemListResponse(BaseModel):
    items: list[RewardItemResponse]


class RedeemRequest(BaseModel):
    item_id: int
    quantity: int = Field(1, ge=1, le=100)


class RedemptionResponse(BaseModel):
    id: int
    item_id: int
    item_name: str
    quantity: int
    points_spent: int
    status: str
    redemption_code: str
    created_at: datetime
    balance: int | None = None


class RedemptionListResponse(BaseModel):
    redemptions: list[RedemptionResponse]
