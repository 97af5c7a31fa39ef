"""Pydantic schemas for referral endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateReferralRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)


class ReferralResponse(BaseModel):
    id: int
    referrer_id: str
    referred_id: str
    referral_code: str
    status: str
    activation_action: str | None = None
    created_at: datetime | None = None
    activated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ActivateReferralRequest(BaseModel):
    first_action: str = Field(..., min_length=1, max_length=50)


class MilestoneClaim(BaseModel):
    threshold: int
    points: int
    xp: int
    tier: str | None = None


class ActivationResponse(BaseModel):
    referral_id: int
    referrer_id: str
    referrer_xp: int
    referrer_points: int
    referred_xp: int
    referred_points: int
    milestones_claimed: list[MilestoneClaim] = []


class MilestoneCheckResponse(BaseModel):
    claimed: list[MilestoneClaim]


class ShareRequest(BaseModel):
    channel: str = Field(..., min_length=1, max_length=30)


class ShareBadgeAward(BaseModel):
    badge: str
    xp: int
    points: int


class ShareResponse(BaseModel):
    share_count: int
    badges_awarded: list[ShareBadgeAward]


class ReferralStatsResponse(BaseModel):
    code: str
    total_referrals: int
    activated_referrals: int
    pending_referrals: int
    current_tier: str
    milestones_claimed: dict[int, bool]
    next_milestone: int | None = None
    referrals_to_next: int
    share_count: int
    share_badges: list[str]
    referrals: list[ReferralResponse]
