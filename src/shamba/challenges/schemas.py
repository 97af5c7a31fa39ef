"""Pydantic schemas for challenge endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class ChallengeResponse(BaseModel):
    template_id: int
    slug: str
    name: str
    description: str
    scope: str
    target_action: str
    counts_distinct_days: bool
    window_key: str
    current_progress: int
    target_progress: int
    status: str
    xp_reward: int
    points_reward: int
    badge_name: str | None = None
    completed_at: datetime | None = None
    ends_on: date | None = None
    is_current: bool


class ChallengeListResponse(BaseModel):
    challenges: list[ChallengeResponse]


class ChallengeProgressRequest(BaseModel):
    action_key: str = Field(..., min_length=1, max_length=100)
    increment: int = Field(1, ge=1, le=100)


class ChallengeUpdateResponse(BaseModel):
    template_id: int
    slug: str
    name: str
    window_key: str
    current_progress: int
    target_progress: int
    status: str
    counted: bool
    just_completed: bool = False
    xp_awarded: int = 0
    points_awarded: int = 0
    members_paid: int = 0

    model_config = {"from_attributes": True}


class ChallengeProgressResponse(BaseModel):
    updates: list[ChallengeUpdateResponse]
