"""Pydantic schemas for mission endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class MissionStepTemplate(BaseModel):
    name: str
    description: str | None = None
    day_offset: int = 0
    xp_reward: int = 0
    photo_required: bool = False


class MissionResponse(BaseModel):
    id: int
    slug: str
    name: str
    description: str
    crop_type: str | None = None
    season: str | None = None
    steps: list[MissionStepTemplate]
    xp_reward: int
    points_reward: int
    duration_days: int
    difficulty: str

    model_config = {"from_attributes": True}


class MissionListResponse(BaseModel):
    missions: list[MissionResponse]


class StartMissionRequest(BaseModel):
    field_id: str | None = Field(None, max_length=64)


class StepProgressResponse(BaseModel):
    step_index: int
    step_name: str
    step_description: str | None = None
    status: str
    due_date: datetime | None = None
    completed_at: datetime | None = None
    evidence_url: str | None = None
    notes: str | None = None
    xp_awarded: int

    model_config = {"from_attributes": True}


class UserMissionResponse(BaseModel):
    id: int
    mission_id: int
    mission_name: str
    crop_type: str | None = None
    field_id: str | None = None
    status: str
    current_step: int
    completed_steps: int
    total_steps: int
    progress_percentage: float
    started_at: datetime
    target_date: datetime | None = None
    completed_at: datetime | None = None
    xp_earned: int
    points_earned: int
    steps: list[StepProgressResponse] = []


class UserMissionListResponse(BaseModel):
    missions: list[UserMissionResponse]


class CompleteStepRequest(BaseModel):
    evidence_url: str | None = Field(None, max_length=2048)
    notes: str | None = Field(None, max_length=2000)


class StepCompletionResponse(BaseModel):
    user_mission_id: int
    step_index: int
    already_completed: bool
    xp_awarded: int
    points_awarded: int
    completed_steps: int
    total_steps: int
    progress_percentage: float
    mission_completed: bool
    mission_xp: int
    mission_points: int
    badge: str | None = None
    perks: list[str] = []

    model_config = {"from_attributes": True}
