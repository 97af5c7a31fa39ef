"""Pydantic schemas for team endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateTeamRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    team_type: str = Field("other", max_length=20)
    description: str | None = Field(None, max_length=500)
    location: str | None = Field(None, max_length=100)


class JoinTeamRequest(BaseModel):
    invite_code: str = Field(..., min_length=6, max_length=12)


class TeamMemberResponse(BaseModel):
    user_id: str
    role: str
    joined_at: datetime

    model_config = {"from_attributes": True}


class TeamAchievementResponse(BaseModel):
    achievement_name: str
    description: str | None = None
    earned_at: datetime

    model_config = {"from_attributes": True}


class TeamResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    team_type: str
    leader_id: str
    location: str | None = None
    member_count: int
    max_members: int
    total_xp: int = 0
    challenges_completed: int = 0
    role: str | None = None
    invite_code: str | None = None  # Only shown to members
    members: list[TeamMemberResponse] = []
    achievements: list[TeamAchievementResponse] = []


class TeamListResponse(BaseModel):
    teams: list[TeamResponse]


class LeaveTeamResponse(BaseModel):
    left: bool
    team_deleted: bool
