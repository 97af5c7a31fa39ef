"""Pydantic models for progress, points, streak, badge, score and action endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from shamba.challenges.schemas import ChallengeUpdateResponse


# --- Progress / XP ---


class ProgressResponse(BaseModel):
    user_id: str
    total_xp: int
    level: int
    level_title: str
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_title: str
    is_max_level: bool
    points_balance: int
    lifetime_points: int
    current_streak: int
    articles_completed: int
    videos_completed: int
    photo_uploads: int
    missions_completed: int
    raffle_entries: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    total_xp: int
    level: int
    level_title: str
    articles_completed: int
    videos_completed: int
    total_lessons: int


class LeaderboardResponse(BaseModel):
    board: str
    entries: list[LeaderboardEntry]


class UserRankResponse(BaseModel):
    board: str
    rank: int | None = None
    total_users: int


class XPHistoryEntry(BaseModel):
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


class LevelEntry(BaseModel):
    level: int
    title: str
    cumulative: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


# --- Points ---


class PointsBalanceResponse(BaseModel):
    balance: int
    lifetime_points: int


class PointsTransactionResponse(BaseModel):
    id: int
    amount: int
    transaction_type: str
    source: str
    reference_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PointsHistoryResponse(BaseModel):
    transactions: list[PointsTransactionResponse]
    total: int
    page: int
    per_page: int


class AdminPointsRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    amount: int = Field(..., gt=0)
    source: str = Field(..., min_length=1, max_length=50)
    reference_id: str | None = Field(None, max_length=128)
    description: str | None = None


class AdminPointsResponse(BaseModel):
    transaction: PointsTransactionResponse
    balance: int


# --- Streak ---


class NextMilestone(BaseModel):
    days: int
    name: str
    reward_type: str
    days_remaining: int


class StreakResponse(BaseModel):
    state: str
    current_streak: int
    longest_streak: int
    last_activity_date: date | None = None
    run_started_on: date | None = None
    freezes_available: int
    today_recorded: bool
    can_save: bool
    save_reason: str | None = None
    next_milestone: NextMilestone | None = None


class StreakSaveRequest(BaseModel):
    recovery_action: str = Field(..., min_length=1, max_length=50)


class StreakSaveResponse(BaseModel):
    saved: bool
    reason: str | None = None
    current_streak: int = 0
    freezes_available: int = 0
    xp_awarded: int = 0
    raffle_tickets: int = 0
    milestones: list[dict] = []

    model_config = {"from_attributes": True}


class StreakUpdateResponse(BaseModel):
    current_streak: int
    longest_streak: int
    freezes_available: int
    extended: bool = False
    freeze_used: bool = False
    streak_reset: bool = False
    xp_awarded: int = 0
    raffle_tickets: int = 0
    milestones: list[dict] = []

    model_config = {"from_attributes": True}


# --- Badges ---


class EarnedBadgeResponse(BaseModel):
    slug: str
    source: str
    earned_at: datetime
    metadata: dict = {}


class BadgeProgressResponse(BaseModel):
    badge_type: str
    current_progress: int
    target_progress: int
    is_completed: bool
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class UserBadgesResponse(BaseModel):
    earned: list[EarnedBadgeResponse]
    in_progress: list[BadgeProgressResponse]
    total_earned: int


# --- Farmer score ---


class FarmerScoreResponse(BaseModel):
    learning_score: float
    mission_score: float
    engagement_score: float
    reliability_score: float
    total_score: float
    tier: str
    updated_at: datetime | None = None


# --- Actions ---


class ActionRewardResponse(BaseModel):
    action_type: str
    action_name: str
    points_reward: int
    xp_reward: int
    cooldown_minutes: int
    daily_limit: int
    badge_type: str | None = None
    badge_target: int

    model_config = {"from_attributes": True}


class ActionRequest(BaseModel):
    action_type: str = Field(..., min_length=1, max_length=50)
    context: dict | None = None


class MicroRewardResult(BaseModel):
    rewarded: bool
    reason: str | None = None
    points_awarded: int = 0
    xp_awarded: int = 0
    daily_count: int = 0
    daily_limit: int = 0
    next_reward_at: datetime | None = None
    feedback_message: str | None = None
    badge_progress: dict | None = None

    model_config = {"from_attributes": True}


class ActionResponse(BaseModel):
    action_type: str
    reward: MicroRewardResult | None = None
    counter: str | None = None
    streak: StreakUpdateResponse | None = None
    challenges: list[ChallengeUpdateResponse] = []
    team_challenges: dict[int, list[ChallengeUpdateResponse]] = {}
    referral: dict | None = None

    model_config = {"from_attributes": True}
