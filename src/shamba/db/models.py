"""ORM models for the progress engine.

User ids are opaque strings handed over by the identity provider; the engine
never creates users, so there is no users table and no FK to one.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shamba.db.base import Base, BigIntPK, JSONType

USER_ID = String(64)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Profile / XP
# ---------------------------------------------------------------------------


class UserProfile(Base):
    """Denormalized per-user progress: XP, level and activity counters."""

    __tablename__ = "user_profiles"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    user_id: Mapped[str] = mapped_column(USER_ID, primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    level_title: Mapped[str] = mapped_column(String(64), default="Seedling", server_default="Seedling")
    articles_completed: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    videos_completed: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    photo_uploads: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    missions_completed: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    raffle_entries: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class XPLedger(Base):
    """Immutable XP grants."""

    __tablename__ = "xp_ledger"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_xp_ledger_amount_positive"),
        Index("ix_xp_ledger_user_created", "user_id", "created_at"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    grant_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    idempotency_key: Mapped[str | None] = mapped_column(String(200), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Points ledger
# ---------------------------------------------------------------------------


class UserPoints(Base):
    """Materialized running balance of the points ledger."""

    __tablename__ = "user_points"
    __table_args__ = (
        CheckConstraint("total_points >= 0", name="ck_user_points_non_negative"),
        CheckConstraint("lifetime_points >= 0", name="ck_user_points_lifetime_non_negative"),
        {"extend_existing": True},
    )

    user_id: Mapped[str] = mapped_column(USER_ID, primary_key=True)
    total_points: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    lifetime_points: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class PointsTransaction(Base):
    """Append-only points ledger entry. Redeem rows carry a negative amount."""

    __tablename__ = "points_transactions"
    __table_args__ = (
        CheckConstraint("transaction_type IN ('earn', 'redeem')", name="ck_points_transactions_type"),
        Index("ix_points_transactions_user_created", "user_id", "created_at"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(10), nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------


class UserStreak(Base):
    """Daily streak record per user."""

    __tablename__ = "user_streaks"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    user_id: Mapped[str] = mapped_column(USER_ID, primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    run_started_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    freezes_available: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    last_saved_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    saves_used: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class StreakActivityLog(Base):
    """Which activity types counted toward a day's streak."""

    __tablename__ = "streak_activity_logs"
    __table_args__ = (
        UniqueConstraint("user_id", "activity_date", "activity_type", name="uq_streak_activity_user_date_type"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class StreakMilestone(Base):
    """Catalog: streak length thresholds and their one-time rewards."""

    __tablename__ = "streak_milestones"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    days: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    reward_type: Mapped[str] = mapped_column(String(20), nullable=False)  # voice_tip | points | badge
    reward_value: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    bonus_xp: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    grants_freeze: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    voice_tip_key: Mapped[str | None] = mapped_column(String(64), nullable=True)


class StreakMilestoneClaim(Base):
    """One claim per milestone per streak run."""

    __tablename__ = "streak_milestone_claims"
    __table_args__ = (
        UniqueConstraint("user_id", "days", "run_started_on", name="uq_streak_claim_user_days_run"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    days: Mapped[int] = mapped_column(Integer, nullable=False)
    run_started_on: Mapped[date] = mapped_column(Date, nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Monthly raffle
# ---------------------------------------------------------------------------


class RafflePrize(Base):
    """Catalog: prizes drawn in the monthly raffle."""

    __tablename__ = "raffle_prizes"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    value_usd: Mapped[float | None] = mapped_column(Float, nullable=True)
    sponsor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())


class MonthlyRaffle(Base):
    """One raffle per calendar month; the winner is stored on the row once drawn."""

    __tablename__ = "monthly_raffles"
    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_monthly_raffles_year_month"),
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_monthly_raffles_month"),
        CheckConstraint("status IN ('active', 'completed')", name="ck_monthly_raffles_status"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    prize_id: Mapped[int | None] = mapped_column(
        ForeignKey("raffle_prizes.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default="active", server_default="active")
    total_entries: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    draw_date: Mapped[date] = mapped_column(Date, nullable=False)
    winner_id: Mapped[str | None] = mapped_column(USER_ID, nullable=True)
    winner_entries: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    drawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    prize: Mapped[RafflePrize | None] = relationship(lazy="joined")


class RaffleEntry(Base):
    """Raffle tickets. Each (source, source_id) pays at most once per raffle."""

    __tablename__ = "raffle_entries"
    __table_args__ = (
        UniqueConstraint("raffle_id", "user_id", "source", "source_id", name="uq_raffle_entries_source"),
        CheckConstraint("entry_count > 0", name="ck_raffle_entries_count_positive"),
        Index("ix_raffle_entries_raffle_user", "raffle_id", "user_id"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    raffle_id: Mapped[int] = mapped_column(
        ForeignKey("monthly_raffles.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    entry_count: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    source_id: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Micro-rewards / badges
# ---------------------------------------------------------------------------


class MicroActionReward(Base):
    """Catalog: reward, cooldown and daily cap per raw action type."""

    __tablename__ = "micro_action_rewards"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    action_type: Mapped[str] = mapped_column(String(50), primary_key=True)
    action_name: Mapped[str] = mapped_column(String(100), nullable=False)
    points_reward: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    xp_reward: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    cooldown_minutes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    daily_limit: Mapped[int] = mapped_column(Integer, default=5, server_default="5")
    feedback_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    badge_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    badge_target: Mapped[int] = mapped_column(Integer, default=10, server_default="10")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())


class UserMicroAction(Base):
    """One row per rewarded occurrence of an action."""

    __tablename__ = "user_micro_actions"
    __table_args__ = (
        Index("ix_user_micro_actions_user_type_created", "user_id", "action_type", "created_at"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, default=0)
    xp_awarded: Mapped[int] = mapped_column(Integer, default=0)
    context_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class DailyActionCount(Base):
    """Per-day rewarded-occurrence counter used for daily caps."""

    __tablename__ = "daily_action_counts"
    __table_args__ = (
        UniqueConstraint("user_id", "action_type", "action_date", name="uq_daily_action_counts"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    action_date: Mapped[date] = mapped_column(Date, nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=0, server_default="0")


class BadgeProgress(Base):
    """Counter toward a repeat-action badge, clamped to its target."""

    __tablename__ = "badge_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_type", name="uq_badge_progress_user_badge"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    badge_type: Mapped[str] = mapped_column(String(50), nullable=False)
    current_progress: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    target_progress: Mapped[int] = mapped_column(Integer, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserBadge(Base):
    """Badges earned by a user. One row per (user, badge)."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_slug", name="uq_user_badges_user_slug"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    badge_slug: Mapped[str] = mapped_column(String(100), nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    badge_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------


class Mission(Base):
    """Catalog: multi-step seasonal mission template."""

    __tablename__ = "missions"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    crop_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    season: Mapped[str | None] = mapped_column(String(50), nullable=True)
    steps: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    xp_reward: Mapped[int] = mapped_column(Integer, default=50, server_default="50")
    points_reward: Mapped[int] = mapped_column(Integer, default=30, server_default="30")
    duration_days: Mapped[int] = mapped_column(Integer, default=90, server_default="90")
    difficulty: Mapped[str] = mapped_column(String(20), default="medium", server_default="medium")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class UserMission(Base):
    """A user's instance of a mission, optionally bound to a field."""

    __tablename__ = "user_missions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'completed', 'failed', 'abandoned')",
            name="ck_user_missions_status",
        ),
        Index(
            "uq_user_missions_active",
            "user_id",
            "mission_id",
            "field_key",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False, index=True)
    mission_id: Mapped[int] = mapped_column(ForeignKey("missions.id", ondelete="CASCADE"), nullable=False)
    field_key: Mapped[str] = mapped_column(String(64), default="", server_default="", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", server_default="active")
    current_step: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    completed_steps: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    total_steps: Mapped[int] = mapped_column(Integer, nullable=False)
    progress_percentage: Mapped[float] = mapped_column(Float, default=0.0, server_default="0")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    target_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    xp_earned: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    points_earned: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    mission: Mapped[Mission] = relationship(lazy="joined")
    steps: Mapped[list[MissionStepProgress]] = relationship(
        back_populates="user_mission",
        order_by="MissionStepProgress.step_index",
        lazy="selectin",
    )


class MissionStepProgress(Base):
    """Progress of one step within a user mission."""

    __tablename__ = "mission_step_progress"
    __table_args__ = (
        UniqueConstraint("user_mission_id", "step_index", name="uq_mission_step_progress"),
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'skipped')",
            name="ck_mission_step_progress_status",
        ),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_mission_id: Mapped[int] = mapped_column(
        ForeignKey("user_missions.id", ondelete="CASCADE"), nullable=False
    )
    step_index: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(255), nullable=False)
    step_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", server_default="pending")
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    evidence_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    xp_awarded: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    user_mission: Mapped[UserMission] = relationship(back_populates="steps")


class UserPerk(Base):
    """Time-boxed perks (priority market access, double referral points)."""

    __tablename__ = "user_perks"
    __table_args__ = (
        Index("ix_user_perks_user_perk", "user_id", "perk"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    perk: Mapped[str] = mapped_column(String(50), nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class ChallengeTemplate(Base):
    """Catalog: individual or team target-count challenge."""

    __tablename__ = "challenge_templates"
    __table_args__ = (
        CheckConstraint("scope IN ('individual', 'team')", name="ck_challenge_templates_scope"),
        CheckConstraint("target_count > 0", name="ck_challenge_templates_target"),
        Index("ix_challenge_templates_lookup", "scope", "target_action", "is_active"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="individual")
    target_action: Mapped[str] = mapped_column(String(100), nullable=False)
    target_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    counts_distinct_days: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    xp_reward: Mapped[int] = mapped_column(Integer, default=20, server_default="20")
    points_reward: Mapped[int] = mapped_column(Integer, default=10, server_default="10")
    badge_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    recurrence: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())


class ChallengeProgress(Base):
    """Progress of one subject (user or team) in one window of a template."""

    __tablename__ = "challenge_progress"
    __table_args__ = (
        UniqueConstraint(
            "subject_type", "subject_id", "template_id", "window_key",
            name="uq_challenge_progress_subject_window",
        ),
        CheckConstraint("current_progress <= target_progress", name="ck_challenge_progress_clamped"),
        CheckConstraint("status IN ('active', 'completed', 'expired')", name="ck_challenge_progress_status"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    subject_type: Mapped[str] = mapped_column(String(20), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("challenge_templates.id", ondelete="CASCADE"), nullable=False
    )
    window_key: Mapped[str] = mapped_column(String(20), nullable=False)
    current_progress: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    target_progress: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", server_default="active")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    xp_awarded: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    points_awarded: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    template: Mapped[ChallengeTemplate] = relationship(lazy="joined")


class ChallengeDayMark(Base):
    """Days already counted for distinct-day challenges."""

    __tablename__ = "challenge_day_marks"
    __table_args__ = (
        UniqueConstraint("progress_id", "activity_date", name="uq_challenge_day_marks"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    progress_id: Mapped[int] = mapped_column(
        ForeignKey("challenge_progress.id", ondelete="CASCADE"), nullable=False
    )
    activity_date: Mapped[date] = mapped_column(Date, nullable=False)


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


class Team(Base):
    """Farmer team (co-op, church, youth group, village...)."""

    __tablename__ = "teams"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    team_type: Mapped[str] = mapped_column(String(20), default="other", server_default="other")
    leader_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    invite_code: Mapped[str] = mapped_column(String(12), unique=True, nullable=False)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    max_members: Mapped[int] = mapped_column(Integer, default=50, server_default="50")
    member_count: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class TeamMember(Base):
    """Team membership. A user may belong to several teams."""

    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
        CheckConstraint("role IN ('leader', 'member')", name="ck_team_members_role"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(10), default="member", server_default="member")
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class TeamStats(Base):
    """Cached team totals."""

    __tablename__ = "team_stats"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    challenges_completed: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class TeamAchievement(Base):
    """Badges earned by a team through team challenges."""

    __tablename__ = "team_achievements"
    __table_args__ = (
        UniqueConstraint("team_id", "achievement_name", name="uq_team_achievements_team_name"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    achievement_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


class ReferralCode(Base):
    """One immutable referral code per user."""

    __tablename__ = "referral_codes"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    user_id: Mapped[str] = mapped_column(USER_ID, primary_key=True)
    code: Mapped[str] = mapped_column(String(12), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class Referral(Base):
    """Inbound referral. A user can be referred at most once."""

    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'activated', 'rewarded')", name="ck_referrals_status"),
        CheckConstraint("referrer_id <> referred_id", name="ck_referrals_not_self"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(USER_ID, nullable=False, index=True)
    referred_id: Mapped[str] = mapped_column(USER_ID, unique=True, nullable=False)
    referral_code: Mapped[str] = mapped_column(String(12), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", server_default="pending")
    activation_action: Mapped[str | None] = mapped_column(String(50), nullable=True)
    referrer_xp_awarded: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    referrer_points_awarded: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    referred_xp_awarded: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    referred_points_awarded: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ReferralMilestone(Base):
    """Per-referrer counters and one-time milestone claim flags."""

    __tablename__ = "referral_milestones"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    user_id: Mapped[str] = mapped_column(USER_ID, primary_key=True)
    total_referrals: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    activated_referrals: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    current_tier: Mapped[str] = mapped_column(String(20), default="starter", server_default="starter")
    milestone_3_claimed: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    milestone_10_claimed: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    milestone_25_claimed: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    milestone_50_claimed: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    milestone_100_claimed: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class ReferralMilestoneReward(Base):
    """Catalog: reward per activated-referral threshold."""

    __tablename__ = "referral_milestone_rewards"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    threshold: Mapped[int] = mapped_column(Integer, primary_key=True)
    points_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    tier: Mapped[str | None] = mapped_column(String(20), nullable=True)


class ReferralShare(Base):
    """A referral link share (whatsapp, sms, facebook...)."""

    __tablename__ = "referral_shares"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(30), nullable=False)
    shared_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class ReferralShareBadge(Base):
    """Share-count badge tiers earned by a user."""

    __tablename__ = "referral_share_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge", name="uq_referral_share_badges_user_badge"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    badge: Mapped[str] = mapped_column(String(20), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Farmer score
# ---------------------------------------------------------------------------


class FarmerScore(Base):
    """Snapshot of the latest trust score recomputation."""

    __tablename__ = "farmer_scores"
    __table_args__ = (
        CheckConstraint("total_score >= 0 AND total_score <= 100", name="ck_farmer_scores_total"),
        {"extend_existing": True},
    )

    user_id: Mapped[str] = mapped_column(USER_ID, primary_key=True)
    learning_score: Mapped[float] = mapped_column(Float, default=0.0)
    mission_score: Mapped[float] = mapped_column(Float, default=0.0)
    engagement_score: Mapped[float] = mapped_column(Float, default=0.0)
    reliability_score: Mapped[float] = mapped_column(Float, default=0.0)
    total_score: Mapped[float] = mapped_column(Float, default=0.0)
    tier: Mapped[str] = mapped_column(String(20), default="bronze", server_default="bronze")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


# ---------------------------------------------------------------------------
# Rewards shop
# ---------------------------------------------------------------------------


class RewardItem(Base):
    """Catalog item redeemable for points. stock_quantity -1 means unlimited."""

    __tablename__ = "reward_items"
    __table_args__ = (
        CheckConstraint("points_cost > 0", name="ck_reward_items_cost_positive"),
        CheckConstraint("stock_quantity >= -1", name="ck_reward_items_stock"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    points_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=-1, server_default="-1")
    partner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class UserRedemption(Base):
    """A shop order paid with points."""

    __tablename__ = "user_redemptions"
    __table_args__ = {"extend_existing": True}  # noqa: RUF012

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False, index=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("reward_items.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", server_default="pending")
    redemption_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    item: Mapped[RewardItem] = relationship(lazy="joined")
