"""Progress API endpoints: XP, points, streak, badges, score, actions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.auth.dependencies import get_current_user_id, require_service_role
from shamba.database import get_session
from shamba.db.models import UserProfile, XPLedger
from shamba.dependencies import get_redis_dep
from shamba.gamification.badge_service import list_badge_progress, list_badges
from shamba.gamification.farmer_score import get_farmer_score, get_stored_score, recalculate_farmer_score
from shamba.gamification.leaderboard_service import get_leaderboard, get_user_rank
from shamba.gamification.level_thresholds import LEVEL_THRESHOLDS, compute_level
from shamba.gamification.micro_rewards import list_action_rewards
from shamba.gamification.pipeline import ActionPipeline
from shamba.gamification.points_service import earn_points, get_account, get_points_history, redeem_points
from shamba.gamification.schemas import (
    ActionRequest,
    ActionResponse,
    ActionRewardResponse,
    AdminPointsRequest,
    AdminPointsResponse,
    AllLevelsResponse,
    BadgeProgressResponse,
    EarnedBadgeResponse,
    FarmerScoreResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    LevelEntry,
    PointsBalanceResponse,
    PointsHistoryResponse,
    PointsTransactionResponse,
    ProgressResponse,
    StreakResponse,
    StreakSaveRequest,
    StreakSaveResponse,
    UserBadgesResponse,
    UserRankResponse,
    XPHistoryEntry,
    XPHistoryResponse,
)
from shamba.gamification.streak_service import get_streak_status, save_streak
from shamba.gamification.xp_service import get_profile

router = APIRouter(prefix="/api/v1", tags=["Progress"])


# ── Public endpoints ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Get all level definitions."""
    return AllLevelsResponse(
        levels=[
            LevelEntry(level=t["level"], title=t["title"], cumulative=t["cumulative"])
            for t in LEVEL_THRESHOLDS
        ]
    )


@router.get("/actions", response_model=list[ActionRewardResponse])
async def list_actions(db: AsyncSession = Depends(get_session)):
    """Rewarded action types with their caps and cooldowns."""
    return [ActionRewardResponse.model_validate(r) for r in await list_action_rewards(db)]


@router.get("/leaderboards/{board}", response_model=LeaderboardResponse)
async def leaderboard(
    board: str,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Top farmers by XP (`xp`) or by XP and lessons finished (`learning`)."""
    entries = await get_leaderboard(db, board, limit)
    return LeaderboardResponse(board=board, entries=[LeaderboardEntry(**e) for e in entries])


# ── Authenticated endpoints ──


@router.get("/users/me/progress", response_model=ProgressResponse)
async def get_my_progress(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """XP, level, points and counters in one call."""
    profile = await get_profile(db, user_id) or UserProfile(
        user_id=user_id,
        total_xp=0,
        articles_completed=0,
        videos_completed=0,
        photo_uploads=0,
        missions_completed=0,
        raffle_entries=0,
    )
    balance, lifetime = await get_account(db, user_id)
    streak = await get_streak_status(db, user_id)

    level_info = compute_level(profile.total_xp)
    return ProgressResponse(
        user_id=user_id,
        total_xp=profile.total_xp,
        level=level_info["level"],
        level_title=level_info["title"],
        xp_into_level=level_info["xp_into_level"],
        xp_for_level=level_info["xp_for_level"],
        next_level=level_info["next_level"],
        next_title=level_info["next_title"],
        is_max_level=level_info["is_max_level"],
        points_balance=balance,
        lifetime_points=lifetime,
        current_streak=streak["current_streak"],
        articles_completed=profile.articles_completed,
        videos_completed=profile.videos_completed,
        photo_uploads=profile.photo_uploads,
        missions_completed=profile.missions_completed,
        raffle_entries=profile.raffle_entries,
    )


@router.get("/users/me/rank", response_model=UserRankResponse)
async def get_my_rank(
    board: str = Query("xp"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    return UserRankResponse(**await get_user_rank(db, user_id, board))


@router.get("/users/me/xp/history", response_model=XPHistoryResponse)
async def get_xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Paginated XP ledger, newest first."""
    total_result = await db.execute(
        select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id)
    )
    total = total_result.scalar() or 0

    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    entries = [XPHistoryEntry.model_validate(e) for e in result.scalars()]
    return XPHistoryResponse(entries=entries, total=total, page=page, per_page=per_page)


@router.get("/users/me/points", response_model=PointsBalanceResponse)
async def get_my_points(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    balance, lifetime = await get_account(db, user_id)
    return PointsBalanceResponse(balance=balance, lifetime_points=lifetime)


@router.get("/users/me/points/history", response_model=PointsHistoryResponse)
async def get_my_points_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Paginated points ledger, newest first."""
    rows, total = await get_points_history(db, user_id, page=page, per_page=per_page)
    return PointsHistoryResponse(
        transactions=[PointsTransactionResponse.model_validate(r) for r in rows],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/users/me/streak", response_model=StreakResponse)
async def get_my_streak(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Streak state, freezes, save eligibility and the next milestone."""
    return StreakResponse(**await get_streak_status(db, user_id))


@router.post("/users/me/streak/save", response_model=StreakSaveResponse)
async def save_my_streak(
    body: StreakSaveRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Spend a freeze to rescue an at-risk streak."""
    result = await save_streak(db, redis, user_id, body.recovery_action)
    await db.commit()
    return StreakSaveResponse.model_validate(result)


@router.get("/users/me/badges", response_model=UserBadgesResponse)
async def get_my_badges(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Earned badges and progress toward repeat-action badges."""
    earned = await list_badges(db, user_id)
    progress = await list_badge_progress(db, user_id)
    return UserBadgesResponse(
        earned=[
            EarnedBadgeResponse(
                slug=b.badge_slug,
                source=b.source,
                earned_at=b.earned_at,
                metadata=b.badge_metadata or {},
            )
            for b in earned
        ],
        in_progress=[BadgeProgressResponse.model_validate(p) for p in progress],
        total_earned=len(earned),
    )


@router.get("/users/me/score", response_model=FarmerScoreResponse)
async def get_my_score(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Live farmer score. ``updated_at`` is the time of the last stored snapshot."""
    breakdown = await get_farmer_score(db, user_id)
    stored = await get_stored_score(db, user_id)
    return FarmerScoreResponse(**breakdown.to_dict(), updated_at=stored.updated_at if stored else None)


@router.post("/users/me/score/recalculate", response_model=FarmerScoreResponse)
async def recalculate_my_score(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    breakdown = await recalculate_farmer_score(db, user_id)
    await db.commit()
    stored = await get_stored_score(db, user_id)
    return FarmerScoreResponse(**breakdown.to_dict(), updated_at=stored.updated_at if stored else None)


@router.post("/actions", response_model=ActionResponse)
async def record_action(
    body: ActionRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Run the reward cascade for one user action."""
    result = await ActionPipeline(db, redis).process(user_id, body.action_type, body.context)
    await db.commit()
    return ActionResponse.model_validate(result)


# ── Service-role endpoints ──


@router.post("/admin/points/earn", response_model=AdminPointsResponse, status_code=201)
async def admin_earn_points(
    body: AdminPointsRequest,
    _claims: dict = Depends(require_service_role),
    db: AsyncSession = Depends(get_session),
):
    """Credit points on behalf of another backend."""
    tx = await earn_points(db, body.user_id, body.amount, body.source, body.reference_id, body.description)
    await db.commit()
    balance, _ = await get_account(db, body.user_id)
    return AdminPointsResponse(transaction=PointsTransactionResponse.model_validate(tx), balance=balance)


@router.post("/admin/points/redeem", response_model=AdminPointsResponse, status_code=201)
async def admin_redeem_points(
    body: AdminPointsRequest,
    _claims: dict = Depends(require_service_role),
    db: AsyncSession = Depends(get_session),
):
    """Debit points on behalf of another backend. 409 when the balance is short."""
    tx = await redeem_points(db, body.user_id, body.amount, body.source, body.reference_id, body.description)
    await db.commit()
    balance, _ = await get_account(db, body.user_id)
    return AdminPointsResponse(transaction=PointsTransactionResponse.model_validate(tx), balance=balance)
