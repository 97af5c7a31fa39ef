"""Monthly raffle API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.auth.dependencies import get_current_user_id, require_service_role
from shamba.database import get_session
from shamba.dependencies import get_redis_dep
from shamba.raffles.raffle_service import (
    draw_raffle_winner,
    get_raffle_leaderboard,
    get_user_raffle_status,
    list_past_winners,
)
from shamba.raffles.schemas import (
    DrawResponse,
    PastWinnerResponse,
    PastWinnersResponse,
    RaffleLeaderboardResponse,
    RaffleStanding,
    RaffleStatusResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Raffle"])


@router.get("/raffles/current/leaderboard", response_model=RaffleLeaderboardResponse)
async def current_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Ticket holders of this month's raffle."""
    standings = await get_raffle_leaderboard(db, limit)
    return RaffleLeaderboardResponse(entries=[RaffleStanding(**s) for s in standings])


@router.get("/raffles/winners", response_model=PastWinnersResponse)
async def past_winners(
    limit: int = Query(12, ge=1, le=60),
    db: AsyncSession = Depends(get_session),
):
    raffles = await list_past_winners(db, limit)
    return PastWinnersResponse(winners=[
        PastWinnerResponse(
            raffle_id=r.id,
            year=r.year,
            month=r.month,
            winner_id=r.winner_id,
            prize_name=r.prize.name if r.prize else None,
            total_entries=r.total_entries,
            total_participants=r.total_participants,
            drawn_at=r.drawn_at,
        )
        for r in raffles
    ])


@router.get("/users/me/raffle", response_model=RaffleStatusResponse)
async def my_raffle_status(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """This month's raffle: my tickets, where they came from, and the prize."""
    return RaffleStatusResponse(**await get_user_raffle_status(db, user_id))


@router.post("/admin/raffles/{raffle_id}/draw", response_model=DrawResponse)
async def draw_winner(
    raffle_id: int,
    _claims: dict = Depends(require_service_role),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Draw the winner, weighted by tickets. 409 when already drawn or empty."""
    result = await draw_raffle_winner(db, redis, raffle_id)
    await db.commit()
    return DrawResponse.model_validate(result)
