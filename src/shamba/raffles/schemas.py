"""Pydantic schemas for raffle endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel


class RafflePrizeResponse(BaseModel):
    name: str
    description: str | None = None
    value_usd: float | None = None
    sponsor: str | None = None


class EntrySourceResponse(BaseModel):
    source: str
    entries: int
    earned_at: datetime


class RaffleStatusResponse(BaseModel):
    raffle_id: int | None = None
    year: int
    month: int
    status: str
    draw_date: date
    days_remaining: int
    user_entries: int
    total_entries: int
    total_participants: int
    entry_sources: list[EntrySourceResponse]
    prize: RafflePrizeResponse | None = None
    winner_id: str | None = None


class RaffleStanding(BaseModel):
    rank: int
    user_id: str
    total_entries: int


class RaffleLeaderboardResponse(BaseModel):
    entries: list[RaffleStanding]


class PastWinnerResponse(BaseModel):
    raffle_id: int
    year: int
    month: int
    winner_id: str
    prize_name: str | None = None
    total_entries: int
    total_participants: int | None = None
    drawn_at: datetime | None = None


class PastWinnersResponse(BaseModel):
    winners: list[PastWinnerResponse]


class DrawResponse(BaseModel):
    raffle_id: int
    winner_id: str
    winner_entries: int
    total_entries: int
    total_participants: int
    prize_name: str | None = None

    model_config = {"from_attributes": True}
