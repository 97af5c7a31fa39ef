"""Monthly raffle: tickets, standings and the weighted draw.

One raffle runs per calendar month (UTC). Tickets are earned at every
multiple of ``raffle_streak_interval_days`` in a streak and from any other
source that calls ``award_raffle_entry``. Each (source, source_id) pays at
most once per raffle, enforced by a UNIQUE constraint.
"""

from __future__ import annotations

import calendar
import logging
import random
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.config import get_settings
from shamba.db.base import dialect_insert
from shamba.db.models import MonthlyRaffle, RaffleEntry, RafflePrize
from shamba.errors import ConflictError, NotFoundError, ValidationError
from shamba.gamification.xp_service import increment_stat, publish_event

logger = logging.getLogger(__name__)


@dataclass
class DrawResult:
    raffle_id: int
    winner_id: str
    winner_entries: int
    total_entries: int
    total_participants: int
    prize_name: str | None = None


@dataclass
class StreakTickets:
    """Tickets earned by one streak change."""

    streak_days: list[int] = field(default_factory=list)
    tickets: int = 0


def draw_date_for(day: date) -> date:
    """Last day of the month containing ``day``."""
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


async def _find_raffle(db: AsyncSession, day: date) -> MonthlyRaffle | None:
    result = await db.execute(
        select(MonthlyRaffle)
        .where(MonthlyRaffle.year == day.year, MonthlyRaffle.month == day.month)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _current_prize_id(db: AsyncSession) -> int | None:
    result = await db.execute(
        select(RafflePrize.id).where(RafflePrize.is_active.is_(True)).order_by(RafflePrize.id).limit(1)
    )
    return result.scalar_one_or_none()


async def get_or_create_monthly_raffle(db: AsyncSession, today: date | None = None) -> MonthlyRaffle:
    """The raffle for the month of ``today``, created on first use."""
    if today is None:
        today = datetime.now(timezone.utc).date()
    await db.execute(
        dialect_insert(db, MonthlyRaffle)
        .values(
            year=today.year,
            month=today.month,
            prize_id=await _current_prize_id(db),
            draw_date=draw_date_for(today),
        )
        .on_conflict_do_nothing(index_elements=["year", "month"])
    )
    result = await db.execute(
        select(MonthlyRaffle)
        .where(MonthlyRaffle.year == today.year, MonthlyRaffle.month == today.month)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def award_raffle_entry(
    db: AsyncSession,
    redis: object,
    user_id: str,
    source: str,
    source_id: str | None = None,
    entry_count: int = 1,
    today: date | None = None,
) -> bool:
    """Add tickets to this month's raffle. Returns False if the source already paid."""
    if isinstance(entry_count, bool) or not isinstance(entry_count, int) or entry_count <= 0:
        raise ValidationError(f"Entry count must be a positive integer, got {entry_count!r}")

    raffle = await get_or_create_monthly_raffle(db, today)
    if raffle.status != "active":
        return False

    inserted = await db.execute(
        dialect_insert(db, RaffleEntry)
        .values(
            raffle_id=raffle.id,
            user_id=user_id,
            entry_count=entry_count,
            source=source,
            source_id=source_id or source,
        )
        .on_conflict_do_nothing(index_elements=["raffle_id", "user_id", "source", "source_id"])
        .returning(RaffleEntry.id)
    )
    if inserted.scalar_one_or_none() is None:
        return False

    await db.execute(
        update(MonthlyRaffle)
        .where(MonthlyRaffle.id == raffle.id)
        .values(total_entries=MonthlyRaffle.total_entries + entry_count)
        .execution_options(synchronize_session=False)
    )
    await increment_stat(db, user_id, "raffle_entries", entry_count)
    await publish_event(redis, "pubsub:raffle_entry", {
        "user_id": user_id,
        "raffle_id": raffle.id,
        "source": source,
        "entries": entry_count,
    })
    return True


async def award_streak_entries(
    db: AsyncSession,
    redis: object,
    user_id: str,
    old_streak: int,
    new_streak: int,
    today: date | None = None,
) -> StreakTickets:
    """One ticket batch for every interval multiple crossed between the two streak lengths."""
    settings = get_settings()
    interval = settings.raffle_streak_interval_days
    earned = StreakTickets()
    if interval <= 0 or settings.raffle_streak_tickets <= 0:
        return earned

    for multiple in range(max(old_streak, 0) // interval + 1, new_streak // interval + 1):
        days = multiple * interval
        paid = await award_raffle_entry(
            db, redis, user_id,
            source=f"streak_{days}",
            source_id=f"streak_milestone_{days}",
            entry_count=settings.raffle_streak_tickets,
            today=today,
        )
        if paid:
            earned.streak_days.append(days)
            earned.tickets += settings.raffle_streak_tickets
    if earned.tickets:
        logger.info("User %s earned %d raffle tickets at streak %d", user_id, earned.tickets, new_streak)
    return earned


async def get_user_raffle_status(db: AsyncSession, user_id: str, today: date | None = None) -> dict:
    """This month's raffle from one user's point of view. Read-only."""
    if today is None:
        today = datetime.now(timezone.utc).date()
    raffle = await _find_raffle(db, today)
    draw_date = raffle.draw_date if raffle else draw_date_for(today)

    status = {
        "raffle_id": raffle.id if raffle else None,
        "year": today.year,
        "month": today.month,
        "status": raffle.status if raffle else "active",
        "draw_date": draw_date,
        "days_remaining": max(0, (draw_date - today).days),
        "user_entries": 0,
        "total_entries": raffle.total_entries if raffle else 0,
        "total_participants": 0,
        "entry_sources": [],
        "prize": None,
        "winner_id": raffle.winner_id if raffle else None,
    }

    if raffle is None:
        prize_id = await _current_prize_id(db)
        prize = await db.get(RafflePrize, prize_id) if prize_id is not None else None
    else:
        prize = raffle.prize
    if prize is not None:
        status["prize"] = {
            "name": prize.name,
            "description": prize.description,
            "value_usd": prize.value_usd,
            "sponsor": prize.sponsor,
        }
    if raffle is None:
        return status

    entries = await db.execute(
        select(RaffleEntry)
        .where(RaffleEntry.raffle_id == raffle.id, RaffleEntry.user_id == user_id)
        .order_by(RaffleEntry.created_at, RaffleEntry.id)
    )
    for entry in entries.scalars().all():
        status["user_entries"] += entry.entry_count
        status["entry_sources"].append({
            "source": entry.source,
            "entries": entry.entry_count,
            "earned_at": entry.created_at,
        })

    participants = await db.execute(
        select(func.count(func.distinct(RaffleEntry.user_id))).where(RaffleEntry.raffle_id == raffle.id)
    )
    status["total_participants"] = participants.scalar_one()
    return status


async def _ticket_totals(db: AsyncSession, raffle_id: int) -> list[tuple[str, int]]:
    result = await db.execute(
        select(RaffleEntry.user_id, func.sum(RaffleEntry.entry_count).label("tickets"))
        .where(RaffleEntry.raffle_id == raffle_id)
        .group_by(RaffleEntry.user_id)
        .order_by(func.sum(RaffleEntry.entry_count).desc(), RaffleEntry.user_id)
    )
    return [(row.user_id, int(row.tickets)) for row in result]


async def get_raffle_leaderboard(db: AsyncSession, limit: int = 10, today: date | None = None) -> list[dict]:
    """Ticket holders of this month's raffle, most tickets first."""
    if today is None:
        today = datetime.now(timezone.utc).date()
    raffle = await _find_raffle(db, today)
    if raffle is None:
        return []
    totals = await _ticket_totals(db, raffle.id)
    return [
        {"rank": rank, "user_id": user_id, "total_entries": tickets}
        for rank, (user_id, tickets) in enumerate(totals[:limit], start=1)
    ]


def pick_weighted(totals: list[tuple[str, int]], rng: random.Random) -> tuple[str, int]:
    """Pick a holder with probability proportional to their tickets."""
    ticket = rng.randrange(sum(tickets for _, tickets in totals))
    for user_id, tickets in totals:
        if ticket < tickets:
            return user_id, tickets
        ticket -= tickets
    raise ValueError("ticket index out of range")


async def draw_raffle_winner(
    db: AsyncSession,
    redis: object,
    raffle_id: int,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> DrawResult:
    """Draw the winner of an active raffle, weighted by ticket count.

    The ``active -> completed`` flip is a compare-and-set, so a raffle is
    drawn exactly once.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    found = await db.execute(
        select(MonthlyRaffle).where(MonthlyRaffle.id == raffle_id).execution_options(populate_existing=True)
    )
    raffle = found.scalar_one_or_none()
    if raffle is None:
        raise NotFoundError("Raffle not found")
    if raffle.status != "active":
        raise ConflictError("Raffle has already been drawn")

    totals = await _ticket_totals(db, raffle.id)
    if not totals:
        raise ConflictError("No participants in raffle")

    winner_id, winner_entries = pick_weighted(totals, rng or secrets.SystemRandom())
    total_entries = sum(tickets for _, tickets in totals)
    flipped = await db.execute(
        update(MonthlyRaffle)
        .where(MonthlyRaffle.id == raffle.id, MonthlyRaffle.status == "active")
        .values(
            status="completed",
            winner_id=winner_id,
            winner_entries=winner_entries,
            total_participants=len(totals),
            drawn_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        raise ConflictError("Raffle has already been drawn")

    prize_name = raffle.prize.name if raffle.prize else None
    logger.info(
        "Raffle %d-%02d drawn: %s wins with %d of %d tickets",
        raffle.year, raffle.month, winner_id, winner_entries, total_entries,
    )
    await publish_event(redis, "pubsub:raffle_winner", {
        "raffle_id": raffle.id,
        "winner_id": winner_id,
        "prize_name": prize_name,
    })
    await db.flush()
    return DrawResult(
        raffle_id=raffle.id,
        winner_id=winner_id,
        winner_entries=winner_entries,
        total_entries=total_entries,
        total_participants=len(totals),
        prize_name=prize_name,
    )


async def list_past_winners(db: AsyncSession, limit: int = 12) -> list[MonthlyRaffle]:
    result = await db.execute(
        select(MonthlyRaffle)
        .where(MonthlyRaffle.status == "completed", MonthlyRaffle.winner_id.is_not(None))
        .order_by(MonthlyRaffle.year.desc(), MonthlyRaffle.month.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
