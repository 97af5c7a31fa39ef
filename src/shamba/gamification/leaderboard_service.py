"""XP and learning leaderboards over user_profiles.

Boards are read straight from the profile counters, ordered by XP. The
learning board only lists users who finished at least one lesson and breaks
XP ties by lessons completed. Ranks are positional (1, 2, 3 ...); a user's
own rank is one more than the number of users strictly ahead.
"""

from __future__ import annotations

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.db.models import UserProfile
from shamba.errors import ValidationError

BOARDS = ("xp", "learning")

_LESSONS = UserProfile.articles_completed + UserProfile.videos_completed


def _validate_board(board: str) -> None:
    if board not in BOARDS:
        raise ValidationError(f"Unknown leaderboard: {board}")


def _board_filter(board: str):
    if board == "learning":
        return _LESSONS > 0
    return UserProfile.total_xp > 0


def _entry(rank: int, profile: UserProfile) -> dict:
    return {
        "rank": rank,
        "user_id": profile.user_id,
        "total_xp": profile.total_xp,
        "level": profile.level,
        "level_title": profile.level_title,
        "articles_completed": profile.articles_completed,
        "videos_completed": profile.videos_completed,
        "total_lessons": profile.articles_completed + profile.videos_completed,
    }


async def get_leaderboard(db: AsyncSession, board: str = "xp", limit: int = 10) -> list[dict]:
    """Top ``limit`` users of a board."""
    _validate_board(board)
    order = [UserProfile.total_xp.desc()]
    if board == "learning":
        order.append(_LESSONS.desc())
    order.append(UserProfile.user_id)

    result = await db.execute(
        select(UserProfile)
        .where(_board_filter(board))
        .order_by(*order)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return [_entry(rank, p) for rank, p in enumerate(result.scalars().all(), start=1)]


async def get_user_rank(db: AsyncSession, user_id: str, board: str = "xp") -> dict:
    """A user's rank on a board; ``rank`` is None when the user is not on it."""
    _validate_board(board)
    total = await db.execute(select(func.count()).select_from(UserProfile).where(_board_filter(board)))
    total_users = total.scalar_one()

    found = await db.execute(
        select(UserProfile)
        .where(UserProfile.user_id == user_id, _board_filter(board))
        .execution_options(populate_existing=True)
    )
    profile = found.scalar_one_or_none()
    if profile is None:
        return {"board": board, "rank": None, "total_users": total_users}

    ahead_clause = UserProfile.total_xp > profile.total_xp
    if board == "learning":
        lessons = profile.articles_completed + profile.videos_completed
        ahead_clause = or_(
            ahead_clause,
            and_(UserProfile.total_xp == profile.total_xp, _LESSONS > lessons),
        )
    ahead = await db.execute(
        select(func.count()).select_from(UserProfile).where(_board_filter(board), ahead_clause)
    )
    return {"board": board, "rank": ahead.scalar_one() + 1, "total_users": total_users}
