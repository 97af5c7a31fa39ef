"""XP grant service with idempotency and level-up detection."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.db.base import dialect_insert
from shamba.db.models import UserProfile, XPLedger
from shamba.errors import ValidationError
from shamba.gamification.level_thresholds import compute_level

logger = logging.getLogger(__name__)

# Profile counters that feed the farmer score
PROFILE_COUNTERS = frozenset({
    "articles_completed",
    "videos_completed",
    "photo_uploads",
    "missions_completed",
    "raffle_entries",
})


async def get_profile(db: AsyncSession, user_id: str) -> UserProfile | None:
    """The progress row, or None before the user has earned anything."""
    result = await db.execute(
        select(UserProfile).where(UserProfile.user_id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_profile(db: AsyncSession, user_id: str) -> UserProfile:
    """Get or create the denormalized progress row for a user."""
    await db.execute(
        dialect_insert(db, UserProfile)
        .values(user_id=user_id)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    result = await db.execute(select(UserProfile).where(UserProfile.user_id == user_id))
    return result.scalar_one()


async def grant_xp(
    db: AsyncSession,
    redis: object,
    user_id: str,
    amount: int,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
    idempotency_key: str | None = None,
    metadata: dict | None = None,
) -> bool:
    """Grant XP to a user. Returns True if granted, False if duplicate.

    After granting:
    1. Insert into xp_ledger
    2. Atomically add to user_profiles.total_xp
    3. Recompute level (never decreases)
    4. If level changed, publish a level_up event
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"XP amount must be a positive integer, got {amount!r}")

    if idempotency_key is not None:
        existing = await db.execute(
            select(XPLedger.id).where(XPLedger.idempotency_key == idempotency_key)
        )
        if existing.first() is not None:
            return False

    now = datetime.now(timezone.utc)
    db.add(XPLedger(
        user_id=user_id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        idempotency_key=idempotency_key,
        grant_metadata=metadata or {},
        created_at=now,
    ))

    await get_or_create_profile(db, user_id)
    result = await db.execute(
        update(UserProfile)
        .where(UserProfile.user_id == user_id)
        .values(total_xp=UserProfile.total_xp + amount, updated_at=now)
        .returning(UserProfile.total_xp, UserProfile.level)
    )
    total_xp, old_level = result.one()

    level_info = compute_level(total_xp)
    if level_info["level"] > old_level:
        # Guarded so a concurrent grant that already raised the level wins
        await db.execute(
            update(UserProfile)
            .where(UserProfile.user_id == user_id, UserProfile.level < level_info["level"])
            .values(level=level_info["level"], level_title=level_info["title"])
        )
        await _emit_level_up(redis, user_id, old_level, level_info["level"], level_info["title"])

    await db.flush()
    return True


async def increment_stat(db: AsyncSession, user_id: str, counter: str, by: int = 1) -> None:
    """Atomically bump one of the profile activity counters."""
    if counter not in PROFILE_COUNTERS:
        raise ValidationError(f"Unknown profile counter: {counter}")
    await get_or_create_profile(db, user_id)
    column = getattr(UserProfile, counter)
    await db.execute(
        update(UserProfile)
        .where(UserProfile.user_id == user_id)
        .values({counter: column + by, "updated_at": datetime.now(timezone.utc)})
    )


async def publish_event(redis: object, channel: str, payload: dict) -> None:
    """Best-effort broadcast of a reward event to Redis pub/sub."""
    if redis is None:
        return
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[union-attr]
    except Exception:
        logger.warning("Failed to publish %s broadcast", channel, exc_info=True)


async def _emit_level_up(
    redis: object,
    user_id: str,
    old_level: int,
    new_level: int,
    title: str,
) -> None:
    logger.info("User %s levelled up %d -> %d (%s)", user_id, old_level, new_level, title)
    await publish_event(redis, "pubsub:level_up", {
        "user_id": user_id,
        "old_level": old_level,
        "new_level": new_level,
        "title": title,
    })
