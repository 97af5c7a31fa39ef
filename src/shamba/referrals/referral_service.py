"""Referral codes, referral activation and referrer milestones.

A referral moves ``pending -> activated`` exactly once; activation pays both
parties. ``activated`` is the terminal success state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.challenges.challenge_service import Subject, update_progress
from shamba.codes import REFERRAL_CODE_LENGTH, generate_unique_code, normalize_code
from shamba.config import get_settings
from shamba.db.base import dialect_insert
from shamba.db.models import (
    Referral,
    ReferralCode,
    ReferralMilestone,
    ReferralMilestoneReward,
    ReferralShare,
    ReferralShareBadge,
)
from shamba.errors import (
    AlreadyReferredError,
    InvalidReferralCodeError,
    NoPendingReferralError,
    SelfReferralError,
    ValidationError,
)
from shamba.gamification.points_service import earn_points
from shamba.gamification.xp_service import grant_xp, publish_event
from shamba.missions.mission_service import has_active_perk

logger = logging.getLogger(__name__)

MILESTONE_THRESHOLDS = (3, 10, 25, 50, 100)

# (badge, min shares, xp, points), ascending
SHARE_BADGES = (
    ("bronze", 1, 5, 0),
    ("silver", 5, 15, 10),
    ("gold", 10, 30, 25),
    ("platinum", 25, 75, 50),
    ("legend", 50, 150, 100),
)

SHARE_CHANNELS = frozenset({"whatsapp", "sms", "facebook", "twitter", "telegram", "copy_link", "other"})


def _claim_flag(threshold: int):  # noqa: ANN202
    return getattr(ReferralMilestone, f"milestone_{threshold}_claimed")


async def _ensure_milestone_row(db: AsyncSession, user_id: str) -> None:
    await db.execute(
        dialect_insert(db, ReferralMilestone)
        .values(user_id=user_id)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )


async def get_milestone_row(db: AsyncSession, user_id: str) -> ReferralMilestone | None:
    result = await db.execute(
        select(ReferralMilestone)
        .where(ReferralMilestone.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_referral_code(db: AsyncSession, user_id: str) -> str:
    """Return the user's referral code, creating it on first use."""
    result = await db.execute(select(ReferralCode.code).where(ReferralCode.user_id == user_id))
    code = result.scalar_one_or_none()
    if code is not None:
        return code

    code = await generate_unique_code(db, ReferralCode.code, REFERRAL_CODE_LENGTH)
    await db.execute(
        dialect_insert(db, ReferralCode)
        .values(user_id=user_id, code=code, created_at=datetime.now(timezone.utc))
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    # A concurrent first call may have won; its code is the user's code
    result = await db.execute(select(ReferralCode.code).where(ReferralCode.user_id == user_id))
    return result.scalar_one()


async def create_referral(db: AsyncSession, code: str, new_user_id: str) -> Referral:
    """Record that ``new_user_id`` signed up with ``code``."""
    normalized = normalize_code(code)
    if not normalized:
        raise InvalidReferralCodeError()

    result = await db.execute(select(ReferralCode).where(ReferralCode.code == normalized))
    owner = result.scalar_one_or_none()
    if owner is None:
        raise InvalidReferralCodeError()
    if owner.user_id == new_user_id:
        raise SelfReferralError()

    existing = await db.execute(select(Referral.id).where(Referral.referred_id == new_user_id))
    if existing.first() is not None:
        raise AlreadyReferredError()

    referral = Referral(
        referrer_id=owner.user_id,
        referred_id=new_user_id,
        referral_code=normalized,
        status="pending",
        created_at=datetime.now(timezone.utc),
    )
    db.add(referral)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise AlreadyReferredError() from None

    await _ensure_milestone_row(db, owner.user_id)
    await db.execute(
        update(ReferralMilestone)
        .where(ReferralMilestone.user_id == owner.user_id)
        .values(
            total_referrals=ReferralMilestone.total_referrals + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    logger.info("Referral created: %s referred by %s", new_user_id, owner.user_id)
    return referral


async def activate_referral(
    db: AsyncSession,
    redis: object,
    user_id: str,
    first_action: str,
    now: datetime | None = None,
) -> dict:
    """Activate the pending referral of ``user_id`` and pay both parties."""
    if now is None:
        now = datetime.now(timezone.utc)
    settings = get_settings()

    result = await db.execute(
        select(Referral).where(Referral.referred_id == user_id, Referral.status == "pending")
    )
    referral = result.scalar_one_or_none()
    if referral is None:
        raise NoPendingReferralError()

    referrer_points = settings.referral_referrer_points
    if await has_active_perk(db, referral.referrer_id, "double_referral_points", now):
        referrer_points *= 2

    flipped = await db.execute(
        update(Referral)
        .where(Referral.id == referral.id, Referral.status == "pending")
        .values(
            status="activated",
            activation_action=first_action,
            activated_at=now,
            referrer_xp_awarded=settings.referral_referrer_xp,
            referrer_points_awarded=referrer_points,
            referred_xp_awarded=settings.referral_referred_xp,
            referred_points_awarded=settings.referral_referred_points,
        )
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        raise NoPendingReferralError()

    reference = f"referral:{referral.id}"
    await grant_xp(
        db, redis, referral.referrer_id, settings.referral_referrer_xp, "referral",
        source_id=str(referral.id),
        description="Your referral became active",
        idempotency_key=f"{reference}:referrer",
    )
    await earn_points(
        db, referral.referrer_id, referrer_points, "referral",
        reference_id=reference,
        description="Your referral became active",
    )
    await grant_xp(
        db, redis, user_id, settings.referral_referred_xp, "referral",
        source_id=str(referral.id),
        description="Welcome bonus",
        idempotency_key=f"{reference}:referred",
    )
    await earn_points(
        db, user_id, settings.referral_referred_points, "referral",
        reference_id=reference,
        description="Welcome bonus",
    )

    await _ensure_milestone_row(db, referral.referrer_id)
    await db.execute(
        update(ReferralMilestone)
        .where(ReferralMilestone.user_id == referral.referrer_id)
        .values(
            activated_referrals=ReferralMilestone.activated_referrals + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    milestones = await check_milestones(db, redis, referral.referrer_id)
    await update_progress(db, redis, Subject.individual(referral.referrer_id), "referral_activated", now=now)

    logger.info("Referral %d activated by %s (%s)", referral.id, user_id, first_action)
    await publish_event(redis, "pubsub:referral_activated", {
        "referrer_id": referral.referrer_id,
        "referred_id": user_id,
    })
    return {
        "referral_id": referral.id,
        "referrer_id": referral.referrer_id,
        "referrer_xp": settings.referral_referrer_xp,
        "referrer_points": referrer_points,
        "referred_xp": settings.referral_referred_xp,
        "referred_points": settings.referral_referred_points,
        "milestones_claimed": milestones,
    }


async def list_milestone_rewards(db: AsyncSession) -> list[ReferralMilestoneReward]:
    result = await db.execute(select(ReferralMilestoneReward).order_by(ReferralMilestoneReward.threshold))
    return list(result.scalars().all())


async def check_milestones(db: AsyncSession, redis: object, user_id: str) -> list[dict]:
    """Claim every reached, unclaimed referral milestone in ascending order.

    Each threshold flag is flipped by compare-and-set, so repeated or
    concurrent calls claim each threshold once.
    """
    row = await get_milestone_row(db, user_id)
    if row is None:
        return []

    rewards = {r.threshold: r for r in await list_milestone_rewards(db)}
    claimed: list[dict] = []
    for threshold in MILESTONE_THRESHOLDS:
        if row.activated_referrals < threshold:
            break
        flag = _claim_flag(threshold)
        values: dict = {f"milestone_{threshold}_claimed": True, "updated_at": datetime.now(timezone.utc)}
        reward = rewards.get(threshold)
        if reward is not None and reward.tier:
            values["current_tier"] = reward.tier
        flipped = await db.execute(
            update(ReferralMilestone)
            .where(
                ReferralMilestone.user_id == user_id,
                flag.is_(False),
                ReferralMilestone.activated_referrals >= threshold,
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            continue

        points = reward.points_reward if reward else 0
        xp = reward.xp_reward if reward else 0
        if points > 0:
            await earn_points(
                db, user_id, points, "referral_milestone",
                reference_id=f"referral_milestone:{threshold}",
                description=f"{threshold} active referrals",
            )
        if xp > 0:
            await grant_xp(
                db, redis, user_id, xp, "referral_milestone",
                source_id=str(threshold),
                description=f"{threshold} active referrals",
                idempotency_key=f"referral_milestone:{user_id}:{threshold}",
            )
        logger.info("Referral milestone %d claimed by %s", threshold, user_id)
        claimed.append({
            "threshold": threshold,
            "points": points,
            "xp": xp,
            "tier": reward.tier if reward else None,
        })
    return claimed


async def record_referral_share(db: AsyncSession, redis: object, user_id: str, channel: str) -> dict:
    """Count a share of the user's referral link and award share badges."""
    channel = channel.strip().lower()
    if channel not in SHARE_CHANNELS:
        raise ValidationError(f"Unknown share channel: {channel}")

    db.add(ReferralShare(user_id=user_id, channel=channel, shared_at=datetime.now(timezone.utc)))
    await db.flush()
    count_result = await db.execute(
        select(func.count()).select_from(ReferralShare).where(ReferralShare.user_id == user_id)
    )
    share_count = count_result.scalar_one()

    awarded: list[dict] = []
    for badge, min_shares, xp, points in SHARE_BADGES:
        if share_count < min_shares:
            break
        inserted = await db.execute(
            dialect_insert(db, ReferralShareBadge)
            .values(user_id=user_id, badge=badge)
            .on_conflict_do_nothing(index_elements=["user_id", "badge"])
            .returning(ReferralShareBadge.id)
        )
        if inserted.scalar_one_or_none() is None:
            continue
        if xp > 0:
            await grant_xp(
                db, redis, user_id, xp, "referral_share",
                source_id=badge,
                description=f"{badge.title()} referrer badge",
                idempotency_key=f"referral_share_badge:{user_id}:{badge}",
            )
        if points > 0:
            await earn_points(
                db, user_id, points, "referral_share",
                reference_id=f"referral_share_badge:{badge}",
                description=f"{badge.title()} referrer badge",
            )
        awarded.append({"badge": badge, "xp": xp, "points": points})

    return {"share_count": share_count, "badges_awarded": awarded}


async def get_referral_stats(db: AsyncSession, user_id: str) -> dict:
    """Dashboard view of a referrer's code, counters and referrals."""
    code = await get_or_create_referral_code(db, user_id)
    row = await get_milestone_row(db, user_id)

    referrals_result = await db.execute(
        select(Referral)
        .where(Referral.referrer_id == user_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
    )
    referrals = list(referrals_result.scalars().all())

    badges_result = await db.execute(
        select(ReferralShareBadge.badge).where(ReferralShareBadge.user_id == user_id)
    )
    share_badges = set(badges_result.scalars().all())
    shares_result = await db.execute(
        select(func.count()).select_from(ReferralShare).where(ReferralShare.user_id == user_id)
    )

    activated = row.activated_referrals if row else 0
    claimed = {t: bool(getattr(row, f"milestone_{t}_claimed")) if row else False for t in MILESTONE_THRESHOLDS}
    next_threshold = next((t for t in MILESTONE_THRESHOLDS if activated < t), None)

    return {
        "code": code,
        "total_referrals": row.total_referrals if row else 0,
        "activated_referrals": activated,
        "pending_referrals": sum(1 for r in referrals if r.status == "pending"),
        "current_tier": row.current_tier if row else "starter",
        "milestones_claimed": claimed,
        "next_milestone": next_threshold,
        "referrals_to_next": next_threshold - activated if next_threshold else 0,
        "share_count": shares_result.scalar_one(),
        "share_badges": [b for b, *_ in SHARE_BADGES if b in share_badges],
        "referrals": referrals,
    }
