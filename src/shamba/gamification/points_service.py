"""Points ledger: append-only transactions plus a materialized balance.

Every earn/redeem appends exactly one ``points_transactions`` row and moves
``user_points.total_points`` in the same statement sequence of the caller's
transaction. Redeem is a conditional UPDATE, so two concurrent spends can
never drive the balance below zero.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shamba.db.base import dialect_insert
from shamba.db.models import PointsTransaction, UserPoints
from shamba.errors import InsufficientBalanceError, ValidationError

logger = logging.getLogger(__name__)


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Points amount must be a positive integer, got {amount!r}")


async def _ensure_account(db: AsyncSession, user_id: str) -> None:
    await db.execute(
        dialect_insert(db, UserPoints)
        .values(user_id=user_id, total_points=0, lifetime_points=0)
        .on_conflict_do_nothing(index_elements=["user_id"])
    )


async def earn_points(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source: str,
    reference_id: str | None = None,
    description: str | None = None,
) -> PointsTransaction:
    """Credit points. Returns the appended ledger entry."""
    _validate_amount(amount)
    now = datetime.now(timezone.utc)

    await _ensure_account(db, user_id)
    await db.execute(
        update(UserPoints)
        .where(UserPoints.user_id == user_id)
        .values(
            total_points=UserPoints.total_points + amount,
            lifetime_points=UserPoints.lifetime_points + amount,
            updated_at=now,
        )
    )

    entry = PointsTransaction(
        user_id=user_id,
        amount=amount,
        transaction_type="earn",
        source=source,
        reference_id=reference_id,
        description=description,
        created_at=now,
    )
    db.add(entry)
    await db.flush()
    return entry


async def redeem_points(
    db: AsyncSession,
    user_id: str,
    amount: int,
    source: str,
    reference_id: str | None = None,
    description: str | None = None,
    error_cls: type[InsufficientBalanceError] = InsufficientBalanceError,
) -> PointsTransaction:
    """Debit points, failing closed when the balance is too low.

    Raises ``error_cls`` (an InsufficientBalanceError) without appending
    anything if the balance is below ``amount``.
    """
    _validate_amount(amount)
    now = datetime.now(timezone.utc)

    result = await db.execute(
        update(UserPoints)
        .where(UserPoints.user_id == user_id, UserPoints.total_points >= amount)
        .values(total_points=UserPoints.total_points - amount, updated_at=now)
    )
    if result.rowcount != 1:
        balance = await get_balance(db, user_id)
        raise error_cls(balance, amount)

    entry = PointsTransaction(
        user_id=user_id,
        amount=-amount,
        transaction_type="redeem",
        source=source,
        reference_id=reference_id,
        description=description,
        created_at=now,
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_balance(db: AsyncSession, user_id: str) -> int:
    """Current redeemable balance (0 for users without an account)."""
    result = await db.execute(
        select(UserPoints.total_points).where(UserPoints.user_id == user_id)
    )
    return result.scalar_one_or_none() or 0


async def get_account(db: AsyncSession, user_id: str) -> tuple[int, int]:
    """Return (balance, lifetime_points)."""
    result = await db.execute(
        select(UserPoints.total_points, UserPoints.lifetime_points).where(UserPoints.user_id == user_id)
    )
    row = result.first()
    if row is None:
        return 0, 0
    return row.total_points, row.lifetime_points


async def get_ledger_sum(db: AsyncSession, user_id: str) -> int:
    """Sum of every ledger entry for a user. Always equals the balance."""
    result = await db.execute(
        select(func.coalesce(func.sum(PointsTransaction.amount), 0)).where(
            PointsTransaction.user_id == user_id
        )
    )
    return int(result.scalar_one())


async def get_points_history(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[PointsTransaction], int]:
    """Paginated ledger entries, newest first."""
    total_result = await db.execute(
        select(func.count()).select_from(PointsTransaction).where(PointsTransaction.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(PointsTransaction)
        .where(PointsTransaction.user_id == user_id)
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
