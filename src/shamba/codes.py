"""Server-generated codes for referrals, team invites and redemptions.

Codes are uppercase alphanumeric (A-Z, 0-9), drawn from a cryptographic
random source. Users cannot choose their own codes.
"""

from __future__ import annotations

import secrets
import string
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

CODE_CHARSET = string.ascii_uppercase + string.digits  # A-Z, 0-9
REFERRAL_CODE_LENGTH = 8
TEAM_INVITE_LENGTH = 6
REDEMPTION_CODE_LENGTH = 10


def generate_code(length: int) -> str:
    """Generate a cryptographically random code of the given length."""
    return "".join(secrets.choice(CODE_CHARSET) for _ in range(length))


def normalize_code(code: str) -> str:
    """Normalize a user-typed code for case-insensitive lookup."""
    return code.strip().upper()


async def generate_unique_code(db: AsyncSession, column: Any, length: int) -> str:  # noqa: ANN401
    """Generate a code that doesn't already exist in ``column``."""
    for _ in range(10):
        code = generate_code(length)
        existing = await db.execute(select(column).where(column == code))
        if existing.first() is None:
            return code
    raise RuntimeError("Failed to generate unique code after 10 attempts")
