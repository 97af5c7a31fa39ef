"""Engine error taxonomy.

Every error subclasses ValueError so callers that only know the generic
"bad request" contract keep working; the HTTP layer maps ``status_code``.
"""

from __future__ import annotations


class EngineError(ValueError):
    """Base class for all rejected engine operations."""

    status_code = 400


class ValidationError(EngineError):
    """Malformed input, rejected before any read."""

    status_code = 422


class NotFoundError(EngineError):
    """Unknown user, template, mission, code or item."""

    status_code = 404


class ConflictError(EngineError):
    """The request would duplicate or contradict existing state."""

    status_code = 409


class ForbiddenError(EngineError):
    """The caller lacks the role required for a team-scoped operation."""

    status_code = 403


class InsufficientResourceError(EngineError):
    """Balance or stock too low. Nothing was debited."""

    status_code = 409


# --- Ledger / shop ---


class InsufficientBalanceError(InsufficientResourceError):
    def __init__(self, balance: int, requested: int) -> None:
        super().__init__(f"Insufficient points: balance {balance}, requested {requested}")
        self.balance = balance
        self.requested = requested


class InsufficientPointsError(InsufficientBalanceError):
    """Raised by the shop when the cart costs more than the balance."""


class OutOfStockError(InsufficientResourceError):
    def __init__(self, item_id: int, available: int, requested: int) -> None:
        super().__init__(f"Item {item_id} is out of stock")
        self.item_id = item_id
        self.available = available
        self.requested = requested


# --- Referrals ---


class InvalidReferralCodeError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("Invalid referral code")


class SelfReferralError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Cannot refer yourself")


class AlreadyReferredError(ConflictError):
    def __init__(self) -> None:
        super().__init__("User already has a referrer")


class NoPendingReferralError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("No pending referral to activate")


# --- Missions ---


class MissionAlreadyActiveError(ConflictError):
    def __init__(self) -> None:
        super().__init__("Mission already active for this field")


class StepOutOfOrderError(ConflictError):
    def __init__(self, step_index: int) -> None:
        super().__init__(f"Complete the steps before step {step_index} first")
        self.step_index = step_index


# --- Teams ---


class TeamFullError(ConflictError):
    """Team has reached its member limit."""


class NotTeamMemberError(ForbiddenError):
    def __init__(self) -> None:
        super().__init__("You are not a member of this team")
