"""Domain error taxonomy.

Every error carries an HTTP status, a stable machine code and a message that
is safe to show to clients. Internal details go to the log, never into
``message``.
"""

from __future__ import annotations


class LifeQuestError(Exception):
    """Base class for all recoverable domain errors."""

    status_code: int = 400
    code: str = "error"
    message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, object]:
        return {"detail": self.message, "code": self.code}


class StorageError(LifeQuestError):
    """Durable store unreachable, misconfigured or failing. Transient."""

    status_code = 503
    code = "storage_unavailable"
    message = "Storage temporarily unavailable"


class ConflictError(LifeQuestError):
    """A write collided with a unique constraint."""

    status_code = 409
    code = "conflict"
    message = "Conflicting record already exists"


class MissionNotFound(LifeQuestError):
    status_code = 404
    code = "mission_not_found"
    message = "Mission not found"


class MissionAlreadyActive(LifeQuestError):
    status_code = 409
    code = "mission_already_active"
    message = "Mission already started"


class MissionNotActive(LifeQuestError):
    status_code = 409
    code = "mission_not_active"
    message = "Mission not started or already completed"


class StepNotFound(LifeQuestError):
    status_code = 404
    code = "step_not_found"
    message = "Mission step not found"


class InvalidTransition(LifeQuestError):
    status_code = 409
    code = "invalid_transition"
    message = "Invalid mission state transition"


class RewardNotFound(LifeQuestError):
    status_code = 404
    code = "reward_not_found"
    message = "Reward not found"


class InsufficientCoins(LifeQuestError):
    status_code = 400
    code = "insufficient_coins"
    message = "Insufficient coins"

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__()

    def to_dict(self) -> dict[str, object]:
        return {**super().to_dict(), "balance": self.balance, "required": self.required}


class QuotaExceeded(LifeQuestError):
    status_code = 429
    code = "too_many_requests"
    message = "Too many requests. Try again later."

    def __init__(self, action_class: str, limit: int, retry_after: int, reset_at: int) -> None:
        self.action_class = action_class
        self.limit = limit
        self.retry_after = retry_after
        self.reset_at = reset_at
        super().__init__()

    def to_dict(self) -> dict[str, object]:
        return {
            **super().to_dict(),
            "action": self.action_class,
            "retry_after": self.retry_after,
            "reset_at": self.reset_at,
        }
