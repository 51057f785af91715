"""User mission lifecycle: available -> active -> completed.

``locked`` is assigned from outside (prerequisite gating) and has no user
transitions out of it.
"""

from __future__ import annotations

from enum import Enum

from lifequest.errors import InvalidTransition


class MissionStatus(str, Enum):
    AVAILABLE = "available"
    ACTIVE = "active"
    COMPLETED = "completed"
    LOCKED = "locked"


class StepStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


VALID_TRANSITIONS: dict[str, list[str]] = {
    MissionStatus.AVAILABLE.value: [MissionStatus.ACTIVE.value],
    MissionStatus.ACTIVE.value: [MissionStatus.COMPLETED.value],
    MissionStatus.COMPLETED.value: [],
    MissionStatus.LOCKED.value: [],
}

TERMINAL_STATES = frozenset(s for s, targets in VALID_TRANSITIONS.items() if not targets)


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a state transition. Raises InvalidTransition if invalid."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise InvalidTransition(
            f"Invalid transition: {current_status} -> {target_status}"
        )
