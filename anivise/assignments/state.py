"""Form assignment state machine and live token evaluation.

pending → sent → opened → completed, with skips allowed forward
(pending → opened, pending/sent → completed). completed is terminal.

Expiry is not a stored status. evaluate_token derives it from
(status, expires_at, now) on every access.
"""

from datetime import datetime
from enum import StrEnum

from anivise.models.common import as_utc


class AssignmentStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    OPENED = "opened"
    COMPLETED = "completed"


VALID_ASSIGNMENT_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.PENDING: frozenset({
        AssignmentStatus.SENT,
        AssignmentStatus.OPENED,
        AssignmentStatus.COMPLETED,
    }),
    AssignmentStatus.SENT: frozenset({
        AssignmentStatus.OPENED,
        AssignmentStatus.COMPLETED,
    }),
    AssignmentStatus.OPENED: frozenset({AssignmentStatus.COMPLETED}),
    AssignmentStatus.COMPLETED: frozenset(),
}

REMINDABLE_STATUSES: frozenset[AssignmentStatus] = frozenset({
    AssignmentStatus.SENT,
    AssignmentStatus.OPENED,
})


class TokenState(StrEnum):
    """Usability of a bearer token at one instant."""

    USABLE = "usable"
    EXPIRED = "expired"
    ALREADY_COMPLETED = "already_completed"


def can_transition(current: str, target: AssignmentStatus) -> bool:
    return target in VALID_ASSIGNMENT_TRANSITIONS[AssignmentStatus(current)]


def ensure_assignment_transition(current: str, target: AssignmentStatus) -> None:
    """Raise ValueError if ``current → target`` is not a legal edge."""
    if not can_transition(current, target):
        allowed = VALID_ASSIGNMENT_TRANSITIONS[AssignmentStatus(current)]
        msg = (
            f"Cannot transition assignment from {current} to {target}. "
            f"Allowed: {sorted(s.value for s in allowed)}."
        )
        raise ValueError(msg)


def evaluate_token(status: str, expires_at: datetime, now: datetime) -> TokenState:
    """Pure usability check; completed wins over expired."""
    if AssignmentStatus(status) == AssignmentStatus.COMPLETED:
        return TokenState.ALREADY_COMPLETED
    if now > as_utc(expires_at):
        return TokenState.EXPIRED
    return TokenState.USABLE
