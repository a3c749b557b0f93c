"""Dossier job state machine.

pending → processing → {completed, failed}
pending → failed (dispatch never reached n8n)

Terminal states have no outgoing edges. A retry creates a new job; it
never reopens a terminal one.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


VALID_JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

IN_FLIGHT_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.PENDING,
    JobStatus.PROCESSING,
})

TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
})


def is_terminal(status: str) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def ensure_job_transition(current: str, target: JobStatus) -> None:
    """Raise ValueError if ``current → target`` is not a legal edge."""
    allowed = VALID_JOB_TRANSITIONS[JobStatus(current)]
    if target not in allowed:
        msg = (
            f"Cannot transition dossier job from {current} to {target}. "
            f"Allowed: {sorted(s.value for s in allowed)}."
        )
        raise ValueError(msg)
