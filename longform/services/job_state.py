"""
Render job state machine.

    QUEUED --claim--> PROCESSING --+--> SUCCEEDED
                                   +--> FAILED

QUEUED is the only initial state. SUCCEEDED and FAILED are terminal; there is
no retry and no cancel. The job store applies these rules inside its
conditional UPDATEs, so a job can never be claimed twice or finish twice.
"""

from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from ..models.job import JobStatus

INITIAL_PROGRESS = 0
CLAIMED_PROGRESS = 5
FINAL_PROGRESS = 100

MAX_ERROR_MESSAGE_LENGTH = 2000

ALLOWED_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED}),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

TERMINAL_STATES: FrozenSet[JobStatus] = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED})


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]


def predecessors(target: JobStatus) -> FrozenSet[JobStatus]:
    """States from which ``target`` may be entered."""
    return frozenset(
        source for source, targets in ALLOWED_TRANSITIONS.items() if JobStatus(target) in targets
    )


def truncate_error(message: str) -> str:
    if len(message) <= MAX_ERROR_MESSAGE_LENGTH:
        return message
    return message[: MAX_ERROR_MESSAGE_LENGTH - 3] + "..."


def transition_values(
    target: JobStatus,
    now: datetime,
    output_url: Optional[str] = None,
    error_message: Optional[str] = None,
    worker_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Column values written when a job enters ``target``.

    Args:
        target: State being entered (never QUEUED, which is creation-only)
        now: Timestamp for started_at / finished_at
        output_url: Required for SUCCEEDED
        error_message: Required for FAILED
        worker_id: Recorded on claim

    Returns:
        Dict of RenderJob column -> value

    Raises:
        ValueError: If target is QUEUED or a required field is missing
    """
    target = JobStatus(target)

    if target == JobStatus.PROCESSING:
        return {
            "status": target.value,
            "progress": CLAIMED_PROGRESS,
            "started_at": now,
            "worker_id": worker_id,
        }

    if target == JobStatus.SUCCEEDED:
        if not output_url:
            raise ValueError("SUCCEEDED requires an output_url")
        return {
            "status": target.value,
            "progress": FINAL_PROGRESS,
            "output_url": output_url,
            "error_message": None,
            "finished_at": now,
        }

    if target == JobStatus.FAILED:
        return {
            "status": target.value,
            "progress": FINAL_PROGRESS,
            "error_message": truncate_error(error_message or "Unknown error"),
            "finished_at": now,
        }

    raise ValueError("QUEUED is only set when a job is created")
