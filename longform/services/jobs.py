"""
Render job submission and lookup.

These are the calls an HTTP layer makes: validate the body, persist a
QUEUED job, and wake idle workers. Authentication happens before this point;
``owner_id`` is trusted.
"""

import logging
from typing import Any, List, Optional

from ..core.notifier import JobNotifier
from ..schemas.job import JobSubmission, RenderJobRead
from .job_store import DEFAULT_PAGE_SIZE, JobStore
from .spec_validator import validate_render_spec

logger = logging.getLogger(__name__)


def submit_render_job(
    store: JobStore,
    owner_id: str,
    payload: Any,
    notifier: Optional[JobNotifier] = None,
) -> JobSubmission:
    """
    Validate a render request and queue it.

    Raises:
        ValidationError: The payload is not a valid render spec; no job is created
        StoreError: The job could not be persisted
    """
    spec = validate_render_spec(payload)
    job = store.create_job(owner_id, spec)
    if notifier is not None:
        notifier.notify()
    return JobSubmission(job_id=job.id, status=job.status)


def get_job_for_user(store: JobStore, job_id: str, owner_id: str) -> Optional[RenderJobRead]:
    return store.get_job(job_id, owner_id)


def list_jobs_for_user(
    store: JobStore,
    owner_id: str,
    limit: int = DEFAULT_PAGE_SIZE,
    cursor: Optional[str] = None,
) -> List[RenderJobRead]:
    return store.list_jobs(owner_id, limit=limit, cursor=cursor)
