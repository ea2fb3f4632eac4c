"""
Services for validating render specs and managing render jobs.
"""

from .job_store import JobStore, SqlJobStore
from .jobs import get_job_for_user, list_jobs_for_user, submit_render_job
from .spec_validator import validate_render_spec

__all__ = [
    "JobStore",
    "SqlJobStore",
    "get_job_for_user",
    "list_jobs_for_user",
    "submit_render_job",
    "validate_render_spec",
]
