"""
SQLAlchemy models for the longform worker.

    from longform.models import RenderJob, JobStatus
"""

from .job import JobStatus, RenderJob

__all__ = [
    "JobStatus",
    "RenderJob",
]
