"""
Pydantic schemas for render jobs.

RenderJobRead is the detached snapshot the job store hands out, so callers
never hold a live ORM object across sessions.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.job import JobStatus


class RenderJobRead(BaseModel):
    """Full state of a render job."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Render job UUID")
    owner_id: str = Field(..., description="Owning user id")
    payload: Dict[str, Any] = Field(..., description="Render spec as submitted")
    status: JobStatus = Field(..., description="Current job status")
    progress: int = Field(0, ge=0, le=100, description="Progress percentage (0-100)")
    worker_id: Optional[str] = Field(None, description="Worker that claimed the job")
    object_key: Optional[str] = Field(None, description="Blob store key when complete")
    output_url: Optional[str] = Field(None, description="Signed download URL when complete")
    error_message: Optional[str] = Field(None, description="Error message if failed")
    created_at: datetime = Field(..., description="When the job was created")
    started_at: Optional[datetime] = Field(None, description="When a worker claimed the job")
    finished_at: Optional[datetime] = Field(None, description="When the job reached a terminal state")

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class JobSubmission(BaseModel):
    """Returned when a render job is accepted (202 Accepted)."""

    job_id: str = Field(..., description="Unique identifier for the render job")
    status: JobStatus = Field(JobStatus.QUEUED, description="Initial job status")
