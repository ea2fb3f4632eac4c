"""
RenderJob model for the longform worker.

Tracks render requests from submission to a terminal state.
"""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


class JobStatus(str, enum.Enum):
    """Lifecycle states of a render job."""

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class RenderJob(Base):
    """
    RenderJob model representing one longform render request.

    The validated spec is stored as JSON at submission time; the worker
    re-validates it when the job is claimed.
    """

    __tablename__ = "render_jobs"
    __table_args__ = (
        # Claim query: oldest QUEUED first
        Index("ix_render_jobs_status_created", "status", "created_at", "seq"),
        # Listing: newest first per owner
        Index("ix_render_jobs_owner_created", "owner_id", "created_at", "seq"),
    )

    seq: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        doc="Insertion sequence; breaks created_at ties in creation order"
    )
    id: Mapped[str] = mapped_column(
        String(36),
        unique=True,
        nullable=False,
        default=generate_uuid,
        doc="Public UUID of the job"
    )
    owner_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        doc="Owning user id (users live in the external account service)"
    )
    payload: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        doc="Validated render spec as submitted"
    )

    # Status tracking
    status: Mapped[str] = mapped_column(
        String(20),
        default=JobStatus.QUEUED.value,
        nullable=False,
        doc="Status: QUEUED, PROCESSING, SUCCEEDED, FAILED"
    )
    progress: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        doc="Progress percentage (0-100)"
    )
    worker_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Worker that claimed the job"
    )

    # Output
    object_key: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        doc="Blob store key of the rendered file"
    )
    output_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Signed download URL"
    )

    # Error handling
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Error message if job failed"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        doc="Job creation timestamp"
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        doc="When a worker claimed the job"
    )
    finished_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        doc="When the job reached a terminal state"
    )

    def __repr__(self) -> str:
        return f"<RenderJob(id={self.id!r}, status={self.status!r}, progress={self.progress}%)>"
