"""
Exception hierarchy for the longform render worker.

Each failure class maps to one row of the error taxonomy:

- ValidationError: the render request itself is malformed; no job is created.
- EncodingError: ffmpeg could not produce the output file.
- UploadError: the blob store rejected the finished file.
- StoreError: the job store could not be read or written.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class LongformError(Exception):
    """Base class for all errors raised by this package."""


@dataclass(frozen=True)
class FieldViolation:
    """One offending field of a render request."""

    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


class ValidationError(LongformError):
    """
    Raised when a render request violates the spec.

    Carries every violated field, not just the first one found.
    """

    def __init__(self, violations: List[FieldViolation]):
        self.violations = list(violations)
        summary = "; ".join(f"{v.field}: {v.message}" for v in self.violations)
        super().__init__(f"Invalid render spec: {summary}")

    @property
    def fields(self) -> List[str]:
        return [v.field for v in self.violations]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": "invalid_render_spec",
            "violations": [v.to_dict() for v in self.violations],
        }


class EncodingError(LongformError):
    """Raised when ffmpeg fails, cannot be spawned, or leaves no output."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        self.exit_code = exit_code
        super().__init__(message)


class UploadError(LongformError):
    """Raised when the rendered file cannot be stored or signed."""


class StoreError(LongformError):
    """Raised when the job store is unreachable or a write fails."""


class InvalidTransitionError(StoreError):
    """Raised when a job status change is not allowed by the state machine."""

    def __init__(self, job_id: str, current: Optional[str], target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id}: cannot transition from {current} to {target}")
