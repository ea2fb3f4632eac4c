"""
Pydantic schemas for render specs and jobs.
"""

from .job import JobSubmission, RenderJobRead
from .render_spec import (
    MAX_AUDIOS,
    MAX_BACKGROUNDS,
    MAX_TOTAL_SECONDS,
    AudioTrack,
    BackgroundTrack,
    CanvasSpec,
    LongformRenderSpec,
    OutputSpec,
)

__all__ = [
    "AudioTrack",
    "BackgroundTrack",
    "CanvasSpec",
    "JobSubmission",
    "LongformRenderSpec",
    "MAX_AUDIOS",
    "MAX_BACKGROUNDS",
    "MAX_TOTAL_SECONDS",
    "OutputSpec",
    "RenderJobRead",
]
