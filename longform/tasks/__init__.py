"""
Longform Worker Tasks

- planning: output duration, per-background slice and canvas size
- render: compile a spec into an ffmpeg command and filter graph
- ffmpeg_runner: run ffmpeg with progress, logging and a watchdog
- worker_loop: claim jobs and drive them to a terminal state
"""

from .ffmpeg_runner import FFmpegRunner, FFmpegTimeout, validate_ffmpeg_available
from .planning import PlannedTiming, plan, plan_duration, resolve_canvas
from .render import EncoderCommand, FFmpegCommandBuilder, build_render_command
from .worker_loop import RenderWorker

__all__ = [
    "EncoderCommand",
    "FFmpegCommandBuilder",
    "FFmpegRunner",
    "FFmpegTimeout",
    "PlannedTiming",
    "RenderWorker",
    "build_render_command",
    "plan",
    "plan_duration",
    "resolve_canvas",
    "validate_ffmpeg_available",
]
