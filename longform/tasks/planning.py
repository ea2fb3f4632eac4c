"""
Duration and canvas planning.

Real media durations are only known once ffmpeg has read the sources, so the
output length is planned from the advisory hints in the spec and bounded by
the 3 hour ceiling and the optional explicit cap.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from ..schemas.render_spec import MAX_TOTAL_SECONDS, LongformRenderSpec

DEFAULT_DURATION_SECONDS = 60.0

# 16:9 presets
QUALITY_PRESETS: Dict[str, Tuple[int, int]] = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
}


@dataclass(frozen=True)
class PlannedTiming:
    """Resolved output timing and geometry for one render."""

    total_seconds: float
    slice_seconds: float
    width: int
    height: int

    @property
    def fade_seconds(self) -> float:
        """Per-slice video fade length, capped at 1.5s."""
        return min(self.slice_seconds / 4, 1.5)


def plan_duration(spec: LongformRenderSpec) -> float:
    """
    Total output duration in seconds.

    min(sum of audio hints, or 60 when there are none; 3 hours; explicit cap)
    """
    hinted = spec.hinted_audio_seconds
    total = min(hinted or DEFAULT_DURATION_SECONDS, MAX_TOTAL_SECONDS)
    cap = spec.output.max_duration_seconds
    if cap:
        total = min(total, cap)
    return float(total)


def resolve_canvas(spec: LongformRenderSpec) -> Tuple[int, int]:
    """
    Output (width, height).

    Explicit values win; each missing one is taken from the quality preset,
    so an explicit width can be combined with a preset height.
    """
    preset_width, preset_height = QUALITY_PRESETS[spec.output.quality]
    width = spec.canvas.width if spec.canvas.width is not None else preset_width
    height = spec.canvas.height if spec.canvas.height is not None else preset_height
    return width, height


def plan(spec: LongformRenderSpec) -> PlannedTiming:
    """
    Plan total duration, per-background slice and canvas size.

    Every background gets an equal share of the total, whatever its own
    duration hint says.
    """
    total = plan_duration(spec)
    width, height = resolve_canvas(spec)
    return PlannedTiming(
        total_seconds=total,
        slice_seconds=total / len(spec.backgrounds),
        width=width,
        height=height,
    )
