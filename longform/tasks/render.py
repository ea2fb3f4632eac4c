"""
Render Command Builder for the Longform Worker

Compiles a validated spec plus planned timing into an ffmpeg invocation.

FFmpeg Filter Graph:
- Background inputs first, one per background, each bounded to its slice
  with -t (images additionally use -loop 1)
- Each background is scaled to the canvas, gets square pixels, a fixed
  frame rate and a fade in/out at its slice edges
- Backgrounds are concatenated in order (a single one is passed through)
- Audio inputs follow in the same input index space; each gets optional
  volume / fade-in / fade-out, then all are concatenated in order
- Output duration is hard-capped with -t at the planned total

The builder is pure: the same (spec, timing, output_path) always yields the
same command.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..schemas.render_spec import AudioTrack, BackgroundTrack, LongformRenderSpec
from .planning import PlannedTiming

logger = logging.getLogger(__name__)

VIDEO_ENCODERS: Dict[str, str] = {"h264": "libx264"}
AUDIO_ENCODERS: Dict[str, str] = {"aac": "aac"}
AUDIO_BITRATE = "192k"

VIDEO_OUT_LABEL = "[vout]"
AUDIO_OUT_LABEL = "[aout]"


def format_number(value: float, precision: int = 6) -> str:
    """Render a number for the ffmpeg command line, without trailing zeros."""
    text = f"{value:.{precision}f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def format_seconds(value: float) -> str:
    """
    Render a time in seconds for the ffmpeg command line.

    Millisecond precision, no trailing zeros:
        >>> format_seconds(37.5)
        '37.5'
        >>> format_seconds(60.0)
        '60'
        >>> format_seconds(100 / 3)
        '33.333'
    """
    return format_number(value, precision=3)


def ffmpeg_color(hex_color: Optional[str]) -> str:
    """#rgb / #rrggbb -> 0xrrggbb; black when unset."""
    if not hex_color:
        return "black"
    digits = hex_color.lstrip("#")
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"0x{digits.lower()}"


@dataclass(frozen=True)
class EncoderCommand:
    """An ffmpeg invocation split into its three parts."""

    inputs: Tuple[str, ...]
    filter_complex: str
    output_args: Tuple[str, ...]
    output_path: str
    total_seconds: float

    def argv(self, binary: str = "ffmpeg", global_args: Sequence[str] = ()) -> List[str]:
        """Full argument vector, ready for subprocess."""
        return [
            binary,
            "-hide_banner",
            "-nostdin",
            *global_args,
            *self.inputs,
            "-filter_complex",
            self.filter_complex,
            *self.output_args,
        ]


class FFmpegCommandBuilder:
    """
    Builds the ffmpeg command for a longform render.

    Key design:
    - Input index i < len(backgrounds) is background i
    - Input index len(backgrounds) + j is audio track j
    - Filter labels: [v<i>] per background, [a<j>] per audio track,
      [vout] / [aout] for the final streams
    """

    def __init__(self, spec: LongformRenderSpec, timing: PlannedTiming, output_path: str):
        """
        Args:
            spec: Validated render spec
            timing: Planned duration, slice and canvas for this spec
            output_path: Where ffmpeg writes the result
        """
        self.spec = spec
        self.timing = timing
        self.output_path = str(output_path)

    def build(self) -> EncoderCommand:
        filters = self._build_video_filters() + self._build_audio_filters()
        return EncoderCommand(
            inputs=tuple(self._build_inputs()),
            filter_complex=";".join(filters),
            output_args=tuple(self._build_output_options()),
            output_path=self.output_path,
            total_seconds=self.timing.total_seconds,
        )

    def _build_inputs(self) -> List[str]:
        """
        Build input arguments.

        - Backgrounds first, each trimmed to the slice length
        - Images get -loop 1 so a still frame can fill the slice
        - Audio tracks after all backgrounds
        """
        inputs: List[str] = []
        slice_arg = format_seconds(self.timing.slice_seconds)

        for background in self.spec.backgrounds:
            if background.type == "image":
                inputs.extend(["-loop", "1"])
            inputs.extend(["-t", slice_arg, "-i", background.src])

        for audio in self.spec.audios:
            inputs.extend(["-i", audio.src])

        return inputs

    def _build_scale_filter(self, background: BackgroundTrack) -> str:
        """Scale to the canvas according to the background's fit mode."""
        w = self.timing.width
        h = self.timing.height

        if background.fit == "stretch":
            return f"scale={w}:{h}"
        if background.fit == "contain":
            color = ffmpeg_color(self.spec.canvas.background_color)
            return (
                f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
                f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:color={color}"
            )
        # cover: fill the canvas, crop the overflow
        return f"scale={w}:{h}:force_original_aspect_ratio=increase,crop={w}:{h}"

    def _build_background_filter(self, index: int, background: BackgroundTrack) -> str:
        fade = self.timing.fade_seconds
        fade_out_start = max(self.timing.slice_seconds - fade, 0)
        return (
            f"[{index}:v]"
            f"{self._build_scale_filter(background)},"
            f"setsar=1,"
            f"fps={self.spec.canvas.fps},"
            f"fade=t=in:st=0:d={format_seconds(fade)},"
            f"fade=t=out:st={format_seconds(fade_out_start)}:d={format_seconds(fade)}"
            f"[v{index}]"
        )

    def _build_video_filters(self) -> List[str]:
        filters = [
            self._build_background_filter(index, background)
            for index, background in enumerate(self.spec.backgrounds)
        ]
        count = len(self.spec.backgrounds)

        if count == 1:
            # Single background: just relabel
            filters.append(f"[v0]copy{VIDEO_OUT_LABEL}")
        else:
            concat_inputs = "".join(f"[v{index}]" for index in range(count))
            filters.append(f"{concat_inputs}concat=n={count}:v=1:a=0{VIDEO_OUT_LABEL}")

        return filters

    def _build_audio_chain(self, track: AudioTrack) -> str:
        """volume, fade-in, fade-out in that order; anull when none apply."""
        components = []
        if track.volume != 1:
            components.append(f"volume={format_number(track.volume)}")
        if track.fade_in_seconds > 0:
            components.append(f"afade=t=in:st=0:d={format_seconds(track.fade_in_seconds)}")
        if track.fade_out_seconds > 0:
            # Without a duration hint the track end is unknown; fade from the start
            start = 0.0
            if track.duration_seconds:
                start = max(track.duration_seconds - track.fade_out_seconds, 0)
            components.append(
                f"afade=t=out:st={format_seconds(start)}:d={format_seconds(track.fade_out_seconds)}"
            )
        return ",".join(components) if components else "anull"

    def _build_audio_filters(self) -> List[str]:
        if not self.spec.audios:
            return []

        offset = len(self.spec.backgrounds)
        filters = [
            f"[{offset + index}:a]{self._build_audio_chain(track)}[a{index}]"
            for index, track in enumerate(self.spec.audios)
        ]
        count = len(self.spec.audios)
        concat_inputs = "".join(f"[a{index}]" for index in range(count))
        filters.append(f"{concat_inputs}concat=n={count}:v=0:a=1{AUDIO_OUT_LABEL}")
        return filters

    def _build_output_options(self) -> List[str]:
        """Build output encoding options."""
        output = self.spec.output
        options = ["-map", VIDEO_OUT_LABEL]
        if self.spec.audios:
            options.extend(["-map", AUDIO_OUT_LABEL])

        options.extend([
            "-c:v", VIDEO_ENCODERS[output.video_codec],
            "-preset", output.preset,
            "-crf", str(output.crf),
            "-pix_fmt", "yuv420p",
        ])
        if self.spec.audios:
            options.extend(["-c:a", AUDIO_ENCODERS[output.audio_codec], "-b:a", AUDIO_BITRATE])

        options.extend([
            "-movflags", "+faststart",
            "-t", format_seconds(self.timing.total_seconds),
            "-y",
            self.output_path,
        ])
        return options


def build_render_command(
    spec: LongformRenderSpec, timing: PlannedTiming, output_path: str
) -> EncoderCommand:
    """Convenience wrapper around FFmpegCommandBuilder."""
    command = FFmpegCommandBuilder(spec, timing, output_path).build()
    logger.debug(f"Built ffmpeg command with {len(command.inputs)} input args")
    return command
