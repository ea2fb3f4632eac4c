"""
FFmpeg Runner with Timeout Enforcement

Runs an EncoderCommand with:
- Progress tracking via -progress pipe:1
- stderr forwarded line by line to the "longform.ffmpeg" logger
- A watchdog that kills the whole process group after the timeout
- Output verification: exit code 0 with a missing or empty file is a failure

The ffmpeg binary is passed in, never looked up globally, so tests can
point the runner at a stub executable.
"""

import logging
import os
import re
import signal
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import Callable, Deque, IO, Iterable, Optional

from ..core.exceptions import EncodingError
from .render import EncoderCommand

logger = logging.getLogger(__name__)
ffmpeg_logger = logging.getLogger("longform.ffmpeg")

PROGRESS_ARGS = ("-progress", "pipe:1", "-stats_period", "0.5")
STDERR_TAIL_LINES = 20

ProgressCallback = Callable[[int, str], None]

# Patterns for parsing progress output
# Prefer out_time_us (microseconds) as it's most reliable
TIME_US_PATTERN = re.compile(r"out_time_us=(\d+)")
TIME_MS_PATTERN = re.compile(r"out_time_ms=(\d+)")
TIME_STR_PATTERN = re.compile(r"out_time=(\d+):(\d+):(\d+)\.(\d+)")
PROGRESS_PATTERN = re.compile(r"progress=(\w+)")


class FFmpegTimeout(EncodingError):
    """Raised when FFmpeg exceeds the allowed timeout."""

    pass


class FFmpegRunner:
    """
    Executes encoder commands.

    Args:
        binary: Path or name of the ffmpeg executable
        timeout_seconds: Watchdog limit for one encode
    """

    def __init__(self, binary: str = "ffmpeg", timeout_seconds: float = 4 * 60 * 60):
        self.binary = binary
        self.timeout_seconds = timeout_seconds

    def run(
        self,
        command: EncoderCommand,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Run ffmpeg and wait for it to exit.

        Args:
            command: Built encoder command
            progress_callback: Optional function called with (percent, message);
                percent never decreases and stays below 100 until ffmpeg
                reports the end of the encode

        Returns:
            Path to the non-empty output file

        Raises:
            FFmpegTimeout: If ffmpeg exceeds the timeout
            EncodingError: Spawn failure, non-zero exit, or missing/empty output
        """
        cmd = command.argv(self.binary, PROGRESS_ARGS)
        logger.info(
            f"Starting FFmpeg with timeout={self.timeout_seconds}s, "
            f"duration={command.total_seconds}s"
        )
        logger.debug(f"FFmpeg command: {' '.join(cmd)}")

        try:
            # Own process group so the watchdog can kill ffmpeg and its children
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                universal_newlines=True,
                start_new_session=True,
            )
        except OSError as e:
            raise EncodingError(f"Could not start ffmpeg ({self.binary}): {e}") from e

        stderr_tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        stderr_thread = threading.Thread(
            target=_forward_stderr,
            args=(process.stderr, stderr_tail),
            name="ffmpeg-stderr",
            daemon=True,
        )
        stderr_thread.start()

        timed_out = threading.Event()

        def _on_timeout() -> None:
            timed_out.set()
            logger.warning(f"FFmpeg timeout after {self.timeout_seconds}s, killing process group")
            _kill_process_group(process)

        watchdog = threading.Timer(self.timeout_seconds, _on_timeout)
        watchdog.daemon = True

        start_time = time.time()
        watchdog.start()
        try:
            _read_progress(process.stdout, command.total_seconds, progress_callback)
            return_code = process.wait()
        except BaseException:
            _kill_process_group(process)
            process.wait()
            raise
        finally:
            watchdog.cancel()
            stderr_thread.join(timeout=5)

        # A watchdog firing after a clean exit did not interrupt anything
        if timed_out.is_set() and return_code != 0:
            raise FFmpegTimeout(
                f"FFmpeg exceeded timeout of {self.timeout_seconds} seconds",
                exit_code=return_code,
            )

        if return_code != 0:
            error_msg = f"ffmpeg exited with code {return_code}"
            if stderr_tail:
                error_msg += f": {' | '.join(stderr_tail)}"
            logger.error(error_msg)
            raise EncodingError(error_msg, exit_code=return_code)

        output_path = Path(command.output_path)
        if not output_path.exists():
            raise EncodingError("ffmpeg exited cleanly but the output file was not created", exit_code=0)
        if output_path.stat().st_size == 0:
            raise EncodingError("ffmpeg exited cleanly but the output file is empty", exit_code=0)

        logger.info(f"FFmpeg completed successfully in {time.time() - start_time:.1f}s")
        return output_path


def _forward_stderr(stream: IO[str], tail: Deque[str]) -> None:
    """Pass ffmpeg diagnostics through to logging without interpreting them."""
    for line in stream:
        line = line.rstrip()
        if not line:
            continue
        tail.append(line)
        ffmpeg_logger.debug(line)


def _read_progress(
    lines: Iterable[str],
    total_seconds: float,
    progress_callback: Optional[ProgressCallback],
) -> None:
    """Consume -progress output until EOF, reporting monotonic percentages."""
    total_ms = int(total_seconds * 1000)
    last_percent = 0

    for line in lines:
        line = line.strip()
        if progress_callback is None:
            continue

        progress_match = PROGRESS_PATTERN.search(line)
        if progress_match and progress_match.group(1) == "end":
            progress_callback(100, "Encode complete")
            continue

        current_ms = parse_progress_time(line)
        if current_ms is not None and total_ms > 0:
            percent = min(99, int((current_ms / total_ms) * 100))
            if percent > last_percent:
                last_percent = percent
                progress_callback(percent, f"Rendering: {percent}%")


def parse_progress_time(line: str) -> Optional[int]:
    """
    Parse current output time from an FFmpeg progress line.

    Tries, in order: out_time_us, out_time_ms, out_time (HH:MM:SS.micro).
    Note that ffmpeg's out_time_ms is actually in microseconds as well.

    Returns:
        Current time in milliseconds, or None if the line has no time
    """
    match = TIME_US_PATTERN.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = TIME_MS_PATTERN.search(line)
    if match:
        return int(match.group(1)) // 1000

    match = TIME_STR_PATTERN.search(line)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2))
        seconds = int(match.group(3))
        micro_str = match.group(4).ljust(6, "0")[:6]
        return hours * 3600000 + minutes * 60000 + seconds * 1000 + int(micro_str) // 1000

    return None


def _kill_process_group(process: subprocess.Popen) -> None:
    """Kill the FFmpeg process and its entire process group with SIGKILL."""
    try:
        pgid = os.getpgid(process.pid)
        logger.info(f"Killing FFmpeg process group {pgid}")
        os.killpg(pgid, signal.SIGKILL)
    except ProcessLookupError:
        logger.debug("Process already terminated")
    except OSError as e:
        logger.warning(f"Error killing process group: {e}")
        try:
            process.kill()
        except OSError:
            logger.debug("Fallback kill failed", exc_info=True)


def validate_ffmpeg_available(binary: str = "ffmpeg") -> bool:
    """Check that the ffmpeg binary runs."""
    try:
        result = subprocess.run(
            [binary, "-version"],
            capture_output=True,
            timeout=10,
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"FFmpeg not available: {e}")
        return False
