"""
Render Worker Loop

Claims one QUEUED job at a time and drives it end to end:

    plan -> build command -> run ffmpeg -> upload -> SUCCEEDED / FAILED

Exactly one job is in flight per worker; run more worker processes for
more throughput. Failures are terminal for the job and never stop the loop.

Progress milestones written to the job:
    5   claimed (set by the store)
    10  command built, encode starting
    10-90  encode, scaled from ffmpeg progress
    95  uploading
    100 terminal
"""

import logging
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional, Tuple

from ..core.exceptions import StoreError
from ..core.notifier import JobNotifier, PollingNotifier
from ..core.storage import BlobStore
from ..models.job import JobStatus
from ..schemas.job import RenderJobRead
from ..services.job_store import JobStore
from ..services.spec_validator import validate_render_spec
from .ffmpeg_runner import FFmpegRunner
from .planning import plan
from .render import build_render_command

logger = logging.getLogger(__name__)

SIGNED_URL_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days

ENCODE_PROGRESS_START = 10
ENCODE_PROGRESS_END = 90
UPLOAD_PROGRESS = 95


class RenderWorker:
    """
    Long-running poller for render jobs.

    Args:
        store: Job store to claim from and report to
        blob_store: Destination for finished renders
        runner: Executes ffmpeg commands
        notifier: Idle wait / wake-up source (plain sleep by default)
        worker_id: Recorded on claimed jobs
        poll_interval_seconds: Idle time when nothing is queued
        signed_url_ttl_seconds: Lifetime of the download URL
        work_dir: Parent directory for per-job temp dirs (system temp if None)
    """

    def __init__(
        self,
        store: JobStore,
        blob_store: BlobStore,
        runner: FFmpegRunner,
        notifier: Optional[JobNotifier] = None,
        worker_id: Optional[str] = None,
        poll_interval_seconds: float = 3.0,
        signed_url_ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
        work_dir: Optional[str] = None,
    ):
        self.store = store
        self.blob_store = blob_store
        self.runner = runner
        self.notifier = notifier or PollingNotifier()
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self.work_dir = work_dir
        self._stop = threading.Event()

    def stop(self) -> None:
        """Ask the loop to exit once the current job (if any) is done."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run_forever(self) -> None:
        logger.info(f"Render worker {self.worker_id or ''} polling every {self.poll_interval_seconds}s")
        while not self._stop.is_set():
            try:
                processed = self.run_once()
            except Exception:
                # Store outages and other loop-level errors: log and keep polling
                logger.exception("Worker loop error")
                processed = False

            if not processed and not self._stop.is_set():
                self.notifier.wait(self.poll_interval_seconds)
        logger.info("Render worker stopped")

    def run_once(self) -> bool:
        """
        Claim and process at most one job.

        Returns:
            True if a job was processed, False if the queue was empty
        """
        job = self.store.claim_next_queued(worker_id=self.worker_id)
        if job is None:
            return False
        self.process_job(job)
        return True

    def process_job(self, job: RenderJobRead) -> None:
        """
        Render, upload and finalize one claimed job.

        Any error while rendering or uploading marks the job FAILED. Errors
        writing the terminal state propagate to the loop boundary.
        """
        logger.info(f"Processing job {job.id}")
        job_dir: Optional[Path] = None

        try:
            job_dir = Path(tempfile.mkdtemp(prefix=f"render-{job.id[:8]}-", dir=self.work_dir))
            object_key, output_url = self._render_and_upload(job, job_dir)
        except Exception as e:
            logger.error(f"Error rendering job {job.id}: {e}", exc_info=True)
            self.store.update_job(
                job.id,
                status=JobStatus.FAILED,
                error_message=describe_error(e),
            )
            return
        finally:
            if job_dir is not None:
                _remove_job_dir(job_dir)

        self.store.update_job(
            job.id,
            status=JobStatus.SUCCEEDED,
            output_url=output_url,
            object_key=object_key,
        )
        logger.info(f"Job {job.id} succeeded: {object_key}")

    def _render_and_upload(self, job: RenderJobRead, job_dir: Path) -> Tuple[str, str]:
        spec = validate_render_spec(job.payload)
        timing = plan(spec)
        output_path = job_dir / f"render.{spec.output.format}"
        command = build_render_command(spec, timing, str(output_path))

        logger.info(
            f"Job {job.id}: total={timing.total_seconds}s, "
            f"{len(spec.backgrounds)} background(s) x {timing.slice_seconds}s, "
            f"{len(spec.audios)} audio track(s), canvas={timing.width}x{timing.height}"
        )
        self._report_progress(job.id, ENCODE_PROGRESS_START)

        rendered = self.runner.run(command, progress_callback=self._progress_reporter(job.id))

        self._report_progress(job.id, UPLOAD_PROGRESS)
        object_key = self.blob_store.upload(rendered)
        output_url = self.blob_store.issue_signed_url(object_key, self.signed_url_ttl_seconds)
        return object_key, output_url

    def _progress_reporter(self, job_id: str) -> Callable[[int, str], None]:
        span = ENCODE_PROGRESS_END - ENCODE_PROGRESS_START

        def report(percent: int, message: str) -> None:
            scaled = ENCODE_PROGRESS_START + int(percent * span / 100)
            self._report_progress(job_id, scaled)

        return report

    def _report_progress(self, job_id: str, percent: int) -> None:
        # Progress is informational; a failed write must not fail the encode
        try:
            self.store.update_job(job_id, progress=percent)
        except StoreError as e:
            logger.warning(f"Could not record progress {percent}% for job {job_id}: {e}")


def describe_error(error: BaseException) -> str:
    """Human-readable message for a failed job."""
    message = str(error).strip()
    return message or error.__class__.__name__


def _remove_job_dir(job_dir: Path) -> None:
    """Best-effort removal of a job's temp files."""
    try:
        shutil.rmtree(job_dir)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temp dir {job_dir}: {e}")
