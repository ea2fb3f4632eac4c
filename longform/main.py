"""
Longform Worker Entry Point

Starts a render worker that polls the job store for QUEUED jobs.

Usage:
    longform-worker
    python -m longform.main

Environment Variables (all LONGFORM_-prefixed, see longform.core.config):
    LONGFORM_DATABASE_URL: Job store database (default: sqlite:///./longform.db)
    LONGFORM_FFMPEG_PATH: ffmpeg binary (default: ffmpeg)
    LONGFORM_BUCKET_*: S3-compatible bucket for rendered outputs
    LONGFORM_REDIS_URL: Optional, enables push wake-ups between workers
"""

import logging
import signal
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .core.config import Settings, get_settings
from .core.exceptions import UploadError
from .core.logging_config import configure_logging
from .core.notifier import create_notifier
from .core.storage import S3BlobStore
from .db import create_all_tables, get_engine, get_session_factory
from .services.job_store import SqlJobStore
from .tasks.ffmpeg_runner import FFmpegRunner, validate_ffmpeg_available
from .tasks.worker_loop import RenderWorker

logger = logging.getLogger("longform.worker")


def create_worker(settings: Settings) -> RenderWorker:
    """
    Wire a RenderWorker from settings.

    Raises:
        UploadError: If the bucket is not configured
    """
    return RenderWorker(
        store=SqlJobStore(get_session_factory()),
        blob_store=S3BlobStore.from_settings(settings),
        runner=FFmpegRunner(settings.ffmpeg_path, settings.render_timeout_seconds),
        notifier=create_notifier(settings.redis_url, settings.notify_key),
        worker_id=settings.worker_id,
        poll_interval_seconds=settings.poll_interval_seconds,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
        work_dir=settings.work_dir,
    )


def start_worker() -> None:
    """
    Check dependencies and run the worker until SIGINT/SIGTERM.

    Exits with status 1 on any startup failure.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Starting longform worker {settings.worker_id} (FFmpeg mode)")

    if not validate_ffmpeg_available(settings.ffmpeg_path):
        logger.error(f"ffmpeg not found or not runnable: {settings.ffmpeg_path}")
        sys.exit(1)

    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        create_all_tables(engine)
        logger.info("Successfully connected to job store")
    except SQLAlchemyError as e:
        logger.error(f"Failed to connect to job store: {e}")
        sys.exit(1)

    try:
        worker = create_worker(settings)
    except UploadError as e:
        logger.error(f"Blob storage misconfigured: {e}")
        sys.exit(1)

    def _request_stop(signum, frame):
        logger.info(f"Received signal {signum}, stopping after current job")
        worker.stop()

    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    worker.run_forever()


def main() -> None:
    """Main entry point for the worker module."""
    start_worker()


if __name__ == "__main__":
    main()
