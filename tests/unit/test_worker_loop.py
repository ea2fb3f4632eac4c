"""
Tests for the render worker loop.

The store is real (in-memory SQLite); ffmpeg is a stub executable and the
blob store keeps objects in memory.
"""

import os
from unittest.mock import MagicMock

import pytest
from sqlalchemy import update

from longform.core.exceptions import StoreError
from longform.models.job import JobStatus, RenderJob
from longform.services.spec_validator import validate_render_spec
from longform.tasks.ffmpeg_runner import FFmpegRunner
from longform.tasks.worker_loop import SIGNED_URL_TTL_SECONDS, RenderWorker, describe_error


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def make_worker(job_store, blob_store, stub_ffmpeg, work_dir):
    def _create(runner=None, store=None, blob=None, **kwargs):
        return RenderWorker(
            store=store or job_store,
            blob_store=blob or blob_store,
            runner=runner or FFmpegRunner(stub_ffmpeg()),
            worker_id="worker-test",
            poll_interval_seconds=0.01,
            work_dir=str(work_dir),
            **kwargs,
        )

    return _create


def queue_job(job_store, payload_factory, **kwargs):
    spec = validate_render_spec(payload_factory(**kwargs))
    return job_store.create_job("user-1", spec)


@pytest.mark.slow
class TestProcessJob:

    def test_success(self, make_worker, job_store, blob_store, payload_factory, work_dir):
        job = queue_job(job_store, payload_factory, audio_hints=[30])

        assert make_worker().run_once() is True

        done = job_store.get_job(job.id, "user-1")
        assert done.status == JobStatus.SUCCEEDED
        assert done.progress == 100
        assert done.worker_id == "worker-test"
        assert done.object_key in blob_store.objects
        assert blob_store.objects[done.object_key] == b"fake mp4 data"
        assert done.output_url.startswith("https://bucket.example.com/renders/")
        assert os.listdir(work_dir) == []

    def test_signed_url_lifetime_is_seven_days(self, make_worker, job_store, blob_store, payload_factory):
        queue_job(job_store, payload_factory)

        make_worker().run_once()

        assert blob_store.signed[0][1] == SIGNED_URL_TTL_SECONDS == 604800

    def test_encode_failure(self, make_worker, job_store, blob_store, stub_ffmpeg, payload_factory, work_dir):
        job = queue_job(job_store, payload_factory)
        runner = FFmpegRunner(stub_ffmpeg(exit_code=1, output=None, stderr="Connection refused"))

        make_worker(runner=runner).run_once()

        failed = job_store.get_job(job.id, "user-1")
        assert failed.status == JobStatus.FAILED
        assert failed.progress == 100
        assert "ffmpeg exited with code 1" in failed.error_message
        assert failed.output_url is None
        assert blob_store.objects == {}
        assert os.listdir(work_dir) == []

    def test_missing_output_fails_job(self, make_worker, job_store, stub_ffmpeg, payload_factory):
        job = queue_job(job_store, payload_factory)

        make_worker(runner=FFmpegRunner(stub_ffmpeg(output=None))).run_once()

        failed = job_store.get_job(job.id, "user-1")
        assert failed.status == JobStatus.FAILED
        assert "not created" in failed.error_message

    def test_upload_failure(self, make_worker, job_store, failing_blob_store, payload_factory, work_dir):
        job = queue_job(job_store, payload_factory)

        make_worker(blob=failing_blob_store).run_once()

        failed = job_store.get_job(job.id, "user-1")
        assert failed.status == JobStatus.FAILED
        assert "Upload failed" in failed.error_message
        assert os.listdir(work_dir) == []

    def test_missing_work_dir_fails_job(self, job_store, blob_store, stub_ffmpeg, payload_factory, tmp_path):
        job = queue_job(job_store, payload_factory)
        worker = RenderWorker(
            store=job_store,
            blob_store=blob_store,
            runner=FFmpegRunner(stub_ffmpeg()),
            work_dir=str(tmp_path / "does-not-exist"),
        )

        assert worker.run_once() is True

        failed = job_store.get_job(job.id, "user-1")
        assert failed.status == JobStatus.FAILED
        assert failed.progress == 100
        assert failed.error_message
        assert blob_store.objects == {}

    def test_one_failure_does_not_affect_next_job(self, make_worker, job_store, session_factory, payload_factory):
        bad = queue_job(job_store, payload_factory)
        # Corrupt the stored payload so re-validation fails
        with session_factory() as db:
            db.execute(update(RenderJob).where(RenderJob.id == bad.id).values(payload={"canvas": {}}))
            db.commit()
        good = queue_job(job_store, payload_factory)
        worker = make_worker()

        worker.run_once()
        worker.run_once()

        assert job_store.get_job(bad.id, "user-1").status == JobStatus.FAILED
        assert "Invalid render spec" in job_store.get_job(bad.id, "user-1").error_message
        assert job_store.get_job(good.id, "user-1").status == JobStatus.SUCCEEDED


class TestRunOnce:

    def test_empty_queue(self, make_worker):
        assert make_worker().run_once() is False

    def test_progress_callbacks_are_scaled(self, make_worker, job_store, payload_factory):
        job = queue_job(job_store, payload_factory)
        seen = []
        runner = MagicMock()

        def fake_run(command, progress_callback=None):
            progress_callback(50, "Rendering: 50%")
            seen.append(job_store.get_job(job.id, "user-1").progress)
            with open(command.output_path, "wb") as f:
                f.write(b"data")
            return command.output_path

        runner.run.side_effect = fake_run

        make_worker(runner=runner).run_once()

        assert seen == [50]
        assert job_store.get_job(job.id, "user-1").status == JobStatus.SUCCEEDED

    def test_progress_write_failure_is_not_fatal(self, make_worker, job_store, payload_factory):
        job = queue_job(job_store, payload_factory)
        real_update = job_store.update_job

        def flaky_update(job_id, **kwargs):
            if kwargs.get("progress") is not None:
                raise StoreError("database is locked")
            return real_update(job_id, **kwargs)

        job_store.update_job = flaky_update

        make_worker().run_once()

        assert job_store.get_job(job.id, "user-1").status == JobStatus.SUCCEEDED


class TestRunForever:

    def test_survives_store_errors_and_stops(self, make_worker):
        store = MagicMock()
        worker = make_worker(store=store)
        calls = []

        def claim(worker_id=None):
            calls.append(worker_id)
            if len(calls) == 1:
                raise StoreError("connection refused")
            worker.stop()
            return None

        store.claim_next_queued.side_effect = claim

        worker.run_forever()

        assert len(calls) == 2
        assert worker.stopped

    def test_idle_waits_on_notifier(self, make_worker):
        store = MagicMock()
        notifier = MagicMock()
        worker = make_worker(store=store, notifier=notifier)
        store.claim_next_queued.return_value = None
        notifier.wait.side_effect = lambda timeout: worker.stop()

        worker.run_forever()

        notifier.wait.assert_called_once_with(0.01)


class TestDescribeError:

    def test_message(self):
        assert describe_error(RuntimeError("disk full")) == "disk full"

    def test_empty_message_uses_class_name(self):
        assert describe_error(TimeoutError()) == "TimeoutError"
