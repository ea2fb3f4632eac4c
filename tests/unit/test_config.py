"""
Unit tests for settings loading and worker wiring.
"""

import logging

from sqlalchemy import select

from longform.core.config import Settings, get_settings
from longform.core.logging_config import LOG_FORMAT, configure_logging
from longform.core.notifier import PollingNotifier
from longform.core.storage import S3BlobStore
from longform.db import create_all_tables, get_db_session
from longform.main import create_worker
from longform.models.job import RenderJob


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LONGFORM_DATABASE_URL", raising=False)
        monkeypatch.delenv("LONGFORM_WORK_DIR", raising=False)

        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite:///./longform.db"
        assert settings.ffmpeg_path == "ffmpeg"
        assert settings.render_timeout_seconds == 14400
        assert settings.signed_url_ttl_seconds == 604800
        assert settings.redis_url is None
        assert settings.worker_id
        assert settings.bucket_configured is False

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("LONGFORM_FFMPEG_PATH", "/opt/ffmpeg/bin/ffmpeg")
        monkeypatch.setenv("LONGFORM_POLL_INTERVAL_SECONDS", "0.5")
        monkeypatch.setenv("LONGFORM_WORKER_ID", "render-1")

        settings = Settings(_env_file=None)

        assert settings.ffmpeg_path == "/opt/ffmpeg/bin/ffmpeg"
        assert settings.poll_interval_seconds == 0.5
        assert settings.worker_id == "render-1"

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()


class TestLogging:

    def test_configure_logging(self):
        configure_logging("debug")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert any(h.formatter and h.formatter._fmt == LOG_FORMAT for h in root.handlers)
        assert logging.getLogger("botocore").level == logging.WARNING
        configure_logging("INFO")


class TestCreateWorker:

    def test_wires_settings(self, tmp_path):
        settings = Settings(
            _env_file=None,
            ffmpeg_path="/usr/bin/ffmpeg",
            render_timeout_seconds=60,
            worker_id="render-7",
            work_dir=str(tmp_path),
            bucket_name="renders",
            bucket_endpoint="http://localhost:9000",
            bucket_access_key="key",
            bucket_secret_key="secret",
        )

        worker = create_worker(settings)

        assert worker.worker_id == "render-7"
        assert worker.runner.binary == "/usr/bin/ffmpeg"
        assert worker.runner.timeout_seconds == 60
        assert worker.work_dir == str(tmp_path)
        assert isinstance(worker.blob_store, S3BlobStore)
        assert isinstance(worker.notifier, PollingNotifier)


class TestDatabase:

    def test_get_db_session_uses_configured_engine(self):
        create_all_tables()

        with get_db_session() as db:
            assert db.execute(select(RenderJob)).scalars().all() == []
