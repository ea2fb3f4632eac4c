"""
Shared test fixtures for the longform worker.

Provides:
- Job store on in-memory SQLite (fresh per test)
- Render spec payload factory
- In-memory blob store
- Stub "ffmpeg" executables written to tmp_path
"""

import os
import stat
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

# Keep settings away from any developer .env / real database
os.environ.setdefault("LONGFORM_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LONGFORM_WORK_DIR", tempfile.mkdtemp(prefix="longform_test_"))

from longform.core.exceptions import UploadError
from longform.db import create_all_tables, create_db_engine, create_session_factory
from longform.services.job_store import SqlJobStore


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_db_engine("sqlite:///:memory:")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def job_store(session_factory) -> SqlJobStore:
    return SqlJobStore(session_factory)


# =============================================================================
# Render Spec Fixtures
# =============================================================================


@pytest.fixture
def payload_factory() -> Callable[..., Dict]:
    """Factory for render spec payloads in the public camelCase shape.

    Usage:
        payload = payload_factory(backgrounds=2, audio_hints=[30, 45])
    """

    def _create(
        backgrounds: int = 1,
        background_type: str = "image",
        audio_hints: Optional[List[Optional[float]]] = None,
        canvas: Optional[Dict] = None,
        output: Optional[Dict] = None,
    ) -> Dict:
        audio_hints = audio_hints if audio_hints is not None else [None]
        payload: Dict = {
            "canvas": canvas if canvas is not None else {},
            "backgrounds": [
                {"type": background_type, "src": f"https://cdn.example.com/bg{i}.jpg"}
                for i in range(backgrounds)
            ],
            "audios": [],
        }
        for i, hint in enumerate(audio_hints):
            track: Dict = {"src": f"https://cdn.example.com/track{i}.mp3"}
            if hint is not None:
                track["durationSeconds"] = hint
            payload["audios"].append(track)
        if output is not None:
            payload["output"] = output
        return payload

    return _create


# =============================================================================
# Collaborator Fakes
# =============================================================================


class InMemoryBlobStore:
    """BlobStore that keeps uploaded bytes in a dict."""

    def __init__(self, fail_upload: bool = False):
        self.fail_upload = fail_upload
        self.objects: Dict[str, bytes] = {}
        self.signed: List[tuple] = []

    def upload(self, local_path: Path) -> str:
        if self.fail_upload:
            raise UploadError("Upload failed: bucket unavailable")
        key = f"renders/{len(self.objects):032x}.mp4"
        self.objects[key] = Path(local_path).read_bytes()
        return key

    def issue_signed_url(self, object_key: str, ttl_seconds: int) -> str:
        self.signed.append((object_key, ttl_seconds))
        return f"https://bucket.example.com/{object_key}?X-Amz-Expires={ttl_seconds}"


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def failing_blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore(fail_upload=True)


@pytest.fixture
def stub_ffmpeg(tmp_path: Path) -> Callable[..., str]:
    """Write an executable that stands in for ffmpeg.

    The stub prints -progress style lines, writes ``output`` to the last
    argument (the output path) unless ``output`` is None, then exits with
    ``exit_code``.

    Usage:
        binary = stub_ffmpeg(exit_code=0, output="data")
    """

    def _create(
        exit_code: int = 0,
        output: Optional[str] = "fake mp4 data",
        sleep_seconds: float = 0,
        stderr: str = "stub ffmpeg diagnostics",
        name: str = "ffmpeg-stub",
    ) -> str:
        lines = [
            "#!/bin/sh",
            'for last; do :; done',
            f'echo "{stderr}" >&2',
            "echo out_time_us=500000",
            "echo progress=continue",
        ]
        if sleep_seconds:
            lines.append(f"sleep {sleep_seconds}")
        if output is not None:
            lines.append(f'printf "%s" "{output}" > "$last"')
        lines.append("echo progress=end")
        lines.append(f"exit {exit_code}")

        script = tmp_path / name
        script.write_text("\n".join(lines) + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _create
