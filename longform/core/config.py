"""
Worker Configuration

Settings class using pydantic-settings for environment variable loading.
Every setting can be overridden with a LONGFORM_-prefixed environment variable,
e.g. LONGFORM_FFMPEG_PATH=/usr/local/bin/ffmpeg.
"""

import os
import socket
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class Settings(BaseSettings):
    """
    Worker settings loaded from environment variables and an optional .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="LONGFORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="longform-render-worker", description="Application name")
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite:///./longform.db",
        description="SQLAlchemy database URL for the job store",
    )
    sql_echo: bool = Field(default=False, description="Echo SQL statements")

    # Encoder
    ffmpeg_path: str = Field(default="ffmpeg", description="Path to the ffmpeg binary")
    render_timeout_seconds: int = Field(
        default=4 * 60 * 60,
        gt=0,
        description="Watchdog timeout for a single encode (default: 4 hours)",
    )
    work_dir: Optional[str] = Field(
        default=None,
        description="Root directory for per-job temp output (default: system temp)",
    )

    # Worker loop
    worker_id: str = Field(default_factory=_default_worker_id, description="Identity recorded on claimed jobs")
    poll_interval_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Idle interval between polls when no job is queued",
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for push-based wake-up; polling only when unset",
    )
    notify_key: str = Field(default="longform:jobs:wakeup", description="Redis list used for wake-ups")

    # Blob storage (S3 compatible)
    bucket_name: str = Field(default="", description="Bucket for rendered outputs")
    bucket_endpoint: str = Field(default="", description="S3 endpoint URL")
    bucket_region: str = Field(default="us-east-1", description="Bucket region")
    bucket_access_key: str = Field(default="", description="Access key id")
    bucket_secret_key: str = Field(default="", description="Secret access key")
    object_key_prefix: str = Field(default="renders", description="Key prefix for uploads")
    signed_url_ttl_seconds: int = Field(
        default=7 * 24 * 60 * 60,
        gt=0,
        description="Lifetime of issued download URLs (default: 7 days)",
    )

    @property
    def bucket_configured(self) -> bool:
        return bool(
            self.bucket_name
            and self.bucket_endpoint
            and self.bucket_access_key
            and self.bucket_secret_key
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache so the environment is only read once per process.
    Tests that change the environment call ``get_settings.cache_clear()``.
    """
    return Settings()
