"""
Blob Storage for Rendered Outputs

Uploads finished renders to an S3-compatible bucket and issues time-limited
download URLs:
- Object keys are random, under a configurable prefix (renders/<hex>.mp4)
- Path-style addressing, so custom endpoints (MinIO, Railway, R2) work
- boto3 errors are wrapped in UploadError
"""

import logging
import secrets
from pathlib import Path
from typing import Optional, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .exceptions import UploadError

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "mp4": "video/mp4",
}


def generate_object_key(extension: str = "mp4", prefix: str = "renders") -> str:
    """
    Generate a random, unguessable object key.

    Example:
        >>> generate_object_key()
        'renders/9f86d081884c7d659a2feaa0c55ad015.mp4'
    """
    clean_prefix = "/".join(part for part in prefix.split("/") if part)
    name = f"{secrets.token_hex(16)}.{extension}"
    return f"{clean_prefix}/{name}" if clean_prefix else name


class BlobStore(Protocol):
    """Durable object storage for finished renders."""

    def upload(self, local_path: Path) -> str: ...  # pragma: no cover

    def issue_signed_url(self, object_key: str, ttl_seconds: int) -> str: ...  # pragma: no cover


class S3BlobStore:
    """BlobStore backed by an S3-compatible bucket."""

    def __init__(
        self,
        bucket: str,
        access_key: str,
        secret_key: str,
        endpoint_url: Optional[str] = None,
        region_name: Optional[str] = None,
        key_prefix: str = "renders",
        client=None,
    ) -> None:
        self.bucket = (bucket or "").strip()
        self.key_prefix = key_prefix
        if client is not None:
            self._client = client
            return
        if not (self.bucket and access_key and secret_key):
            raise UploadError("Bucket is not configured")
        session = boto3.session.Session(
            aws_access_key_id=access_key.strip(),
            aws_secret_access_key=secret_key.strip(),
            region_name=(region_name or "").strip() or None,
        )
        self._client = session.client(
            "s3",
            endpoint_url=(endpoint_url or "").rstrip("/") or None,
            config=BotoConfig(s3={"addressing_style": "path"}, signature_version="s3v4"),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3BlobStore":
        return cls(
            bucket=settings.bucket_name,
            access_key=settings.bucket_access_key,
            secret_key=settings.bucket_secret_key,
            endpoint_url=settings.bucket_endpoint,
            region_name=settings.bucket_region,
            key_prefix=settings.object_key_prefix,
        )

    def upload(self, local_path: Path) -> str:
        """
        Upload a local file and return its object key.

        Raises:
            UploadError: If the file is missing or the bucket rejects it
        """
        local_path = Path(local_path)
        extension = local_path.suffix.lstrip(".") or "mp4"
        object_key = generate_object_key(extension, self.key_prefix)
        content_type = CONTENT_TYPES.get(extension, "application/octet-stream")

        logger.info(f"Uploading {local_path} to s3://{self.bucket}/{object_key}")
        try:
            self._client.upload_file(
                str(local_path),
                self.bucket,
                object_key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError, OSError) as exc:
            raise UploadError(f"Upload failed: {exc}") from exc
        return object_key

    def issue_signed_url(self, object_key: str, ttl_seconds: int) -> str:
        """Issue a presigned GET URL valid for ttl_seconds."""
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": object_key},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise UploadError(f"Could not sign URL for {object_key}: {exc}") from exc
