"""
Object storage for product, banner and review images: S3 in production and an
in-memory double for tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Protocol, Tuple
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError
import structlog

from tirestore.core.config import settings
from tirestore.core.exceptions import UpstreamError, ValidationError

logger = structlog.get_logger()


class StorageClient(Protocol):
    """Operations the API needs from object storage."""

    def upload_bytes(self, key: str, data: bytes, content_type: str, metadata: Dict[str, str]) -> str:
        ...

    def delete(self, key: str) -> None:
        ...

    def presign_get(self, key: str, expires_in: int = 3600) -> str:
        ...

    def key_from_url(self, url: str) -> str:
        ...


def _key_from_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.path.strip("/"):
        raise ValidationError("Invalid image URL")
    return parsed.path.lstrip("/")


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: Dict[str, Tuple[bytes, str]] = field(default_factory=dict)

    def upload_bytes(self, key: str, data: bytes, content_type: str, metadata: Dict[str, str]) -> str:
        self.stored_objects[key] = (data, content_type)
        return f"{self.base_url}/{key}"

    def delete(self, key: str) -> None:
        self.stored_objects.pop(key, None)

    def presign_get(self, key: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{key}?op=get&expires={expires_in}"

    def key_from_url(self, url: str) -> str:
        if url.startswith(self.base_url + "/"):
            return url[len(self.base_url) + 1:]
        return _key_from_url(url)


@dataclass
class S3StorageClient:
    bucket: str
    region: str
    access_key_id: str = ""
    secret_access_key: str = ""

    def __post_init__(self):
        credentials = {}
        if self.access_key_id and self.secret_access_key:
            credentials = {
                "aws_access_key_id": self.access_key_id,
                "aws_secret_access_key": self.secret_access_key,
            }
        self._client = boto3.client("s3", region_name=self.region, **credentials)

    @property
    def public_base_url(self) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com"

    def upload_bytes(self, key: str, data: bytes, content_type: str, metadata: Dict[str, str]) -> str:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("s3_upload_failed", key=key, bucket=self.bucket, error=str(exc))
            raise UpstreamError("Image upload failed") from exc
        return f"{self.public_base_url}/{key}"

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("s3_delete_failed", key=key, bucket=self.bucket, error=str(exc))
            raise UpstreamError("Failed to delete file") from exc

    def presign_get(self, key: str, expires_in: int = 3600) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamError("Failed to generate presigned URL") from exc

    def key_from_url(self, url: str) -> str:
        return _key_from_url(url)


@lru_cache
def _s3_client() -> S3StorageClient:
    return S3StorageClient(
        bucket=settings.AWS_S3_BUCKET,
        region=settings.AWS_REGION,
        access_key_id=settings.AWS_ACCESS_KEY_ID,
        secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    )


def get_storage() -> StorageClient:
    """FastAPI dependency; tests override it with InMemoryStorageClient."""
    if not settings.AWS_S3_BUCKET:
        raise UpstreamError("Object storage is not configured")
    return _s3_client()
