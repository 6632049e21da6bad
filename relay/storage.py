"""
Object storage abstraction for Backblaze B2 (S3-compatible API) and in-memory testing.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from relay.errors import (
    NotFoundError,
    UploadError,
    UpstreamAuthError,
    UpstreamError,
    ValidationError,
)

if TYPE_CHECKING:
    from relay.credentials import CredentialCache

logger = logging.getLogger(__name__)

KEY_PREFIX = "submissions"
DEFAULT_CONTENT_TYPE = "video/mp4"
AUTH_FAILURE_STATUSES = (401, 403)


@dataclass(frozen=True)
class StorageSession:
    """Authorized S3 client plus the bucket's public download base."""

    client: Any
    download_url: str


@dataclass(frozen=True)
class UploadTarget:
    key: str
    upload_url: str
    public_url: str


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def issue_upload_target(
        self, filename: str, content_type: str, base_url: str
    ) -> UploadTarget:
        ...

    def upload_file(self, key: str, data: bytes, content_type: str) -> str:
        ...

    def delete_file(self, key: str) -> None:
        ...


def current_millis() -> int:
    return int(time.time() * 1000)


def require_upload_fields(filename: Optional[str], content_type: Optional[str]) -> None:
    if not filename or not content_type:
        raise ValidationError("filename and contentType required")


def sanitize_filename(filename: str) -> str:
    return filename.strip().replace("/", "_").replace("\\", "_")


def build_storage_key(filename: str, timestamp_ms: int) -> str:
    return f"{KEY_PREFIX}/{timestamp_ms}-{sanitize_filename(filename)}"


def build_upload_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/upload/{quote(key, safe='')}"


def build_public_url(download_url: str, bucket_name: str, key: str) -> str:
    return f"{download_url.rstrip('/')}/file/{bucket_name}/{key}"


def error_status(exc: ClientError) -> Optional[int]:
    return exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def error_details(exc: ClientError) -> dict:
    error = exc.response.get("Error", {})
    return {"code": error.get("Code"), "message": error.get("Message")}


def authorize_account(
    endpoint: str,
    region: str,
    key_id: str,
    application_key: str,
    bucket_name: str,
    download_url: str,
    timeout: float = 30.0,
) -> StorageSession:
    """
    Build an S3 client for the B2 bucket and check that the key pair is accepted.

    Raises:
        UpstreamAuthError: If B2 rejects the key pair or cannot be reached.
    """
    client = boto3.client(
        "s3",
        endpoint_url=endpoint,
        region_name=region,
        aws_access_key_id=key_id,
        aws_secret_access_key=application_key,
        config=Config(
            signature_version="s3v4",
            connect_timeout=timeout,
            read_timeout=timeout,
        ),
    )
    try:
        client.head_bucket(Bucket=bucket_name)
    except ClientError as exc:
        status = error_status(exc)
        raise UpstreamAuthError(
            f"Failed to authorize object storage: {status}",
            upstream_status=status,
        ) from exc
    except BotoCoreError as exc:
        raise UpstreamAuthError("Failed to authorize object storage") from exc
    return StorageSession(client=client, download_url=download_url)


@dataclass
class B2StorageClient:
    """
    Storage client for a Backblaze B2 bucket over its S3-compatible endpoint.

    Uploads are proxied through this service: the browser PUTs the video to
    `/upload/<key>` and the bytes are written to the bucket under that key.
    """

    credentials: "CredentialCache"
    bucket_name: str
    now_ms: Callable[[], int] = current_millis

    def issue_upload_target(
        self, filename: str, content_type: str, base_url: str
    ) -> UploadTarget:
        require_upload_fields(filename, content_type)
        session = self.credentials.get_object_storage_session()
        key = build_storage_key(filename, self.now_ms())
        return UploadTarget(
            key=key,
            upload_url=build_upload_url(base_url, key),
            public_url=build_public_url(session.download_url, self.bucket_name, key),
        )

    def upload_file(self, key: str, data: bytes, content_type: str) -> str:
        session = self.credentials.get_object_storage_session()
        try:
            self._call(
                "put_object",
                session,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except UpstreamError as exc:
            raise UploadError(exc.message, details=exc.details) from exc
        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return build_public_url(session.download_url, self.bucket_name, key)

    def delete_file(self, key: str) -> None:
        session = self.credentials.get_object_storage_session()
        listing = self._call(
            "list_object_versions",
            session,
            Bucket=self.bucket_name,
            Prefix=key,
            MaxKeys=1,
        )
        match = next(
            (v for v in listing.get("Versions", []) if v.get("Key") == key), None
        )
        if match is None:
            raise NotFoundError("File not found")
        self._call(
            "delete_object",
            session,
            Bucket=self.bucket_name,
            Key=key,
            VersionId=match["VersionId"],
        )
        logger.info("Deleted %s", key)

    def _call(self, operation: str, session: StorageSession, **params) -> dict:
        try:
            return getattr(session.client, operation)(**params)
        except ClientError as exc:
            status = error_status(exc)
            if status in AUTH_FAILURE_STATUSES:
                # Rejected credentials; the next request re-authorizes.
                self.credentials.invalidate_object_storage_session()
            raise UpstreamError(
                f"{operation} failed: {status}", details=error_details(exc)
            ) from exc
        except BotoCoreError as exc:
            raise UpstreamError(f"{operation} failed") from exc


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    download_url: str = "https://example.test/storage"
    bucket_name: str = "test-bucket"
    stored_objects: dict = None
    now_ms: Callable[[], int] = current_millis

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def issue_upload_target(
        self, filename: str, content_type: str, base_url: str
    ) -> UploadTarget:
        require_upload_fields(filename, content_type)
        key = build_storage_key(filename, self.now_ms())
        return UploadTarget(
            key=key,
            upload_url=build_upload_url(base_url, key),
            public_url=build_public_url(self.download_url, self.bucket_name, key),
        )

    def upload_file(self, key: str, data: bytes, content_type: str) -> str:
        self.stored_objects[key] = (bytes(data), content_type or DEFAULT_CONTENT_TYPE)
        return build_public_url(self.download_url, self.bucket_name, key)

    def delete_file(self, key: str) -> None:
        if key not in self.stored_objects:
            raise NotFoundError("File not found")
        del self.stored_objects[key]

    def reset(self) -> None:
        self.stored_objects.clear()
