"""
HTTP routes for the storefront relay.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Optional
from urllib.parse import unquote

from fastapi import APIRouter, Body, Depends, Request

from relay.catalog import ENTRY_TYPE, CatalogClient, format_flag
from relay.config import Settings, get_settings
from relay.dependencies import get_catalog_client, get_storage_client
from relay.errors import (
    CatalogError,
    NotFoundError,
    PayloadTooLargeError,
    RelayError,
    UpstreamError,
    ValidationError,
)
from relay.leaderboard import LISTING_PAGE_SIZE, build_leaderboard
from relay.schemas import (
    DeleteResponse,
    HealthResponse,
    LeaderboardByNameResponse,
    LeaderboardByTypeResponse,
    SubmitResponse,
    UpdateSubmissionResponse,
    UploadResponse,
    UploadUrlRequest,
    UploadUrlResponse,
    VerifySubmissionResponse,
)
from relay.storage import DEFAULT_CONTENT_TYPE, StorageClient, require_upload_fields
from relay.submissions import (
    build_submission_fields,
    admin_edit_fields,
    verification_fields,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ADMIN_SCAN_PAGE_SIZE = 100


@contextmanager
def upstream_boundary(
    message: str, catalog_error_message: Optional[str] = None
) -> Iterator[None]:
    """
    Translate client failures into this endpoint's error response.

    Caller-facing errors (validation, not found, oversized body) pass through
    unchanged. Other relay errors keep their status and details but take
    `message`; anything else becomes a 500 with `message`. When
    `catalog_error_message` is given, catalog rejections are reported as a
    500 under that message instead of a 400.
    """
    try:
        yield
    except (ValidationError, NotFoundError, PayloadTooLargeError):
        raise
    except CatalogError as exc:
        logger.warning("%s: %s %s", message, exc.message, exc.details)
        if catalog_error_message:
            raise UpstreamError(catalog_error_message, details=exc.details) from exc
        raise exc.with_message(message) from exc
    except RelayError as exc:
        logger.error("%s: %s", message, exc.message)
        raise exc.with_message(message) from exc
    except Exception as exc:
        logger.exception(message)
        raise UpstreamError(message) from exc


async def _read_submission_form(request: Request) -> Mapping[str, Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as exc:
            raise ValidationError("Request body must be valid JSON") from exc
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        return body
    form = await request.form()
    return dict(form)


async def _read_limited_body(request: Request, limit: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError("File exceeds the upload size limit")
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise PayloadTooLargeError("File exceeds the upload size limit")
    return bytes(body)


def _path_key(request: Request, prefix: str, fallback: str) -> str:
    """
    Storage key after `prefix` in the raw request path, decoded exactly once.

    Keys may contain a literal `%`, so the already-decoded path parameter
    cannot be decoded again.
    """
    raw_path = request.scope.get("raw_path")
    if not raw_path:
        return fallback
    _, found, encoded = raw_path.decode("utf-8", "replace").partition(prefix)
    if not found:
        return fallback
    return unquote(encoded)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post("/get-upload-url", response_model=UploadUrlResponse)
def get_upload_url(
    payload: UploadUrlRequest,
    request: Request,
    storage: StorageClient = Depends(get_storage_client),
):
    require_upload_fields(payload.filename, payload.contentType)
    with upstream_boundary("Failed to generate upload URL"):
        target = storage.issue_upload_target(
            payload.filename, payload.contentType, str(request.base_url)
        )
    return UploadUrlResponse(uploadUrl=target.upload_url, publicUrl=target.public_url)


@router.put("/upload/{key:path}", response_model=UploadResponse)
async def upload_file(
    key: str,
    request: Request,
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
):
    """
    Proxy a browser upload to object storage.
    """
    data = await _read_limited_body(request, settings.max_upload_bytes)
    if not data:
        raise ValidationError("File body required")
    content_type = request.headers.get("content-type") or DEFAULT_CONTENT_TYPE
    storage_key = _path_key(request, "/upload/", key)
    with upstream_boundary("Failed to upload file"):
        public_url = await asyncio.to_thread(
            storage.upload_file, storage_key, data, content_type
        )
    return UploadResponse(success=True, publicUrl=public_url)


@router.delete("/delete/{key:path}", response_model=DeleteResponse)
def delete_file(
    key: str, request: Request, storage: StorageClient = Depends(get_storage_client)
):
    with upstream_boundary("Failed to delete file"):
        storage.delete_file(_path_key(request, "/delete/", key))
    return DeleteResponse(success=True, message="File deleted")


@router.post("/submit-chug", response_model=SubmitResponse)
async def submit_chug(
    request: Request, catalog: CatalogClient = Depends(get_catalog_client)
):
    """
    Record a new, unverified leaderboard submission from the storefront form.
    """
    form = await _read_submission_form(request)
    fields = build_submission_fields(form)
    with upstream_boundary("Failed to create metaobject"):
        created = await asyncio.to_thread(catalog.create, ENTRY_TYPE, fields)
    logger.info("Created submission %s", created.id)
    return SubmitResponse(success=True, metaobject=created.as_dict())


def _fetch_leaderboard(
    catalog: CatalogClient, field_name: str, value: str
) -> list[dict]:
    if not value.strip():
        raise ValidationError(f"{field_name} is required")
    with upstream_boundary(
        "Failed to fetch leaderboard entries",
        catalog_error_message="Failed to fetch entries",
    ):
        records = catalog.query(ENTRY_TYPE, LISTING_PAGE_SIZE)
    entries = build_leaderboard(records, field_name, value)
    logger.info(
        "Leaderboard %s=%s: %d fetched, %d shown",
        field_name,
        value,
        len(records),
        len(entries),
    )
    return entries


@router.get(
    "/leaderboard/{leaderboard_type}", response_model=LeaderboardByTypeResponse
)
def leaderboard_by_type(
    leaderboard_type: str, catalog: CatalogClient = Depends(get_catalog_client)
):
    entries = _fetch_leaderboard(catalog, "leaderboard_type", leaderboard_type)
    return LeaderboardByTypeResponse(
        success=True,
        leaderboard_type=leaderboard_type,
        count=len(entries),
        entries=entries,
    )


@router.get(
    "/whitelabel/name/{leaderboard_name}", response_model=LeaderboardByNameResponse
)
def leaderboard_by_name(
    leaderboard_name: str, catalog: CatalogClient = Depends(get_catalog_client)
):
    entries = _fetch_leaderboard(catalog, "leaderboard_name", leaderboard_name)
    return LeaderboardByNameResponse(
        success=True,
        leaderboard_name=leaderboard_name,
        count=len(entries),
        entries=entries,
    )


@router.get("/admin/unverified")
def next_unverified_submission(
    catalog: CatalogClient = Depends(get_catalog_client),
):
    with upstream_boundary("Failed to fetch submissions"):
        records = catalog.query(ENTRY_TYPE, ADMIN_SCAN_PAGE_SIZE)
    unverified = format_flag(False)
    record = next(
        (r for r in records if r.fields.get("verified") == unverified), None
    )
    if record is None:
        raise NotFoundError("No unverified submissions found")
    return record.as_submission()


@router.patch(
    "/admin/submission/{submission_id:path}", response_model=UpdateSubmissionResponse
)
def update_submission(
    submission_id: str,
    updates: Dict[str, Any] = Body(...),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    """Edit submission fields; the verification flag is never changed here."""
    fields = admin_edit_fields(updates)
    with upstream_boundary("Failed to update submission"):
        record = catalog.update(submission_id, fields)
    return UpdateSubmissionResponse(success=True, submission=record.as_submission())


@router.post("/admin/verify/{submission_id:path}", response_model=VerifySubmissionResponse)
def verify_submission(
    submission_id: str, catalog: CatalogClient = Depends(get_catalog_client)
):
    with upstream_boundary("Failed to verify submission"):
        record = catalog.update(submission_id, verification_fields())
    logger.info("Verified submission %s", submission_id)
    return VerifySubmissionResponse(
        success=True, verified=True, submission=record.as_submission()
    )
