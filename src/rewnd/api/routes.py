"""API route definitions."""

from __future__ import annotations

import logging
import os
import platform
import sys
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Request, status
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from rewnd.api.middleware import authenticate_user
from rewnd.api.schemas import (
    ConfigCheckResponse,
    DetailedHealthResponse,
    ErrorResponse,
    HealthResponse,
    PhotoOut,
    ProcessingConfigOut,
    ProcessingSummary,
    ServiceInfo,
    UploadResponse,
)
from rewnd.errors import ValidationError
from rewnd.imaging.pipeline import process_photo_for_upload
from rewnd.imaging.styles import StyleIdentifier
from rewnd.storage.protocols import UserIdentity  # noqa: TC001
from rewnd.storage.publisher import PhotoSubmission

if TYPE_CHECKING:
    from starlette.datastructures import FormData

    from rewnd.config import ProcessingConfig, Settings
    from rewnd.imaging.pool import ProcessingPool
    from rewnd.storage.publisher import PhotoPublisher

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"

router = APIRouter(prefix="/api/photos", tags=["photos"])
service_router = APIRouter(tags=["service"])

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/heif",
        "image/heic",
    }
)

# Boundaries, part headers and the optional text fields.
MULTIPART_OVERHEAD_BYTES = 64 * 1024
MAX_FORM_FIELDS = 16

_UPLOAD_REQUEST_BODY: dict[str, object] = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "required": ["photo"],
                    "properties": {
                        "photo": {"type": "string", "format": "binary"},
                        "caption": {"type": "string"},
                        "photoStyle": {"type": "string", "enum": [style.value for style in StyleIdentifier]},
                        "promptTime": {"type": "string", "format": "date-time"},
                        "latitude": {"type": "number"},
                        "longitude": {"type": "number"},
                    },
                }
            }
        },
    }
}

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    status.HTTP_504_GATEWAY_TIMEOUT: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_processing_config(request: Request) -> ProcessingConfig:
    config: ProcessingConfig = request.app.state.processing_config
    return config


def _get_processing_pool(request: Request) -> ProcessingPool:
    pool: ProcessingPool = request.app.state.processing_pool
    return pool


def _get_publisher(request: Request) -> PhotoPublisher:
    publisher: PhotoPublisher = request.app.state.publisher
    return publisher


def format_kb(size: int) -> str:
    """Format a byte count as whole kilobytes, e.g. ``"512KB"``."""
    return f"{int(size / 1024 + 0.5)}KB"


def _parse_coordinate(name: str, value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        raise ValidationError("Invalid field", f"{name} must be a decimal number") from None


def _check_content_length(request: Request, settings: Settings) -> None:
    """Reject bodies that cannot carry a file within the size limit, before reading them."""
    header = request.headers.get("content-length")
    if header and header.isdigit() and int(header) > settings.max_file_size + MULTIPART_OVERHEAD_BYTES:
        raise ValidationError("File too large", f"Maximum file size: {settings.max_image_size_mb}MB")


async def _parse_form(request: Request) -> FormData:
    try:
        return await request.form(max_files=1, max_fields=MAX_FORM_FIELDS)
    except MultiPartException as exc:
        message = exc.message
    except StarletteHTTPException as exc:
        message = str(exc.detail)
    if message.startswith("Too many files"):
        raise ValidationError("Too many files", "Only one file allowed per upload")
    raise ValidationError("Upload error", message)


def _form_text(form: FormData, name: str) -> str | None:
    value = form.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Invalid field", f"{name} must be a text field")
    return value or None


async def _validate_upload(form: FormData, settings: Settings) -> bytes:
    """Check presence, MIME type and size, in that order, and return the file bytes."""
    photo = form.get("photo")
    if not isinstance(photo, UploadFile):
        raise ValidationError("No file uploaded", "Please provide a photo file")

    if photo.content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            "Invalid file",
            "Invalid file type. Only JPEG, PNG, WebP, and HEIF images are allowed.",
        )

    if photo.size is not None and photo.size > settings.max_file_size:
        raise ValidationError("File too large", f"Maximum file size: {settings.max_image_size_mb}MB")
    data = await photo.read()
    if len(data) > settings.max_file_size:
        raise ValidationError("File too large", f"Maximum file size: {settings.max_image_size_mb}MB")
    if not data:
        raise ValidationError("No file uploaded", "The uploaded file is empty")
    return data


@router.post(
    "/upload",
    status_code=status.HTTP_201_CREATED,
    response_model=UploadResponse,
    responses=_ERROR_RESPONSES,
    summary="Upload, process and store a photo",
    openapi_extra=_UPLOAD_REQUEST_BODY,
)
async def upload_photo(
    request: Request,
    user: Annotated[UserIdentity, Depends(authenticate_user)],
) -> UploadResponse:
    """Compress the photo, generate a thumbnail, apply the style and persist everything.

    The multipart body is parsed here rather than through ``File``/``Form``
    parameters so that nothing is read before the caller is authenticated.
    """
    settings = _get_settings(request)
    _check_content_length(request, settings)
    form = await _parse_form(request)
    try:
        data = await _validate_upload(form, settings)
        submission = PhotoSubmission(
            caption=_form_text(form, "caption"),
            photo_style=StyleIdentifier.parse(_form_text(form, "photoStyle")),
            prompt_time=_form_text(form, "promptTime"),
            latitude=_parse_coordinate("latitude", _form_text(form, "latitude")),
            longitude=_parse_coordinate("longitude", _form_text(form, "longitude")),
        )
    finally:
        await form.close()

    logger.info(
        "Processing photo upload for user %s (%s, style=%s)",
        user.id,
        format_kb(len(data)),
        submission.photo_style,
    )

    pool = _get_processing_pool(request)
    processed = await pool.run(
        process_photo_for_upload,
        data,
        submission.photo_style,
        _get_processing_config(request),
    )
    row = await _get_publisher(request).publish(user, processed, submission)

    metadata = processed.metadata
    return UploadResponse(
        photo=PhotoOut(
            id=row["id"],
            image_url=row["image_url"],
            thumbnail_url=row["thumbnail_url"],
            caption=row.get("caption"),
            photo_style=row.get("photo_style", str(submission.photo_style)),
            created_at=row.get("created_at"),
        ),
        processing=ProcessingSummary(
            original_size=format_kb(len(data)),
            compressed_size=format_kb(metadata.compressed_size_bytes),
            savings=metadata.savings,
            thumbnail_size=format_kb(metadata.thumbnail_size_bytes),
        ),
    )


@router.get(
    "/test",
    response_model=ConfigCheckResponse,
    summary="Show the active upload configuration",
)
async def check_config(request: Request) -> ConfigCheckResponse:
    """Return processing settings and whether storage credentials are set."""
    settings = _get_settings(request)
    config = _get_processing_config(request)
    return ConfigCheckResponse(
        message="Photo upload endpoint ready",
        config=ProcessingConfigOut(
            compression_quality=config.compression_quality,
            max_width=config.max_width,
            max_height=config.max_height,
            thumbnail_width=config.thumbnail_width,
            thumbnail_quality=config.thumbnail_quality,
            max_file_size=f"{settings.max_image_size_mb}MB",
        ),
        supabase_configured=settings.supabase_configured,
        endpoints={"upload": "POST /api/photos/upload (requires auth + file)"},
    )


@service_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    pool = _get_processing_pool(request)
    return HealthResponse(
        timestamp=datetime.now(UTC).isoformat(),
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@service_router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    summary="Health check with runtime details",
)
async def health_detailed(request: Request) -> DetailedHealthResponse:
    """Return health status plus environment, runtime and worker pool details."""
    settings = _get_settings(request)
    pool = _get_processing_pool(request)
    return DetailedHealthResponse(
        timestamp=datetime.now(UTC).isoformat(),
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
        environment=settings.environment,
        python_version=platform.python_version(),
        platform=sys.platform,
        pid=os.getpid(),
        max_concurrent=settings.max_concurrent,
        supabase_configured=settings.supabase_configured,
    )


@service_router.get(
    "/",
    response_model=ServiceInfo,
    summary="Service information",
)
async def service_info() -> ServiceInfo:
    return ServiceInfo(
        name="REWND Backend API",
        version=API_VERSION,
        endpoints={"health": "/health", "health_detailed": "/health/detailed", "photos": "/api/photos"},
    )
