"""Pydantic response schemas for the photo API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PhotoOut(_CamelModel):
    """The persisted photo record."""

    id: str | int
    image_url: str
    thumbnail_url: str
    caption: str | None = None
    photo_style: str
    created_at: str | None = None


class ProcessingSummary(_CamelModel):
    """Human-readable processing diagnostics."""

    original_size: str = Field(description="Upload size, e.g. '2048KB'")
    compressed_size: str = Field(description="Main image size after compression")
    savings: str = Field(description="Compression savings, e.g. '73.4%'")
    thumbnail_size: str


class UploadResponse(_CamelModel):
    """Response for a successful photo upload."""

    success: bool = True
    photo: PhotoOut
    processing: ProcessingSummary


class ProcessingConfigOut(BaseModel):
    compression_quality: int
    max_width: int
    max_height: int
    thumbnail_width: int
    thumbnail_quality: int
    max_file_size: str


class ConfigCheckResponse(BaseModel):
    """Response for the upload configuration check endpoint."""

    message: str
    config: ProcessingConfigOut
    supabase_configured: bool
    endpoints: dict[str, str]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    timestamp: str
    uptime: float = Field(description="Seconds since startup")
    concurrent_requests: int
    queue_depth: int


class DetailedHealthResponse(HealthResponse):
    environment: str
    python_version: str
    platform: str
    pid: int
    max_concurrent: int
    supabase_configured: bool


class ServiceInfo(BaseModel):
    name: str
    version: str
    status: str = "operational"
    endpoints: dict[str, str]


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    message: str
    stack: str | None = None
