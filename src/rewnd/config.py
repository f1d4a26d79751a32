"""Environment-based configuration for the REWND photo service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ProcessingConfig:
    """Read-only sizing and quality options for the photo pipeline."""

    compression_quality: int = 88
    max_width: int = 1200
    max_height: int = 1600
    thumbnail_width: int = 800
    thumbnail_quality: int = 85
    max_image_pixels: int = 40_000_000


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        frozen=True,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000
    environment: Literal["development", "production", "test"] = "production"
    log_level: str = "INFO"

    # Image processing
    compression_quality: int = Field(default=88, ge=1, le=100)
    max_image_width: int = Field(default=1200, ge=1)
    max_image_height: int = Field(default=1600, ge=1)
    thumbnail_width: int = Field(default=800, ge=1)
    thumbnail_quality: int = Field(default=85, ge=1, le=100)
    max_image_pixels: int = Field(default=40_000_000, ge=1)

    # Upload limits
    max_image_size_mb: int = Field(default=10, ge=1)

    # Concurrency
    max_concurrent: int = Field(default_factory=lambda: os.cpu_count() or 1, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)
    processing_timeout: float = Field(default=15.0, gt=0)

    # Supabase (None = not configured)
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    storage_bucket: str = "rewind-photos"

    @property
    def max_file_size(self) -> int:
        """Upload size limit in bytes."""
        return self.max_image_size_mb * 1024 * 1024

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    def processing_config(self) -> ProcessingConfig:
        """Snapshot the pipeline options as an immutable ProcessingConfig."""
        return ProcessingConfig(
            compression_quality=self.compression_quality,
            max_width=self.max_image_width,
            max_height=self.max_image_height,
            thumbnail_width=self.thumbnail_width,
            thumbnail_quality=self.thumbnail_quality,
            max_image_pixels=self.max_image_pixels,
        )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
