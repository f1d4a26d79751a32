"""Upload orchestration: main image + thumbnail + metadata for one photo."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rewnd.errors import ImageProcessingError
from rewnd.imaging import codec
from rewnd.imaging.codec import Sizing

if TYPE_CHECKING:
    from rewnd.config import ProcessingConfig
    from rewnd.imaging.styles import StyleIdentifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedMetadata:
    width: int
    height: int
    format: str
    original_size_bytes: int
    compressed_size_bytes: int
    compression_ratio_percent: float
    style_applied: str
    source_width: int
    source_height: int
    thumbnail_width: int
    thumbnail_height: int
    thumbnail_size_bytes: int

    @property
    def savings(self) -> str:
        """Compression ratio formatted for display, e.g. ``"73.4%"``."""
        return f"{self.compression_ratio_percent:.1f}%"


@dataclass(frozen=True)
class ProcessedResult:
    main_image: bytes
    thumbnail: bytes
    metadata: ProcessedMetadata


def main_sizing(config: ProcessingConfig) -> Sizing:
    return Sizing(width=config.max_width, height=config.max_height, quality=config.compression_quality)


def thumbnail_sizing(config: ProcessingConfig) -> Sizing:
    return Sizing(width=config.thumbnail_width, height=None, quality=config.thumbnail_quality)


def compression_ratio(original_size: int, compressed_size: int) -> float:
    """Percentage saved; negative when the output grew."""
    if original_size == 0:
        return 0.0
    return (1 - compressed_size / original_size) * 100


def process_photo_for_upload(raw: bytes, style: StyleIdentifier, config: ProcessingConfig) -> ProcessedResult:
    """Compress, resize and style an upload into a main image and a thumbnail.

    The two variants are produced independently from the raw bytes with the
    same style, so they match visually.

    Raises:
        ImageProcessingError: If either variant fails; no partial result is
            returned.
    """
    try:
        source = codec.read_source_info(raw)
        logger.info("Processing %dx%dpx %s image (style=%s)", source.width, source.height, source.format, style)

        main = codec.process(raw, main_sizing(config), style, max_pixels=config.max_image_pixels)
        thumb = codec.process(raw, thumbnail_sizing(config), style, max_pixels=config.max_image_pixels)
    except ImageProcessingError as exc:
        raise ImageProcessingError(f"Failed to process image: {exc}") from exc

    ratio = compression_ratio(len(raw), len(main.data))
    metadata = ProcessedMetadata(
        width=main.width,
        height=main.height,
        format=main.format,
        original_size_bytes=len(raw),
        compressed_size_bytes=len(main.data),
        compression_ratio_percent=ratio,
        style_applied=str(style),
        source_width=source.width,
        source_height=source.height,
        thumbnail_width=thumb.width,
        thumbnail_height=thumb.height,
        thumbnail_size_bytes=len(thumb.data),
    )
    logger.info(
        "Compressed: %dKB -> %dKB (%s savings), thumbnail %dKB",
        round(len(raw) / 1024),
        round(len(main.data) / 1024),
        metadata.savings,
        round(len(thumb.data) / 1024),
    )
    return ProcessedResult(main_image=main.data, thumbnail=thumb.data, metadata=metadata)
