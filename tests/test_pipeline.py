"""Tests for the upload orchestrator."""

from __future__ import annotations

import pytest
from conftest import make_image_bytes, open_image

from rewnd.config import ProcessingConfig
from rewnd.errors import ImageProcessingError
from rewnd.imaging.pipeline import (
    compression_ratio,
    main_sizing,
    process_photo_for_upload,
    thumbnail_sizing,
)
from rewnd.imaging.styles import StyleIdentifier

CONFIG = ProcessingConfig()


class TestProcessPhotoForUpload:
    def test_solid_red_compresses_by_more_than_half(self, solid_red_jpeg: bytes) -> None:
        result = process_photo_for_upload(solid_red_jpeg, StyleIdentifier.POLAROID, CONFIG)

        assert len(result.main_image) < len(solid_red_jpeg)
        assert result.metadata.compression_ratio_percent > 50
        assert result.metadata.savings.endswith("%")
        assert float(result.metadata.savings.rstrip("%")) > 50

    def test_metadata_describes_outputs(self, solid_red_jpeg: bytes) -> None:
        result = process_photo_for_upload(solid_red_jpeg, StyleIdentifier.FILM, CONFIG)
        metadata = result.metadata

        assert (metadata.source_width, metadata.source_height) == (2000, 2000)
        assert (metadata.width, metadata.height) == (1200, 1200)
        assert (metadata.thumbnail_width, metadata.thumbnail_height) == (800, 800)
        assert metadata.format == "jpeg"
        assert metadata.style_applied == "film"
        assert metadata.original_size_bytes == len(solid_red_jpeg)
        assert metadata.compressed_size_bytes == len(result.main_image)
        assert metadata.thumbnail_size_bytes == len(result.thumbnail)
        assert open_image(result.thumbnail).size == (800, 800)

    def test_small_source_is_not_enlarged(self) -> None:
        result = process_photo_for_upload(make_image_bytes(400, 300), StyleIdentifier.POLAROID, CONFIG)
        assert (result.metadata.width, result.metadata.height) == (400, 300)
        assert (result.metadata.thumbnail_width, result.metadata.thumbnail_height) == (400, 300)

    def test_thumbnail_height_is_unconstrained(self) -> None:
        result = process_photo_for_upload(make_image_bytes(1000, 3000), StyleIdentifier.POLAROID, CONFIG)
        assert result.metadata.height == 1600
        assert (result.metadata.thumbnail_width, result.metadata.thumbnail_height) == (800, 2400)

    def test_custom_config(self) -> None:
        config = ProcessingConfig(max_width=300, max_height=300, thumbnail_width=100)
        result = process_photo_for_upload(make_image_bytes(900, 600), StyleIdentifier.POLAROID, config)
        assert (result.metadata.width, result.metadata.height) == (300, 200)
        assert result.metadata.thumbnail_width == 100

    def test_unknown_style_matches_polaroid(self, gradient_jpeg: bytes) -> None:
        polaroid = process_photo_for_upload(gradient_jpeg, StyleIdentifier.POLAROID, CONFIG)
        fallback = process_photo_for_upload(gradient_jpeg, StyleIdentifier.parse("disco"), CONFIG)
        assert fallback.main_image == polaroid.main_image
        assert fallback.thumbnail == polaroid.thumbnail

    def test_repeatable(self, gradient_jpeg: bytes) -> None:
        first = process_photo_for_upload(gradient_jpeg, StyleIdentifier.STICKY_NOTE, CONFIG)
        second = process_photo_for_upload(gradient_jpeg, StyleIdentifier.STICKY_NOTE, CONFIG)
        assert first == second

    def test_text_file_fails_with_chained_error(self) -> None:
        with pytest.raises(ImageProcessingError, match="Failed to process image") as excinfo:
            process_photo_for_upload(b"hello, I am a text file", StyleIdentifier.POLAROID, CONFIG)
        cause = excinfo.value.__cause__
        assert isinstance(cause, ImageProcessingError)
        assert cause.__cause__ is not None


class TestHelpers:
    def test_compression_ratio(self) -> None:
        assert compression_ratio(1000, 250) == pytest.approx(75.0)

    def test_compression_ratio_can_be_negative(self) -> None:
        assert compression_ratio(100, 150) == pytest.approx(-50.0)

    def test_compression_ratio_of_empty_input(self) -> None:
        assert compression_ratio(0, 10) == 0.0

    def test_sizings_follow_config(self) -> None:
        config = ProcessingConfig(compression_quality=70, thumbnail_quality=60)
        main = main_sizing(config)
        thumb = thumbnail_sizing(config)
        assert (main.width, main.height, main.quality) == (1200, 1600, 70)
        assert (thumb.width, thumb.height, thumb.quality) == (800, None, 60)
