"""Shared image factories for the test suite."""

from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

EXIF_ORIENTATION_TAG = 0x0112


def make_image_bytes(
    width: int,
    height: int,
    *,
    color: tuple[int, ...] = (255, 0, 0),
    fmt: str = "JPEG",
    mode: str = "RGB",
    quality: int = 100,
    orientation: int | None = None,
) -> bytes:
    """Encode a solid-colour image."""
    img = Image.new(mode, (width, height), color)
    return _encode(img, fmt=fmt, quality=quality, orientation=orientation)


def make_gradient_bytes(width: int, height: int, *, fmt: str = "JPEG", quality: int = 95) -> bytes:
    """Encode a deterministic colour gradient with some texture."""
    ys, xs = np.mgrid[0:height, 0:width]
    pixels = np.stack(
        [
            (xs * 255 // max(width - 1, 1)),
            (ys * 255 // max(height - 1, 1)),
            ((xs + ys) * 7) % 256,
        ],
        axis=-1,
    ).astype(np.uint8)
    return _encode(Image.fromarray(pixels), fmt=fmt, quality=quality)


def _encode(img: Image.Image, *, fmt: str, quality: int, orientation: int | None = None) -> bytes:
    out = io.BytesIO()
    kwargs: dict[str, object] = {}
    if fmt == "JPEG":
        kwargs["quality"] = quality
    if orientation is not None:
        exif = Image.Exif()
        exif[EXIF_ORIENTATION_TAG] = orientation
        kwargs["exif"] = exif
    img.save(out, format=fmt, **kwargs)
    return out.getvalue()


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.fixture(scope="session")
def solid_red_jpeg() -> bytes:
    """2000x2000 solid red JPEG at quality 100."""
    return make_image_bytes(2000, 2000)


@pytest.fixture(scope="session")
def gradient_jpeg() -> bytes:
    """1600x1200 textured JPEG."""
    return make_gradient_bytes(1600, 1200)
