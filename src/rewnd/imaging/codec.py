"""Image codec and resizer: decode, orient, fit-inside resize, style, encode.

All Pillow failures surface as ``ImageProcessingError`` with the original
exception chained; a call either returns a complete ``EncodedImage`` or
raises.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from rewnd.errors import ImageProcessingError
from rewnd.imaging.styles import apply_style

if TYPE_CHECKING:
    from rewnd.imaging.styles import StyleIdentifier

logger = logging.getLogger(__name__)

# iPhone uploads arrive as HEIC.
register_heif_opener()

EXIF_ORIENTATION_TAG = 0x0112
OUTPUT_FORMAT = "jpeg"

_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError)


@dataclass(frozen=True)
class Sizing:
    """Bounding box and quality for one output size class.

    ``height=None`` leaves the height unconstrained (derived from the width).
    """

    width: int
    height: int | None
    quality: int


@dataclass
class DecodedImage:
    """Pixel data of one upload plus the metadata read while decoding."""

    image: Image.Image
    width: int
    height: int
    format: str
    orientation: int


@dataclass(frozen=True)
class SourceInfo:
    width: int
    height: int
    format: str


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    width: int
    height: int
    format: str = OUTPUT_FORMAT


def read_source_info(raw: bytes) -> SourceInfo:
    """Read dimensions and format from the header without decoding pixels."""
    try:
        with Image.open(io.BytesIO(raw)) as img:
            return SourceInfo(width=img.width, height=img.height, format=(img.format or "unknown").lower())
    except _DECODE_ERRORS as exc:
        raise ImageProcessingError(f"Unreadable image: {exc}") from exc


def decode(raw: bytes, *, max_pixels: int | None = None) -> DecodedImage:
    """Fully decode raw bytes and read the EXIF orientation.

    Raises:
        ImageProcessingError: If the bytes are not a decodable image or the
            pixel count exceeds ``max_pixels``.
    """
    try:
        img = Image.open(io.BytesIO(raw))
        if max_pixels is not None and img.width * img.height > max_pixels:
            img.close()
            raise ImageProcessingError(
                f"Image of {img.width}x{img.height}px exceeds the {max_pixels} pixel limit"
            )
        img.load()
        orientation = int(img.getexif().get(EXIF_ORIENTATION_TAG, 1))
    except _DECODE_ERRORS as exc:
        raise ImageProcessingError(f"Could not decode image: {exc}") from exc

    return DecodedImage(
        image=img,
        width=img.width,
        height=img.height,
        format=(img.format or "unknown").lower(),
        orientation=orientation,
    )


def auto_orient(decoded: DecodedImage) -> Image.Image:
    """Rotate/flip according to EXIF orientation so the image is upright."""
    if decoded.orientation == 1:
        return decoded.image
    return ImageOps.exif_transpose(decoded.image)


def fit_inside(width: int, height: int, box_width: int, box_height: int | None) -> tuple[int, int]:
    """Return the size of ``width x height`` scaled to fit the box.

    Aspect ratio is preserved and images are never enlarged.
    """
    scale = min(1.0, box_width / width)
    if box_height is not None:
        scale = min(scale, box_height / height)
    if scale >= 1.0:
        return width, height
    return max(1, round(width * scale)), max(1, round(height * scale))


def resize_inside(image: Image.Image, sizing: Sizing) -> Image.Image:
    target = fit_inside(image.width, image.height, sizing.width, sizing.height)
    if target == image.size:
        return image
    logger.debug("Resizing %dx%d -> %dx%d", image.width, image.height, *target)
    return image.resize(target, Image.Resampling.LANCZOS)


def to_rgb(image: Image.Image) -> Image.Image:
    """Normalise to RGB, flattening any transparency onto white."""
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA", "PA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    """Encode as progressive, optimized JPEG without carrying metadata."""
    out = io.BytesIO()
    image.save(out, format="JPEG", quality=quality, progressive=True, optimize=True)
    return out.getvalue()


def process(
    raw: bytes,
    sizing: Sizing,
    style: StyleIdentifier | None = None,
    *,
    max_pixels: int | None = None,
) -> EncodedImage:
    """Produce one encoded variant of an upload.

    Steps: decode, auto-orient, fit-inside resize, style (skipped when
    ``style`` is None), JPEG encode.
    """
    decoded = decode(raw, max_pixels=max_pixels)
    try:
        image = auto_orient(decoded)
        image = to_rgb(resize_inside(image, sizing))
        if style is not None:
            image = apply_style(image, style)
        data = encode_jpeg(image, sizing.quality)
    except ImageProcessingError:
        raise
    except _DECODE_ERRORS as exc:
        raise ImageProcessingError(f"Could not encode image: {exc}") from exc
    finally:
        decoded.image.close()

    return EncodedImage(data=data, width=image.width, height=image.height)
