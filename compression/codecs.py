"""
OpenCV-backed encode and render capabilities used by the target-size search.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from .errors import EncodeFailure, RenderContextUnavailable


logger = logging.getLogger(__name__)

# Output formats the encoder can produce, with their file extensions
SUPPORTED_FORMATS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "WEBP": ".webp",
}

MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}

LOSSLESS_FORMATS = {"PNG"}

DEFAULT_FORMAT = "JPEG"

# zlib level for PNG output; quality has no meaning there
PNG_COMPRESSION_LEVEL = 9

_FORMAT_ALIASES = {
    "JPG": "JPEG",
    "JPE": "JPEG",
    "JFIF": "JPEG",
}


def normalize_format(name: Optional[str]) -> Optional[str]:
    """
    Map a format name, extension or MIME type to a canonical format name.

    Args:
        name: e.g. "jpeg", ".jpg", "image/webp", "PNG"

    Returns:
        Canonical upper-case name ("JPEG", "PNG", ...) or None for empty input
    """
    if not name:
        return None

    key = name.strip().upper()
    if key.startswith("IMAGE/"):
        key = key[len("IMAGE/"):]
    key = key.lstrip(".")

    return _FORMAT_ALIASES.get(key, key)


def is_lossless(fmt: str) -> bool:
    """Lossless formats ignore the quality parameter."""
    return normalize_format(fmt) in LOSSLESS_FORMATS


def select_target_format(source_format: Optional[str], preferred: Optional[str] = "auto") -> str:
    """
    Decide which format to encode to.

    An explicit preference wins. With "auto" the source format is reused when
    the encoder supports it, otherwise JPEG is used.

    Raises:
        EncodeFailure: if an explicit preference names an unsupported format
    """
    if preferred and preferred.strip().lower() != "auto":
        fmt = normalize_format(preferred)
        if fmt not in SUPPORTED_FORMATS:
            raise EncodeFailure(f"Unsupported output format: {preferred}")
        return fmt

    fmt = normalize_format(source_format)
    if fmt in SUPPORTED_FORMATS:
        return fmt
    return DEFAULT_FORMAT


def get_extension(fmt: str) -> str:
    """File extension for a format, defaulting to .jpg."""
    return SUPPORTED_FORMATS.get(normalize_format(fmt), SUPPORTED_FORMATS[DEFAULT_FORMAT])


def get_mime_type(fmt: str) -> str:
    """MIME type for a format, defaulting to image/jpeg."""
    return MIME_TYPES.get(normalize_format(fmt), MIME_TYPES[DEFAULT_FORMAT])


def _encode_params(fmt: str, quality: int) -> list:
    quality = max(1, min(100, int(quality)))
    if fmt == "JPEG":
        return [cv2.IMWRITE_JPEG_QUALITY, quality]
    if fmt == "WEBP":
        return [cv2.IMWRITE_WEBP_QUALITY, quality]
    if fmt == "PNG":
        return [cv2.IMWRITE_PNG_COMPRESSION, PNG_COMPRESSION_LEVEL]
    return []


def encode_image(raster: np.ndarray, fmt: str, quality: int) -> bytes:
    """
    Encode a raster with OpenCV.

    Args:
        raster: BGR, BGRA or grayscale uint8 array
        fmt: Output format name
        quality: Encoder quality (1-100), ignored for lossless formats

    Returns:
        Encoded bytes

    Raises:
        EncodeFailure: if the format is unsupported or encoding fails
    """
    fmt = normalize_format(fmt)
    if fmt not in SUPPORTED_FORMATS:
        raise EncodeFailure(f"Unsupported output format: {fmt}")

    # JPEG has no alpha channel
    if fmt == "JPEG" and raster.ndim == 3 and raster.shape[2] == 4:
        raster = cv2.cvtColor(raster, cv2.COLOR_BGRA2BGR)

    try:
        success, buffer = cv2.imencode(SUPPORTED_FORMATS[fmt], raster, _encode_params(fmt, quality))
    except cv2.error as e:
        raise EncodeFailure(f"Failed to encode image as {fmt}: {e}") from e

    if not success or buffer is None or buffer.size == 0:
        raise EncodeFailure(f"Failed to encode image as {fmt}")

    return buffer.tobytes()


def render_image(image: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Render the source at the given pixel dimensions.

    The source array is never modified; at full size it is returned as is.

    Raises:
        RenderContextUnavailable: if resizing fails
    """
    width = max(1, int(width))
    height = max(1, int(height))
    h, w = image.shape[:2]

    if (w, h) == (width, height):
        return image

    # INTER_AREA for shrinking, LANCZOS4 for enlarging
    if width < w or height < h:
        interp = cv2.INTER_AREA
    else:
        interp = cv2.INTER_LANCZOS4

    try:
        return cv2.resize(image, (width, height), interpolation=interp)
    except cv2.error as e:
        raise RenderContextUnavailable(f"Could not render at {width}x{height}: {e}") from e
