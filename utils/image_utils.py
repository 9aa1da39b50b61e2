"""
Common image utility functions for the target-size compressor.
"""

import io
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from compression.codecs import get_extension
from compression.errors import DecodeFailure


DEFAULT_SUFFIX = "_reduced"

ALPHA_MODES = {"RGBA", "LA", "PA"}


@dataclass
class SourceImage:
    """Decoded source image. pixels is never modified after loading."""
    pixels: np.ndarray
    format: Optional[str] = None
    name: str = "image"

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


def _sniff(data: bytes) -> Tuple[Optional[str], bool]:
    """Format name and whether the image carries transparency."""
    with Image.open(io.BytesIO(data)) as img:
        has_alpha = img.mode in ALPHA_MODES or (img.mode == "P" and "transparency" in img.info)
        return img.format, has_alpha


def detect_format(data: bytes) -> Optional[str]:
    """
    Sniff the container format of encoded image bytes.

    Returns:
        Pillow format name ("JPEG", "PNG", "WEBP", ...) or None if unknown
    """
    try:
        return _sniff(data)[0]
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError):
        return None


def ensure_uint8(image: np.ndarray) -> np.ndarray:
    """
    Ensure image is uint8 type with values in [0, 255].

    Args:
        image: Input image

    Returns:
        uint8 image
    """
    if image.dtype == np.uint8:
        return image

    # 16-bit PNG / TIFF
    if image.dtype == np.uint16:
        return (image >> 8).astype(np.uint8)

    # Handle float images (assume 0-1 range)
    if image.dtype in [np.float32, np.float64]:
        if image.max() <= 1.0:
            image = image * 255.0
        image = np.clip(image, 0, 255)

    return image.astype(np.uint8)


def load_image(source: Union[bytes, io.BytesIO, np.ndarray], name: str = "image") -> SourceImage:
    """
    Load image from various sources.

    Args:
        source: Encoded bytes, BytesIO stream, file-like object or numpy array
        name: Identifier used in errors and output names

    Returns:
        SourceImage

    Raises:
        DecodeFailure: if the data cannot be decoded
    """
    if isinstance(source, np.ndarray):
        if source.ndim < 2 or source.size == 0:
            raise DecodeFailure(f"Image has invalid dimensions: {source.shape}", source=name)
        return SourceImage(pixels=ensure_uint8(source), name=name)

    if isinstance(source, io.BytesIO):
        source.seek(0)
        return load_image(source.read(), name)

    # Try to read from file-like object
    if hasattr(source, 'read'):
        return load_image(source.read(), name)

    if not isinstance(source, (bytes, bytearray)):
        raise DecodeFailure(f"Unsupported image source type: {type(source)}", source=name)

    data = bytes(source)
    if not data:
        raise DecodeFailure("Image data is empty", source=name)

    try:
        fmt, has_alpha = _sniff(data)
    except Image.DecompressionBombError as e:
        raise DecodeFailure(f"Image is too large to decode: {e}", source=name) from e
    except (UnidentifiedImageError, OSError):
        fmt, has_alpha = None, False

    # Keep transparency when the source has it; otherwise let OpenCV apply EXIF orientation
    flags = cv2.IMREAD_UNCHANGED if has_alpha else cv2.IMREAD_COLOR
    nparr = np.frombuffer(data, np.uint8)
    try:
        image = cv2.imdecode(nparr, flags)
    except (cv2.error, MemoryError) as e:
        raise DecodeFailure(f"Could not decode image: {e}", source=name) from e

    if image is None:
        raise DecodeFailure("Could not decode image from bytes", source=name)

    return SourceImage(pixels=ensure_uint8(image), format=fmt, name=name)


def format_bytes(value: int) -> str:
    """Human readable size using 1024-based units."""
    if value >= 1024 * 1024:
        return f"{value / (1024 * 1024):.2f} MB"
    if value >= 1024:
        return f"{value / 1024:.1f} KB"
    return f"{value} bytes"


def build_download_name(original_name: str, suffix: str, fmt: str) -> str:
    """
    Name for a compressed output file.

    The original extension (text after the last dot) is replaced by the
    output format's extension and the suffix is inserted before it.

    Args:
        original_name: Uploaded file name
        suffix: Text appended to the base name (blank uses DEFAULT_SUFFIX)
        fmt: Output format

    Returns:
        e.g. "holiday_reduced.jpg"
    """
    suffix = suffix.strip() if suffix else ""
    suffix = suffix or DEFAULT_SUFFIX

    dot_index = original_name.rfind('.')
    base = original_name[:dot_index] if dot_index > -1 else original_name
    return f"{base}{suffix}{get_extension(fmt)}"
