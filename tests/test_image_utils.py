import io

import numpy as np
import pytest
from PIL import Image

from compression.errors import DecodeFailure
from utils.image_utils import (
    build_download_name,
    detect_format,
    ensure_uint8,
    format_bytes,
    load_image,
)


def _png_bytes(mode="RGB", size=(20, 10)):
    buf = io.BytesIO()
    Image.new(mode, size).save(buf, format="PNG")
    return buf.getvalue()


@pytest.mark.parametrize("value, expected", [
    (500, "500 bytes"),
    (2048, "2.0 KB"),
    (1536 * 1024, "1.50 MB"),
])
def test_format_bytes(value, expected):
    assert format_bytes(value) == expected


def test_build_download_name():
    assert build_download_name("photo.final.png", "_small", "JPEG") == "photo.final_small.jpg"
    assert build_download_name("scan", "_small", "png") == "scan_small.png"
    assert build_download_name("img.webp", "  ", "WEBP") == "img_reduced.webp"


def test_load_image_from_bytes():
    source = load_image(_png_bytes(), name="a.png")

    assert source.format == "PNG"
    assert (source.width, source.height) == (20, 10)
    assert source.pixels.shape == (10, 20, 3)
    assert source.name == "a.png"


def test_load_image_keeps_alpha():
    source = load_image(_png_bytes(mode="RGBA"))
    assert source.pixels.shape[2] == 4


def test_load_image_from_stream():
    source = load_image(io.BytesIO(_png_bytes()))
    assert source.width == 20


def test_load_image_rejects_garbage():
    with pytest.raises(DecodeFailure) as exc_info:
        load_image(b"definitely not an image", name="bad.jpg")
    assert exc_info.value.source == "bad.jpg"
    assert exc_info.value.stage == "decode"


def test_load_image_rejects_empty():
    with pytest.raises(DecodeFailure):
        load_image(b"")


def test_detect_format_unknown():
    assert detect_format(b"nope") is None


def test_ensure_uint8_from_uint16():
    image = np.full((2, 2), 65535, dtype=np.uint16)
    assert ensure_uint8(image).max() == 255
    assert ensure_uint8(image).dtype == np.uint8
