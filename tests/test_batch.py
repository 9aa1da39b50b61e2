import io
import struct
import zipfile
import zlib

import numpy as np
import pytest
from PIL import Image

from compression.batch import BatchResult, compress_batch, create_download_package, summarize_batch
from compression.errors import InvalidTarget
from compression.target_search import SearchConfig, TargetSizeCompressor


def _encoded(fmt, size=(120, 90), mode="RGB"):
    rng = np.random.default_rng(1)
    channels = len(mode)
    pixels = rng.integers(0, 256, size=(size[1], size[0], channels), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, format=fmt)
    return buf.getvalue()


def _png_chunk(kind, payload):
    body = kind + payload
    return struct.pack(">I", len(payload)) + body + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)


def _oversized_png(width=20000, height=20000):
    """PNG whose header declares far more pixels than Pillow will open."""
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (b"\x89PNG\r\n\x1a\n"
            + _png_chunk(b"IHDR", header)
            + _png_chunk(b"IDAT", zlib.compress(b"\x00" * 64))
            + _png_chunk(b"IEND", b""))


def test_batch_continues_after_failure():
    items = [
        ("first.png", _encoded("PNG")),
        ("broken.jpg", b"not an image"),
        ("third.jpg", _encoded("JPEG")),
    ]
    compressor = TargetSizeCompressor(SearchConfig(format="jpeg"))
    results = list(compress_batch(items, 4000, compressor, suffix="_small"))

    assert [r.index for r in results] == [0, 1, 2]
    assert results[0].ok and results[2].ok

    assert not results[1].ok
    assert results[1].stage == "decode"
    assert results[1].error

    assert results[0].download_name == "first_small.jpg"
    assert results[2].mime_type == "image/jpeg"
    for result in (results[0], results[2]):
        outcome = result.outcome
        assert outcome.final_bytes == len(outcome.blob)
        assert Image.open(io.BytesIO(outcome.blob)).format == "JPEG"


def test_batch_auto_format_keeps_png():
    results = list(compress_batch([("shot.png", _encoded("PNG"))], 1024 * 1024))

    outcome = results[0].outcome
    assert outcome.format == "PNG"
    assert outcome.success
    assert outcome.scale == 1.0
    assert results[0].download_name == "shot_reduced.png"


def test_batch_keeps_alpha_for_png():
    results = list(compress_batch([("logo.png", _encoded("PNG", mode="RGBA"))], 1024 * 1024))
    with Image.open(io.BytesIO(results[0].outcome.blob)) as img:
        assert img.mode == "RGBA"


def test_batch_invalid_target_raised_immediately():
    with pytest.raises(InvalidTarget):
        compress_batch([("a.png", b"")], 0)


def test_batch_reports_results_through_callback():
    seen = []
    results = list(compress_batch([("a.jpg", b"")], 1000, on_result=seen.append))
    assert seen == results
    assert results[0].stage == "decode"


def test_summarize_batch():
    items = [
        ("fits.png", _encoded("PNG", size=(16, 16))),
        ("broken.jpg", b"nope"),
    ]
    results = list(compress_batch(items, 1024 * 1024))
    summary = summarize_batch(results)

    assert summary["total"] == 2
    assert summary["succeeded"] == 1
    assert summary["partial"] == 0
    assert summary["failed"] == 1
    assert summary["total_bytes"] == results[0].outcome.final_bytes


def test_batch_survives_oversized_header():
    items = [
        ("huge.png", _oversized_png()),
        ("good.png", _encoded("PNG", size=(16, 16))),
    ]
    results = list(compress_batch(items, 100000))

    assert not results[0].ok
    assert results[0].stage == "decode"
    assert results[1].ok
    assert results[1].outcome.success


def test_download_package_keeps_every_output():
    items = [
        ("a.png", _encoded("PNG", size=(16, 16))),
        ("a.jpg", _encoded("JPEG", size=(16, 16))),
        ("a.png", _encoded("PNG", size=(16, 16))),
        ("broken.jpg", b"nope"),
    ]
    compressor = TargetSizeCompressor(SearchConfig(format="jpeg"))
    results = list(compress_batch(items, 100000, compressor))

    with zipfile.ZipFile(io.BytesIO(create_download_package(results))) as zf:
        names = zf.namelist()

    assert len(names) == 3
    assert len(set(names)) == 3
    assert names[0] == "a_reduced.jpg"
    assert "a_reduced_1.jpg" in names
    assert "a_reduced_2.jpg" in names


def test_download_package_skips_failures():
    results = [BatchResult(name="x.jpg", index=0, error="bad", stage="decode")]
    with zipfile.ZipFile(io.BytesIO(create_download_package(results))) as zf:
        assert zf.namelist() == []
