"""
Sequential batch compression.
Images are processed one at a time in submission order; a failure only
affects the image it happened on.
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from .codecs import get_mime_type
from .errors import CompressionError, InvalidTarget
from .target_search import SearchOutcome, TargetSizeCompressor
from utils.image_utils import build_download_name, load_image


logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome or failure for one image of a batch."""
    name: str
    index: int
    outcome: Optional[SearchOutcome] = None
    download_name: Optional[str] = None
    error: Optional[str] = None
    stage: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not None

    @property
    def mime_type(self) -> Optional[str]:
        if self.outcome is None:
            return None
        return get_mime_type(self.outcome.format)


def compress_batch(items: Iterable[Tuple[str, bytes]],
                   target_bytes: int,
                   compressor: Optional[TargetSizeCompressor] = None,
                   suffix: str = "",
                   on_result: Optional[Callable[[BatchResult], None]] = None) -> Iterator[BatchResult]:
    """
    Compress encoded images one after another.

    Args:
        items: (file name, encoded bytes) pairs
        target_bytes: Byte budget for every image
        compressor: Configured compressor (defaults to TargetSizeCompressor())
        suffix: Suffix for output names
        on_result: Called with each BatchResult as soon as it is ready

    Returns:
        Lazy iterator of BatchResult, one per item in submission order

    Raises:
        InvalidTarget: before any item is processed, if target_bytes <= 0
    """
    if target_bytes is None or target_bytes <= 0:
        raise InvalidTarget(f"Target size must be a positive number of bytes, got {target_bytes}")

    return _run_batch(items, target_bytes, compressor or TargetSizeCompressor(), suffix, on_result)


def _run_batch(items, target_bytes, compressor, suffix, on_result):
    for index, (name, data) in enumerate(items):
        try:
            source = load_image(data, name=name)
            outcome = compressor.compress(source.pixels, target_bytes,
                                          source_format=source.format, source=name)
            result = BatchResult(
                name=name,
                index=index,
                outcome=outcome,
                download_name=build_download_name(name, suffix, outcome.format),
            )
        except CompressionError as e:
            logger.warning("%s failed during %s: %s", name, e.stage, e.message)
            result = BatchResult(name=name, index=index, error=e.message, stage=e.stage)

        if on_result is not None:
            on_result(result)
        yield result


def summarize_batch(results: List[BatchResult]) -> dict:
    """Counts for the status line shown after a batch."""
    succeeded = [r for r in results if r.ok and r.outcome.success]
    partial = [r for r in results if r.ok and not r.outcome.success]
    failed = [r for r in results if not r.ok]
    return {
        "total": len(results),
        "succeeded": len(succeeded),
        "partial": len(partial),
        "failed": len(failed),
        "total_bytes": sum(r.outcome.final_bytes for r in results if r.ok),
    }


def archive_names(results: List[BatchResult]) -> List[str]:
    """
    File names for the successful results, unique within one archive.

    A name already taken gets the item index inserted before its extension.
    """
    names = []
    taken = set()
    for result in results:
        if not result.ok:
            continue
        name = result.download_name
        if name in taken:
            dot_index = name.rfind('.')
            base, ext = (name[:dot_index], name[dot_index:]) if dot_index > -1 else (name, "")
            name = f"{base}_{result.index}{ext}"
            n = result.index
            while name in taken:
                n += 1
                name = f"{base}_{n}{ext}"
        taken.add(name)
        names.append(name)
    return names


def create_download_package(results: List[BatchResult]) -> bytes:
    """
    Create a ZIP with every compressed image.

    Args:
        results: Batch results, failed items are skipped

    Returns:
        ZIP file bytes
    """
    buffer = io.BytesIO()
    successful = [r for r in results if r.ok]

    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
        for result, name in zip(successful, archive_names(successful)):
            zf.writestr(name, result.outcome.blob)

    return buffer.getvalue()
