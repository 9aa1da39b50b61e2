"""Utility modules for image loading, naming and visualization."""

from .image_utils import (
    SourceImage,
    load_image,
    detect_format,
    ensure_uint8,
    format_bytes,
    build_download_name,
)
from .visualization import (
    plot_search_trace,
    create_outcome_cards,
)

__all__ = [
    'SourceImage',
    'load_image',
    'detect_format',
    'ensure_uint8',
    'format_bytes',
    'build_download_name',
    'plot_search_trace',
    'create_outcome_cards',
]
