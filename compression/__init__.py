"""Target-size compression modules."""

from .errors import (
    CompressionError,
    InvalidTarget,
    DecodeFailure,
    EncodeFailure,
    RenderContextUnavailable,
)
from .codecs import encode_image, render_image, select_target_format, is_lossless
from .target_search import (
    TargetSizeCompressor,
    SearchConfig,
    SearchOutcome,
    ScaleSchedule,
    search_quality,
    compress_to_target_size,
)

__all__ = [
    'CompressionError',
    'InvalidTarget',
    'DecodeFailure',
    'EncodeFailure',
    'RenderContextUnavailable',
    'encode_image',
    'render_image',
    'select_target_format',
    'is_lossless',
    'TargetSizeCompressor',
    'SearchConfig',
    'SearchOutcome',
    'ScaleSchedule',
    'search_quality',
    'compress_to_target_size',
]
