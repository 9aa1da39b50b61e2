"""
Target-size compression module.
Searches encoder quality (binary search) across a decaying series of scales
to find the encode closest to a byte budget without exceeding it.

The quality search assumes encoded size never decreases as quality rises.
Real encoders occasionally break this for specific content, so the result
is best-effort rather than provably optimal.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional, Tuple

import numpy as np

from .codecs import encode_image, render_image, is_lossless, select_target_format
from .errors import CompressionError, EncodeFailure, InvalidTarget


logger = logging.getLogger(__name__)

MIN_QUALITY = 5
MAX_QUALITY = 100

# encoder(raster, format, quality) -> bytes
Encoder = Callable[[Any, str, int], bytes]
# renderer(image, width, height) -> raster
Renderer = Callable[[Any, int, int], Any]


def clamp_quality_range(quality_min: int, quality_max: int) -> Tuple[int, int]:
    """Clamp both ends to [5, 100] and swap them if inverted."""
    low = max(MIN_QUALITY, min(MAX_QUALITY, int(quality_min)))
    high = max(MIN_QUALITY, min(MAX_QUALITY, int(quality_max)))
    if high < low:
        low, high = high, low
    return low, high


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def scaled_dimensions(width: int, height: int, scale: float) -> Tuple[int, int]:
    """Pixel dimensions at a scale, at least 1px per axis."""
    return (max(1, round_half_up(width * scale)),
            max(1, round_half_up(height * scale)))


def _raster_dimensions(raster: np.ndarray) -> Tuple[int, int]:
    h, w = raster.shape[:2]
    return int(w), int(h)


@dataclass
class SearchConfig:
    """Parameters of one target-size search."""
    quality_min: int = 30
    quality_max: int = 95
    scale_floor: float = 0.35
    scale_step: float = 0.82
    early_exit_fraction: float = 0.98
    format: str = "auto"

    def __post_init__(self):
        self.quality_min, self.quality_max = clamp_quality_range(self.quality_min, self.quality_max)
        if not 0 < self.scale_step < 1:
            raise ValueError(f"scale_step must be in (0, 1), got {self.scale_step}")
        if self.scale_floor <= 0:
            raise ValueError(f"scale_floor must be positive, got {self.scale_floor}")
        if not 0 < self.early_exit_fraction <= 1:
            raise ValueError(f"early_exit_fraction must be in (0, 1], got {self.early_exit_fraction}")

    @property
    def quality_range(self) -> Tuple[int, int]:
        return self.quality_min, self.quality_max


@dataclass(frozen=True)
class ScaleSchedule:
    """
    Scale factors 1.0, step, step**2, ... stopping once a value is below floor.

    Each value is computed from the step count rather than from the previous
    value, so iterating again yields exactly the same sequence.
    """
    step: float = 0.82
    floor: float = 0.35

    def __post_init__(self):
        if not 0 < self.step < 1:
            raise ValueError(f"step must be in (0, 1), got {self.step}")

    def __iter__(self) -> Iterator[float]:
        i = 0
        while True:
            scale = round(self.step ** i, 4)
            if scale < self.floor:
                return
            yield scale
            i += 1


@dataclass
class Candidate:
    """One encode attempt. size is always len(blob)."""
    blob: bytes
    size: int
    quality: int
    scale: float
    width: int
    height: int


@dataclass
class SearchStep:
    """Blob-free record of one encode, kept for logs and charts."""
    scale: float
    width: int
    height: int
    quality: int
    size: int


class CandidateSlots:
    """
    Two-slot accumulator of encode attempts.

    best holds the largest size within the target, closest_over the smallest
    size above it. Every other candidate is dropped as soon as it is offered.
    """

    def __init__(self, target_bytes: int):
        self.target_bytes = target_bytes
        self.best: Optional[Candidate] = None
        self.closest_over: Optional[Candidate] = None

    def offer(self, candidate: Candidate, replace_ties: bool = False) -> bool:
        """
        Keep the candidate if it beats the slot it belongs to.

        Args:
            candidate: Encode attempt
            replace_ties: Let an in-budget candidate of equal size replace
                the current best

        Returns:
            True if the candidate was kept
        """
        if candidate.size <= self.target_bytes:
            if (self.best is None or candidate.size > self.best.size
                    or (replace_ties and candidate.size == self.best.size)):
                self.best = candidate
                return True
            return False

        if self.closest_over is None or candidate.size < self.closest_over.size:
            self.closest_over = candidate
            return True
        return False

    @property
    def winner(self) -> Optional[Candidate]:
        if self.best is not None:
            return self.best
        return self.closest_over


@dataclass
class SearchOutcome:
    """Result of compressing one image toward a target size."""
    success: bool
    final_bytes: int
    quality: int
    scale: float
    blob: bytes
    target_bytes: int
    format: str
    width: int
    height: int
    encode_calls: int = 0
    trace: List[SearchStep] = field(default_factory=list)

    @classmethod
    def from_candidate(cls, candidate: Candidate, target_bytes: int, fmt: str,
                       trace: Optional[List[SearchStep]] = None) -> "SearchOutcome":
        trace = trace if trace is not None else []
        return cls(
            success=candidate.size <= target_bytes,
            final_bytes=candidate.size,
            quality=candidate.quality,
            scale=candidate.scale,
            blob=candidate.blob,
            target_bytes=target_bytes,
            format=fmt,
            width=candidate.width,
            height=candidate.height,
            encode_calls=len(trace),
            trace=trace,
        )


def encode_candidate(raster: np.ndarray,
                     encoder: Encoder,
                     fmt: str,
                     quality: int,
                     scale: float,
                     trace: Optional[List[SearchStep]] = None) -> Candidate:
    """
    Run one encode and wrap the result.

    Raises:
        EncodeFailure: if the encoder returns no data
    """
    blob = encoder(raster, fmt, quality)
    if not blob:
        raise EncodeFailure(f"Encoder returned no data for {fmt} at quality {quality}")

    width, height = _raster_dimensions(raster)
    candidate = Candidate(
        blob=blob,
        size=len(blob),
        quality=quality,
        scale=scale,
        width=width,
        height=height,
    )

    logger.debug("scale=%.4f %dx%d quality=%d -> %d bytes",
                 scale, width, height, quality, candidate.size)
    if trace is not None:
        trace.append(SearchStep(scale, width, height, quality, candidate.size))

    return candidate


def search_quality(raster: np.ndarray,
                   encoder: Encoder,
                   fmt: str,
                   target_bytes: int,
                   quality_min: int,
                   quality_max: int,
                   scale: float = 1.0,
                   trace: Optional[List[SearchStep]] = None) -> CandidateSlots:
    """
    Binary search for the highest quality whose encode fits the target.

    Args:
        raster: Image already rendered at the scale being searched
        encoder: Encode capability
        fmt: Output format
        target_bytes: Byte budget
        quality_min: Lowest quality to try (clamped to [5, 100])
        quality_max: Highest quality to try (clamped to [5, 100])
        scale: Scale the raster was rendered at, recorded on candidates
        trace: Optional list receiving one SearchStep per encode

    Returns:
        CandidateSlots for this scale. best is None when every quality tried
        exceeded the target.
    """
    low, high = clamp_quality_range(quality_min, quality_max)
    slots = CandidateSlots(target_bytes)

    while low <= high:
        mid = (low + high) // 2
        candidate = encode_candidate(raster, encoder, fmt, mid, scale, trace)

        if candidate.size <= target_bytes:
            # later in-budget hits always have higher quality
            slots.offer(candidate, replace_ties=True)
            low = mid + 1
        else:
            slots.offer(candidate)
            high = mid - 1

    return slots


class TargetSizeCompressor:
    """
    Compresses images to fit a byte budget.

    Features:
    - Binary search over quality at each scale
    - Downscaling by a fixed decay until a floor is reached
    - Early exit once a result is close enough to the budget
    - Always returns an outcome, flagged by whether it met the budget
    """

    def __init__(self,
                 config: Optional[SearchConfig] = None,
                 encoder: Optional[Encoder] = None,
                 renderer: Optional[Renderer] = None):
        """
        Initialize compressor.

        Args:
            config: Search parameters (defaults to SearchConfig())
            encoder: Encode capability (defaults to OpenCV)
            renderer: Render capability (defaults to OpenCV resize)
        """
        self.config = config or SearchConfig()
        self.encoder = encoder or encode_image
        self.renderer = renderer or render_image

    def compress(self,
                 image: np.ndarray,
                 target_bytes: int,
                 source_format: Optional[str] = None,
                 source: Optional[str] = None) -> SearchOutcome:
        """
        Compress an image to at most target_bytes if possible.

        Args:
            image: Decoded source image, not modified
            target_bytes: Byte budget, must be positive
            source_format: Format of the source file, reused when the
                configured format is "auto"
            source: Identifier used in log messages and errors

        Returns:
            SearchOutcome with the chosen encode

        Raises:
            InvalidTarget: if target_bytes is not positive
            CompressionError: if rendering or encoding fails
        """
        if target_bytes is None or target_bytes <= 0:
            raise InvalidTarget(f"Target size must be a positive number of bytes, got {target_bytes}",
                                source=source)

        try:
            return self._search(image, int(target_bytes), source_format, source)
        except CompressionError as e:
            if e.source is None:
                e.source = source
            raise

    def _search(self, image: np.ndarray, target_bytes: int,
                source_format: Optional[str], source: Optional[str]) -> SearchOutcome:
        config = self.config
        fmt = select_target_format(source_format, config.format)
        width, height = _raster_dimensions(image)

        quality_min, quality_max = config.quality_range
        if is_lossless(fmt):
            # quality is ignored, one encode per scale is enough
            search_range = (quality_max, quality_max)
        else:
            search_range = (quality_min, quality_max)

        logger.info("%s: %dx%d -> %d bytes as %s, quality %d-%d",
                    source or "image", width, height, target_bytes, fmt, *search_range)

        slots = CandidateSlots(target_bytes)
        trace: List[SearchStep] = []

        for scale in ScaleSchedule(config.scale_step, config.scale_floor):
            scaled_w, scaled_h = scaled_dimensions(width, height, scale)
            raster = self.renderer(image, scaled_w, scaled_h)
            local = search_quality(raster, self.encoder, fmt, target_bytes,
                                   search_range[0], search_range[1], scale, trace)
            del raster

            if local.best is not None:
                slots.offer(local.best)
                logger.info("scale %.4f: best in budget quality=%d size=%d",
                            scale, local.best.quality, local.best.size)
                if slots.best.size >= target_bytes * config.early_exit_fraction:
                    logger.info("scale %.4f: within %.0f%% of target, stopping",
                                scale, config.early_exit_fraction * 100)
                    break
            elif local.closest_over is not None:
                slots.offer(local.closest_over)
                logger.info("scale %.4f: nothing in budget, closest size=%d",
                            scale, local.closest_over.size)

        winner = slots.winner
        if winner is None:
            logger.info("no scale tried, encoding full size at quality %d", quality_min)
            raster = self.renderer(image, width, height)
            winner = encode_candidate(raster, self.encoder, fmt, quality_min, 1.0, trace)

        outcome = SearchOutcome.from_candidate(winner, target_bytes, fmt, trace)
        logger.info("%s: %s %d bytes, quality %d, scale %.2f after %d encodes",
                    source or "image", "OK" if outcome.success else "over budget",
                    outcome.final_bytes, outcome.quality, outcome.scale, outcome.encode_calls)
        return outcome


def compress_to_target_size(image: np.ndarray,
                            target_bytes: int,
                            source_format: Optional[str] = None,
                            **options) -> SearchOutcome:
    """
    Convenience function to compress image to target size.

    Args:
        image: Decoded source image
        target_bytes: Byte budget
        source_format: Format of the source file
        **options: SearchConfig fields

    Returns:
        SearchOutcome
    """
    compressor = TargetSizeCompressor(SearchConfig(**options))
    return compressor.compress(image, target_bytes, source_format=source_format)
