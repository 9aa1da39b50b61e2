"""
Error types raised while compressing an image to a target size.
"""

from typing import Optional


class CompressionError(Exception):
    """Base error for a single image's compression run."""

    stage = "compress"

    def __init__(self, message: str, source: Optional[str] = None,
                 stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source
        if stage is not None:
            self.stage = stage

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}: {self.message}"
        return self.message


class InvalidTarget(CompressionError, ValueError):
    """Target size is not a positive number of bytes."""
    stage = "validate"


class DecodeFailure(CompressionError):
    """Source image could not be decoded."""
    stage = "decode"


class EncodeFailure(CompressionError):
    """Encoder produced no usable output."""
    stage = "encode"


class RenderContextUnavailable(CompressionError):
    """Source could not be rendered at the requested resolution."""
    stage = "render"
