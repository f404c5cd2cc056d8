"""Data models for the resize pipeline and its API.

The dataclasses here are the in-memory types passed between pipeline
stages. They are created per request and never shared. The Pydantic
models at the bottom describe the JSON bodies returned by the FastAPI
endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel

from .errors import ResizeWarning

T = TypeVar("T")


class Codec(str, Enum):
    """Output codecs understood by the pipeline."""

    JPEG = "JPEG"
    PNG = "PNG"

    @property
    def mime_type(self) -> str:
        return "image/jpeg" if self is Codec.JPEG else "image/png"

    @property
    def is_lossy(self) -> bool:
        return self is Codec.JPEG


class OutputFormat(str, Enum):
    """Caller preference for the output codec.

    ``AUTO`` keeps the lossy/lossless class of the uploaded image.
    """

    AUTO = "auto"
    LOSSY = "jpeg"
    LOSSLESS = "png"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OutputFormat":
        """Resolve a user supplied format name, accepting common aliases."""
        if value is None or not value.strip():
            return cls.AUTO
        key = value.strip().lower()
        aliases = {
            "auto": cls.AUTO,
            "jpeg": cls.LOSSY,
            "jpg": cls.LOSSY,
            "jpeg-equivalent": cls.LOSSY,
            "lossy": cls.LOSSY,
            "png": cls.LOSSLESS,
            "png-equivalent": cls.LOSSLESS,
            "lossless": cls.LOSSLESS,
        }
        if key not in aliases:
            raise ValueError(f"Unknown output format '{value}'")
        return aliases[key]

    def resolve(self, input_format: str) -> Codec:
        if self is OutputFormat.LOSSY:
            return Codec.JPEG
        if self is OutputFormat.LOSSLESS:
            return Codec.PNG
        return Codec(input_format)


@dataclass(frozen=True)
class PixelBuffer:
    """Decoded image as dense row-major RGBA samples.

    Fields:
        width: Width, px.
        height: Height, px.
        data: ``width * height * 4`` bytes, RGBA order.
        source_format: Container detected on input, ``'JPEG'`` or ``'PNG'``.
    """

    width: int
    height: int
    data: bytes = field(repr=False)
    source_format: str = "PNG"

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid dimensions {self.width}x{self.height}")
        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise ValueError(f"Pixel buffer holds {len(self.data)} bytes, expected {expected}")

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class EncodeRequest:
    target_bytes: int
    output_format: OutputFormat = OutputFormat.AUTO

    def __post_init__(self) -> None:
        if self.target_bytes <= 0:
            raise ValueError("target_bytes must be a positive integer")

    @classmethod
    def from_kilobytes(cls, target_size_kb: int, output_format: OutputFormat = OutputFormat.AUTO) -> "EncodeRequest":
        return cls(target_bytes=int(target_size_kb) * 1024, output_format=output_format)


@dataclass(frozen=True)
class EncodeCandidate:
    """One encoded attempt. ``quality`` is set only on the lossy path."""

    data: bytes = field(repr=False)
    quality: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of a stage that may fail without failing the request."""

    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, reason: str) -> "StageResult[T]":
        return cls(error=reason)


@dataclass(frozen=True)
class ResizeResult:
    """Final answer of the pipeline for a single request."""

    data: bytes = field(repr=False)
    codec: Codec
    width: int
    height: int
    input_format: str
    quality: Optional[int] = None
    quantized: bool = False
    alpha_dropped: bool = False
    warnings: Tuple[ResizeWarning, ...] = ()

    @property
    def mime_type(self) -> str:
        return self.codec.mime_type

    @property
    def size(self) -> int:
        return len(self.data)


class ResizeResponse(BaseModel):
    """JSON response for the data URL variant of the resize endpoint.

    Attributes:
        data_url: ``data:<mime>;base64,...`` string of the output image.
        mime_type: MIME type of the output codec.
        size_bytes: Length of the decoded output, padding included.
        width: Output width in pixels.
        height: Output height in pixels.
        quality: JPEG quality used, if the lossy path produced the image.
        original_format: Format detected on the upload.
        warnings: Non-fatal conditions, e.g. ``BudgetUnreachable``.
    """

    data_url: str
    mime_type: str
    size_bytes: int
    width: int
    height: int
    quality: Optional[int] = None
    original_format: str
    warnings: List[str] = []


class ErrorResponse(BaseModel):
    detail: str
    kind: str
