"""Image decoding, colour normalisation and encoding helpers.

This module wraps the Pillow operations the resize pipeline needs:
sniffing and decoding uploaded bytes into a :class:`PixelBuffer`,
adapting the channel layout to the destination codec, and encoding to
JPEG or PNG in memory.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from io import BytesIO

import numpy as np
from PIL import Image, UnidentifiedImageError  # type: ignore[import]

from . import config
from .errors import DecodeFailure, EncodeFailure, NoImageSupplied, UnsupportedFormat
from .models import Codec, EncodeCandidate, PixelBuffer

logger = logging.getLogger(__name__)

# MPO is how Pillow reports multi-picture JPEGs written by many cameras.
_FORMAT_ALIASES = {"JPEG": "JPEG", "MPO": "JPEG", "PNG": "PNG"}


@dataclass(frozen=True)
class NormalizedImage:
    """Pillow image whose mode suits ``codec``."""

    image: Image.Image
    codec: Codec
    alpha_dropped: bool = False


def _open_image(data: bytes) -> Image.Image:
    """Open raw bytes with Pillow without decoding the pixel data yet."""
    if not data:
        raise NoImageSupplied("Image payload is empty.")
    try:
        return Image.open(BytesIO(data))
    except UnidentifiedImageError as exc:
        raise UnsupportedFormat("Could not identify image format; only JPEG and PNG are supported.") from exc
    except Image.DecompressionBombError as exc:
        raise DecodeFailure(str(exc)) from exc
    except (OSError, SyntaxError, ValueError, EOFError, struct.error) as exc:
        raise DecodeFailure(f"Could not read image header: {exc}") from exc


def _container_format(img: Image.Image) -> str:
    fmt = _FORMAT_ALIASES.get(img.format or "")
    if fmt is None:
        raise UnsupportedFormat(f"Unsupported image format '{img.format}'; only JPEG and PNG are supported.")
    return fmt


def detect_format(data: bytes) -> str:
    """Return ``'JPEG'`` or ``'PNG'`` for the given bytes.

    Detection looks at the content only. Anything else raises
    :class:`UnsupportedFormat`.
    """
    return _container_format(_open_image(data))


def decode_image(data: bytes) -> PixelBuffer:
    """Decode JPEG or PNG bytes into an RGBA :class:`PixelBuffer`.

    Raises:
        NoImageSupplied: if ``data`` is empty.
        UnsupportedFormat: if the content is not JPEG or PNG.
        DecodeFailure: if the stream is recognised but cannot be decoded.
    """
    img = _open_image(data)
    fmt = _container_format(img)
    width, height = img.size
    if width * height > config.MAX_PIXELS:
        raise DecodeFailure(f"Image of {width}x{height} exceeds the {config.MAX_PIXELS} pixel limit.")
    try:
        img.load()
        rgba = img.convert("RGBA")
    except (OSError, SyntaxError, ValueError, EOFError, struct.error) as exc:
        raise DecodeFailure(f"Failed to decode {fmt} image: {exc}") from exc
    logger.info("Decoded %s image %dx%d (mode %s)", fmt, width, height, img.mode)
    return PixelBuffer(width=width, height=height, data=rgba.tobytes(), source_format=fmt)


def buffer_to_image(buffer: PixelBuffer) -> Image.Image:
    return Image.frombytes("RGBA", buffer.size, buffer.data)


def has_transparency(buffer: PixelBuffer) -> bool:
    """True when at least one pixel is not fully opaque."""
    alpha = np.frombuffer(buffer.data, dtype=np.uint8)[3::4]
    return bool(alpha.min() < 255)


def normalize_for_codec(buffer: PixelBuffer, codec: Codec) -> NormalizedImage:
    """Adapt the channel layout of ``buffer`` to ``codec``.

    JPEG cannot store transparency, so the alpha channel is dropped and
    ``alpha_dropped`` records whether any pixel was actually translucent.
    PNG keeps all four channels. This never fails.
    """
    image = buffer_to_image(buffer)
    if not codec.is_lossy:
        return NormalizedImage(image=image, codec=codec)
    dropped = has_transparency(buffer)
    if dropped:
        logger.info("Dropping alpha channel for %s output", codec.value)
    return NormalizedImage(image=image.convert("RGB"), codec=codec, alpha_dropped=dropped)


def encode_jpeg(image: Image.Image, quality: int, subsampling: int = -1) -> bytes:
    """Encode ``image`` as JPEG at ``quality`` with optimised Huffman tables.

    ``subsampling`` of -1 keeps Pillow's default chroma subsampling.
    """
    buffer = BytesIO()
    try:
        image.save(buffer, format="JPEG", quality=quality, optimize=True, subsampling=subsampling)
    except (OSError, ValueError) as exc:
        raise EncodeFailure(f"JPEG encode at quality {quality} failed: {exc}") from exc
    return buffer.getvalue()


def encode_png(image: Image.Image) -> bytes:
    """Encode ``image`` as PNG with the strongest zlib settings."""
    buffer = BytesIO()
    try:
        image.save(buffer, format="PNG", optimize=True, compress_level=9)
    except (OSError, ValueError) as exc:
        raise EncodeFailure(f"PNG encode failed: {exc}") from exc
    return buffer.getvalue()


def encode_baseline(normalized: NormalizedImage) -> EncodeCandidate:
    """Encode the highest-fidelity version of the image for its codec.

    For PNG this is a maximum-effort lossless encode. JPEG has no lossless
    mode in Pillow, so the baseline is the top of the quality range with
    4:4:4 chroma, which is the ceiling every later attempt is measured
    against.
    """
    if normalized.codec.is_lossy:
        data = encode_jpeg(normalized.image, config.QUALITY_MAX, subsampling=0)
        return EncodeCandidate(data=data, quality=config.QUALITY_MAX)
    return EncodeCandidate(data=encode_png(normalized.image))
