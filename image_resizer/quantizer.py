"""Palette quantisation for PNG output that is still over budget.

The palette comes from Pillow's octree quantiser, which is the method it
supports for RGBA input. Pixels are then pushed through an 8x8 Bayer
ordered dither and matched to their nearest palette entry in RGBA space.
Fully transparent pixels are cleared to black first and only ever match
fully transparent entries, so transparency survives per entry. Ordered
dithering needs no random state, so the same input always yields the
same indices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
from PIL import Image  # type: ignore[import]

from . import config
from .errors import EncodeFailure
from .image_ops import encode_png
from .models import EncodeCandidate, PixelBuffer, StageResult

logger = logging.getLogger(__name__)

MAX_PALETTE_SIZE = 256

# Pixels matched against the palette per step; bounds the distance matrix
# to CHUNK_PIXELS x 256 float32 values.
CHUNK_PIXELS = 16384

BAYER_8X8 = np.array(
    [
        [0, 32, 8, 40, 2, 34, 10, 42],
        [48, 16, 56, 24, 50, 18, 58, 26],
        [12, 44, 4, 36, 14, 46, 6, 38],
        [60, 28, 52, 20, 62, 30, 54, 22],
        [3, 35, 11, 43, 1, 33, 9, 41],
        [51, 19, 59, 27, 49, 17, 57, 25],
        [15, 47, 7, 39, 13, 45, 5, 37],
        [63, 31, 55, 23, 61, 29, 53, 21],
    ],
    dtype=np.float32,
)

RGBA = Tuple[int, int, int, int]


@dataclass(frozen=True)
class QuantizationResult:
    """Shared palette table plus one index per pixel.

    Fields:
        width: Width, px.
        height: Height, px.
        palette: Ordered RGBA entries, at most 256. Never mutated.
        indices: ``uint8`` array of ``width * height`` palette offsets.
    """

    width: int
    height: int
    palette: Tuple[RGBA, ...]
    indices: np.ndarray = field(repr=False, compare=False)

    def __post_init__(self) -> None:
        if not 0 < len(self.palette) <= MAX_PALETTE_SIZE:
            raise ValueError(f"Palette must hold 1..{MAX_PALETTE_SIZE} entries, got {len(self.palette)}")
        if self.indices.size != self.width * self.height:
            raise ValueError("Index array does not match image dimensions")
        if int(self.indices.max()) >= len(self.palette):
            raise ValueError("Palette index out of range")

    @property
    def has_transparency(self) -> bool:
        return any(entry[3] < 255 for entry in self.palette)

    def to_buffer(self) -> PixelBuffer:
        """Expand the palette back into a full RGBA pixel buffer."""
        table = np.array(self.palette, dtype=np.uint8)
        rgba = table[self.indices]
        return PixelBuffer(width=self.width, height=self.height, data=rgba.tobytes(), source_format="PNG")

    def to_image(self) -> Image.Image:
        """Indexed Pillow image; PNG writes the alpha column as a tRNS chunk."""
        image = Image.frombytes("P", (self.width, self.height), self.indices.astype(np.uint8).tobytes())
        if self.has_transparency:
            image.putpalette([c for entry in self.palette for c in entry], rawmode="RGBA")
        else:
            image.putpalette([c for entry in self.palette for c in entry[:3]], rawmode="RGB")
        return image


def build_palette(image: Image.Image, max_colors: int = MAX_PALETTE_SIZE) -> np.ndarray:
    """Return a ``(k, 4)`` uint8 palette with ``k <= max_colors``.

    When ``image`` has fully transparent pixels the palette always holds at
    least one entry with alpha 0.
    """
    quantized = image.quantize(colors=max_colors, method=Image.Quantize.FASTOCTREE, dither=Image.Dither.NONE)
    colors = np.ascontiguousarray(np.asarray(quantized.convert("RGBA"), dtype=np.uint8)).reshape(-1, 4)
    # Pack each RGBA entry into one uint32 so np.unique sorts whole colours.
    packed = np.unique(colors.view(np.uint32).ravel())
    palette = packed.view(np.uint8).reshape(-1, 4)[:max_colors]
    if image.mode == "RGBA" and image.getextrema()[3][0] == 0 and not (palette[:, 3] == 0).any():
        clear = np.zeros((1, 4), dtype=np.uint8)
        palette = np.concatenate([palette[: max_colors - 1], clear])
    return palette


def clear_transparent(pixels: np.ndarray) -> np.ndarray:
    """Copy of ``pixels`` with the colour of every alpha-0 pixel set to black."""
    out = pixels.copy()
    out[out[..., 3] == 0] = 0
    return out


def ordered_dither(pixels: np.ndarray, spread: float) -> np.ndarray:
    """Add a tiled Bayer threshold to the colour channels of ``pixels``.

    ``pixels`` is ``(height, width, 4)``; alpha is left untouched, and so
    are fully transparent pixels. The offset ranges over
    ``[-spread / 2, spread / 2)``.
    """
    height, width = pixels.shape[:2]
    thresholds = (BAYER_8X8 + 0.5) / 64.0 - 0.5
    reps = (-(-height // 8), -(-width // 8))
    offsets = np.tile(thresholds, reps)[:height, :width] * spread
    offsets = np.where(pixels[..., 3] > 0, offsets, 0.0)
    out = pixels.astype(np.float32)
    out[..., :3] += offsets[..., None]
    return np.clip(out, 0.0, 255.0)


def map_to_palette(pixels: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """Nearest palette entry (squared RGBA distance) for each pixel.

    Fully transparent pixels only match entries with alpha 0 and every
    other pixel only matches entries with alpha above 0, as long as the
    palette has entries of both kinds.
    """
    flat = pixels.reshape(-1, 4).astype(np.float32)
    table = palette.astype(np.float32)
    table_sq = (table ** 2).sum(axis=1)
    clear_entries = palette[:, 3] == 0
    split = bool(clear_entries.any() and not clear_entries.all())
    indices = np.empty(flat.shape[0], dtype=np.uint8)
    for start in range(0, flat.shape[0], CHUNK_PIXELS):
        block = flat[start:start + CHUNK_PIXELS]
        # |p - c|^2 minus the per-pixel |p|^2 term, which does not change argmin.
        distances = table_sq[None, :] - 2.0 * (block @ table.T)
        if split:
            mismatch = (block[:, 3] == 0)[:, None] != clear_entries[None, :]
            distances[mismatch] = np.inf
        indices[start:start + CHUNK_PIXELS] = distances.argmin(axis=1)
    return indices


def quantize_buffer(
    buffer: PixelBuffer,
    max_colors: int = MAX_PALETTE_SIZE,
    spread: float = config.DITHER_SPREAD,
) -> QuantizationResult:
    """Reduce ``buffer`` to at most ``max_colors`` RGBA palette entries."""
    if not 1 <= max_colors <= MAX_PALETTE_SIZE:
        raise ValueError(f"max_colors must be within 1..{MAX_PALETTE_SIZE}")
    pixels = clear_transparent(
        np.frombuffer(buffer.data, dtype=np.uint8).reshape(buffer.height, buffer.width, 4)
    )
    palette = build_palette(Image.fromarray(pixels), max_colors)
    if spread > 0:
        pixels = ordered_dither(pixels, spread)
    indices = map_to_palette(pixels, palette)
    return QuantizationResult(
        width=buffer.width,
        height=buffer.height,
        palette=tuple(tuple(int(c) for c in entry) for entry in palette),  # type: ignore[misc]
        indices=indices,
    )


def quantization_error(original: PixelBuffer, result: QuantizationResult) -> float:
    """Root-mean-square channel error introduced by quantisation."""
    before = np.frombuffer(original.data, dtype=np.uint8).astype(np.float32)
    after = np.frombuffer(result.to_buffer().data, dtype=np.uint8).astype(np.float32)
    return float(np.sqrt(np.mean((before - after) ** 2)))


def try_quantize(buffer: PixelBuffer, max_colors: int = MAX_PALETTE_SIZE) -> StageResult[EncodeCandidate]:
    """Quantise and re-encode ``buffer`` as indexed PNG.

    Numerical or codec errors are returned as a failed
    :class:`StageResult` instead of being raised, so the caller can fall
    back to its lossless baseline.
    """
    try:
        result = quantize_buffer(buffer, max_colors)
        data = encode_png(result.to_image())
        logger.info("Quantised to %d colours, %d bytes", len(result.palette), len(data))
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Quantisation rms error %.2f", quantization_error(buffer, result))
    except (ValueError, MemoryError, FloatingPointError, OSError, EncodeFailure) as exc:
        logger.warning("Palette quantisation failed: %s", exc)
        return StageResult.failure(str(exc))
    return StageResult.success(EncodeCandidate(data=data))
