"""Pad an encoded image up to an exact byte length.

Zero bytes are appended after the complete codec stream. JPEG decoders
stop at the EOI marker and PNG decoders at IEND, so the trailing filler
does not change what decodes. Streams that are already at or over the
target are returned untouched; truncating them would corrupt the image.
"""

from __future__ import annotations

from .errors import PaddingInconsistency

PAD_BYTE = b"\x00"


def pad_to_target(data: bytes, target_bytes: int) -> bytes:
    """Return ``data`` extended with zero bytes to ``target_bytes``.

    Raises:
        PaddingInconsistency: if a short stream does not come out at
            exactly ``target_bytes``.
    """
    if target_bytes <= 0:
        raise ValueError("target_bytes must be a positive integer")
    if len(data) >= target_bytes:
        return data
    padded = data + PAD_BYTE * (target_bytes - len(data))
    if len(padded) != target_bytes:
        raise PaddingInconsistency(f"Padded length {len(padded)} does not match target {target_bytes}")
    return padded
