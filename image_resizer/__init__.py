"""Budgeted image re-encoding.

This package turns an uploaded JPEG or PNG into an image that fits a
caller-supplied byte budget. JPEG output is searched over a quality
schedule; PNG output falls back to palette quantisation. Results that fit
are padded to the exact target length. See individual modules for details.
"""

from .errors import ResizeError, ResizeWarning
from .models import Codec, EncodeRequest, OutputFormat, ResizeResult
from .pipeline import resize_image_bytes, resize_to_target

__all__ = [
    "Codec",
    "EncodeRequest",
    "OutputFormat",
    "ResizeError",
    "ResizeResult",
    "ResizeWarning",
    "resize_image_bytes",
    "resize_to_target",
]
