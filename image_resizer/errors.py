"""Error kinds raised by the resize pipeline.

Fatal conditions are exceptions deriving from :class:`ResizeError`. Each
carries a stable ``kind`` string that the API returns to clients and an
HTTP status the web layer maps it to. Non-fatal conditions are not
exceptions at all; they are :class:`ResizeWarning` values attached to a
successful result.
"""

from __future__ import annotations

from enum import Enum


class ResizeError(Exception):
    """Base class for fatal pipeline errors."""

    kind: str = "ResizeError"
    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NoImageSupplied(ResizeError):
    kind = "NoImageSupplied"
    status_code = 400


class UnreadablePayload(ResizeError):
    kind = "UnreadablePayload"
    status_code = 400


class PayloadTooLarge(ResizeError):
    kind = "PayloadTooLarge"
    status_code = 413


class UnsupportedFormat(ResizeError):
    kind = "UnsupportedFormat"
    status_code = 415


class DecodeFailure(ResizeError):
    kind = "DecodeFailure"
    status_code = 422


class EncodeFailure(ResizeError):
    kind = "EncodeFailure"
    status_code = 500


class PaddingInconsistency(ResizeError):
    """Post-padding length differs from the target. Should never happen."""

    kind = "PaddingInconsistency"
    status_code = 500


class ResizeWarning(str, Enum):
    """Non-fatal outcomes reported alongside usable image bytes."""

    QUANTIZATION_DEGRADED = "QuantizationDegraded"
    BUDGET_UNREACHABLE = "BudgetUnreachable"
    ALPHA_DROPPED = "AlphaDropped"
