"""Per-request orchestration of the resize pipeline.

``decode -> normalise -> baseline encode``, then, only when the baseline
is over budget, either the JPEG quality search or PNG palette
quantisation, and finally padding up to the exact target. Nothing here
keeps state between calls, so independent requests may run in parallel
threads.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Union

from .errors import PaddingInconsistency, ResizeWarning
from .image_ops import decode_image, encode_baseline, normalize_for_codec
from .models import EncodeCandidate, EncodeRequest, OutputFormat, ResizeResult
from .padding import pad_to_target
from .quality_search import search_quality
from .quantizer import try_quantize

logger = logging.getLogger(__name__)


def resize_to_target(data: bytes, request: EncodeRequest) -> ResizeResult:
    """Re-encode ``data`` so that it fits ``request.target_bytes``.

    Args:
        data: Raw JPEG or PNG bytes.
        request: Target size and output format preference.

    Returns:
        A :class:`ResizeResult`. Its bytes are exactly ``target_bytes``
        long when the chosen encoding fit the budget; otherwise they are
        the closest encoding found and ``BudgetUnreachable`` is among the
        warnings.

    Raises:
        NoImageSupplied, UnsupportedFormat, DecodeFailure: on bad input.
        EncodeFailure: if the baseline encode fails.
        PaddingInconsistency: if padding produced the wrong length.
    """
    target = request.target_bytes
    buffer = decode_image(data)
    codec = request.output_format.resolve(buffer.source_format)
    normalized = normalize_for_codec(buffer, codec)
    warnings: List[ResizeWarning] = []
    if normalized.alpha_dropped:
        warnings.append(ResizeWarning.ALPHA_DROPPED)

    baseline = encode_baseline(normalized)
    logger.info(
        "Baseline %s encode: %d bytes (target %d, source %s)", codec.value, baseline.size, target, buffer.source_format
    )

    candidate: EncodeCandidate = baseline
    quantized = False
    if baseline.size > target:
        if codec.is_lossy:
            outcome = search_quality(normalized.image, target, baseline=baseline)
            candidate = outcome.candidate
            logger.info(
                "Quality search finished after %d attempts (%s), quality=%s",
                outcome.attempts,
                outcome.stop_reason,
                outcome.quality,
            )
        else:
            attempt = try_quantize(buffer)
            if not attempt.ok:
                warnings.append(ResizeWarning.QUANTIZATION_DEGRADED)
            elif attempt.value is not None and attempt.value.size < baseline.size:
                candidate = attempt.value
                quantized = True
            else:
                logger.info("Quantised PNG is not smaller than the baseline; keeping baseline")
        if candidate.size > target:
            warnings.append(ResizeWarning.BUDGET_UNREACHABLE)

    output = pad_to_target(candidate.data, target)
    if candidate.size <= target and len(output) != target:
        raise PaddingInconsistency(f"Output is {len(output)} bytes after padding, expected {target}")
    logger.info("Returning %d bytes of %s (%d bytes padding)", len(output), codec.mime_type, len(output) - candidate.size)

    return ResizeResult(
        data=output,
        codec=codec,
        width=buffer.width,
        height=buffer.height,
        input_format=buffer.source_format,
        quality=candidate.quality if codec.is_lossy else None,
        quantized=quantized,
        alpha_dropped=normalized.alpha_dropped,
        warnings=tuple(warnings),
    )


def resize_image_bytes(
    data: bytes,
    target_size_kb: int,
    output_format: Optional[Union[str, OutputFormat]] = None,
) -> ResizeResult:
    """Convenience wrapper taking the size in KiB and a format name."""
    if not isinstance(output_format, OutputFormat):
        output_format = OutputFormat.parse(output_format)
    return resize_to_target(data, EncodeRequest.from_kilobytes(target_size_kb, output_format))
