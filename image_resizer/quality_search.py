"""JPEG quality search against a byte budget.

The search walks a fixed, monotonically decreasing quality schedule and
stops at the first encoding that fits. Because the schedule only ever
lowers quality, the first fit is also the highest quality that fits
within this pass. Only two candidates are kept while searching: the one
that met the budget and the closest one that did not.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image  # type: ignore[import]

from . import config
from .errors import EncodeFailure
from .image_ops import encode_jpeg
from .models import EncodeCandidate

logger = logging.getLogger(__name__)

Schedule = Callable[[int, int], int]
Encoder = Callable[[Image.Image, int], bytes]


def next_quality(
    iteration_index: int,
    total_iterations: int,
    q_min: int = config.QUALITY_MIN,
    q_max: int = config.QUALITY_MAX,
) -> int:
    """Quality to try on ``iteration_index`` out of ``total_iterations``.

    Iteration 0 is always ``q_max``. Later iterations follow a square-root
    decay so the first steps are coarse and the steps near ``q_min`` are
    fine; the last iteration lands exactly on ``q_min``.
    """
    if iteration_index <= 0 or total_iterations <= 1:
        return q_max
    fraction = min(1.0, iteration_index / (total_iterations - 1))
    return max(q_min, int(round(q_max - (q_max - q_min) * math.sqrt(fraction))))


@dataclass
class SearchState:
    iteration_index: int = 0
    current_quality: int = config.QUALITY_MAX
    best_under_budget: Optional[EncodeCandidate] = None
    last_over_budget: Optional[EncodeCandidate] = None

    def offer(self, candidate: EncodeCandidate, target_bytes: int) -> bool:
        """Record ``candidate``; return True once the budget is met."""
        if candidate.size <= target_bytes:
            self.best_under_budget = candidate
            return True
        # Keep whichever over-budget attempt is closest to the target.
        if self.last_over_budget is None or candidate.size <= self.last_over_budget.size:
            self.last_over_budget = candidate
        return False

    @property
    def has_candidate(self) -> bool:
        return self.best_under_budget is not None or self.last_over_budget is not None


@dataclass(frozen=True)
class SearchOutcome:
    candidate: EncodeCandidate
    budget_met: bool
    attempts: int
    stop_reason: str

    @property
    def quality(self) -> Optional[int]:
        return self.candidate.quality


def search_quality(
    image: Image.Image,
    target_bytes: int,
    baseline: Optional[EncodeCandidate] = None,
    *,
    schedule: Optional[Schedule] = None,
    max_iterations: int = config.SEARCH_ITERATIONS,
    q_min: int = config.QUALITY_MIN,
    encoder: Encoder = encode_jpeg,
) -> SearchOutcome:
    """Find the highest JPEG quality whose encoding fits ``target_bytes``.

    Args:
        image: RGB image to encode.
        target_bytes: Byte budget.
        baseline: Encoding already produced at the schedule's first
            quality. When given it stands in for iteration 0 and is the
            fallback if every later attempt is larger.
        schedule: ``(iteration_index, total_iterations) -> quality``.
            Defaults to :func:`next_quality`.
        max_iterations: Hard cap on iterations, including iteration 0.
        q_min: Quality floor; reaching it ends the search.
        encoder: ``(image, quality) -> bytes``, raising
            :class:`EncodeFailure` on codec errors.

    Returns:
        A :class:`SearchOutcome`. ``budget_met`` is False when the floor was
        reached (or encoding broke down) without fitting the budget; the
        candidate is then the smallest attempt seen.

    Raises:
        EncodeFailure: if the very first attempt fails and no baseline was
            supplied, so there is nothing to fall back on.
    """
    if max_iterations < 1:
        raise ValueError("max_iterations must be at least 1")
    schedule = schedule or next_quality
    state = SearchState()
    attempts = 0
    start = 0
    last_quality: Optional[int] = None

    if baseline is not None:
        attempts = 1
        last_quality = baseline.quality
        if baseline.quality == schedule(0, max_iterations):
            start = 1
        if state.offer(baseline, target_bytes):
            return SearchOutcome(candidate=baseline, budget_met=True, attempts=attempts, stop_reason="baseline")

    stop_reason = "exhausted"
    for i in range(start, max_iterations):
        quality = schedule(i, max_iterations)
        state.iteration_index = i
        state.current_quality = quality
        if quality == last_quality:
            continue
        last_quality = quality
        try:
            data = encoder(image, quality)
        except EncodeFailure as exc:
            if not state.has_candidate:
                raise
            logger.warning("Quality search stopped at iteration %d (quality=%d): %s", i, quality, exc)
            stop_reason = "encode_error"
            break
        attempts += 1
        candidate = EncodeCandidate(data=data, quality=quality)
        logger.info(
            "Attempt %d: quality=%d, size=%d bytes (target %d)", i + 1, quality, candidate.size, target_bytes
        )
        if state.offer(candidate, target_bytes):
            stop_reason = "budget_met"
            break
        if quality <= q_min:
            stop_reason = "quality_floor"
            break

    if state.best_under_budget is not None:
        return SearchOutcome(
            candidate=state.best_under_budget, budget_met=True, attempts=attempts, stop_reason=stop_reason
        )

    # Closest over-budget attempt, baseline included when one was given.
    closest = state.last_over_budget
    if closest is None:
        raise EncodeFailure("Quality search produced no candidate")
    logger.warning(
        "Budget of %d bytes not reachable; closest attempt is %d bytes at quality %s",
        target_bytes,
        closest.size,
        closest.quality,
    )
    return SearchOutcome(candidate=closest, budget_met=False, attempts=attempts, stop_reason=stop_reason)
