"""Outlier-rejecting mean for temperature sample batches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from services.errors import NoSamples

logger = logging.getLogger(__name__)

# Batches at or below this size are assumed representative and kept whole.
TRIM_THRESHOLD = 5


@dataclass
class FilterSummary:
    """Raw batch, the values kept after trimming, and their mean."""

    raw: List[float] = field(default_factory=list)
    retained: List[float] = field(default_factory=list)
    mean: float = 0.0

    @property
    def trimmed(self) -> int:
        return len(self.raw) - len(self.retained)


class SampleFilter:
    """Pure filtering component that can be unit tested in isolation."""

    def filter(self, readings: Sequence[float]) -> FilterSummary:
        raw = list(readings)
        if not raw:
            raise NoSamples("No temperature readings received.")

        logger.debug("Filtering batch %s", raw, extra={"sample_count": len(raw)})

        retained = raw
        if len(raw) > TRIM_THRESHOLD:
            ordered = sorted(raw)
            slice_off = len(ordered) // 3
            retained = ordered[slice_off : len(ordered) - slice_off]

        total = 0.0
        for value in retained:
            total += value

        return FilterSummary(raw=raw, retained=list(retained), mean=total / len(retained))
