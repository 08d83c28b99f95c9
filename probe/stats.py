"""
Latency sample statistics.

Pure functions and lightweight classes -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.

Samples are integer nanoseconds.  An empty collection has no statistics at
all: ``finalize()`` returns ``None`` rather than zeros or NaN.
"""
from __future__ import annotations

import statistics
from dataclasses import dataclass
from typing import List, Optional, Tuple


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StatsSummary:
    """Summary of a non-empty set of duration samples (nanoseconds)."""

    count: int
    mean: float
    std: float
    median: float
    min: int
    max: int

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "mean": self.mean,
            "std": self.std,
            "median": self.median,
            "min": self.min,
            "max": self.max,
        }


class SampleStatistics:
    """Insertion-ordered collection of duration samples."""

    def __init__(self) -> None:
        self._samples: List[int] = []

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def count(self) -> int:
        return len(self._samples)

    @property
    def samples(self) -> Tuple[int, ...]:
        return tuple(self._samples)

    def add(self, sample: int) -> None:
        if sample < 0:
            raise ValueError(f"Duration sample must be non-negative, got {sample}")
        self._samples.append(sample)

    def finalize(self) -> Optional[StatsSummary]:
        """Return the summary, or ``None`` when no sample was added."""
        if not self._samples:
            return None

        ordered = sorted(self._samples)
        mean = statistics.fmean(self._samples)
        return StatsSummary(
            count=len(ordered),
            mean=mean,
            std=statistics.pstdev(self._samples, mu=mean),
            median=float(statistics.median(ordered)),
            min=ordered[0],
            max=ordered[-1],
        )

    def percentile_high(self, fraction: float) -> Optional[int]:
        """
        The "N% high" latency: the sample ``count * fraction`` ranks below
        the maximum in a sorted snapshot.  ``fraction=0.01`` is the 1% high.
        """
        if not self._samples:
            return None
        if not 0.0 <= fraction <= 1.0:
            raise ValueError(f"Fraction must be within [0, 1], got {fraction}")

        ordered = sorted(self._samples, reverse=True)
        rank = min(int(len(ordered) * fraction), len(ordered) - 1)
        return ordered[rank]
