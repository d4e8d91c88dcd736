"""Latency samples and non-interpolated percentiles."""

import math
from dataclasses import dataclass, asdict
from typing import Dict, List, NamedTuple, Sequence


class Percentiles(NamedTuple):
    p50: int
    p90: int
    p99: int


def percentile_index(count: int, fraction: float) -> int:
    # floor(count * fraction) is always < count for fraction < 1; the clamp
    # keeps the index in range regardless.
    return min(int(math.floor(count * fraction)), count - 1)


def calculate_percentiles(samples: Sequence[int]) -> Percentiles:
    if not samples:
        return Percentiles(0, 0, 0)

    ordered = sorted(samples)
    count = len(ordered)

    return Percentiles(
        p50=ordered[percentile_index(count, 0.5)],
        p90=ordered[percentile_index(count, 0.9)],
        p99=ordered[percentile_index(count, 0.99)],
    )


@dataclass
class RunSummary:
    count: int
    mean: int
    p50: int
    p90: int
    p99: int
    min: int
    max: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    def format(self) -> str:
        return (
            f"Total swaps executed: {self.count}\n"
            f"Average duration: {self.mean}ms\n"
            f"p50 (median): {self.p50}ms\n"
            f"p90: {self.p90}ms\n"
            f"p99: {self.p99}ms\n"
            f"Min duration: {self.min}ms\n"
            f"Max duration: {self.max}ms"
        )


class LatencyTracker:
    """
    Process-lifetime sequence of swap durations in milliseconds.

    Samples are only appended. Percentiles are recomputed from scratch over
    every sample on each call; runs are small enough that a streaming
    estimator is not needed.
    """

    def __init__(self):
        self._samples: List[int] = []

    def record(self, duration_ms: int) -> None:
        if duration_ms < 0:
            raise ValueError(f"duration must be >= 0, got {duration_ms}")
        self._samples.append(int(duration_ms))

    @property
    def samples(self) -> List[int]:
        return list(self._samples)

    @property
    def count(self) -> int:
        return len(self._samples)

    def percentiles(self) -> Percentiles:
        return calculate_percentiles(self._samples)

    def summary(self) -> RunSummary:
        p = self.percentiles()
        if not self._samples:
            return RunSummary(count=0, mean=0, p50=0, p90=0, p99=0, min=0, max=0)

        # round half up
        mean = math.floor(sum(self._samples) / len(self._samples) + 0.5)
        return RunSummary(
            count=len(self._samples),
            mean=mean,
            p50=p.p50,
            p90=p.p90,
            p99=p.p99,
            min=min(self._samples),
            max=max(self._samples),
        )


__all__ = [
    "Percentiles",
    "RunSummary",
    "LatencyTracker",
    "calculate_percentiles",
    "percentile_index",
]
