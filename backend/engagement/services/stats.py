"""Small numeric helpers shared by the sampler, the engine and the reports."""

import math
from typing import Iterable


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def rounded_mean(values: Iterable[float]) -> int:
    """Arithmetic mean rounded half-up; 0 for an empty sequence."""
    values = list(values)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))
