from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, matching how scores are reported."""
    if value != value or math.isinf(value):
        return 0
    return int(math.floor(value + 0.5))


def round_to(value: float, places: int = 2) -> float:
    factor = 10**places
    return math.floor(value * factor + 0.5) / factor


def clamp_score(value: float, low: int = 1, high: int = 10) -> int:
    return max(low, min(high, round_half_up(value)))
