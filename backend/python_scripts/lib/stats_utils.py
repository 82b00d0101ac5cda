"""
Statistics helpers shared by the scoring modules.

Every helper here is total: NaN, infinities and non-numeric input degrade
to a documented default instead of raising, so a dashboard always renders.

Usage:
    from lib.stats_utils import clamp_percent, rate_percent, mean_score
"""

import math
from typing import Iterable, Optional

import numpy as np


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def to_number(value) -> Optional[float]:
    """Coerce a loosely typed value to a finite float, or None.

    Booleans are not numbers here; blank strings are missing.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(number):
        return None
    return number


def is_valid_counter(value) -> bool:
    """True for a finite, non-negative usage counter."""
    number = to_number(value)
    return number is not None and number >= 0


def clamp_percent(value) -> int:
    """Clamp to an integer in [0, 100].

    NaN and non-numeric input map to 0; infinities saturate.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    if number == math.inf:
        return 100
    if number == -math.inf:
        return 0
    return max(0, min(100, round_half_up(number)))


def rate_percent(numerator: int, denominator: int) -> int:
    """Percentage rounded to an integer; an empty denominator yields 100.

    Absence of evidence is not penalised.
    """
    if not denominator:
        return 100
    return round_half_up(numerator / denominator * 100)


def mean_score(values: Iterable[float], default: int = 0) -> int:
    """Mean rounded to an integer, or ``default`` for no values."""
    numbers = [v for v in (to_number(x) for x in values) if v is not None]
    if not numbers:
        return default
    return round_half_up(sum(numbers) / len(numbers))
