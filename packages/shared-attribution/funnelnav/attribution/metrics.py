"""Safe arithmetic for report ratios and deltas.

Every ratio in the analytics report goes through ``safe_divide`` so a zero or
non-finite denominator yields ``0`` instead of an exception or NaN.
Percentage deltas go through ``metric_delta`` and are ``None`` when the
previous value is zero.

Examples:
    >>> safe_divide(1000, 0)
    0.0
    >>> metric_delta(120, 100).delta_pct
    0.2
    >>> metric_delta(5, 0).delta_pct is None
    True
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any


def _finite(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_number(value: Any) -> float:
    """Coerce to a finite float, using 0 for anything else."""
    number = _finite(value)
    return 0.0 if number is None else number


def safe_divide(numerator: Any, denominator: Any, default: float = 0.0) -> float:
    """Divide, returning ``default`` for a zero or non-finite operand."""
    num = _finite(numerator)
    den = _finite(denominator)
    if num is None or den is None or den == 0:
        return default
    return num / den


def round_to(value: Any, digits: int = 2) -> float:
    """Round half away from zero; non-finite values become 0."""
    number = _finite(value)
    if number is None:
        return 0.0
    power = 10**digits
    return math.floor(abs(number) * power + 0.5) / power * (1 if number >= 0 else -1)


@dataclass(frozen=True)
class MetricDelta:
    """Absolute and relative change between two periods."""

    delta: float
    delta_pct: float | None


def metric_delta(current: float, previous: float) -> MetricDelta:
    """Compare a current value to a previous value.

    ``delta_pct`` is ``None`` when ``previous`` is zero.
    """
    delta = current - previous
    return MetricDelta(delta=delta, delta_pct=None if previous == 0 else delta / previous)

