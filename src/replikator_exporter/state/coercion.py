from __future__ import annotations

"""
String-to-float coercion for the tool's stringly-typed numeric fields.

Two fallbacks are used on purpose:
- replication lag falls back to LAG_UNKNOWN (-1), so "cannot tell" stays
  distinguishable from a healthy zero lag;
- every other number falls back to 0.
"""

import math
from typing import Any, Final

LAG_UNKNOWN: Final[float] = -1.0
METRIC_DEFAULT: Final[float] = 0.0

_INF_LITERALS: Final[frozenset[str]] = frozenset({"inf", "infinity"})

__all__ = ["LAG_UNKNOWN", "METRIC_DEFAULT", "lag_value", "metric_value", "to_float"]


def to_float(value: Any, fallback: float) -> float:
    """
    Parse `value` as a float literal, returning `fallback` when it is not one.

    Whitespace padding and digit separators are rejected even though `float()`
    would accept them, and so is a finite literal too large for a double
    ("1e400"). An explicit "inf" literal is kept.
    """
    if not isinstance(value, str) or not value:
        return fallback
    if value != value.strip() or "_" in value:
        return fallback
    try:
        parsed = float(value)
    except ValueError:
        return fallback
    if math.isinf(parsed) and value.lstrip("+-").lower() not in _INF_LITERALS:
        return fallback
    return parsed


def lag_value(value: Any) -> float:
    return to_float(value, LAG_UNKNOWN)


def metric_value(value: Any) -> float:
    return to_float(value, METRIC_DEFAULT)
