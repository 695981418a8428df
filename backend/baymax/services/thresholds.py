"""
Threshold Table
===============
Static, age-bucketed reference ranges used whenever Gemini is
unavailable, disabled or gives an unusable reply. The narrative
template and the dashboard trend status use the same table.

Bounds are inclusive. A stat name not in the table is always typical.
"""

from __future__ import annotations

from typing import Optional

# Age below which the paediatric range applies
CHILD_AGE_CUTOFF = 12

# stat name -> (child range, adult range)
_RANGES: dict[str, tuple[tuple[float, float], tuple[float, float]]] = {
    "heartbeat": ((70, 120), (60, 100)),
    "respiration rate": ((18, 30), (12, 20)),
    "mood": ((4, 9), (4, 9)),
}


def typical_range(stat_name: str, age: int) -> Optional[tuple[float, float]]:
    """Return the inclusive (low, high) range for *stat_name* at *age*."""
    ranges = _RANGES.get(stat_name)
    if ranges is None:
        return None
    child, adult = ranges
    return child if age < CHILD_AGE_CUTOFF else adult


def is_typical(stat_name: str, stat_value: float, age: int) -> bool:
    bounds = typical_range(stat_name, age)
    if bounds is None:
        return True
    low, high = bounds
    return low <= stat_value <= high
