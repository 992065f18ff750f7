"""Half-open time interval arithmetic used by the slot calculator.

All functions are pure. Intervals are ``[start, end)``: ``start`` is included,
``end`` is not, so two intervals that only touch do not overlap.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end


def buffer(intervals: Sequence[Interval], minutes: int) -> Sequence[Interval]:
    """Widen every interval by ``minutes`` on both sides."""
    if minutes == 0:
        return intervals

    pad = timedelta(minutes=minutes)
    return [Interval(i.start - pad, i.end + pad) for i in intervals]


def merge(intervals: Sequence[Interval]) -> Sequence[Interval]:
    """Sort by start and fold overlapping or adjacent intervals together.

    ``b`` is folded into the running interval ``a`` when ``b.start <= a.end``,
    so back-to-back intervals with no gap become one.
    """
    if len(intervals) <= 1:
        return intervals

    ordered = sorted(intervals, key=lambda i: i.start)
    merged = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)
    return merged


def overlaps_any(start: datetime, end: datetime, intervals: Sequence[Interval]) -> bool:
    """True iff ``[start, end)`` strictly overlaps any of ``intervals``."""
    return any(start < b.end and b.start < end for b in intervals)
