from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_LOOKBACK_DAYS = 10


@dataclass(frozen=True)
class DateRange:
    """Span of time from ``start`` to ``end``, both instants included."""
    start: dt.datetime
    end: dt.datetime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Range start {self.start} is after end {self.end}")

    @property
    def length(self) -> dt.timedelta:
        return self.end - self.start


def split_range(start: dt.datetime, end: dt.datetime, max_window: dt.timedelta) -> List[DateRange]:
    """Partition ``start..end`` into consecutive windows no longer than ``max_window``.

    Windows are ascending and contiguous (each one starts where the previous
    ended), so their union is exactly the input range. A boundary instant
    belongs to the later window; only the last window keeps its ``end``. The
    last window may be shorter. An empty range yields no windows.
    """
    if max_window <= dt.timedelta(0):
        raise ValueError(f"max_window must be positive, got {max_window}")
    if start > end:
        raise ValueError(f"Range start {start} is after end {end}")
    windows: List[DateRange] = []
    cursor = start
    while cursor < end:
        upper = min(cursor + max_window, end)
        windows.append(DateRange(cursor, upper))
        cursor = upper
    return windows


def default_range(now: Optional[dt.datetime] = None, days: int = DEFAULT_LOOKBACK_DAYS) -> DateRange:
    """Trailing ``days`` ending at ``now`` (evaluated on each call)."""
    if now is None:
        now = dt.datetime.now(dt.timezone.utc)
    return DateRange(now - dt.timedelta(days=days), now)
