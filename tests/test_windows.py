import datetime as dt
import math

import pytest

from glowmarktclient.windows import DateRange, default_range, split_range

UTC = dt.timezone.utc
W = dt.timedelta(days=10)


def _check_partition(start, end, windows):
    assert windows[0].start == start
    assert windows[-1].end == end
    for prev, nxt in zip(windows, windows[1:]):
        assert prev.end == nxt.start  # contiguous, no overlap
        assert prev.start < nxt.start
    for w in windows:
        assert w.start < w.end
        assert w.length <= W


@pytest.mark.parametrize('days,hours', [(25, 0), (10, 1), (31, 7), (100, 0), (10, 0), (3, 0)])
def test_split_range_partitions_exactly(days, hours):
    start = dt.datetime(2024, 12, 1, tzinfo=UTC)
    end = start + dt.timedelta(days=days, hours=hours)
    windows = split_range(start, end, W)
    assert len(windows) == math.ceil((end - start) / W)
    _check_partition(start, end, windows)


def test_split_range_last_window_shorter():
    start = dt.datetime(2024, 12, 1, tzinfo=UTC)
    windows = split_range(start, start + dt.timedelta(days=25), W)
    assert [w.length for w in windows] == [W, W, dt.timedelta(days=5)]


def test_split_range_empty_range():
    start = dt.datetime(2024, 12, 1, tzinfo=UTC)
    assert split_range(start, start, W) == []


def test_split_range_rejects_bad_input():
    start = dt.datetime(2024, 12, 1, tzinfo=UTC)
    with pytest.raises(ValueError):
        split_range(start, start + W, dt.timedelta(0))
    with pytest.raises(ValueError):
        split_range(start + W, start, W)


def test_date_range_invariant():
    start = dt.datetime(2024, 12, 1, tzinfo=UTC)
    with pytest.raises(ValueError):
        DateRange(start, start - dt.timedelta(seconds=1))
    assert DateRange(start, start).length == dt.timedelta(0)


def test_default_range_is_trailing_ten_days():
    now = dt.datetime(2025, 1, 15, 12, 0, tzinfo=UTC)
    r = default_range(now)
    assert r.end == now
    assert r.start == now - dt.timedelta(days=10)


def test_default_range_evaluated_per_call():
    first = default_range()
    second = default_range()
    assert second.end >= first.end
