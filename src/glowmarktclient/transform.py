from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import pandas as pd
from influxdb_client import Point, WritePrecision

from .config import Reading, Resource
from .errors import GlowmarktError

DEFAULT_MEASUREMENT = 'glowmarkt'
_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)

logger = logging.getLogger(__name__)


class TransformError(GlowmarktError):
    def __init__(self, message: str, reading: Reading):
        super().__init__(message)
        self.reading = reading


@dataclass
class TransformResult:
    points: List[Point] = field(default_factory=list)
    skipped: int = 0
    samples: List[TransformError] = field(default_factory=list)


def validate_reading(reading: Reading) -> None:
    value = reading.value
    if value is None or isinstance(value, bool):
        raise TransformError("missing value", reading)
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise TransformError(f"non-numeric value {reading.value!r}", reading) from e
    if math.isnan(value) or math.isinf(value):
        raise TransformError(f"non-finite value {value}", reading)
    if value < 0:
        raise TransformError(f"negative value {value}", reading)
    ts = reading.timestamp
    if ts is None:
        raise TransformError("missing timestamp", reading)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    if ts <= _EPOCH:
        raise TransformError(f"timestamp at or before epoch ({ts.isoformat()})", reading)


def transform_reading(resource: Resource, reading: Reading, measurement: str = DEFAULT_MEASUREMENT) -> Point:
    """Map one reading to one InfluxDB point. Pure; raises TransformError when invalid."""
    validate_reading(reading)
    ts = reading.timestamp
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    point = (
        Point(measurement)
        .tag('resource_id', resource.resource_id)
        .tag('classifier', resource.classifier)
        .field('value', float(reading.value))
        .time(ts.astimezone(dt.timezone.utc), WritePrecision.S)
    )
    unit = reading.unit or resource.unit
    if unit:
        point.tag('unit', unit)
    return point


def transform_readings(
    resource: Resource,
    readings: Sequence[Reading],
    measurement: str = DEFAULT_MEASUREMENT,
    max_samples: int = 3,
) -> TransformResult:
    """Transform readings in order, excluding (and counting) invalid ones."""
    result = TransformResult()
    for reading in readings:
        try:
            result.points.append(transform_reading(resource, reading, measurement))
        except TransformError as e:
            result.skipped += 1
            if len(result.samples) < max_samples:
                result.samples.append(e)
    if result.skipped:
        sample = '; '.join(f"{s.reading.timestamp}: {s}" for s in result.samples)
        logger.warning(
            "Skipped %s invalid readings for resource %s (e.g. %s)",
            result.skipped, resource.resource_id, sample,
        )
    return result


def detect_missing_readings(readings: Sequence[Reading], period: str = 'PT30M') -> Tuple[int, int, int]:
    """Return (expected, actual, missing) buckets across the span covered.

    Gaps are informational only; missing buckets are never synthesised.
    If fewer than 2 readings, missing = 0 (no baseline).
    """
    if len(readings) < 2:
        return (len(readings), len(readings), 0)
    step = pd.Timedelta(period)
    df = pd.DataFrame({'timestamp': [r.timestamp for r in readings]})
    df['timestamp'] = pd.to_datetime(df['timestamp'], utc=True)
    df = df.drop_duplicates().sort_values('timestamp')
    span = df['timestamp'].iloc[-1] - df['timestamp'].iloc[0]
    expected = int(span / step) + 1
    actual = len(df)
    missing = max(0, expected - actual)
    return expected, actual, missing
