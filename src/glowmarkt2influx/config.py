from __future__ import annotations

import datetime as dt
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from glowmarktclient.config import GlowmarktSettings
from glowmarktclient.windows import DEFAULT_LOOKBACK_DAYS, DateRange
from influxclient.config import InfluxConfig

REQUIRED = ('GM_USERNAME', 'GM_PASSWORD', 'INFLUX_URI', 'INFLUX_DATABASE', 'INFLUX_TOKEN')


class ConfigError(Exception):
    pass


def parse_datetime(value: str, end_of_day: bool = False) -> dt.datetime:
    """Parse an ISO date or datetime; naive values are taken as local time.

    With ``end_of_day`` a bare date resolves to its last second, so an inclusive
    end date covers the whole day.
    """
    text = value.strip()
    try:
        parsed = dt.datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError as e:
        raise ConfigError(f"Invalid date {value!r}; expected YYYY-MM-DD or ISO datetime") from e
    if end_of_day and _is_date_only(text):
        parsed = parsed + dt.timedelta(days=1, seconds=-1)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def _is_date_only(text: str) -> bool:
    try:
        dt.date.fromisoformat(text)
    except ValueError:
        return False
    return True


@dataclass
class PipelineConfig:
    """Everything one run needs, resolved before any network call."""
    glowmarkt: GlowmarktSettings
    influx: InfluxConfig
    date_range: Optional[DateRange] = None  # None = trailing window computed when the run starts

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> 'PipelineConfig':
        if env is None:
            env = os.environ
        missing = [k for k in REQUIRED if not env.get(k)]
        if missing:
            raise ConfigError(f"Missing required setting(s): {', '.join(missing)}")
        try:
            glowmarkt = GlowmarktSettings.from_env(env)
            influx = InfluxConfig.from_env(env)
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e
        if glowmarkt.max_window_days <= 0:
            raise ConfigError("GM_MAX_WINDOW_DAYS must be positive")
        if influx.batch_size <= 0:
            raise ConfigError("INFLUX_BATCH_SIZE must be positive")
        if influx.max_attempts <= 0:
            raise ConfigError("INFLUX_MAX_ATTEMPTS must be positive")

        return PipelineConfig(
            glowmarkt=glowmarkt,
            influx=influx,
            date_range=resolve_range(env.get('START_DATE'), env.get('END_DATE')),
        )


def resolve_range(start: Optional[str], end: Optional[str],
                  now: Optional[dt.datetime] = None) -> Optional[DateRange]:
    """Build the requested range; a missing bound is filled relative to the other.

    Both bounds are inclusive and a date-only end covers that whole day.

    Returns None when neither bound is given so the default window is computed later.
    """
    if not start and not end:
        return None
    if now is None:
        now = dt.datetime.now(dt.timezone.utc)
    end_dt = parse_datetime(end, end_of_day=True) if end else now
    start_dt = parse_datetime(start) if start else end_dt - dt.timedelta(days=DEFAULT_LOOKBACK_DAYS)
    if start_dt > end_dt:
        raise ConfigError(f"START_DATE {start_dt.isoformat()} is after END_DATE {end_dt.isoformat()}")
    return DateRange(start_dt, end_dt)
