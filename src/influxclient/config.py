from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional


@dataclass
class InfluxConfig:
    """Configuration for InfluxDB write operations."""
    uri: str
    database: str
    token: str = field(repr=False)
    org: str = '-'  # ignored by InfluxDB 1.8 / 3.x, required by the v2 write API
    batch_size: int = 5000
    max_attempts: int = 5
    backoff: float = 0.5
    workers: int = 1
    measurement: str = 'glowmarkt'
    timeout_ms: int = 30_000

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> 'InfluxConfig':
        """Create configuration from environment variables (or an equivalent mapping)."""
        if env is None:
            env = os.environ
        return InfluxConfig(
            uri=env['INFLUX_URI'],
            database=env['INFLUX_DATABASE'],
            token=env['INFLUX_TOKEN'],
            org=env.get('INFLUX_ORG') or '-',
            batch_size=int(env.get('INFLUX_BATCH_SIZE') or '5000'),
            max_attempts=int(env.get('INFLUX_MAX_ATTEMPTS') or '5'),
            workers=int(env.get('INFLUX_WORKERS') or '1'),
            measurement=env.get('INFLUX_MEASUREMENT') or 'glowmarkt',
        )
