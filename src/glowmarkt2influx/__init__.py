"""Facade package for the GlowMarkt → InfluxDB ingestion tool.

The clients live in ``glowmarktclient`` and ``influxclient``; this package
wires them together and re-exports the symbols a caller needs.
"""

from glowmarktclient import (  # noqa: F401
    ApiError, AuthError, DateRange, GlowmarktClient, GlowmarktSettings, Reading, Resource, split_range,
)
from glowmarktclient.transform import TransformError, transform_reading, transform_readings  # noqa: F401
from influxclient import InfluxConfig, InfluxWriter, UploadError, UploadReport  # noqa: F401

from .config import ConfigError, PipelineConfig  # noqa: F401
from .pipeline import RunReport, run  # noqa: F401

__all__ = [
    'GlowmarktClient', 'GlowmarktSettings', 'Resource', 'Reading', 'DateRange', 'split_range',
    'InfluxConfig', 'InfluxWriter', 'UploadReport', 'PipelineConfig', 'RunReport', 'run',
    'transform_reading', 'transform_readings',
    'ConfigError', 'AuthError', 'ApiError', 'TransformError', 'UploadError',
]
