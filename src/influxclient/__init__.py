"""
InfluxDB client helpers: batched, retried point writes.
"""

__all__ = ['InfluxConfig', 'InfluxWriter', 'UploadError', 'UploadReport', 'batches']

from .config import InfluxConfig
from .writer import InfluxWriter, UploadError, UploadReport, batches
