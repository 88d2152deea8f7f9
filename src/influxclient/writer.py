from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import urllib3
from influxdb_client import InfluxDBClient, Point
from influxdb_client.client.write_api import SYNCHRONOUS
from influxdb_client.rest import ApiException
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from .config import InfluxConfig


class UploadError(Exception):
    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


@dataclass
class UploadReport:
    written: int = 0
    failed: int = 0
    batches: int = 0
    failed_batches: int = 0
    errors: List[UploadError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed_batches == 0

    def __add__(self, other: 'UploadReport') -> 'UploadReport':
        return UploadReport(
            written=self.written + other.written,
            failed=self.failed + other.failed,
            batches=self.batches + other.batches,
            failed_batches=self.failed_batches + other.failed_batches,
            errors=self.errors + other.errors,
        )


def batches(points: Sequence[Point], size: int) -> List[List[Point]]:
    """Split points into consecutive batches of at most ``size``, preserving order."""
    if size <= 0:
        raise ValueError(f"batch size must be positive, got {size}")
    return [list(points[i:i + size]) for i in range(0, len(points), size)]


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, UploadError) and exc.retryable


class InfluxWriter:
    """Batched writer for InfluxDB.

    Transport errors, timeouts, 429 and 5xx are retried with exponential
    backoff; any other failure marks just that batch as failed and the
    upload carries on with the next one.
    """

    def __init__(self, config: InfluxConfig, write_api=None):
        self.config = config
        self._client: Optional[InfluxDBClient] = None
        self._write_api = write_api
        self._log = logging.getLogger(__name__)

    def connect(self):
        self._client = InfluxDBClient(
            url=self.config.uri,
            token=self.config.token,
            org=self.config.org,
            timeout=self.config.timeout_ms,
        )
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        self._log.info(f"Connected to InfluxDB at {self.config.uri} (database {self.config.database})")

    def close(self):
        if self._client:
            self._client.close()
            self._client = None
            self._write_api = None

    def __enter__(self) -> 'InfluxWriter':
        return self

    def __exit__(self, *exc):
        self.close()

    @staticmethod
    def _classify(exc: Exception) -> UploadError:
        if isinstance(exc, ApiException):
            status = exc.status
            retryable = status is None or status == 429 or status >= 500
            return UploadError(f"InfluxDB rejected write ({status}): {exc.reason}", status, retryable)
        # urllib3 timeouts / connection resets, socket errors
        return UploadError(f"InfluxDB write failed: {exc}", None, True)

    def _write_once(self, batch: List[Point]) -> None:
        try:
            self._write_api.write(bucket=self.config.database, org=self.config.org, record=batch)
        except (ApiException, urllib3.exceptions.HTTPError, OSError) as e:
            err = self._classify(e)
            if err.retryable:
                self._log.warning(f"Retryable InfluxDB error on batch of {len(batch)} points: {err}")
            raise err from e

    def write_batch(self, batch: List[Point]) -> None:
        """Write one batch, retrying transient failures. Raises UploadError when it gives up."""
        retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=self.config.backoff, max=30),
            retry=retry_if_exception(_is_retryable),
        )
        retrying(self._write_once, batch)

    def _upload_one(self, index: int, batch: List[Point]) -> UploadReport:
        try:
            self.write_batch(batch)
        except UploadError as e:
            self._log.error(f"Batch {index} ({len(batch)} points) failed: {e}")
            return UploadReport(failed=len(batch), batches=1, failed_batches=1, errors=[e])
        return UploadReport(written=len(batch), batches=1)

    def upload(self, points: Sequence[Point]) -> UploadReport:
        """Write all points in bounded batches and aggregate the outcome."""
        if not points:
            return UploadReport()
        if self._write_api is None:
            self.connect()
        chunks = batches(points, self.config.batch_size)
        workers = max(1, min(self.config.workers, len(chunks)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self._upload_one, range(len(chunks)), chunks))
        report = UploadReport()
        for r in results:
            report = report + r
        self._log.info(
            f"Wrote {report.written} points in {report.batches} batches "
            f"({report.failed_batches} failed)"
        )
        return report
