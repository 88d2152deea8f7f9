from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from glowmarktclient.client import GlowmarktClient
from glowmarktclient.errors import ApiError, AuthError
from glowmarktclient.transform import detect_missing_readings, transform_readings
from glowmarktclient.windows import default_range
from influxclient.writer import InfluxWriter

from .config import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    resources_processed: int = 0
    readings_fetched: int = 0
    points_written: int = 0
    points_skipped: int = 0
    points_failed: int = 0
    batches: int = 0
    batches_failed: int = 0
    failed_windows: int = 0
    fatal_error: Optional[Exception] = None

    @property
    def exit_code(self) -> int:
        return 1 if self.fatal_error is not None or self.batches_failed else 0

    def summary(self) -> str:
        lines = [
            f"Resources processed: {self.resources_processed}",
            f"Readings fetched:    {self.readings_fetched}",
            f"Points written:      {self.points_written}",
            f"Points skipped:      {self.points_skipped}",
            f"Batches failed:      {self.batches_failed} of {self.batches}",
            f"Windows failed:      {self.failed_windows}",
        ]
        if self.fatal_error is not None:
            lines.append(f"Fatal error:         {type(self.fatal_error).__name__}: {self.fatal_error}")
        return "\n".join(lines)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def run(
    config: PipelineConfig,
    client: Optional[GlowmarktClient] = None,
    writer: Optional[InfluxWriter] = None,
    clock: Callable[[], dt.datetime] = _utcnow,
) -> RunReport:
    """Run one ingestion: authenticate, list resources, then fetch/transform/upload each.

    Window and batch failures are counted and the run continues; authentication
    failures (and a failed resource listing) stop the run.
    """
    report = RunReport()
    owns_client = client is None
    owns_writer = writer is None
    if client is None:
        client = GlowmarktClient(config.glowmarkt)
    if writer is None:
        writer = InfluxWriter(config.influx)

    try:
        try:
            client.auth.ensure_token()
            resources = client.list_resources()
        except AuthError as e:
            logger.error(f"Authentication failed: {e}")
            report.fatal_error = e
            return report
        except ApiError as e:
            logger.error(f"Failed to list resources: {e}")
            report.fatal_error = e
            return report

        date_range = config.date_range or default_range(clock())
        logger.info(
            f"Processing {len(resources)} resources from {date_range.start.isoformat()} "
            f"to {date_range.end.isoformat()}"
        )

        for resource in resources:
            logger.info(f"Processing resource: {resource.classifier} {resource.resource_id} ({resource.name})")
            try:
                fetched = client.fetch_readings(resource, date_range)
            except AuthError as e:
                logger.error(f"Authentication lost while fetching {resource.resource_id}: {e}")
                report.fatal_error = e
                return report

            report.failed_windows += len(fetched.failed_windows)
            report.readings_fetched += len(fetched.readings)
            try:
                expected, actual, missing = detect_missing_readings(fetched.readings, config.glowmarkt.period)
                if missing:
                    logger.info(f"Resource {resource.resource_id}: {missing} of {expected} buckets missing")
            except ValueError:
                # calendar periods (P1M, P1Y) have no fixed bucket length
                pass

            transformed = transform_readings(resource, fetched.readings, config.influx.measurement)
            report.points_skipped += transformed.skipped

            upload = writer.upload(transformed.points)
            report.points_written += upload.written
            report.points_failed += upload.failed
            report.batches += upload.batches
            report.batches_failed += upload.failed_batches
            report.resources_processed += 1
            logger.info(
                f"Resource {resource.resource_id}: {len(fetched.readings)} readings, "
                f"{upload.written} points written, {transformed.skipped} skipped, "
                f"{upload.failed_batches} batches failed"
            )
    finally:
        if owns_client:
            client.close()
        if owns_writer:
            writer.close()

    logger.info(
        f"Ingestion completed: {report.resources_processed} resources, "
        f"{report.points_written} points written, {report.batches_failed} batches failed"
    )
    return report
