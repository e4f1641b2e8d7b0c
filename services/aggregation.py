"""Hourly aggregation job: query one window, export it, advance the watermark."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from datastore.mock_datastore import build_default_datastore
from datastore.watermark import WatermarkStore
from models.records import Watermark, Window, as_utc
from services.exporter import BatchExporter, object_name_for
from services.query import WindowQueryExecutor
from services.windowing import NoWindowYet, compute_next_window
from settings import get_aggregator_settings
from storage.mock_gcs import build_default_bucket
from warehouse.mock_bigquery import build_default_warehouse

logger = logging.getLogger(__name__)


class JobOutcome(str, Enum):
    completed = "completed"
    up_to_date = "up_to_date"


@dataclass
class JobResult:
    outcome: JobOutcome
    window: Optional[Window] = None
    object_name: Optional[str] = None
    row_count: int = 0
    processing_ms: int = 0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AggregationJob:
    """Runs a single pass of the job; callers schedule repeated invocations."""

    def __init__(
        self,
        watermarks: WatermarkStore,
        query: WindowQueryExecutor,
        exporter: BatchExporter,
        compare_and_swap: bool = True,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.watermarks = watermarks
        self.query = query
        self.exporter = exporter
        self.compare_and_swap = compare_and_swap
        self.clock = clock

    def run(self, now: Optional[datetime] = None) -> JobResult:
        start_time = time.perf_counter()
        now = as_utc(now if now is not None else self.clock())

        previous = self.watermarks.read()
        if previous is None:
            logger.info("No previous execution recorded")
        else:
            logger.info(
                "Loaded last execution",
                extra={
                    "window_start": previous.range_start.isoformat(),
                    "window_end": previous.range_end.isoformat(),
                },
            )

        try:
            window = compute_next_window(previous, now)
        except NoWindowYet as exc:
            logger.info(
                "Job already finished for the latest complete hour",
                extra={"next_window_end": exc.next_end.isoformat(), "status": JobOutcome.up_to_date.value},
            )
            return JobResult(outcome=JobOutcome.up_to_date, processing_ms=_elapsed_ms(start_time))

        object_name = object_name_for(window)
        window_extra = {"window_start": window.start.isoformat(), "window_end": window.end.isoformat()}
        logger.info("Exporting window", extra={**window_extra, "object_name": object_name})

        rows = self.query.fetch_window(window)
        row_count = self.exporter.export_window(object_name, rows)

        watermark = Watermark(range_start=window.start, range_end=window.end, execution_time=now)
        if self.compare_and_swap:
            self.watermarks.replace(previous, watermark)
        else:
            self.watermarks.write(watermark)

        result = JobResult(
            outcome=JobOutcome.completed,
            window=window,
            object_name=object_name,
            row_count=row_count,
            processing_ms=_elapsed_ms(start_time),
        )
        logger.info(
            "Job finished",
            extra={
                **window_extra,
                "row_count": row_count,
                "status": result.outcome.value,
                "processing_ms": result.processing_ms,
            },
        )
        return result


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


def build_default_job() -> AggregationJob:
    """Wire the job from environment settings; raises ``ConfigurationError``."""
    settings = get_aggregator_settings()
    watermarks = WatermarkStore(
        build_default_datastore(),
        kind=settings.watermark_kind,
        name=settings.watermark_name,
    )
    query = WindowQueryExecutor(
        build_default_warehouse(),
        dataset_id=settings.bigquery_dataset_id,
        table_id=settings.bigquery_table_id,
        time_column=settings.time_column,
        value_column=settings.value_column,
    )
    exporter = BatchExporter(build_default_bucket(), value_field=settings.value_column)
    return AggregationJob(
        watermarks=watermarks,
        query=query,
        exporter=exporter,
        compare_and_swap=settings.compare_and_swap,
    )
