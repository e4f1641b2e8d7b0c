from __future__ import annotations

from typing import Any, Iterable, Optional

import typer

from models.records import Watermark, format_timestamp
from services.aggregation import JobOutcome, JobResult


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_watermark(watermark: Optional[Watermark]) -> None:
    echo_heading("Watermark")
    if watermark is None:
        typer.echo("No execution recorded yet.")
        return
    echo_key_values(
        [
            ("range_start", format_timestamp(watermark.range_start)),
            ("range_end", format_timestamp(watermark.range_end)),
            ("execution_time", format_timestamp(watermark.execution_time)),
        ]
    )


def render_job_result(result: JobResult) -> None:
    echo_heading("Aggregation Job")
    if result.outcome is JobOutcome.up_to_date:
        typer.echo("Job already finished; the next hour has not elapsed yet.")
        return
    assert result.window is not None
    echo_key_values(
        [
            ("status", result.outcome.value),
            ("window_start", format_timestamp(result.window.start)),
            ("window_end", format_timestamp(result.window.end)),
            ("object_name", result.object_name),
            ("row_count", result.row_count),
            ("processing_ms", result.processing_ms),
        ]
    )
