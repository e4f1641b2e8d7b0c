from __future__ import annotations

import logging
from typing import Iterator

from models.records import ExportedRow, Window, parse_timestamp
from services.errors import QueryError
from warehouse.mock_bigquery import MalformedRowError, MockBigQueryClient, RangeQuery

logger = logging.getLogger(__name__)


class WindowQueryExecutor:
    """Reads the rows of one window from the analytical table."""

    def __init__(
        self,
        client: MockBigQueryClient,
        dataset_id: str,
        table_id: str,
        time_column: str = "publish_time",
        value_column: str = "temperature",
    ) -> None:
        self.client = client
        self.dataset_id = dataset_id
        self.table_id = table_id
        self.time_column = time_column
        self.value_column = value_column

    @property
    def table(self) -> str:
        return f"{self.client.project_id}.{self.dataset_id}.{self.table_id}"

    def build_query(self, window: Window) -> RangeQuery:
        return RangeQuery(
            table=self.table,
            columns=("timestamp", self.value_column),
            time_column=self.time_column,
            start=window.start,
            end=window.end,
        )

    def fetch_window(self, window: Window) -> Iterator[ExportedRow]:
        """Lazily yield the rows of ``window``; the iterator can be consumed once."""
        query = self.build_query(window)
        logger.debug(
            "Running range query: %s %s",
            query.to_sql(),
            query.parameters,
            extra={"window_start": window.start.isoformat(), "window_end": window.end.isoformat()},
        )
        try:
            for row in self.client.run(query):
                yield self._to_exported_row(row)
        except (MalformedRowError, KeyError, OSError) as exc:
            raise QueryError(f"Query on {self.table} for {window} failed: {exc}") from exc

    def _to_exported_row(self, row: dict) -> ExportedRow:
        raw_value = row[self.value_column]
        if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
            raise MalformedRowError(
                f"Column {self.value_column!r} holds a non-numeric value {raw_value!r}."
            )
        value = float(raw_value)
        try:
            timestamp = parse_timestamp(str(row["timestamp"]))
        except ValueError as exc:
            raise MalformedRowError(str(exc)) from exc
        return ExportedRow(timestamp=timestamp, value=value)
