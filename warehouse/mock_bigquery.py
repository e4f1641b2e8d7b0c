"""Append-only tables with time-range queries, standing in for BigQuery."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from messaging.mock_pubsub import PubSubMessage
from models.records import as_utc, format_timestamp, parse_timestamp
from settings import get_aggregator_settings

Row = Dict[str, Any]


class MalformedRowError(ValueError):
    """A stored row is not valid JSON or lacks a selected column."""


@dataclass(frozen=True)
class RangeQuery:
    """``SELECT columns FROM table WHERE @start <= time_column < @end``."""

    table: str
    columns: Tuple[str, ...]
    time_column: str
    start: datetime
    end: datetime

    def to_sql(self) -> str:
        return (
            f"SELECT {', '.join(self.columns)} FROM `{self.table}` "
            f"WHERE @start <= {self.time_column} AND {self.time_column} < @end"
        )

    @property
    def parameters(self) -> Dict[str, str]:
        return {"start": format_timestamp(self.start), "end": format_timestamp(self.end)}


class MockBigQueryTable:

    def __init__(self, table_id: str, path: Optional[Path] = None) -> None:
        self.table_id = table_id
        self.path = path
        self._rows: List[str] = []
        self._lock = Lock()
        if path:
            path.parent.mkdir(parents=True, exist_ok=True)

    def insert_rows(self, rows: Iterable[Row]) -> int:
        encoded = [json.dumps(row, sort_keys=True) for row in rows]
        with self._lock:
            if self.path:
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.writelines(line + "\n" for line in encoded)
            else:
                self._rows.extend(encoded)
        return len(encoded)

    def iter_rows(self) -> Iterator[Row]:
        """Yield stored rows lazily in insertion order."""
        if not self.path:
            with self._lock:
                lines = list(self._rows)
            for line in lines:
                yield self._decode(line)
            return

        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if line.strip():
                    yield self._decode(line)

    @staticmethod
    def _decode(line: str) -> Row:
        try:
            row = json.loads(line)
        except json.JSONDecodeError as exc:
            raise MalformedRowError(f"Stored row is not valid JSON: {exc}") from exc
        if not isinstance(row, dict):
            raise MalformedRowError("Stored row is not a JSON object.")
        return row


class MockBigQueryClient:

    def __init__(self, project_id: str, root_path: Optional[Path] = None) -> None:
        self.project_id = project_id
        self.root_path = root_path
        self._tables: Dict[str, MockBigQueryTable] = {}
        self._lock = Lock()

    def table(self, dataset_id: str, table_id: str) -> MockBigQueryTable:
        full_id = f"{self.project_id}.{dataset_id}.{table_id}"
        with self._lock:
            table = self._tables.get(full_id)
            if table is None:
                path = None
                if self.root_path:
                    path = self.root_path / self.project_id / dataset_id / f"{table_id}.jsonl"
                table = MockBigQueryTable(full_id, path=path)
                self._tables[full_id] = table
            return table

    def run(self, query: RangeQuery) -> Iterator[Row]:
        """Execute ``query`` lazily; rows are filtered as the table is read."""
        project_id, dataset_id, table_id = query.table.split(".", 2)
        if project_id != self.project_id:
            raise KeyError(f"Table {query.table!r} is not in project {self.project_id!r}.")
        table = self.table(dataset_id, table_id)
        start = as_utc(query.start)
        end = as_utc(query.end)

        for row in table.iter_rows():
            try:
                raw_time = row[query.time_column]
                selected = {column: row[column] for column in query.columns}
            except KeyError as exc:
                raise MalformedRowError(f"Row is missing column {exc.args[0]!r}.") from exc
            try:
                moment = parse_timestamp(str(raw_time))
            except ValueError as exc:
                raise MalformedRowError(str(exc)) from exc
            if start <= moment < end:
                yield selected


class BigQuerySubscription:
    """Topic subscriber writing each JSON message into a table with its metadata."""

    def __init__(self, table: MockBigQueryTable) -> None:
        self.table = table

    def __call__(self, message: PubSubMessage) -> None:
        payload = json.loads(message.data.decode("utf-8"))
        if not isinstance(payload, dict):
            raise MalformedRowError("Message payload is not a JSON object.")
        row = dict(payload)
        row["message_id"] = message.message_id
        row["publish_time"] = format_timestamp(message.publish_time)
        self.table.insert_rows([row])


@lru_cache
def build_default_warehouse(
    project_id: Optional[str] = None,
    root_path: Optional[str] = None,
) -> MockBigQueryClient:
    settings = get_aggregator_settings()
    project = settings.bigquery_project_id if project_id is None else project_id
    mock_root = settings.mock_root_path if root_path is None else root_path
    path = Path(mock_root) / "bigquery" if mock_root else None
    return MockBigQueryClient(project_id=project, root_path=path)
