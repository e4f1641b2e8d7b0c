"""Newline-delimited JSON export of one window to the bucket."""

from __future__ import annotations

import json
import logging
from typing import Iterable

from models.records import ExportedRow, Window, as_utc
from services.errors import SerializationError, UploadError
from storage.mock_gcs import MockGCSBucket

logger = logging.getLogger(__name__)

OBJECT_NAME_FORMAT = "%Y%m%d%H%M%S.jsonl"


def object_name_for(window: Window) -> str:
    """Sortable object name derived from the UTC end of ``window``."""
    return as_utc(window.end).strftime(OBJECT_NAME_FORMAT)


class BatchExporter:

    def __init__(self, bucket: MockGCSBucket, value_field: str = "temperature") -> None:
        self.bucket = bucket
        self.value_field = value_field

    def export_window(self, object_name: str, rows: Iterable[ExportedRow]) -> int:
        """Write ``rows`` to ``object_name`` in one scoped upload.

        Returns the number of rows written. Nothing is committed when
        serialization, the row source or the bucket fails.
        """

        row_count = 0
        try:
            with self.bucket.open_writer(object_name) as writer:
                for row in rows:
                    writer.write(self._serialize(row))
                    row_count += 1
        except OSError as exc:
            raise UploadError(
                f"Uploading {object_name} to bucket {self.bucket.name} failed: {exc}"
            ) from exc

        logger.info(
            "Uploaded window export",
            extra={"object_name": object_name, "row_count": row_count},
        )
        return row_count

    def _serialize(self, row: ExportedRow) -> bytes:
        try:
            line = json.dumps(row.to_document(self.value_field), allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Cannot encode row {row!r}: {exc}") from exc
        return (line + "\n").encode("utf-8")
