"""Accessor for the singleton watermark record of the aggregation job."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from datastore.mock_datastore import DatastoreKey, EntityConflictError, MockDatastoreClient
from models.records import Watermark
from services.errors import WatermarkConflictError, WatermarkStoreError

logger = logging.getLogger(__name__)

DEFAULT_KIND = "aggregator"
DEFAULT_NAME = "lastExecution"


class WatermarkStore:

    def __init__(
        self,
        client: MockDatastoreClient,
        kind: str = DEFAULT_KIND,
        name: str = DEFAULT_NAME,
    ) -> None:
        self.client = client
        self.key = DatastoreKey(kind=kind, name=name)

    def read(self) -> Optional[Watermark]:
        """Return the stored watermark, or ``None`` when no run has completed yet."""
        try:
            entity = self.client.get(self.key)
        except OSError as exc:
            raise WatermarkStoreError(f"Reading watermark {self.key} failed: {exc}") from exc
        if entity is None:
            return None
        try:
            return Watermark.model_validate(entity)
        except ValidationError as exc:
            raise WatermarkStoreError(f"Watermark {self.key} is malformed: {exc}") from exc

    def write(self, watermark: Watermark) -> None:
        """Overwrite the watermark unconditionally."""
        try:
            self.client.put(self.key, watermark.to_entity())
        except OSError as exc:
            raise WatermarkStoreError(f"Writing watermark {self.key} failed: {exc}") from exc

    def replace(self, previous: Optional[Watermark], watermark: Watermark) -> None:
        """Overwrite the watermark only if it still equals ``previous``.

        Stored values are compared after parsing, so equal instants written in
        different timestamp formats still match.
        """

        def matches(current: Optional[dict]) -> bool:
            if current is None or previous is None:
                return current is None and previous is None
            try:
                return Watermark.model_validate(current) == previous
            except ValidationError:
                return False

        try:
            self.client.compare_and_put(self.key, watermark.to_entity(), matches=matches)
        except EntityConflictError as exc:
            logger.warning(
                "Watermark changed since it was read",
                extra={"reason": "concurrent run"},
            )
            raise WatermarkConflictError(str(exc)) from exc
        except OSError as exc:
            raise WatermarkStoreError(f"Writing watermark {self.key} failed: {exc}") from exc
