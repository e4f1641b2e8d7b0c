"""Validation and publishing of reading batches received over HTTP."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from messaging.mock_pubsub import MockPubSubTopic, build_default_topic
from models.records import Reading, as_utc, format_timestamp
from services.errors import InvalidReadingError, PublishError
from settings import ConfigurationError, RelaySettings, get_relay_settings
from warehouse.mock_bigquery import BigQuerySubscription, MockBigQueryClient

logger = logging.getLogger(__name__)


def parse_value(raw: str) -> float:
    """Parse a reading value as a finite float."""
    if raw != raw.strip() or "_" in raw or not raw.isascii():
        raise InvalidReadingError(f"invalid numeric value {raw!r}")
    try:
        value = float(raw)
    except ValueError as exc:
        raise InvalidReadingError(f"invalid numeric value {raw!r}") from exc
    if not math.isfinite(value):
        raise InvalidReadingError(f"non-finite numeric value {raw!r}")
    return value


def parse_readings(items: Iterable[Any]) -> List[Reading]:
    """Convert request items into readings; any bad value rejects the batch."""
    readings: List[Reading] = []
    for index, item in enumerate(items):
        try:
            value = parse_value(item.value)
        except InvalidReadingError as exc:
            raise InvalidReadingError(f"data[{index}].value: {exc}") from exc
        readings.append(Reading(timestamp=as_utc(item.timestamp), value=value))
    return readings


class RelayService:
    """Publishes readings to a topic, one message per reading or per batch."""

    def __init__(self, topic: MockPubSubTopic) -> None:
        self.topic = topic

    async def publish_each(self, readings: Sequence[Reading]) -> List[str]:
        """Publish every reading concurrently; the first failure fails the call.

        Publishes still pending when a failure occurs are cancelled.
        """

        failure: Optional[PublishError] = None
        try:
            async with asyncio.TaskGroup() as group:
                tasks = [
                    group.create_task(
                        self._publish(
                            {"timestamp": format_timestamp(reading.timestamp), "temperature": reading.value}
                        )
                    )
                    for reading in readings
                ]
        except* PublishError as errors:
            failure = errors.exceptions[0]
        if failure is not None:
            raise failure
        return [task.result() for task in tasks]

    async def publish_batch(self, readings: Sequence[Reading]) -> str:
        """Publish the whole batch as a single message."""
        payload = {
            "data": [
                {"timestamp": format_timestamp(reading.timestamp), "value": reading.value}
                for reading in readings
            ]
        }
        return await self._publish(payload)

    async def _publish(self, payload: dict[str, Any]) -> str:
        try:
            data = json.dumps(payload, allow_nan=False).encode("utf-8")
            message_id = await asyncio.wrap_future(self.topic.publish(data))
        except Exception as exc:
            raise PublishError(f"Publishing to {self.topic.path} failed: {exc}") from exc
        logger.info("Published message", extra={"topic": self.topic.path, "message_id": message_id})
        return message_id

    def shutdown(self) -> None:
        self.topic.shutdown()


def _subscription_table(settings: RelaySettings) -> Tuple[str, str, str]:
    """Split ``[project.]dataset.table``; the project defaults to the warehouse one."""
    parts = settings.subscription_table.split(".") if settings.subscription_table else []
    if len(parts) == 2:
        parts.insert(0, settings.bigquery_project_id or settings.pubsub_project_id)
    if len(parts) != 3 or not all(parts):
        raise ConfigurationError(
            "Subscription table must look like [project.]dataset.table, "
            f"got {settings.subscription_table!r}."
        )
    return parts[0], parts[1], parts[2]


@lru_cache
def build_default_relay() -> RelayService:
    """Factory that wires the relay to the configured topic."""
    settings = get_relay_settings()
    topic = build_default_topic()
    if settings.subscription_table:
        project_id, dataset_id, table_id = _subscription_table(settings)
        root = Path(settings.mock_root_path) / "bigquery" if settings.mock_root_path else None
        warehouse = MockBigQueryClient(project_id=project_id, root_path=root)
        topic.subscribe(BigQuerySubscription(warehouse.table(dataset_id, table_id)))
        logger.info(
            "Attached warehouse subscription %s.%s.%s",
            project_id,
            dataset_id,
            table_id,
            extra={"topic": topic.path},
        )
    return RelayService(topic)
