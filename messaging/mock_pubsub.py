"""In-process stand-in for a Pub/Sub topic with a publish thread pool."""

from __future__ import annotations

import base64
import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional

from models.records import format_timestamp
from settings import get_relay_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PubSubMessage:
    message_id: str
    data: bytes
    publish_time: datetime
    attributes: Dict[str, str] = field(default_factory=dict)

    def to_record(self) -> dict[str, object]:
        return {
            "message_id": self.message_id,
            "publish_time": format_timestamp(self.publish_time),
            "data": base64.b64encode(self.data).decode("ascii"),
            "attributes": dict(self.attributes),
        }


Subscriber = Callable[[PubSubMessage], None]


class MockPubSubTopic:

    def __init__(
        self,
        project_id: str,
        topic_id: str,
        log_path: Optional[Path] = None,
        workers: int = 4,
    ) -> None:
        self.project_id = project_id
        self.topic_id = topic_id
        self.log_path = log_path
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="publish")
        self._subscribers: List[Subscriber] = []
        self._lock = Lock()
        self._next_id = 1
        if log_path:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._next_id = self._count_logged_messages() + 1

    @property
    def path(self) -> str:
        return f"projects/{self.project_id}/topics/{self.topic_id}"

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(subscriber)

    def publish(self, data: bytes, **attributes: str) -> Future[str]:
        """Schedule ``data`` for publishing; the future resolves to the message id."""
        if not isinstance(data, bytes):
            raise TypeError("Message data must be bytes.")
        return self.executor.submit(self._publish, data, dict(attributes))

    def shutdown(self) -> None:
        """Wait for pending publishes and release the worker threads."""
        self.executor.shutdown(wait=True)

    def _publish(self, data: bytes, attributes: Dict[str, str]) -> str:
        with self._lock:
            message = PubSubMessage(
                message_id=str(self._next_id),
                data=data,
                publish_time=datetime.now(timezone.utc),
                attributes=attributes,
            )
            self._next_id += 1
            self._append_to_log(message)
            subscribers = list(self._subscribers)

        for subscriber in subscribers:
            try:
                subscriber(message)
            except Exception:
                # Subscription delivery is decoupled from the publish result.
                logger.exception(
                    "Subscriber failed to handle message",
                    extra={"topic": self.path, "message_id": message.message_id},
                )
        return message.message_id

    def _append_to_log(self, message: PubSubMessage) -> None:
        if not self.log_path:
            return
        with self.log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(message.to_record(), sort_keys=True) + "\n")

    def _count_logged_messages(self) -> int:
        assert self.log_path is not None
        if not self.log_path.exists():
            return 0
        with self.log_path.open("r", encoding="utf-8") as handle:
            return sum(1 for line in handle if line.strip())


@lru_cache
def build_default_topic(
    project_id: Optional[str] = None,
    topic_id: Optional[str] = None,
) -> MockPubSubTopic:
    settings = get_relay_settings()
    project = settings.pubsub_project_id if project_id is None else project_id
    topic = settings.pubsub_topic_id if topic_id is None else topic_id
    mock_root = settings.mock_root_path
    log_path = Path(mock_root) / "pubsub" / project / f"{topic}.jsonl" if mock_root else None
    return MockPubSubTopic(
        project_id=project,
        topic_id=topic,
        log_path=log_path,
        workers=settings.publish_workers,
    )
