"""Unit tests for the mock Pub/Sub topic."""

from __future__ import annotations

import base64
import json
import logging

import pytest

from messaging.mock_pubsub import MockPubSubTopic


def test_publish_appends_message_to_log(tmp_path) -> None:
    log_path = tmp_path / "pubsub" / "project" / "topic.jsonl"
    topic = MockPubSubTopic(project_id="project", topic_id="topic", log_path=log_path)

    message_id = topic.publish(b'{"temperature": 1.5}', source="test").result(timeout=5)
    topic.shutdown()

    assert message_id == "1"
    record = json.loads(log_path.read_text().strip())
    assert record["message_id"] == "1"
    assert base64.b64decode(record["data"]) == b'{"temperature": 1.5}'
    assert record["attributes"] == {"source": "test"}
    assert record["publish_time"].endswith("Z")


def test_message_ids_continue_after_reload(tmp_path) -> None:
    log_path = tmp_path / "topic.jsonl"
    first = MockPubSubTopic(project_id="project", topic_id="topic", log_path=log_path)
    first.publish(b"a").result(timeout=5)
    first.publish(b"b").result(timeout=5)
    first.shutdown()

    second = MockPubSubTopic(project_id="project", topic_id="topic", log_path=log_path)
    message_id = second.publish(b"c").result(timeout=5)
    second.shutdown()

    assert message_id == "3"


def test_publish_requires_bytes() -> None:
    topic = MockPubSubTopic(project_id="project", topic_id="topic")
    try:
        with pytest.raises(TypeError):
            topic.publish("not bytes")  # type: ignore[arg-type]
    finally:
        topic.shutdown()


def test_failing_subscriber_does_not_fail_publish(caplog) -> None:
    topic = MockPubSubTopic(project_id="project", topic_id="topic")
    delivered: list[str] = []

    def broken(_message) -> None:
        raise RuntimeError("subscriber down")

    topic.subscribe(broken)
    topic.subscribe(lambda message: delivered.append(message.message_id))

    with caplog.at_level(logging.ERROR, logger="messaging.mock_pubsub"):
        message_id = topic.publish(b"{}").result(timeout=5)
    topic.shutdown()

    assert message_id == "1"
    assert delivered == ["1"]
    assert "Subscriber failed" in caplog.text


def test_topic_path() -> None:
    topic = MockPubSubTopic(project_id="project", topic_id="topic")
    topic.shutdown()

    assert topic.path == "projects/project/topics/topic"
