import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from datastore.mock_datastore import MockDatastoreClient
from datastore.watermark import WatermarkStore
from models.records import Watermark
from services.errors import WatermarkConflictError, WatermarkStoreError
from storage.mock_gcs import MockGCSBucket


def _watermark(hour: int) -> Watermark:
    return Watermark(
        range_start=datetime(2023, 1, 1, hour - 1, tzinfo=timezone.utc),
        range_end=datetime(2023, 1, 1, hour, tzinfo=timezone.utc),
        execution_time=datetime(2023, 1, 1, hour, 5, tzinfo=timezone.utc),
    )


def test_mock_gcs_put_and_get(tmp_path: Path) -> None:
    bucket = MockGCSBucket(name="test", root_path=tmp_path)
    bucket.put_object("20230101060000.jsonl", b"hello")

    assert (tmp_path / "20230101060000.jsonl").read_bytes() == b"hello"
    assert bucket.list_objects() == ["20230101060000.jsonl"]

    fresh_bucket = MockGCSBucket(name="test", root_path=tmp_path)
    assert fresh_bucket.get_object("20230101060000.jsonl") == b"hello"


def test_mock_gcs_missing_object(tmp_path: Path) -> None:
    bucket = MockGCSBucket(name="test", root_path=tmp_path)

    with pytest.raises(KeyError) as excinfo:
        bucket.get_object("missing.jsonl")

    assert "missing.jsonl" in str(excinfo.value)


def test_mock_gcs_aborted_writer_keeps_previous_object(tmp_path: Path) -> None:
    bucket = MockGCSBucket(name="test", root_path=tmp_path)
    bucket.put_object("out.jsonl", b"first")

    with pytest.raises(RuntimeError):
        with bucket.open_writer("out.jsonl") as writer:
            writer.write(b"second")
            raise RuntimeError("interrupted")

    assert bucket.get_object("out.jsonl") == b"first"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["out.jsonl"]


def test_mock_gcs_overwrite_replaces_content(tmp_path: Path) -> None:
    bucket = MockGCSBucket(name="test", root_path=tmp_path)
    bucket.put_object("out.jsonl", b"first")
    assert bucket.get_object("out.jsonl") == b"first"

    bucket.put_object("out.jsonl", b"second")

    assert bucket.get_object("out.jsonl") == b"second"


def test_watermark_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "datastore.json"
    store = WatermarkStore(MockDatastoreClient(project_id="jobs", persistence_path=path))

    assert store.read() is None
    store.write(_watermark(6))

    reloaded = WatermarkStore(MockDatastoreClient(project_id="jobs", persistence_path=path))
    assert reloaded.read() == _watermark(6)
    assert '"rangeEnd": "2023-01-01T06:00:00Z"' in path.read_text()


def test_watermark_store_replace_detects_conflict() -> None:
    store = WatermarkStore(MockDatastoreClient(project_id="jobs"))
    store.replace(None, _watermark(6))
    store.replace(_watermark(6), _watermark(7))

    with pytest.raises(WatermarkConflictError):
        store.replace(_watermark(6), _watermark(8))

    assert store.read() == _watermark(7)


def test_watermark_store_rejects_malformed_record() -> None:
    client = MockDatastoreClient(project_id="jobs")
    store = WatermarkStore(client)
    client.put(store.key, {"rangeEnd": "yesterday"})

    with pytest.raises(WatermarkStoreError):
        store.read()


def test_watermark_store_replace_matches_equivalent_timestamp_format(tmp_path: Path) -> None:
    path = tmp_path / "datastore.json"
    path.write_text(
        json.dumps(
            {
                "aggregator/lastExecution": {
                    "rangeStart": "2023-01-01T04:00:00+00:00",
                    "rangeEnd": "2023-01-01T05:00:00+00:00",
                    "executionTime": "2023-01-01T05:05:00+00:00",
                }
            }
        )
    )
    store = WatermarkStore(MockDatastoreClient(project_id="jobs", persistence_path=path))

    store.replace(store.read(), _watermark(6))

    assert store.read() == _watermark(6)


def test_watermark_store_replace_detects_run_in_another_process(tmp_path: Path) -> None:
    path = tmp_path / "datastore.json"
    first = WatermarkStore(MockDatastoreClient(project_id="jobs", persistence_path=path))
    second = WatermarkStore(MockDatastoreClient(project_id="jobs", persistence_path=path))

    first.replace(None, _watermark(5))

    with pytest.raises(WatermarkConflictError):
        second.replace(None, _watermark(6))

    reloaded = WatermarkStore(MockDatastoreClient(project_id="jobs", persistence_path=path))
    assert reloaded.read() == _watermark(5)
