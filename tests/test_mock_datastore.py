"""Unit tests for the mock Datastore client."""

from __future__ import annotations

import json

import pytest

from datastore.mock_datastore import DatastoreKey, EntityConflictError, MockDatastoreClient

KEY = DatastoreKey(kind="aggregator", name="lastExecution")


def test_put_and_get_round_trip_returns_deep_copy() -> None:
    client = MockDatastoreClient(project_id="jobs")
    entity = {"rangeEnd": "2023-01-01T06:00:00Z", "nested": {"runs": 1}}

    client.put(KEY, entity)
    fetched = client.get(KEY)

    assert fetched == entity
    assert fetched is not entity

    fetched["nested"]["runs"] = 42  # type: ignore[index]
    assert client.get(KEY)["nested"]["runs"] == 1  # type: ignore[index]


def test_get_returns_none_when_missing() -> None:
    client = MockDatastoreClient(project_id="jobs")

    assert client.get(KEY) is None


def test_put_persists_to_disk_and_reloads(tmp_path) -> None:
    path = tmp_path / "datastore" / "jobs.json"
    client = MockDatastoreClient(project_id="jobs", persistence_path=path)

    client.put(KEY, {"rangeEnd": "2023-01-01T06:00:00Z"})

    payload = json.loads(path.read_text())
    assert payload["aggregator/lastExecution"] == {"rangeEnd": "2023-01-01T06:00:00Z"}
    reloaded = MockDatastoreClient(project_id="jobs", persistence_path=path)
    assert reloaded.get(KEY) == {"rangeEnd": "2023-01-01T06:00:00Z"}


def test_corrupt_persistence_file_starts_empty(tmp_path) -> None:
    path = tmp_path / "jobs.json"
    path.write_text("{broken")

    client = MockDatastoreClient(project_id="jobs", persistence_path=path)

    assert client.get(KEY) is None


def test_compare_and_put_requires_matching_value() -> None:
    client = MockDatastoreClient(project_id="jobs")

    client.compare_and_put(KEY, {"v": 1}, matches=lambda current: current is None)
    client.compare_and_put(KEY, {"v": 2}, matches=lambda current: current == {"v": 1})

    with pytest.raises(EntityConflictError):
        client.compare_and_put(KEY, {"v": 3}, matches=lambda current: current == {"v": 1})
    with pytest.raises(EntityConflictError):
        client.compare_and_put(KEY, {"v": 3}, matches=lambda current: current is None)

    assert client.get(KEY) == {"v": 2}


def test_compare_and_put_sees_writes_from_another_client(tmp_path) -> None:
    path = tmp_path / "datastore" / "jobs.json"
    first = MockDatastoreClient(project_id="jobs", persistence_path=path)
    second = MockDatastoreClient(project_id="jobs", persistence_path=path)

    first.compare_and_put(KEY, {"v": 1}, matches=lambda current: current is None)

    with pytest.raises(EntityConflictError):
        second.compare_and_put(KEY, {"v": 2}, matches=lambda current: current is None)

    assert json.loads(path.read_text())["aggregator/lastExecution"] == {"v": 1}
    assert not path.with_name("jobs.json.partial").exists()


def test_put_keeps_keys_written_by_another_client(tmp_path) -> None:
    path = tmp_path / "jobs.json"
    first = MockDatastoreClient(project_id="jobs", persistence_path=path)
    second = MockDatastoreClient(project_id="jobs", persistence_path=path)
    other = DatastoreKey(kind="aggregator", name="other")

    first.put(KEY, {"v": 1})
    second.put(other, {"v": 2})

    payload = json.loads(path.read_text())
    assert payload == {"aggregator/lastExecution": {"v": 1}, "aggregator/other": {"v": 2}}
