from __future__ import annotations
import copy
import json
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional

from settings import get_aggregator_settings

Entity = Dict[str, Any]


class EntityConflictError(Exception):
    """Stored entity did not match the expected value of a conditional put."""


@dataclass(frozen=True)
class DatastoreKey:
    kind: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.name}"


class MockDatastoreClient:

    def __init__(self, project_id: str, persistence_path: Optional[Path] = None) -> None:
        self.project_id = project_id
        self._entities: Dict[str, Entity] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def get(self, key: DatastoreKey) -> Optional[Entity]:
        with self._lock:
            entity = self._entities.get(str(key))
            if entity is None:
                return None
            return copy.deepcopy(entity)

    def put(self, key: DatastoreKey, entity: Entity) -> None:
        with self._lock:
            self._load_from_disk()
            self._entities[str(key)] = copy.deepcopy(entity)
            self._persist()

    def compare_and_put(
        self,
        key: DatastoreKey,
        entity: Entity,
        matches: Callable[[Optional[Entity]], bool],
    ) -> None:
        """Store ``entity`` only if ``matches`` accepts the current value.

        The current value is re-read from disk under the lock so that writers
        in other processes are seen. ``matches`` receives ``None`` when the key
        is absent.
        """

        with self._lock:
            self._load_from_disk()
            current = self._entities.get(str(key))
            if not matches(copy.deepcopy(current)):
                raise EntityConflictError(f"Entity {key} was modified concurrently.")
            self._entities[str(key)] = copy.deepcopy(entity)
            self._persist()

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        partial_path = self.persistence_path.with_name(self.persistence_path.name + ".partial")
        partial_path.write_text(json.dumps(self._entities, indent=2, sort_keys=True))
        os.replace(partial_path, self.persistence_path)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            return
        if not isinstance(data, dict):
            return

        self._entities = data


@lru_cache
def build_default_datastore(
    project_id: Optional[str] = None,
    root_path: Optional[str] = None,
) -> MockDatastoreClient:
    settings = get_aggregator_settings()
    project = settings.datastore_project_id if project_id is None else project_id
    mock_root = settings.mock_root_path if root_path is None else root_path
    persistence = Path(mock_root) / "datastore" / f"{project}.json" if mock_root else None
    return MockDatastoreClient(project_id=project, persistence_path=persistence)
