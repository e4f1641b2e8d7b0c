from __future__ import annotations
import io
import os
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import BinaryIO, Dict, Iterable, Iterator, Optional, Set
from uuid import uuid4

from settings import get_aggregator_settings


class MockGCSBucket:
    """Object bucket whose writers only commit an object when finalised."""

    def __init__(self, name: str, root_path: Optional[Path] = None) -> None:
        self.name = name
        self._objects: Dict[str, bytes] = {}
        self._known_names: Set[str] = set()
        self.root_path = root_path
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)
            self._load_existing_names()

    def put_object(self, name: str, data: bytes) -> None:
        with self.open_writer(name) as writer:
            writer.write(data)

    def get_object(self, name: str) -> bytes:
        with self._lock:
            data = self._objects.get(name)
            if data is not None:
                return data

        if self.root_path:
            path = self.root_path / name
            if path.is_file():
                data = path.read_bytes()
                with self._lock:
                    self._objects[name] = data
                    self._known_names.add(name)
                return data

        raise KeyError(f"Object {name!r} not found in bucket {self.name!r}.")

    @contextmanager
    def open_writer(self, name: str) -> Iterator[BinaryIO]:
        """Yield a binary handle for a new object, finalised on a clean exit.

        An exception raised inside the block discards everything written and
        leaves any previously committed object with the same name untouched.
        """

        if not self.root_path:
            buffer = io.BytesIO()
            try:
                yield buffer
                data = buffer.getvalue()
            finally:
                buffer.close()
            with self._lock:
                self._objects[name] = data
                self._known_names.add(name)
            return

        final_path = self.root_path / name
        final_path.parent.mkdir(parents=True, exist_ok=True)
        partial_path = final_path.with_name(f".{final_path.name}.{uuid4().hex}.partial")
        try:
            with partial_path.open("wb") as handle:
                yield handle
            self._finalize(partial_path, final_path)
        finally:
            partial_path.unlink(missing_ok=True)
        with self._lock:
            self._objects.pop(name, None)
            self._known_names.add(name)

    def list_objects(self) -> Iterable[str]:
        with self._lock:
            names = set(self._known_names)
            names.update(self._objects.keys())

        if self.root_path:
            for path in self.root_path.rglob("*"):
                if path.is_file() and not path.name.endswith(".partial"):
                    names.add(path.relative_to(self.root_path).as_posix())

        return sorted(names)

    def _finalize(self, partial_path: Path, final_path: Path) -> None:
        os.replace(partial_path, final_path)

    def _load_existing_names(self) -> None:
        assert self.root_path is not None
        for path in self.root_path.rglob("*"):
            if path.is_file() and not path.name.endswith(".partial"):
                self._known_names.add(path.relative_to(self.root_path).as_posix())


@lru_cache
def build_default_bucket(
    name: Optional[str] = None,
    root_path: Optional[str] = None,
) -> MockGCSBucket:
    settings = get_aggregator_settings()
    bucket_name = settings.bucket_name if name is None else name
    mock_root = settings.mock_root_path if root_path is None else root_path
    path = Path(mock_root) / "gcs" / bucket_name if mock_root else None
    return MockGCSBucket(name=bucket_name, root_path=path)
