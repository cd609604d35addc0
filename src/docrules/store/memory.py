"""
In-process document store, for tests and for embedding the evaluator next
to a cache of the database.
"""

import copy
import threading
from typing import Any, Dict, Mapping, Optional

from ..rules.paths import join_path, split_path
from .base import DocumentStore


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe dictionary of path to snapshot."""

    def __init__(self, documents: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        for path, data in (documents or {}).items():
            self.put(path, data)

    def put(self, path: str, data: Mapping[str, Any]):
        """Store a snapshot (replacing any previous one)."""
        key = _key(path)
        with self._lock:
            self._documents[key] = copy.deepcopy(dict(data))

    def delete(self, path: str):
        key = _key(path)
        with self._lock:
            self._documents.pop(key, None)

    def get(self, path: str) -> Optional[Mapping[str, Any]]:
        key = _key(path)
        with self._lock:
            data = self._documents.get(key)
            return copy.deepcopy(data) if data is not None else None

    def exists(self, path: str) -> bool:
        key = _key(path)
        with self._lock:
            return key in self._documents

    def __len__(self):
        with self._lock:
            return len(self._documents)


def _key(path: str) -> str:
    _, segments = split_path(path)
    return join_path(segments)
