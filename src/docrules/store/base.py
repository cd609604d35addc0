"""
Read-only document lookup interface used by helper predicates.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from ..config import DEFAULT_LOOKUP_DEADLINE
from ..errors import LookupTimeoutError, StoreLookupError
from ..rules.paths import join_path, split_path


class DocumentStore(ABC):
    """
    Fetch-by-path capability backed by the document database.

    Implementations raise LookupTimeoutError when a lookup times out and
    StoreLookupError when the store cannot be reached. They never mutate
    documents on behalf of the evaluator.
    """

    @abstractmethod
    def get(self, path: str) -> Optional[Mapping[str, Any]]:
        """
        Fetch a document snapshot.

        Args:
            path: Normalised document path (`collection/id/...`)

        Returns:
            Field-name-to-value mapping, or None if the document is missing
        """

    def exists(self, path: str) -> bool:
        """True iff a document exists at the path."""
        return self.get(path) is not None


class LookupScope:
    """
    Lookups made during a single evaluation.

    Identical lookups are coalesced, and the whole evaluation shares one
    deadline. A scope is never shared between evaluations.
    """

    def __init__(
        self,
        store: Optional[DocumentStore],
        deadline: float = DEFAULT_LOOKUP_DEADLINE,
        clock=time.monotonic,
    ):
        """
        Initialize lookup scope.

        Args:
            store: Document store, or None when no lookups are possible
            deadline: Seconds the evaluation may spend on lookups
            clock: Monotonic clock (injectable for tests)
        """
        self.store = store
        self._clock = clock
        self._expires = clock() + deadline
        self._documents: Dict[str, Optional[Mapping[str, Any]]] = {}
        self._existence: Dict[str, bool] = {}
        self.store_calls = 0

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a document as the rule language sees it.

        Returns:
            {'id': ..., 'data': {...}} or None when missing
        """
        key, doc_id = self._normalise(path)
        if key not in self._documents:
            self._documents[key] = self._call(lambda: self._store().get(key))
        data = self._documents[key]
        if data is None:
            return None
        return {'id': doc_id, 'data': dict(data)}

    def exists(self, path: str) -> bool:
        key, _ = self._normalise(path)
        if key in self._documents:
            return self._documents[key] is not None
        if key not in self._existence:
            self._existence[key] = bool(self._call(lambda: self._store().exists(key)))
        return self._existence[key]

    def _normalise(self, path: str):
        _, segments = split_path(path)
        return join_path(segments), segments[-1]

    def _store(self) -> DocumentStore:
        if self.store is None:
            raise StoreLookupError("No document store configured")
        return self.store

    def _call(self, lookup):
        if self._clock() >= self._expires:
            raise LookupTimeoutError("Lookup deadline exceeded before request")
        self.store_calls += 1
        try:
            result = lookup()
        except TimeoutError as e:
            raise LookupTimeoutError(f"Store timed out: {e}") from e
        except OSError as e:
            raise StoreLookupError(f"Store unreachable: {e}") from e
        if self._clock() > self._expires:
            raise LookupTimeoutError("Lookup deadline exceeded")
        return result
