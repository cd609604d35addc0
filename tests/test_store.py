"""
Tests for document stores, lookup scopes and fail-closed lookup errors.
"""

import os
import tempfile

import pytest

from docrules import (
    InMemoryDocumentStore,
    PolicyEvaluator,
    RequestContext,
    SqliteDocumentStore,
    load_rules,
)
from docrules.config import (
    DEFAULT_RULES_FILE,
    REASON_ALLOWED,
    REASON_LOOKUP_ERROR,
    REASON_LOOKUP_TIMEOUT,
    REASON_PREDICATE_FALSE,
)
from docrules.db import DatabaseConnection
from docrules.errors import (
    DatabaseBusyError,
    DatabaseError,
    LookupTimeoutError,
    StoreLookupError,
)
from docrules.store import DocumentStore, LookupScope


TABLE = load_rules(DEFAULT_RULES_FILE)
RESTRICTED = "age_restricted_interactions/a1"


class RaisingStore(DocumentStore):
    """Store whose lookups always fail with the given exception."""

    def __init__(self, error):
        self.error = error

    def get(self, path):
        raise self.error


class CountingStore(InMemoryDocumentStore):

    def __init__(self, documents=None):
        super().__init__(documents)
        self.calls = []

    def get(self, path):
        self.calls.append(path)
        return super().get(path)


def read_restricted(store, actor="minor", **kwargs):
    evaluator = PolicyEvaluator(TABLE, store, **kwargs)
    return evaluator.evaluate(RequestContext(actor, "read", RESTRICTED, resource={}))


class TestInMemoryStore:
    """Test the in-memory store."""

    def test_put_get_delete(self):
        store = InMemoryDocumentStore()
        store.put("users/a", {"name": "A"})

        assert store.get("users/a") == {"name": "A"}
        assert store.exists("/users/a")
        assert len(store) == 1

        store.delete("users/a")
        assert store.get("users/a") is None
        assert not store.exists("users/a")

    def test_snapshots_are_copies(self):
        data = {"tags": ["a"]}
        store = InMemoryDocumentStore({"users/a": data})
        data["tags"].append("b")
        store.get("users/a")["tags"].append("c")

        assert store.get("users/a") == {"tags": ["a"]}


class TestSqliteStore:
    """Test the SQLite-backed store."""

    def test_put_get_exists(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with DatabaseConnection(os.path.join(tmpdir, "docs.db")) as db:
                store = SqliteDocumentStore(db)
                store.put("users/a", {"name": "A", "isMinor": True})

                assert store.get("users/a") == {"name": "A", "isMinor": True}
                assert store.exists("/databases/(default)/documents/users/a")
                assert store.get("users/b") is None
                assert not store.exists("users/b")

    def test_put_replaces(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with DatabaseConnection(os.path.join(tmpdir, "docs.db")) as db:
                store = SqliteDocumentStore(db)
                store.put("users/a", {"v": 1})
                store.put("users/a", {"v": 2})

                assert store.get("users/a") == {"v": 2}
                row = db.fetch_one("SELECT collection FROM documents WHERE path = ?", ("users/a",))
                assert row["collection"] == "users"

    def test_delete(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with DatabaseConnection(os.path.join(tmpdir, "docs.db")) as db:
                store = SqliteDocumentStore(db)
                store.put("users/a", {"v": 1})
                store.delete("users/a")
                assert store.get("users/a") is None

    def test_documents_survive_reopen(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = os.path.join(tmpdir, "docs.db")
            with DatabaseConnection(db_path) as db:
                SqliteDocumentStore(db).put("users/minor", {"isMinor": True, "onboardingCompleted": True})

            with DatabaseConnection(db_path) as db:
                decision = read_restricted(SqliteDocumentStore(db))
                assert decision.reason == REASON_ALLOWED

    def test_busy_database_is_timeout(self, monkeypatch):
        store = SqliteDocumentStore(DatabaseConnection(":memory:"))

        def busy(sql, params=()):
            raise DatabaseBusyError("database is locked")

        monkeypatch.setattr(store.db, "fetch_one", busy)
        with pytest.raises(LookupTimeoutError):
            store.get("users/a")

    def test_broken_database_is_lookup_error(self, monkeypatch):
        store = SqliteDocumentStore(DatabaseConnection(":memory:"))

        def broken(sql, params=()):
            raise DatabaseError("disk I/O error")

        monkeypatch.setattr(store.db, "fetch_one", broken)
        with pytest.raises(StoreLookupError):
            store.exists("users/a")


class TestLookupScope:
    """Test per-evaluation lookup caching and deadline."""

    def test_get_shape(self):
        scope = LookupScope(InMemoryDocumentStore({"users/a": {"x": 1}}))
        assert scope.get("users/a") == {"id": "a", "data": {"x": 1}}
        assert scope.get("users/b") is None

    def test_coalesced(self):
        store = CountingStore({"users/a": {"x": 1}})
        scope = LookupScope(store)

        scope.get("users/a")
        scope.get("/users/a")
        assert scope.exists("users/a")

        assert store.calls == ["users/a"]
        assert scope.store_calls == 1

    def test_deadline_exceeded_during_lookup(self):
        ticks = iter([0.0, 0.5, 5.0])
        scope = LookupScope(InMemoryDocumentStore(), deadline=1.0, clock=lambda: next(ticks))

        with pytest.raises(LookupTimeoutError):
            scope.get("users/a")

    def test_deadline_exceeded_before_lookup(self):
        ticks = iter([0.0, 2.0])
        scope = LookupScope(InMemoryDocumentStore(), deadline=1.0, clock=lambda: next(ticks))

        with pytest.raises(LookupTimeoutError):
            scope.exists("users/a")


class TestFailClosed:
    """Test that lookup failures deny with a distinguishable reason."""

    def test_store_timeout(self):
        decision = read_restricted(RaisingStore(LookupTimeoutError("slow")))
        assert not decision.allow
        assert decision.reason == REASON_LOOKUP_TIMEOUT

    def test_store_unreachable(self):
        decision = read_restricted(RaisingStore(StoreLookupError("down")))
        assert not decision.allow
        assert decision.reason == REASON_LOOKUP_ERROR

    def test_os_errors_mapped(self):
        assert read_restricted(RaisingStore(ConnectionRefusedError("refused"))).reason == REASON_LOOKUP_ERROR
        assert read_restricted(RaisingStore(TimeoutError("timed out"))).reason == REASON_LOOKUP_TIMEOUT

    def test_zero_deadline(self):
        store = InMemoryDocumentStore({"users/minor": {"isMinor": True, "onboardingCompleted": True}})
        decision = read_restricted(store, lookup_deadline=0.0)
        assert decision.reason == REASON_LOOKUP_TIMEOUT

    def test_no_store(self):
        decision = read_restricted(None)
        assert decision.reason == REASON_LOOKUP_ERROR

    def test_failure_irrelevant_when_short_circuited(self):
        """Test that an unauthenticated request never reaches a broken store."""
        decision = read_restricted(RaisingStore(StoreLookupError("down")), actor=None)
        assert decision.reason == REASON_PREDICATE_FALSE

    def test_helpers_share_one_lookup(self):
        store = CountingStore({"users/minor": {"isMinor": True, "onboardingCompleted": True}})
        decision = read_restricted(store)

        assert decision.allow
        assert store.calls == ["users/minor"]
