"""
SQLite-backed document store.
"""

import json
from typing import Any, Mapping, Optional

from ..db.connection import DatabaseConnection
from ..db.migrations import initialize_schema
from ..errors import DatabaseBusyError, DatabaseError, LookupTimeoutError, StoreLookupError
from ..log import get_logger
from ..rules.paths import join_path, split_path
from ..utils.canonical_json import canonicalize
from ..utils.time import now
from .base import DocumentStore

logger = get_logger(__name__)


class SqliteDocumentStore(DocumentStore):
    """
    Document snapshots kept in the `documents` table.
    """

    def __init__(self, db: DatabaseConnection):
        """
        Initialize store.

        Args:
            db: Database connection (schema is created if missing)
        """
        self.db = db
        initialize_schema(self.db)

    def put(self, path: str, data: Mapping[str, Any]):
        """
        Insert or replace a document snapshot.

        Args:
            path: Document path
            data: Field-name-to-value mapping
        """
        _, segments = split_path(path)
        with self.db.transaction():
            self.db.execute(
                """
                INSERT INTO documents (path, collection, data, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (join_path(segments), segments[-2], canonicalize(dict(data)), now()),
            )

    def delete(self, path: str):
        _, segments = split_path(path)
        with self.db.transaction():
            self.db.execute("DELETE FROM documents WHERE path = ?", (join_path(segments),))

    def get(self, path: str) -> Optional[Mapping[str, Any]]:
        """
        Fetch a snapshot.

        Raises:
            LookupTimeoutError: If the database stayed locked
            StoreLookupError: If the query fails
        """
        row = self._query("SELECT data FROM documents WHERE path = ?", path)
        return json.loads(row['data']) if row else None

    def exists(self, path: str) -> bool:
        return self._query("SELECT 1 FROM documents WHERE path = ?", path) is not None

    def _query(self, sql: str, path: str):
        _, segments = split_path(path)
        try:
            return self.db.fetch_one(sql, (join_path(segments),))
        except DatabaseBusyError as e:
            logger.warning("store.lookup_timeout", path=path, error=str(e))
            raise LookupTimeoutError(f"Lookup of {path} timed out: {e}") from e
        except DatabaseError as e:
            logger.warning("store.lookup_failed", path=path, error=str(e))
            raise StoreLookupError(f"Lookup of {path} failed: {e}") from e
