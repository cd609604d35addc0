"""
Database connection management for docrules.
All database operations use parameterized queries to prevent injection.
"""

import sqlite3
import threading
from pathlib import Path
from typing import Optional
from contextlib import contextmanager

from ..errors import DatabaseBusyError, DatabaseError

IN_MEMORY = ":memory:"


def _wrap(error: sqlite3.Error, what: str) -> DatabaseError:
    message = str(error).lower()
    if isinstance(error, sqlite3.OperationalError) and ("locked" in message or "busy" in message):
        return DatabaseBusyError(f"{what}: {error}")
    return DatabaseError(f"{what}: {error}")


class DatabaseConnection:
    """
    Manages a shared SQLite connection.
    Statements are serialised through a re-entrant lock so evaluations on
    several threads may share one connection.
    """

    def __init__(self, db_path: str, timeout: float = 5.0):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
            timeout: Seconds SQLite waits on a locked database
        """
        self.db_path = db_path if db_path == IN_MEMORY else Path(db_path)
        self.timeout = timeout
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def connect(self) -> sqlite3.Connection:
        """
        Establish database connection.

        Returns:
            SQLite connection object

        Raises:
            DatabaseError: If connection fails
        """
        with self._lock:
            if self._connection is not None:
                return self._connection

            try:
                if self.db_path != IN_MEMORY:
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)

                conn = sqlite3.connect(
                    str(self.db_path),
                    timeout=self.timeout,
                    isolation_level='DEFERRED',
                    check_same_thread=False,  # Access is serialised by self._lock
                )
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA trusted_schema = OFF")
                if self.db_path != IN_MEMORY:
                    conn.execute("PRAGMA journal_mode = WAL")
                conn.row_factory = sqlite3.Row

                self._connection = conn
                return conn

            except sqlite3.Error as e:
                raise _wrap(e, "Failed to connect to database") from e

    def close(self):
        """Close database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """
        Execute a SQL statement with parameters.

        Args:
            sql: SQL statement (use ? for parameters)
            params: Parameter values

        Returns:
            Cursor object

        Raises:
            DatabaseBusyError: If the database stayed locked past the timeout
            DatabaseError: If execution fails
        """
        with self._lock:
            conn = self.connect()
            try:
                return conn.execute(sql, params)
            except sqlite3.Error as e:
                raise _wrap(e, "SQL execution failed") from e

    def fetch_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """Execute query and fetch one row."""
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchone()

    def fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        """Execute query and fetch all rows."""
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchall()

    @contextmanager
    def transaction(self):
        """
        Context manager for transactions.

        Usage:
            with db.transaction():
                db.execute(...)
        """
        with self._lock:
            conn = self.connect()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
