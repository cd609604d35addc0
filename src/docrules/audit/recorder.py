"""
Decision recorder for the append-only decision log.
Entries are hash chained for tamper detection.
"""

from typing import Optional

from ..config import AUDIT_HASH_CHAIN_INITIAL
from ..db.connection import DatabaseConnection
from ..errors import AuditError, DatabaseError
from ..request import Decision, RequestContext
from ..utils.canonical_json import canonicalize_bytes
from ..utils.hashing import chain_hashes
from ..utils.time import now
from .log_schema import DecisionEntry, create_entry_payload


class DecisionRecorder:
    """
    Records decisions in the `decision_log` table.
    """

    def __init__(self, db: DatabaseConnection):
        """
        Initialize decision recorder.

        Args:
            db: Database connection
        """
        self.db = db

    def get_last_entry(self) -> Optional[DecisionEntry]:
        """
        Get the most recent entry.

        Returns:
            Last DecisionEntry or None if log is empty
        """
        row = self.db.fetch_one(
            "SELECT * FROM decision_log ORDER BY entry_id DESC LIMIT 1"
        )

        if not row:
            return None

        return DecisionEntry.from_row(row)

    def get_last_hash(self) -> str:
        """
        Get the hash of the last entry in the chain.

        Returns:
            Hash string (initial hash if log is empty)
        """
        last_entry = self.get_last_entry()
        if last_entry is None:
            return AUDIT_HASH_CHAIN_INITIAL
        return last_entry.entry_hash

    def record(self, request: RequestContext, decision: Decision) -> DecisionEntry:
        """
        Append a decision to the log.

        Args:
            request: Evaluated request
            decision: Its decision

        Returns:
            Created DecisionEntry

        Raises:
            AuditError: If recording fails
        """
        request_hash = request.get_request_hash()
        try:
            # Chain head and insert must not interleave with another writer
            with self.db.transaction():
                timestamp = now()
                previous_hash = self.get_last_hash()

                payload = create_entry_payload(
                    request_hash=request_hash,
                    actor=request.actor,
                    path=request.path,
                    operation=request.operation,
                    allowed=decision.allow,
                    reason=decision.reason,
                    rule=decision.rule,
                    timestamp=timestamp,
                )
                entry_hash = chain_hashes(previous_hash, canonicalize_bytes(payload))

                cursor = self.db.execute(
                    """
                    INSERT INTO decision_log (
                        request_hash, actor, path, operation, allowed, reason,
                        rule, timestamp, previous_hash, entry_hash
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        request_hash,
                        request.actor,
                        request.path,
                        request.operation,
                        1 if decision.allow else 0,
                        decision.reason,
                        decision.rule,
                        timestamp,
                        previous_hash,
                        entry_hash,
                    )
                )
                entry_id = cursor.lastrowid

        except DatabaseError as e:
            raise AuditError(f"Failed to record decision: {e}") from e

        return DecisionEntry(
            entry_id=entry_id,
            request_hash=request_hash,
            actor=request.actor,
            path=request.path,
            operation=request.operation,
            allowed=decision.allow,
            reason=decision.reason,
            rule=decision.rule,
            timestamp=timestamp,
            previous_hash=previous_hash,
            entry_hash=entry_hash,
        )

    def get_entry(self, entry_id: int) -> DecisionEntry:
        """
        Retrieve an entry by ID.

        Raises:
            AuditError: If entry not found
        """
        row = self.db.fetch_one(
            "SELECT * FROM decision_log WHERE entry_id = ?",
            (entry_id,)
        )

        if not row:
            raise AuditError(f"Decision entry {entry_id} not found")

        return DecisionEntry.from_row(row)

    def get_entries_by_actor(self, actor: str) -> list[DecisionEntry]:
        rows = self.db.fetch_all(
            "SELECT * FROM decision_log WHERE actor = ? ORDER BY entry_id",
            (actor,)
        )
        return [DecisionEntry.from_row(row) for row in rows]

    def get_entries_by_path(self, path: str) -> list[DecisionEntry]:
        rows = self.db.fetch_all(
            "SELECT * FROM decision_log WHERE path = ? ORDER BY entry_id",
            (path,)
        )
        return [DecisionEntry.from_row(row) for row in rows]

    def get_all_entries(self) -> list[DecisionEntry]:
        """
        Get all entries in chain order.

        Returns:
            List of DecisionEntry objects
        """
        rows = self.db.fetch_all(
            "SELECT * FROM decision_log ORDER BY entry_id"
        )

        return [DecisionEntry.from_row(row) for row in rows]

    def count_entries(self) -> int:
        row = self.db.fetch_one("SELECT COUNT(*) as count FROM decision_log")
        return row['count'] if row else 0
