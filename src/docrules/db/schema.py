"""
Database schema definitions for docrules.
All schema changes must be versioned and migrated.
"""

from ..config import DB_SCHEMA_VERSION


# Schema version tracking
SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT NOT NULL
)
"""

# Document snapshots readable by helper predicates
DOCUMENTS_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    path TEXT PRIMARY KEY,
    collection TEXT NOT NULL,
    data TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

DOCUMENTS_INDEX_COLLECTION = """
CREATE INDEX IF NOT EXISTS idx_documents_collection
ON documents(collection)
"""

# Decision log
DECISION_LOG_TABLE = """
CREATE TABLE IF NOT EXISTS decision_log (
    entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
    request_hash TEXT NOT NULL,
    actor TEXT,
    path TEXT NOT NULL,
    operation TEXT NOT NULL,
    allowed INTEGER NOT NULL,
    reason TEXT NOT NULL,
    rule TEXT,
    timestamp TEXT NOT NULL,
    previous_hash TEXT NOT NULL,
    entry_hash TEXT NOT NULL UNIQUE,
    CHECK(operation IN ('read', 'create', 'update', 'delete')),
    CHECK(allowed IN (0, 1)),
    CHECK(length(request_hash) = 64),
    CHECK(length(previous_hash) = 64),
    CHECK(length(entry_hash) = 64)
)
"""

DECISION_LOG_INDEX_ACTOR = """
CREATE INDEX IF NOT EXISTS idx_decision_actor
ON decision_log(actor, timestamp)
"""

DECISION_LOG_INDEX_PATH = """
CREATE INDEX IF NOT EXISTS idx_decision_path
ON decision_log(path, timestamp)
"""

REQUIRED_TABLES = ('schema_version', 'documents', 'decision_log')


def get_schema_statements() -> list[str]:
    """
    Get all schema creation statements in order.

    Returns:
        List of SQL statements to create schema
    """
    return [
        SCHEMA_VERSION_TABLE,
        DOCUMENTS_TABLE,
        DOCUMENTS_INDEX_COLLECTION,
        DECISION_LOG_TABLE,
        DECISION_LOG_INDEX_ACTOR,
        DECISION_LOG_INDEX_PATH,
    ]


def get_initial_version_insert() -> tuple[str, tuple]:
    """
    Get the initial schema version insert statement.

    Returns:
        Tuple of (SQL statement, parameters)
    """
    from ..utils.time import now

    sql = """
    INSERT INTO schema_version (version, applied_at, description)
    VALUES (?, ?, ?)
    """
    params = (DB_SCHEMA_VERSION, now(), "Documents and decision log")
    return sql, params
