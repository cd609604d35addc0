"""
Database migration management for docrules.
Ensures schema is correctly initialized and versioned.
"""

from typing import Optional

from ..config import DB_SCHEMA_VERSION
from ..errors import DatabaseError, SchemaError
from .connection import DatabaseConnection
from .schema import REQUIRED_TABLES, get_schema_statements, get_initial_version_insert


def get_current_version(db: DatabaseConnection) -> Optional[int]:
    """
    Get current schema version from database.

    Args:
        db: Database connection

    Returns:
        Current version number or None if not initialized
    """
    table = db.fetch_one(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    if not table:
        return None

    row = db.fetch_one("SELECT MAX(version) as version FROM schema_version")
    if row and row['version'] is not None:
        return row['version']
    return None


def initialize_schema(db: DatabaseConnection):
    """
    Initialize database schema.

    Args:
        db: Database connection

    Raises:
        SchemaError: If initialization fails or the stored version differs
    """
    current_version = get_current_version(db)

    if current_version is not None:
        if current_version == DB_SCHEMA_VERSION:
            return
        elif current_version > DB_SCHEMA_VERSION:
            raise SchemaError(
                f"Database schema version {current_version} is newer than "
                f"expected version {DB_SCHEMA_VERSION}. Cannot downgrade."
            )
        else:
            raise SchemaError(
                f"Database schema version {current_version} is older than "
                f"expected version {DB_SCHEMA_VERSION}. Migration needed."
            )

    try:
        with db.transaction():
            for statement in get_schema_statements():
                db.execute(statement)

            sql, params = get_initial_version_insert()
            db.execute(sql, params)

    except DatabaseError as e:
        raise SchemaError(f"Failed to initialize schema: {e}") from e


def verify_schema(db: DatabaseConnection) -> bool:
    """
    Verify that schema is correct and complete.

    Args:
        db: Database connection

    Returns:
        True if schema is valid
    """
    if get_current_version(db) != DB_SCHEMA_VERSION:
        return False

    for table_name in REQUIRED_TABLES:
        row = db.fetch_one(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,)
        )
        if not row:
            return False

    return True
