"""
Configuration constants for docrules.
These are immutable system constants; runtime knobs come from the environment.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Cryptographic constants
HASH_ALGORITHM = "sha256"
KEY_SIZE_BYTES = 32

# Request operations
OPERATION_READ = "read"
OPERATION_CREATE = "create"
OPERATION_UPDATE = "update"
OPERATION_DELETE = "delete"
VALID_OPERATIONS = frozenset([OPERATION_READ, OPERATION_CREATE, OPERATION_UPDATE, OPERATION_DELETE])
MUTATING_OPERATIONS = frozenset([OPERATION_CREATE, OPERATION_UPDATE, OPERATION_DELETE])

# Clause categories ("write" stands for every mutating operation)
CATEGORY_WRITE = "write"
VALID_CATEGORIES = VALID_OPERATIONS | frozenset([CATEGORY_WRITE])

# Decision reasons
REASON_ALLOWED = "Allowed"
REASON_NO_MATCHING_RULE = "NoMatchingRule"
REASON_NO_CLAUSE = "NoClauseForOperation"
REASON_PREDICATE_FALSE = "PredicateFalse"
REASON_LOOKUP_TIMEOUT = "LookupTimeout"
REASON_LOOKUP_ERROR = "LookupError"
REASON_EVALUATION_ERROR = "EvaluationError"
DENY_REASONS = frozenset([
    REASON_NO_MATCHING_RULE,
    REASON_NO_CLAUSE,
    REASON_PREDICATE_FALSE,
    REASON_LOOKUP_TIMEOUT,
    REASON_LOOKUP_ERROR,
    REASON_EVALUATION_ERROR,
])
VALID_REASONS = DENY_REASONS | frozenset([REASON_ALLOWED])

# Fields of a user profile visible to other authenticated users
PUBLIC_PROFILE_FIELDS = ("codinome", "anonAvatar", "interesses", "relationshipInterest")

# Path handling
PATH_SEPARATOR = "/"
DATABASE_PREFIX = "databases"
DOCUMENTS_SEGMENT = "documents"
DEFAULT_DATABASE = "(default)"

# Rules file
RULES_SCHEMA_VERSIONS = frozenset(["1", "2"])
DEFAULT_RULES_FILE = Path(__file__).parent / "rules" / "default_rules.yaml"

# Lookup budget per evaluation (seconds)
DEFAULT_LOOKUP_DEADLINE = 2.0

# Database constants
DB_SCHEMA_VERSION = 1
AUDIT_HASH_CHAIN_INITIAL = "0" * 64  # Initial hash for first entry

# Canonical JSON settings
JSON_SEPARATORS = (',', ':')  # No whitespace
JSON_SORT_KEYS = True
JSON_ENSURE_ASCII = False

# Time constants
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Identity constants
KEY_ID_LENGTH = 64  # Hex-encoded SHA-256
PUBLIC_KEY_LENGTH = 32  # Ed25519 public key bytes
DEFAULT_TOKEN_TTL_SECONDS = 3600

# Environment variables
ENV_RULES_FILE = "DOCRULES_RULES_FILE"
ENV_LOG_LEVEL = "DOCRULES_LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment."""
    rules_file: Path
    log_level: str


def load_settings(environ: Optional[dict] = None) -> Settings:
    """
    Resolve runtime settings.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Settings object
    """
    env = os.environ if environ is None else environ
    rules_file = env.get(ENV_RULES_FILE)
    return Settings(
        rules_file=Path(rules_file) if rules_file else DEFAULT_RULES_FILE,
        log_level=env.get(ENV_LOG_LEVEL, "info").lower(),
    )
