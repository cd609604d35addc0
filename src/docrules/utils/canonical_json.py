"""
Canonical JSON serialization for deterministic hashing.
Request fingerprints, token payloads and audit entries all go through here.
"""

import json
from datetime import datetime
from typing import Any

from ..config import JSON_SEPARATORS, JSON_SORT_KEYS, JSON_ENSURE_ASCII


def _encode_extra(value: Any) -> Any:
    # Document snapshots may carry values JSON has no literal for.
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Unsupported type {type(value).__name__}")


def canonicalize(obj: Any) -> str:
    """
    Serialize an object to canonical JSON.

    Canonical properties:
    - Keys are sorted
    - No whitespace
    - Sets, bytes and datetimes have a single fixed encoding

    Args:
        obj: Python object to serialize

    Returns:
        Canonical JSON string

    Raises:
        TypeError: If object is not JSON-serializable
    """
    try:
        return json.dumps(
            obj,
            separators=JSON_SEPARATORS,
            sort_keys=JSON_SORT_KEYS,
            ensure_ascii=JSON_ENSURE_ASCII,
            allow_nan=False,  # Reject NaN/Infinity for determinism
            default=_encode_extra,
        )
    except (TypeError, ValueError) as e:
        raise TypeError(f"Object not JSON-serializable: {e}")


def canonicalize_bytes(obj: Any) -> bytes:
    """Serialize an object to canonical JSON as UTF-8 bytes."""
    return canonicalize(obj).encode('utf-8')
