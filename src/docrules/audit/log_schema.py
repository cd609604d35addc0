"""
Decision log entry structure.
Every decision is recorded immutably with hash chaining.
"""

from typing import Dict, Any, Optional
from dataclasses import dataclass


@dataclass
class DecisionEntry:
    """
    A single decision log entry.
    """
    entry_id: int
    request_hash: str
    actor: Optional[str]
    path: str
    operation: str
    allowed: bool
    reason: str
    rule: Optional[str]
    timestamp: str
    previous_hash: str
    entry_hash: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert decision entry to dictionary."""
        return {
            'entry_id': self.entry_id,
            'request_hash': self.request_hash,
            'actor': self.actor,
            'path': self.path,
            'operation': self.operation,
            'allowed': self.allowed,
            'reason': self.reason,
            'rule': self.rule,
            'timestamp': self.timestamp,
            'previous_hash': self.previous_hash,
            'entry_hash': self.entry_hash,
        }

    @classmethod
    def from_row(cls, row) -> 'DecisionEntry':
        """Create entry from database row."""
        return cls(
            entry_id=row['entry_id'],
            request_hash=row['request_hash'],
            actor=row['actor'],
            path=row['path'],
            operation=row['operation'],
            allowed=bool(row['allowed']),
            reason=row['reason'],
            rule=row['rule'],
            timestamp=row['timestamp'],
            previous_hash=row['previous_hash'],
            entry_hash=row['entry_hash'],
        )


def create_entry_payload(
    request_hash: str,
    actor: Optional[str],
    path: str,
    operation: str,
    allowed: bool,
    reason: str,
    rule: Optional[str],
    timestamp: str,
) -> Dict[str, Any]:
    """
    Create the hashed payload of a decision entry.

    Args:
        request_hash: Hash of the request context
        actor: Actor uid, or None
        path: Requested document path
        operation: Requested operation
        allowed: Whether access was granted
        reason: Decision reason
        rule: Matched rule pattern, if any
        timestamp: Timestamp of decision

    Returns:
        Payload dictionary
    """
    return {
        'request_hash': request_hash,
        'actor': actor,
        'path': path,
        'operation': operation,
        'allowed': allowed,
        'reason': reason,
        'rule': rule,
        'timestamp': timestamp,
    }


def entry_payload(entry: DecisionEntry) -> Dict[str, Any]:
    return create_entry_payload(
        request_hash=entry.request_hash,
        actor=entry.actor,
        path=entry.path,
        operation=entry.operation,
        allowed=entry.allowed,
        reason=entry.reason,
        rule=entry.rule,
        timestamp=entry.timestamp,
    )
