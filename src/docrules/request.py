"""
Request contexts and decisions exchanged with the evaluator.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .config import REASON_ALLOWED, VALID_OPERATIONS
from .errors import InvalidRequestError
from .utils.hashing import fingerprint


@dataclass(frozen=True)
class RequestContext:
    """
    A single access request.

    Attributes:
        actor: Authenticated uid, or None for unauthenticated requests
        operation: read, create, update or delete
        path: Target document path
        resource: Existing document snapshot (absent on create)
        proposed: Document snapshot after the write (absent on delete)
    """
    actor: Optional[str]
    operation: str
    path: str
    resource: Optional[Mapping[str, Any]] = None
    proposed: Optional[Mapping[str, Any]] = None

    def __post_init__(self):
        if self.operation not in VALID_OPERATIONS:
            raise InvalidRequestError(f"Invalid operation: {self.operation}")
        if self.actor is not None and (not isinstance(self.actor, str) or not self.actor):
            raise InvalidRequestError("Actor must be a non-empty string or None")
        for name in ("resource", "proposed"):
            snapshot = getattr(self, name)
            if snapshot is not None and not isinstance(snapshot, Mapping):
                raise InvalidRequestError(f"{name} must be a mapping of field name to value")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RequestContext':
        """
        Create a request from dictionary form.

        Raises:
            InvalidRequestError: If required fields are missing
        """
        for required in ('operation', 'path'):
            if required not in data:
                raise InvalidRequestError(f"Missing required field: {required}")
        return cls(
            actor=data.get('actor'),
            operation=data['operation'],
            path=data['path'],
            resource=data.get('resource'),
            proposed=data.get('proposed'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'actor': self.actor,
            'operation': self.operation,
            'path': self.path,
            'resource': dict(self.resource) if self.resource is not None else None,
            'proposed': dict(self.proposed) if self.proposed is not None else None,
        }

    def get_request_hash(self) -> str:
        """
        Hash of the canonical request, used to key decision log entries.

        Raises:
            InvalidRequestError: If a snapshot holds values with no canonical
                JSON form (NaN, infinities, arbitrary objects)
        """
        try:
            return fingerprint(self.to_dict())
        except TypeError as e:
            raise InvalidRequestError(f"Request snapshots are not canonically encodable: {e}") from e


@dataclass(frozen=True)
class Decision:
    """
    Outcome of evaluating a request.

    Attributes:
        allow: True iff access is granted
        reason: Allowed, or the deny reason
        rule: Pattern of the matched RuleSet, if any
        category: Clause category that was evaluated, if any
        bindings: Wildcard bindings of the matched pattern
    """
    allow: bool
    reason: str
    rule: Optional[str] = None
    category: Optional[str] = None
    bindings: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def allowed(cls, rule: str, category: str, bindings: Mapping[str, str]) -> 'Decision':
        return cls(True, REASON_ALLOWED, rule, category, dict(bindings))

    @classmethod
    def denied(
        cls,
        reason: str,
        rule: Optional[str] = None,
        category: Optional[str] = None,
        bindings: Optional[Mapping[str, str]] = None,
    ) -> 'Decision':
        return cls(False, reason, rule, category, dict(bindings or {}))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allow': self.allow,
            'reason': self.reason,
            'rule': self.rule,
            'category': self.category,
            'bindings': dict(self.bindings),
        }
