"""
Domain-specific exceptions for docrules.
All exceptions are explicit and carry meaningful context.
"""


class DocRulesError(Exception):
    """Base exception for all docrules errors."""
    pass


class RuleError(DocRulesError):
    """Base exception for rule-table errors."""
    pass


class RuleDefinitionError(RuleError):
    """Raised when a rules definition fails validation."""
    pass


class AmbiguousRuleError(RuleDefinitionError):
    """Raised at load time when two path patterns tie for the same paths."""
    pass


class ExpressionSyntaxError(RuleDefinitionError):
    """Raised when a rule expression cannot be parsed."""

    def __init__(self, message: str, position: int = 0):
        self.detail = message
        self.position = position
        super().__init__(f"{message} (at offset {position})")


class ExpressionEvaluationError(RuleError):
    """Raised when an expression is applied to values of the wrong type."""
    pass


class RequestError(DocRulesError):
    """Base exception for malformed requests."""
    pass


class InvalidPathError(RequestError):
    """Raised when a document path is malformed."""
    pass


class InvalidRequestError(RequestError):
    """Raised when a request is malformed."""
    pass


class StoreError(DocRulesError):
    """Base exception for document lookup failures."""
    pass


class LookupTimeoutError(StoreError):
    """Raised when a document lookup exceeds its deadline."""
    pass


class StoreLookupError(StoreError):
    """Raised when the document store cannot be reached."""
    pass


class DatabaseError(DocRulesError):
    """Base exception for database-related errors."""
    pass


class DatabaseBusyError(DatabaseError):
    """Raised when SQLite gives up waiting for a lock."""
    pass


class SchemaError(DatabaseError):
    """Raised when database schema operations fail."""
    pass


class AuditError(DocRulesError):
    """Base exception for audit-related errors."""
    pass


class AuditIntegrityError(AuditError):
    """Raised when audit log integrity is compromised."""
    pass


class AuditChainBrokenError(AuditIntegrityError):
    """Raised when the audit hash chain is broken."""
    pass


class IdentityError(DocRulesError):
    """Base exception for identity-related errors."""
    pass


class KeypairError(IdentityError):
    """Raised when keypair operations fail."""
    pass


class TokenError(IdentityError):
    """Raised when an identity token is malformed, forged or expired."""
    pass


class InvariantViolationError(DocRulesError):
    """Raised when a core security invariant is violated."""
    pass
