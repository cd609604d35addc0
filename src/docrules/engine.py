"""
docrules public API.

This is the main entry point for the access-rule evaluator.
All authorization decisions flow through this engine.
"""

from typing import Dict, Any, Mapping, Optional, Union
from pathlib import Path

from .config import DEFAULT_LOOKUP_DEADLINE, load_settings
from .db.connection import IN_MEMORY, DatabaseConnection
from .db.migrations import initialize_schema, verify_schema
from .audit import DecisionRecorder, IntegrityVerifier
from .errors import DocRulesError, InvalidPathError, InvalidRequestError, TokenError
from .identity import IdentityToken, parse_token, verify_token
from .invariants import check_all_invariants
from .log import get_logger
from .request import Decision, RequestContext
from .rules import PolicyEvaluator, RuleTable, load_rules
from .store import DocumentStore, SqliteDocumentStore

logger = get_logger(__name__)


class DocRulesEngine:
    """
    Main engine for evaluating document access rules.

    This is the primary interface for:
    - Loading the rule table once at startup
    - Authorizing requests (directly or from an identity token)
    - Querying and verifying the decision log
    """

    def __init__(
        self,
        db_path: str = IN_MEMORY,
        rules: Union[RuleTable, str, Path, None] = None,
        store: Optional[DocumentStore] = None,
        issuer_public_key: Optional[bytes] = None,
        lookup_deadline: float = DEFAULT_LOOKUP_DEADLINE,
    ):
        """
        Initialize engine.

        Args:
            db_path: SQLite database for the decision log (and documents)
            rules: Loaded RuleTable or path to a rules file (defaults to the
                configured rules file)
            store: Document store for lookups (defaults to the SQLite
                `documents` table of db_path)
            issuer_public_key: Public key of the token issuer
            lookup_deadline: Seconds one evaluation may spend on lookups

        Raises:
            RuleDefinitionError: If the rules cannot be loaded
            AmbiguousRuleError: If two rule patterns tie
        """
        if isinstance(rules, RuleTable):
            table = rules
        else:
            table = load_rules(rules if rules is not None else load_settings().rules_file)

        self.db = DatabaseConnection(db_path)
        self.db.connect()
        initialize_schema(self.db)

        self.documents = store if store is not None else SqliteDocumentStore(self.db)
        self.evaluator = PolicyEvaluator(table, self.documents, lookup_deadline)
        self.recorder = DecisionRecorder(self.db)
        self.integrity_verifier = IntegrityVerifier(self.recorder)
        self.issuer_public_key = issuer_public_key

    def close(self):
        """Close database connection."""
        self.db.close()

    @property
    def rules(self) -> RuleTable:
        return self.evaluator.table

    # ==================== Authorization ====================

    def authorize(self, request: RequestContext) -> Decision:
        """
        Authorize a request.

        This is the core authorization function. It:
        1. Evaluates the rules
        2. Checks runtime invariants
        3. Records the decision in the decision log
        4. Returns the decision

        Args:
            request: Access request

        Returns:
            Decision

        Raises:
            InvalidPathError: If the request path is malformed
            InvalidRequestError: If a snapshot cannot be canonically encoded
            InvariantViolationError: If a security invariant is violated
            AuditError: If the decision cannot be recorded
        """
        try:
            request.get_request_hash()
            decision = self.evaluator.evaluate(request)
        except (InvalidPathError, InvalidRequestError) as e:
            logger.warning(
                "request.invalid",
                actor=request.actor,
                path=request.path,
                operation=request.operation,
                error=str(e),
            )
            raise

        check_all_invariants(request, decision)
        entry = self.recorder.record(request, decision)

        logger.info(
            "decision.allow" if decision.allow else "decision.deny",
            actor=request.actor,
            path=request.path,
            operation=request.operation,
            reason=decision.reason,
            rule=decision.rule,
            entry_id=entry.entry_id,
        )
        return decision

    def authorize_dict(self, request_dict: Dict[str, Any]) -> Decision:
        """
        Authorize a request from dictionary format.

        Args:
            request_dict: Request dictionary (actor, operation, path,
                resource, proposed)

        Returns:
            Decision
        """
        return self.authorize(RequestContext.from_dict(request_dict))

    def authorize_token(
        self,
        token: Union[IdentityToken, Dict[str, Any], None],
        operation: str,
        path: str,
        resource: Optional[Mapping[str, Any]] = None,
        proposed: Optional[Mapping[str, Any]] = None,
    ) -> Decision:
        """
        Authorize a request whose actor is asserted by an identity token.

        A missing token makes the request unauthenticated.

        Raises:
            TokenError: If the token does not verify
        """
        actor = None
        if token is not None:
            if self.issuer_public_key is None:
                raise TokenError("No token issuer key configured")
            if not isinstance(token, IdentityToken):
                token = parse_token(token)
            actor = verify_token(token, self.issuer_public_key)

        return self.authorize(RequestContext(
            actor=actor,
            operation=operation,
            path=path,
            resource=resource,
            proposed=proposed,
        ))

    # ==================== Decision Log ====================

    def get_decision_entry(self, entry_id: int) -> Dict[str, Any]:
        return self.recorder.get_entry(entry_id).to_dict()

    def get_decision_log(
        self,
        actor: Optional[str] = None,
        path: Optional[str] = None,
    ) -> list[Dict[str, Any]]:
        """
        Get decision log entries.

        Args:
            actor: Optional filter by actor uid
            path: Optional filter by request path

        Returns:
            List of entry dictionaries
        """
        if actor and path:
            entries = [e for e in self.recorder.get_entries_by_actor(actor) if e.path == path]
        elif actor:
            entries = self.recorder.get_entries_by_actor(actor)
        elif path:
            entries = self.recorder.get_entries_by_path(path)
        else:
            entries = self.recorder.get_all_entries()

        return [e.to_dict() for e in entries]

    def verify_audit_integrity(self) -> bool:
        """
        Verify decision log integrity.

        Returns:
            True if the log is intact

        Raises:
            AuditChainBrokenError: If chain is broken
            AuditIntegrityError: If entries are tampered
        """
        return self.integrity_verifier.verify_chain()

    def get_audit_summary(self) -> Dict[str, Any]:
        return self.integrity_verifier.get_chain_summary()

    # ==================== Utilities ====================

    def health_check(self) -> Dict[str, Any]:
        """
        Perform system health check.

        Returns:
            Health status dictionary
        """
        try:
            schema_valid = verify_schema(self.db)
            audit_summary = self.get_audit_summary()

            return {
                'status': 'healthy' if schema_valid and audit_summary['is_valid'] else 'unhealthy',
                'schema_valid': schema_valid,
                'audit_valid': audit_summary['is_valid'],
                'audit_entries': audit_summary['total_entries'],
                'rule_sets': len(self.rules),
                'functions': sorted(self.rules.functions),
            }
        except DocRulesError as e:
            logger.error("health_check.failed", error=str(e))
            return {
                'status': 'error',
                'error': str(e),
            }

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
