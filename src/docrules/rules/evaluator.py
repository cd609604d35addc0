"""
Deterministic policy evaluation.
Evaluation is pure apart from read-only lookups, and fails closed.
"""

from typing import Any, Dict, Optional

from ..config import (
    DEFAULT_LOOKUP_DEADLINE,
    OPERATION_CREATE,
    OPERATION_DELETE,
    REASON_EVALUATION_ERROR,
    REASON_LOOKUP_ERROR,
    REASON_LOOKUP_TIMEOUT,
    REASON_NO_CLAUSE,
    REASON_NO_MATCHING_RULE,
    REASON_PREDICATE_FALSE,
)
from ..errors import ExpressionEvaluationError, LookupTimeoutError, StoreError
from ..log import get_logger
from ..request import Decision, RequestContext
from ..store.base import DocumentStore, LookupScope
from .expression import Environment, is_granted
from .functions import BUILTIN_FUNCTIONS
from .matcher import RuleTable
from .paths import join_path, split_path

logger = get_logger(__name__)


class PolicyEvaluator:
    """
    Evaluates access requests against an immutable RuleTable.
    """

    def __init__(
        self,
        table: RuleTable,
        store: Optional[DocumentStore] = None,
        lookup_deadline: float = DEFAULT_LOOKUP_DEADLINE,
    ):
        """
        Initialize policy evaluator.

        Args:
            table: Loaded rule table
            store: Read-only document store for get()/exists() lookups
            lookup_deadline: Seconds one evaluation may spend on lookups
        """
        self.table = table
        self.store = store
        self.lookup_deadline = lookup_deadline

        self._functions: Dict[str, Any] = dict(BUILTIN_FUNCTIONS)
        self._functions.update(table.functions)

    def evaluate(self, request: RequestContext) -> Decision:
        """
        Decide a request.

        Evaluation logic:
        1. Split and validate the path
        2. Find the most specific RuleSet (none = NoMatchingRule)
        3. Select the operation's clause, falling back to `write` for
           mutating operations (none = NoClauseForOperation)
        4. Evaluate the clause; only exactly `true` allows

        Args:
            request: Access request

        Returns:
            Decision

        Raises:
            InvalidPathError: If the request path is malformed
        """
        database, segments = split_path(request.path)

        match = self.table.match(segments)
        if match is None:
            return Decision.denied(REASON_NO_MATCHING_RULE)

        clause = match.rule_set.clause_for(request.operation)
        if clause is None:
            return Decision.denied(REASON_NO_CLAUSE, match.pattern, bindings=match.bindings)

        env = Environment(
            variables=self._variables(request, database, segments, match.bindings),
            functions=self._functions,
            lookups=LookupScope(self.store, self.lookup_deadline),
        )

        try:
            value = clause.evaluate(env)
        except LookupTimeoutError as e:
            logger.warning("evaluation.lookup_timeout", path=request.path, error=str(e))
            return Decision.denied(REASON_LOOKUP_TIMEOUT, match.pattern, clause.category, match.bindings)
        except StoreError as e:
            logger.warning("evaluation.lookup_failed", path=request.path, error=str(e))
            return Decision.denied(REASON_LOOKUP_ERROR, match.pattern, clause.category, match.bindings)
        except ExpressionEvaluationError as e:
            logger.warning("evaluation.error", path=request.path, error=str(e))
            return Decision.denied(REASON_EVALUATION_ERROR, match.pattern, clause.category, match.bindings)

        if is_granted(value):
            return Decision.allowed(match.pattern, clause.category, match.bindings)
        return Decision.denied(REASON_PREDICATE_FALSE, match.pattern, clause.category, match.bindings)

    def _variables(
        self,
        request: RequestContext,
        database: str,
        segments,
        bindings: Dict[str, str],
    ) -> Dict[str, Any]:
        """Names visible to the clause: request, resource, database and wildcards."""
        doc_id = segments[-1]

        existing = None
        if request.operation != OPERATION_CREATE and request.resource is not None:
            existing = {'id': doc_id, 'data': dict(request.resource)}

        proposed = None
        if request.operation != OPERATION_DELETE and request.proposed is not None:
            proposed = {'id': doc_id, 'data': dict(request.proposed)}

        variables: Dict[str, Any] = dict(bindings)
        variables.update({
            'request': {
                'auth': {'uid': request.actor} if request.actor is not None else None,
                'method': request.operation,
                'path': join_path(segments),
                'resource': proposed,
            },
            'resource': existing,
            'database': database,
        })
        return variables
