"""
Rule table model.
RuleSets and their clauses are immutable once loaded.
"""

from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from ..config import CATEGORY_WRITE, MUTATING_OPERATIONS, VALID_CATEGORIES
from ..errors import ExpressionEvaluationError, RuleDefinitionError
from .expression import Environment, Expression
from .paths import PathPattern
from .values import UNDEFINED, type_name


class Clause:
    """
    The predicate governing one operation category of a RuleSet.

    A clause holds one or more `allow` conditions; it grants when any of
    them evaluates to true.
    """

    def __init__(self, category: str, conditions: Tuple[Expression, ...]):
        """
        Initialize clause.

        Args:
            category: read, create, update, delete or write
            conditions: Parsed conditions, OR-combined
        """
        if category not in VALID_CATEGORIES:
            raise RuleDefinitionError(f"Invalid operation category: {category}")
        if not conditions:
            raise RuleDefinitionError(f"Clause '{category}' has no conditions")

        self.category = category
        self.conditions = tuple(conditions)

    def evaluate(self, env: Environment) -> Any:
        """
        Evaluate the conditions in order, stopping at the first grant.

        Returns:
            True, False or UNDEFINED

        Raises:
            ExpressionEvaluationError: If a condition is not boolean
        """
        saw_undefined = False
        for condition in self.conditions:
            value = condition.evaluate(env)
            if value is True:
                return True
            if value is UNDEFINED:
                saw_undefined = True
            elif value is not False:
                raise ExpressionEvaluationError(
                    f"Condition {condition.source!r} evaluated to {type_name(value)}, not bool"
                )
        return UNDEFINED if saw_undefined else False

    def extend(self, conditions: Tuple[Expression, ...]) -> 'Clause':
        return Clause(self.category, self.conditions + tuple(conditions))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category,
            'conditions': [c.source for c in self.conditions],
        }


class RuleSet:
    """
    The permission rules bound to one path pattern.
    """

    def __init__(self, pattern: PathPattern, clauses: Mapping[str, Clause]):
        self.pattern = pattern
        self.clauses = MappingProxyType(dict(clauses))

    def clause_for(self, operation: str) -> Optional[Clause]:
        """
        Select the clause for an operation.

        The clause named after the operation wins; mutating operations fall
        back to the combined `write` clause.
        """
        clause = self.clauses.get(operation)
        if clause is None and operation in MUTATING_OPERATIONS:
            clause = self.clauses.get(CATEGORY_WRITE)
        return clause

    def to_dict(self) -> Dict[str, Any]:
        """Convert rule set to dictionary."""
        return {
            'match': self.pattern.source,
            'variables': list(self.pattern.variables),
            'clauses': {name: clause.to_dict()['conditions'] for name, clause in sorted(self.clauses.items())},
        }

    def __repr__(self):
        return f"RuleSet({self.pattern.source!r}, {sorted(self.clauses)})"
