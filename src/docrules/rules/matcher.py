"""
Path-to-RuleSet resolution.
Patterns are ranked once at load time; matching never re-parses them.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import AmbiguousRuleError
from .functions import HelperFunction
from .model import RuleSet


class RuleMatch:
    """A RuleSet selected for a path, with the wildcard bindings."""

    def __init__(self, rule_set: RuleSet, bindings: Dict[str, str]):
        self.rule_set = rule_set
        self.bindings = bindings

    @property
    def pattern(self) -> str:
        return self.rule_set.pattern.source


class RuleTable:
    """
    Immutable table of RuleSets, grouped by segment count and ordered by
    specificity within each group.
    """

    def __init__(
        self,
        rule_sets: Iterable[RuleSet],
        functions: Optional[Mapping[str, HelperFunction]] = None,
    ):
        """
        Build the table.

        Args:
            rule_sets: RuleSets to index
            functions: Helper functions declared alongside the rules

        Raises:
            AmbiguousRuleError: If two overlapping patterns rank equally
        """
        rule_sets = list(rule_sets)
        check_ambiguity(rule_sets)

        groups: Dict[int, List[RuleSet]] = {}
        for rule_set in rule_sets:
            groups.setdefault(len(rule_set.pattern.segments), []).append(rule_set)

        self._groups: Dict[int, Tuple[RuleSet, ...]] = {
            size: tuple(sorted(members, key=lambda r: r.pattern.specificity, reverse=True))
            for size, members in groups.items()
        }
        self._rule_sets = tuple(rule_sets)
        self.functions: Dict[str, HelperFunction] = dict(functions or {})

    def match(self, segments: List[str]) -> Optional[RuleMatch]:
        """
        Find the most specific RuleSet for a document path.

        Args:
            segments: Validated path segments

        Returns:
            RuleMatch or None when no pattern matches
        """
        for rule_set in self._groups.get(len(segments), ()):
            bindings = rule_set.pattern.match(segments)
            if bindings is not None:
                return RuleMatch(rule_set, bindings)
        return None

    def __iter__(self):
        return iter(self._rule_sets)

    def __len__(self):
        return len(self._rule_sets)


def check_ambiguity(rule_sets: List[RuleSet]):
    """
    Reject overlapping patterns that tie on specificity.

    Raises:
        AmbiguousRuleError: On the first tie found
    """
    for i, first in enumerate(rule_sets):
        for second in rule_sets[i + 1:]:
            if not first.pattern.overlaps(second.pattern):
                continue
            if first.pattern.specificity == second.pattern.specificity:
                raise AmbiguousRuleError(
                    f"Patterns {first.pattern.source!r} and {second.pattern.source!r} "
                    f"match the same paths with equal specificity"
                )
