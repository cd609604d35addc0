"""Rule language, rule table and policy evaluation for docrules."""

from .evaluator import PolicyEvaluator
from .expression import Environment, Expression, parse
from .loader import build_rule_table, load_rules, load_rules_from_string
from .matcher import RuleMatch, RuleTable
from .model import Clause, RuleSet
from .paths import PathPattern, join_path, split_path
from .values import UNDEFINED

__all__ = [
    'PolicyEvaluator',
    'Environment',
    'Expression',
    'parse',
    'build_rule_table',
    'load_rules',
    'load_rules_from_string',
    'RuleMatch',
    'RuleTable',
    'Clause',
    'RuleSet',
    'PathPattern',
    'join_path',
    'split_path',
    'UNDEFINED',
]
