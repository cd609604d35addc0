"""
Loading the rule table from YAML.

Layout of a rules file:

    version: 2
    functions:
      isMinor:
        params: [userId]
        body: get('users/' + userId).data.isMinor == true
    rules:
      - match: users/{userId}
        allow:
          - operations: [read, write]
            if: request.auth != null && request.auth.uid == userId
        rules:
          - match: connections/{connectionId}
            allow:
              write: request.auth.uid == userId

Nested `rules` are flattened by prefixing the parent pattern; the parent's
wildcards stay in scope for the nested conditions.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

import yaml

from ..config import RULES_SCHEMA_VERSIONS, VALID_CATEGORIES
from ..errors import ExpressionSyntaxError, RuleDefinitionError
from ..log import get_logger
from .expression import Expression
from .functions import BUILTIN_ARITY, HelperFunction
from .matcher import RuleTable
from .model import Clause, RuleSet
from .paths import PathPattern

logger = get_logger(__name__)

# Names every condition may reference besides path variables
CONTEXT_NAMES = frozenset(["request", "resource", "database"])


def load_rules(rules_path) -> RuleTable:
    """
    Parse a rules file into a RuleTable.

    Args:
        rules_path: Path to a YAML rules file

    Returns:
        RuleTable

    Raises:
        RuleDefinitionError: On unreadable files or schema errors
        AmbiguousRuleError: If two patterns tie
    """
    path = Path(rules_path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RuleDefinitionError(f"Cannot read rules file {path}: {e}") from e

    return load_rules_from_string(text, source=str(path))


def load_rules_from_string(text: str, source: str = "<string>") -> RuleTable:
    """Parse YAML text into a RuleTable."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise RuleDefinitionError(f"{source}: invalid YAML: {e}") from e

    return build_rule_table(data, source=source)


def build_rule_table(data: Any, source: str = "<mapping>") -> RuleTable:
    """
    Validate an already-parsed rules mapping and build the table.

    Args:
        data: Mapping with `version`, optional `functions` and `rules`
        source: Name used in error messages

    Returns:
        RuleTable
    """
    if not isinstance(data, dict):
        raise RuleDefinitionError(f"{source}: rules must be a mapping")

    version = data.get("version")
    if version is None:
        raise RuleDefinitionError(f"{source}: missing required 'version' field")
    if str(version) not in RULES_SCHEMA_VERSIONS:
        expected = sorted(RULES_SCHEMA_VERSIONS)
        raise RuleDefinitionError(
            f"{source}: unsupported version {version}, expected one of {expected}"
        )

    functions = _parse_functions(data.get("functions") or {}, source)

    rules_data = data.get("rules", [])
    if not isinstance(rules_data, list):
        raise RuleDefinitionError(f"{source}: 'rules' must be a list")

    rule_sets: List[RuleSet] = []
    for idx, rule_data in enumerate(rules_data):
        _parse_rule(rule_data, parent=None, functions=functions, out=rule_sets,
                    where=f"{source}: rules[{idx}]")

    table = RuleTable(rule_sets, functions)
    logger.info(
        "rules.loaded",
        source=source,
        rule_sets=len(table),
        functions=sorted(functions),
    )
    return table


def _parse_functions(functions_data: Any, source: str) -> Dict[str, HelperFunction]:
    if not isinstance(functions_data, dict):
        raise RuleDefinitionError(f"{source}: 'functions' must be a mapping")

    declared: Dict[str, Tuple[Tuple[str, ...], Expression]] = {}
    for name, definition in functions_data.items():
        where = f"{source}: function '{name}'"
        if not isinstance(name, str) or not name.isidentifier():
            raise RuleDefinitionError(f"{where}: invalid function name")
        if name in BUILTIN_ARITY or name in CONTEXT_NAMES:
            raise RuleDefinitionError(f"{where}: shadows a builtin name")
        if not isinstance(definition, dict):
            raise RuleDefinitionError(f"{where}: must be a mapping with 'params' and 'body'")

        params = definition.get("params", [])
        if not isinstance(params, list) or not all(isinstance(p, str) and p.isidentifier() for p in params):
            raise RuleDefinitionError(f"{where}: 'params' must be a list of identifiers")
        if len(set(params)) != len(params):
            raise RuleDefinitionError(f"{where}: duplicate parameter names")

        declared[name] = (tuple(params), _parse_expression(definition.get("body"), where))

    arity = dict(BUILTIN_ARITY)
    arity.update({name: len(params) for name, (params, _) in declared.items()})

    functions: Dict[str, HelperFunction] = {}
    for name, (params, body) in declared.items():
        where = f"{source}: function '{name}'"
        _check_references(body, CONTEXT_NAMES | set(params), arity, where)
        functions[name] = HelperFunction(name, params, body)
    return functions


def _parse_rule(
    rule_data: Any,
    parent: Optional[PathPattern],
    functions: Mapping[str, HelperFunction],
    out: List[RuleSet],
    where: str,
):
    if not isinstance(rule_data, dict):
        raise RuleDefinitionError(f"{where}: must be a mapping")

    match = rule_data.get("match")
    if not isinstance(match, str):
        raise RuleDefinitionError(f"{where}: missing required 'match' pattern")

    full = match.strip("/") if parent is None else f"{parent.source}/{match.strip('/')}"
    pattern = PathPattern.parse(full)
    where = f"{where} ({pattern.source})"

    unknown = set(rule_data) - {"match", "allow", "rules", "description"}
    if unknown:
        raise RuleDefinitionError(f"{where}: unknown keys {sorted(unknown)}")

    reserved = (CONTEXT_NAMES | set(functions)) & set(pattern.variables)
    if reserved:
        raise RuleDefinitionError(f"{where}: wildcard(s) {sorted(reserved)} shadow reserved names")

    arity = dict(BUILTIN_ARITY)
    arity.update({name: len(fn.params) for name, fn in functions.items()})
    known_names = CONTEXT_NAMES | set(pattern.variables)

    conditions: Dict[str, List[Expression]] = {}
    for categories, source in _allow_statements(rule_data.get("allow"), where):
        expression = _parse_expression(source, where)
        _check_references(expression, known_names, arity, where)
        for category in categories:
            conditions.setdefault(category, []).append(expression)

    clauses = {category: Clause(category, tuple(exprs)) for category, exprs in conditions.items()}
    out.append(RuleSet(pattern, clauses))

    nested = rule_data.get("rules", [])
    if not isinstance(nested, list):
        raise RuleDefinitionError(f"{where}: nested 'rules' must be a list")
    for idx, child in enumerate(nested):
        _parse_rule(child, parent=pattern, functions=functions, out=out,
                    where=f"{where}.rules[{idx}]")


def _allow_statements(allow: Any, where: str) -> List[Tuple[List[str], str]]:
    """
    Normalise the two accepted `allow` forms into (categories, condition).

    List form:    [{operations: [read, write], if: "..."}]
    Mapping form: {read: "...", write: ["...", "..."]}

    A statement without `if` grants unconditionally.
    """
    if allow is None:
        return []

    statements: List[Tuple[List[str], str]] = []

    if isinstance(allow, dict):
        for category, conditions in allow.items():
            categories = _categories([category], where)
            if isinstance(conditions, list):
                for condition in conditions:
                    statements.append((categories, _condition_text(condition, where)))
            else:
                statements.append((categories, _condition_text(conditions, where)))
        return statements

    if not isinstance(allow, list):
        raise RuleDefinitionError(f"{where}: 'allow' must be a list or mapping")

    for idx, statement in enumerate(allow):
        if not isinstance(statement, dict):
            raise RuleDefinitionError(f"{where}: allow[{idx}] must be a mapping")
        unknown = set(statement) - {"operations", "if"}
        if unknown:
            raise RuleDefinitionError(f"{where}: allow[{idx}] has unknown keys {sorted(unknown)}")
        operations = statement.get("operations")
        if isinstance(operations, str):
            operations = [operations]
        if not isinstance(operations, list) or not operations:
            raise RuleDefinitionError(f"{where}: allow[{idx}] needs a non-empty 'operations' list")
        statements.append((
            _categories(operations, where),
            _condition_text(statement.get("if", True), where),
        ))
    return statements


def _categories(names: List[Any], where: str) -> List[str]:
    for name in names:
        if name not in VALID_CATEGORIES:
            raise RuleDefinitionError(
                f"{where}: invalid operation {name!r}, must be one of {sorted(VALID_CATEGORIES)}"
            )
    return list(dict.fromkeys(names))


def _condition_text(condition: Any, where: str) -> str:
    # YAML turns bare true/false into booleans
    if isinstance(condition, bool):
        return "true" if condition else "false"
    if not isinstance(condition, str):
        raise RuleDefinitionError(f"{where}: condition must be a string, got {condition!r}")
    return condition


def _parse_expression(source: Any, where: str) -> Expression:
    if isinstance(source, bool):
        source = "true" if source else "false"
    try:
        return Expression(source)
    except ExpressionSyntaxError as e:
        raise ExpressionSyntaxError(f"{where}: {e.detail}", e.position) from e


def _check_references(
    expression: Expression,
    known_names: Set[str],
    arity: Mapping[str, int],
    where: str,
):
    unknown = expression.free_names() - set(known_names)
    if unknown:
        raise RuleDefinitionError(
            f"{where}: unknown name(s) {sorted(unknown)} in {expression.source!r}"
        )
    for name, argc in sorted(expression.calls()):
        if name not in arity:
            raise RuleDefinitionError(f"{where}: unknown function '{name}'")
        if arity[name] != argc:
            raise RuleDefinitionError(
                f"{where}: {name}() takes {arity[name]} argument(s), called with {argc}"
            )
