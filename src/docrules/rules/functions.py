"""
Builtin functions and methods of the rule language.
All of them are pure; get() and exists() only read through the lookup scope.
"""

import re
from typing import Any, Callable, Dict, List, Sequence

from ..errors import ExpressionEvaluationError, InvalidPathError
from .values import UNDEFINED, type_name, values_equal


class MapDiff:
    """
    Difference between two maps, as returned by `map.diff(other)`.
    Keys are compared on the map the method was called on.
    """

    def __init__(self, current: Dict[str, Any], previous: Dict[str, Any]):
        self.current = current
        self.previous = previous

    def added_keys(self) -> frozenset:
        return frozenset(k for k in self.current if k not in self.previous)

    def removed_keys(self) -> frozenset:
        return frozenset(k for k in self.previous if k not in self.current)

    def changed_keys(self) -> frozenset:
        return frozenset(
            k for k in self.current
            if k in self.previous and not values_equal(self.current[k], self.previous[k])
        )

    def unchanged_keys(self) -> frozenset:
        return frozenset(
            k for k in self.current
            if k in self.previous and values_equal(self.current[k], self.previous[k])
        )

    def affected_keys(self) -> frozenset:
        return self.added_keys() | self.removed_keys() | self.changed_keys()


# ---------------------------------------------------------------------------
# Member and index access
# ---------------------------------------------------------------------------

def member_of(target: Any, name: str) -> Any:
    """Field access; missing fields and access on null are undefined."""
    if isinstance(target, dict):
        return target.get(name, UNDEFINED)
    return UNDEFINED


def index_of(target: Any, index: Any) -> Any:
    """Subscript access on maps (by key) and lists (by position)."""
    if target is UNDEFINED or index is UNDEFINED:
        return UNDEFINED
    if isinstance(target, dict):
        if not isinstance(index, str):
            raise ExpressionEvaluationError(f"Map keys are strings, got {type_name(index)}")
        return target.get(index, UNDEFINED)
    if isinstance(target, list):
        if not isinstance(index, int) or isinstance(index, bool):
            raise ExpressionEvaluationError(f"List index must be an integer, got {type_name(index)}")
        if -len(target) <= index < len(target):
            return target[index]
        return UNDEFINED
    if target is None:
        return UNDEFINED
    raise ExpressionEvaluationError(f"Cannot index into {type_name(target)}")


# ---------------------------------------------------------------------------
# Methods
# ---------------------------------------------------------------------------

def _collection(value: Any, method: str) -> List[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    raise ExpressionEvaluationError(f"{method}() expects a list, got {type_name(value)}")


def _contains(items: Sequence[Any], value: Any) -> bool:
    return any(values_equal(value, item) for item in items)


def has_any(target: Sequence[Any], candidates: Any) -> bool:
    """
    True if at least one candidate is in target.

    Args:
        target: Field names or values present
        candidates: Allowlist to intersect with

    Returns:
        True when the intersection is non-empty
    """
    return any(_contains(target, c) for c in _collection(candidates, "hasAny"))


def has_all(target: Sequence[Any], candidates: Any) -> bool:
    """True if every candidate is in target."""
    return all(_contains(target, c) for c in _collection(candidates, "hasAll"))


def has_only(target: Sequence[Any], candidates: Any) -> bool:
    """True if target holds nothing outside candidates."""
    allowed = _collection(candidates, "hasOnly")
    return all(_contains(allowed, item) for item in target)


def _map_method(target: Dict[str, Any], name: str, args: List[Any]) -> Any:
    if name == "keys":
        _arity(name, args, 0)
        return list(target.keys())
    if name == "values":
        _arity(name, args, 0)
        return list(target.values())
    if name == "size":
        _arity(name, args, 0)
        return len(target)
    if name == "get":
        _arity(name, args, 2)
        key, default = args
        return target.get(key, default) if isinstance(key, str) else default
    if name == "diff":
        _arity(name, args, 1)
        other = args[0]
        if other is None:
            other = {}
        if not isinstance(other, dict):
            raise ExpressionEvaluationError(f"diff() expects a map, got {type_name(other)}")
        return MapDiff(target, other)
    raise ExpressionEvaluationError(f"Unknown map method '{name}'")


def _list_method(target: Sequence[Any], name: str, args: List[Any]) -> Any:
    if name == "size":
        _arity(name, args, 0)
        return len(target)
    if name == "hasAny":
        _arity(name, args, 1)
        return has_any(target, args[0])
    if name == "hasAll":
        _arity(name, args, 1)
        return has_all(target, args[0])
    if name == "hasOnly":
        _arity(name, args, 1)
        return has_only(target, args[0])
    if name == "toSet":
        _arity(name, args, 0)
        return frozenset(target)
    raise ExpressionEvaluationError(f"Unknown list method '{name}'")


def _string_method(target: str, name: str, args: List[Any]) -> Any:
    if name == "size":
        _arity(name, args, 0)
        return len(target)
    if name == "lower":
        _arity(name, args, 0)
        return target.lower()
    if name == "upper":
        _arity(name, args, 0)
        return target.upper()
    if name == "matches":
        _arity(name, args, 1)
        pattern = args[0]
        if not isinstance(pattern, str):
            raise ExpressionEvaluationError(f"matches() expects a string, got {type_name(pattern)}")
        try:
            return re.fullmatch(pattern, target) is not None
        except re.error as e:
            raise ExpressionEvaluationError(f"Invalid regular expression: {e}") from e
    raise ExpressionEvaluationError(f"Unknown string method '{name}'")


_DIFF_METHODS = {
    "addedKeys": MapDiff.added_keys,
    "removedKeys": MapDiff.removed_keys,
    "changedKeys": MapDiff.changed_keys,
    "unchangedKeys": MapDiff.unchanged_keys,
    "affectedKeys": MapDiff.affected_keys,
}


def call_method(target: Any, name: str, args: List[Any]) -> Any:
    """
    Dispatch `target.name(args)`.

    Method calls on undefined stay undefined, so a missing document never
    turns into a grant. Calling a method the target type lacks is an error.
    """
    if target is UNDEFINED or any(arg is UNDEFINED for arg in args):
        return UNDEFINED
    if isinstance(target, MapDiff):
        method = _DIFF_METHODS.get(name)
        if method is None:
            raise ExpressionEvaluationError(f"Unknown diff method '{name}'")
        _arity(name, args, 0)
        return method(target)
    if isinstance(target, dict):
        return _map_method(target, name, args)
    if isinstance(target, (list, tuple, set, frozenset)):
        return _list_method(target, name, args)
    if isinstance(target, str):
        return _string_method(target, name, args)
    raise ExpressionEvaluationError(f"{type_name(target)} has no method '{name}'")


def _arity(name: str, args: List[Any], expected: int):
    if len(args) != expected:
        raise ExpressionEvaluationError(
            f"{name}() takes {expected} argument(s), got {len(args)}"
        )


# ---------------------------------------------------------------------------
# Global functions
# ---------------------------------------------------------------------------

def _lookup_path(args: List[Any], name: str) -> Any:
    _arity(name, args, 1)
    path = args[0]
    if path is UNDEFINED:
        return UNDEFINED
    if not isinstance(path, str):
        raise ExpressionEvaluationError(f"{name}() expects a path string, got {type_name(path)}")
    return path


def builtin_get(env, args: List[Any]) -> Any:
    """
    Fetch another document.

    Returns:
        {'id': ..., 'data': {...}} or null when the document does not exist
    """
    path = _lookup_path(args, "get")
    if path is UNDEFINED:
        return UNDEFINED
    try:
        return env.lookups.get(path)
    except InvalidPathError as e:
        raise ExpressionEvaluationError(f"get() on malformed path: {e}") from e


def builtin_exists(env, args: List[Any]) -> Any:
    """True iff a document exists at the path."""
    path = _lookup_path(args, "exists")
    if path is UNDEFINED:
        return UNDEFINED
    try:
        return env.lookups.exists(path)
    except InvalidPathError as e:
        raise ExpressionEvaluationError(f"exists() on malformed path: {e}") from e


BUILTIN_FUNCTIONS: Dict[str, Callable] = {
    "get": builtin_get,
    "exists": builtin_exists,
}

BUILTIN_ARITY: Dict[str, int] = {
    "get": 1,
    "exists": 1,
}


class HelperFunction:
    """
    A named helper predicate declared in the rules file.
    Its body sees the caller's request context plus its own parameters.
    """

    def __init__(self, name: str, params: Sequence[str], body):
        self.name = name
        self.params = tuple(params)
        self.body = body

    def __call__(self, env, args: List[Any]) -> Any:
        if len(args) != len(self.params):
            raise ExpressionEvaluationError(
                f"{self.name}() takes {len(self.params)} argument(s), got {len(args)}"
            )
        return self.body.evaluate(env.child(dict(zip(self.params, args))))

    def __repr__(self):
        return f"HelperFunction({self.name}({', '.join(self.params)}))"
