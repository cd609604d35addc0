"""
Value model shared by the expression evaluator and its builtins.
"""

from typing import Any


class _Undefined:
    """Value of a missing field or of member access on null."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "undefined"


UNDEFINED = _Undefined()


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(left: Any, right: Any) -> bool:
    """Equality that never confuses booleans with numbers."""
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def type_name(value: Any) -> str:
    """Rule-language name of a value's type, for error messages."""
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "bool"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dict):
        return "map"
    if isinstance(value, list):
        return "list"
    if isinstance(value, (set, frozenset)):
        return "set"
    return type(value).__name__
