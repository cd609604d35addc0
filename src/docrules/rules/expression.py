"""
Rule expression language: lexer, parser and evaluator.

Expressions are parsed once when the rule table is loaded and evaluated
against a fresh environment per request. Evaluation is pure apart from the
read-only lookups performed by get() and exists().
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Set, Tuple

from ..errors import ExpressionEvaluationError, ExpressionSyntaxError
from .functions import call_method, index_of, member_of
from .values import UNDEFINED, is_number, type_name, values_equal

MAX_CALL_DEPTH = 20


# ---------------------------------------------------------------------------
# Lexer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Token:
    type: str
    value: str
    position: int


_TWO_CHAR_OPERATORS = ("&&", "||", "==", "!=", "<=", ">=")
_ONE_CHAR_OPERATORS = "<>!+-"
_PUNCTUATION = {
    "(": "LPAREN",
    ")": "RPAREN",
    "[": "LBRACKET",
    "]": "RBRACKET",
    ",": "COMMA",
    ".": "DOT",
}


def tokenize(source: str) -> List[Token]:
    """Split an expression into tokens, ending with an EOF token."""
    tokens: List[Token] = []
    pos = 0
    length = len(source)

    while pos < length:
        ch = source[pos]

        if ch.isspace():
            pos += 1
            continue

        pair = source[pos:pos + 2]
        if pair in _TWO_CHAR_OPERATORS:
            tokens.append(Token("OP", pair, pos))
            pos += 2
            continue

        if ch in _ONE_CHAR_OPERATORS:
            tokens.append(Token("OP", ch, pos))
            pos += 1
            continue

        if ch in _PUNCTUATION:
            # A dot followed by a digit starts a number like .5
            if ch == "." and pos + 1 < length and source[pos + 1].isdigit():
                pass
            else:
                tokens.append(Token(_PUNCTUATION[ch], ch, pos))
                pos += 1
                continue

        if ch in ("'", '"'):
            start = pos
            pos += 1
            chars = []
            while pos < length and source[pos] != ch:
                if source[pos] == "\\" and pos + 1 < length:
                    pos += 1
                chars.append(source[pos])
                pos += 1
            if pos >= length:
                raise ExpressionSyntaxError("Unterminated string literal", start)
            pos += 1
            tokens.append(Token("STRING", "".join(chars), start))
            continue

        if ch.isdigit() or ch == ".":
            start = pos
            seen_dot = False
            while pos < length and (source[pos].isdigit() or (source[pos] == "." and not seen_dot)):
                if source[pos] == ".":
                    # Member access on an integer literal is not supported
                    if pos + 1 >= length or not source[pos + 1].isdigit():
                        break
                    seen_dot = True
                pos += 1
            tokens.append(Token("NUMBER", source[start:pos], start))
            continue

        if ch.isalpha() or ch == "_":
            start = pos
            while pos < length and (source[pos].isalnum() or source[pos] == "_"):
                pos += 1
            word = source[start:pos]
            tokens.append(Token("OP" if word == "in" else "IDENT", word, start))
            continue

        raise ExpressionSyntaxError(f"Unexpected character {ch!r}", pos)

    tokens.append(Token("EOF", "", length))
    return tokens


# ---------------------------------------------------------------------------
# Syntax tree
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class ListExpr:
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Member:
    target: Any
    name: str


@dataclass(frozen=True)
class Index:
    target: Any
    index: Any


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class MethodCall:
    target: Any
    name: str
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Any


@dataclass(frozen=True)
class Binary:
    op: str
    left: Any
    right: Any


@dataclass(frozen=True)
class Logical:
    op: str  # "&&" or "||"
    left: Any
    right: Any


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_COMPARISON_OPERATORS = frozenset(["==", "!=", "<", "<=", ">", ">=", "in"])


class _Parser:
    """Recursive descent parser producing the syntax tree."""

    def __init__(self, tokens: List[Token]):
        self._tokens = tokens
        self._pos = 0

    def parse(self):
        node = self._parse_or()
        tok = self._current()
        if tok.type != "EOF":
            raise ExpressionSyntaxError(f"Unexpected token {tok.value!r}", tok.position)
        return node

    def _parse_or(self):
        left = self._parse_and()
        while self._check_op("||"):
            self._advance()
            left = Logical("||", left, self._parse_and())
        return left

    def _parse_and(self):
        left = self._parse_comparison()
        while self._check_op("&&"):
            self._advance()
            left = Logical("&&", left, self._parse_comparison())
        return left

    def _parse_comparison(self):
        left = self._parse_additive()
        tok = self._current()
        if tok.type == "OP" and tok.value in _COMPARISON_OPERATORS:
            self._advance()
            right = self._parse_additive()
            left = Binary(tok.value, left, right)
            nxt = self._current()
            if nxt.type == "OP" and nxt.value in _COMPARISON_OPERATORS:
                raise ExpressionSyntaxError("Comparisons cannot be chained", nxt.position)
        return left

    def _parse_additive(self):
        left = self._parse_unary()
        while self._check_op("+") or self._check_op("-"):
            op = self._advance().value
            left = Binary(op, left, self._parse_unary())
        return left

    def _parse_unary(self):
        if self._check_op("!") or self._check_op("-"):
            op = self._advance().value
            return Unary(op, self._parse_unary())
        return self._parse_postfix()

    def _parse_postfix(self):
        node = self._parse_primary()
        while True:
            if self._check("DOT"):
                self._advance()
                name = self._expect("IDENT", "Expected field name after '.'").value
                if self._check("LPAREN"):
                    node = MethodCall(node, name, self._parse_arguments())
                else:
                    node = Member(node, name)
            elif self._check("LBRACKET"):
                self._advance()
                index = self._parse_or()
                self._expect("RBRACKET", "Expected ']'")
                node = Index(node, index)
            else:
                return node

    def _parse_primary(self):
        tok = self._current()

        if tok.type == "NUMBER":
            self._advance()
            return Literal(float(tok.value) if "." in tok.value else int(tok.value))

        if tok.type == "STRING":
            self._advance()
            return Literal(tok.value)

        if tok.type == "IDENT":
            self._advance()
            if tok.value == "true":
                return Literal(True)
            if tok.value == "false":
                return Literal(False)
            if tok.value == "null":
                return Literal(None)
            if self._check("LPAREN"):
                return Call(tok.value, self._parse_arguments())
            return Name(tok.value)

        if tok.type == "LPAREN":
            self._advance()
            node = self._parse_or()
            self._expect("RPAREN", "Expected ')'")
            return node

        if tok.type == "LBRACKET":
            self._advance()
            items = []
            if not self._check("RBRACKET"):
                items.append(self._parse_or())
                while self._check("COMMA"):
                    self._advance()
                    items.append(self._parse_or())
            self._expect("RBRACKET", "Expected ']'")
            return ListExpr(tuple(items))

        if tok.type == "EOF":
            raise ExpressionSyntaxError("Unexpected end of expression", tok.position)
        raise ExpressionSyntaxError(f"Unexpected token {tok.value!r}", tok.position)

    def _parse_arguments(self) -> Tuple[Any, ...]:
        self._expect("LPAREN", "Expected '('")
        args = []
        if not self._check("RPAREN"):
            args.append(self._parse_or())
            while self._check("COMMA"):
                self._advance()
                args.append(self._parse_or())
        self._expect("RPAREN", "Expected ')' after arguments")
        return tuple(args)

    # -- Utility methods --

    def _current(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.type != "EOF":
            self._pos += 1
        return tok

    def _check(self, token_type: str) -> bool:
        return self._current().type == token_type

    def _check_op(self, op: str) -> bool:
        tok = self._current()
        return tok.type == "OP" and tok.value == op

    def _expect(self, token_type: str, message: str) -> Token:
        tok = self._current()
        if tok.type != token_type:
            got = "end of expression" if tok.type == "EOF" else repr(tok.value)
            raise ExpressionSyntaxError(f"{message}, got {got}", tok.position)
        return self._advance()


class Expression:
    """
    A parsed, immutable rule expression.
    """

    def __init__(self, source: str):
        """
        Parse an expression.

        Args:
            source: Expression text

        Raises:
            ExpressionSyntaxError: If the text is not a valid expression
        """
        if not isinstance(source, str) or not source.strip():
            raise ExpressionSyntaxError("Expression must be a non-empty string", 0)
        self.source = source
        self.root = _Parser(tokenize(source)).parse()

    def free_names(self) -> Set[str]:
        """Names referenced by the expression (excluding function names)."""
        names: Set[str] = set()
        for node in _walk(self.root):
            if isinstance(node, Name):
                names.add(node.name)
        return names

    def calls(self) -> Set[Tuple[str, int]]:
        """Global function calls as (name, argument count) pairs."""
        return {
            (node.name, len(node.args))
            for node in _walk(self.root)
            if isinstance(node, Call)
        }

    def evaluate(self, env: 'Environment') -> Any:
        """Evaluate the expression in an environment."""
        return evaluate(self.root, env)

    def __repr__(self):
        return f"Expression({self.source!r})"


def _walk(node):
    yield node
    if isinstance(node, (Member, Unary)):
        yield from _walk(node.target if isinstance(node, Member) else node.operand)
    elif isinstance(node, Index):
        yield from _walk(node.target)
        yield from _walk(node.index)
    elif isinstance(node, (Binary, Logical)):
        yield from _walk(node.left)
        yield from _walk(node.right)
    elif isinstance(node, MethodCall):
        yield from _walk(node.target)
        for arg in node.args:
            yield from _walk(arg)
    elif isinstance(node, Call):
        for arg in node.args:
            yield from _walk(arg)
    elif isinstance(node, ListExpr):
        for item in node.items:
            yield from _walk(item)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

@dataclass
class Environment:
    """
    Everything an expression can see while it is evaluated.

    `functions` maps a name to a callable taking (env, args) and returning a
    value; `lookups` is the per-evaluation LookupScope.
    """
    variables: Mapping[str, Any]
    functions: Mapping[str, Any]
    lookups: Any
    depth: int = 0
    _overlay: Dict[str, Any] = field(default_factory=dict)

    def resolve(self, name: str) -> Any:
        if name in self._overlay:
            return self._overlay[name]
        if name in self.variables:
            return self.variables[name]
        raise ExpressionEvaluationError(f"Unknown name '{name}'")

    def child(self, bindings: Mapping[str, Any]) -> 'Environment':
        """Environment for a helper function body."""
        if self.depth + 1 > MAX_CALL_DEPTH:
            raise ExpressionEvaluationError(
                f"Function call depth exceeds {MAX_CALL_DEPTH}"
            )
        overlay = dict(self._overlay)
        overlay.update(bindings)
        return Environment(
            variables=self.variables,
            functions=self.functions,
            lookups=self.lookups,
            depth=self.depth + 1,
            _overlay=overlay,
        )


def evaluate(node, env: Environment) -> Any:
    """
    Evaluate a syntax tree node.

    Raises:
        ExpressionEvaluationError: If values of the wrong type are combined
        StoreError: If a lookup fails (propagated to the evaluator)
    """
    if isinstance(node, Literal):
        return node.value

    if isinstance(node, Name):
        return env.resolve(node.name)

    if isinstance(node, ListExpr):
        items = [evaluate(item, env) for item in node.items]
        if any(item is UNDEFINED for item in items):
            return UNDEFINED
        return items

    if isinstance(node, Logical):
        return _evaluate_logical(node, env)

    if isinstance(node, Member):
        return member_of(evaluate(node.target, env), node.name)

    if isinstance(node, Index):
        return index_of(evaluate(node.target, env), evaluate(node.index, env))

    if isinstance(node, Unary):
        return _evaluate_unary(node.op, evaluate(node.operand, env))

    if isinstance(node, Binary):
        return _evaluate_binary(node.op, evaluate(node.left, env), evaluate(node.right, env))

    if isinstance(node, MethodCall):
        target = evaluate(node.target, env)
        args = [evaluate(arg, env) for arg in node.args]
        return call_method(target, node.name, args)

    if isinstance(node, Call):
        function = env.functions.get(node.name)
        if function is None:
            raise ExpressionEvaluationError(f"Unknown function '{node.name}'")
        args = [evaluate(arg, env) for arg in node.args]
        return function(env, args)

    raise ExpressionEvaluationError(f"Unsupported node {type(node).__name__}")


def _evaluate_logical(node: Logical, env: Environment) -> Any:
    left = evaluate(node.left, env)
    _require_boolean(left, node.op)

    if node.op == "&&":
        # Right side is never evaluated unless the left side granted
        if left is not True:
            return left
        right = evaluate(node.right, env)
        _require_boolean(right, node.op)
        return right

    if left is True:
        return True
    right = evaluate(node.right, env)
    _require_boolean(right, node.op)
    if right is True:
        return True
    if left is UNDEFINED or right is UNDEFINED:
        return UNDEFINED
    return False


def _require_boolean(value: Any, op: str):
    if value is not UNDEFINED and not isinstance(value, bool):
        raise ExpressionEvaluationError(
            f"Operand of '{op}' must be a boolean, got {type_name(value)}"
        )


def _evaluate_unary(op: str, value: Any) -> Any:
    if value is UNDEFINED:
        return UNDEFINED
    if op == "!":
        if not isinstance(value, bool):
            raise ExpressionEvaluationError(f"'!' requires a boolean, got {type_name(value)}")
        return not value
    if not is_number(value):
        raise ExpressionEvaluationError(f"'-' requires a number, got {type_name(value)}")
    return -value


def _evaluate_binary(op: str, left: Any, right: Any) -> Any:
    if op in ("==", "!="):
        # Comparisons against undefined never hold
        if left is UNDEFINED or right is UNDEFINED:
            return False
        equal = values_equal(left, right)
        return equal if op == "==" else not equal

    if op == "in":
        if left is UNDEFINED or right is UNDEFINED:
            return False
        if isinstance(right, dict):
            try:
                return left in right
            except TypeError:
                return False
        if isinstance(right, (list, tuple, set, frozenset)):
            return any(values_equal(left, item) for item in right)
        raise ExpressionEvaluationError(f"'in' requires a list or map, got {type_name(right)}")

    if op in ("<", "<=", ">", ">="):
        if left is UNDEFINED or right is UNDEFINED:
            return False
        comparable = (
            (is_number(left) and is_number(right))
            or (isinstance(left, str) and isinstance(right, str))
        )
        if not comparable:
            raise ExpressionEvaluationError(
                f"Cannot compare {type_name(left)} with {type_name(right)}"
            )
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right

    if left is UNDEFINED or right is UNDEFINED:
        return UNDEFINED

    if op == "+":
        if is_number(left) and is_number(right):
            return left + right
        if isinstance(left, str) and isinstance(right, str):
            return left + right
        if isinstance(left, list) and isinstance(right, list):
            return left + right
        raise ExpressionEvaluationError(
            f"Cannot add {type_name(left)} and {type_name(right)}"
        )

    if op == "-":
        if is_number(left) and is_number(right):
            return left - right
        raise ExpressionEvaluationError(
            f"Cannot subtract {type_name(right)} from {type_name(left)}"
        )

    raise ExpressionEvaluationError(f"Unknown operator '{op}'")


def parse(source: str) -> Expression:
    """Parse expression text."""
    return Expression(source)


def is_granted(value: Any) -> bool:
    """A clause grants only on a literal true."""
    return value is True


