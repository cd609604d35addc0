"""
Document paths and path patterns.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..config import DATABASE_PREFIX, DEFAULT_DATABASE, DOCUMENTS_SEGMENT, PATH_SEPARATOR
from ..errors import InvalidPathError, RuleDefinitionError

_RESERVED_ID = re.compile(r"^__.*__$")
_WILDCARD = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")


def split_path(path: str) -> Tuple[str, List[str]]:
    """
    Validate a document path and split it into segments.

    A leading slash is accepted, and a `databases/<db>/documents/` prefix is
    stripped.

    Args:
        path: Document path such as `users/abc` or
            `/databases/(default)/documents/users/abc`

    Returns:
        Tuple of (database name, path segments)

    Raises:
        InvalidPathError: If the path is empty, has empty or reserved
            segments, or does not name a document
    """
    if not isinstance(path, str):
        raise InvalidPathError(f"Path must be a string, got {type(path).__name__}")

    stripped = path[1:] if path.startswith(PATH_SEPARATOR) else path
    if not stripped:
        raise InvalidPathError("Path is empty")

    segments = stripped.split(PATH_SEPARATOR)
    database = DEFAULT_DATABASE

    if len(segments) >= 3 and segments[0] == DATABASE_PREFIX and segments[2] == DOCUMENTS_SEGMENT:
        database = segments[1]
        segments = segments[3:]
        if not database:
            raise InvalidPathError(f"Empty database name in {path!r}")
        if not segments:
            raise InvalidPathError(f"No document path after database prefix in {path!r}")

    for segment in segments:
        if not segment:
            raise InvalidPathError(f"Empty segment in {path!r}")
        if segment in (".", ".."):
            raise InvalidPathError(f"Relative segment {segment!r} in {path!r}")
        if _RESERVED_ID.match(segment):
            raise InvalidPathError(f"Reserved id {segment!r} in {path!r}")

    # Documents alternate collection/id, so a document path has an even length
    if len(segments) % 2 != 0:
        raise InvalidPathError(f"{path!r} names a collection, not a document")

    return database, segments


def join_path(segments: List[str]) -> str:
    return PATH_SEPARATOR.join(segments)


@dataclass(frozen=True)
class PathPattern:
    """
    A document path pattern made of literal segments and `{name}` wildcards.
    """
    source: str
    segments: Tuple[str, ...]
    wildcards: Tuple[Optional[str], ...]  # variable name per segment, None for literals

    @classmethod
    def parse(cls, pattern: str) -> 'PathPattern':
        """
        Parse a pattern like `users/{userId}/connections/{connectionId}`.

        Raises:
            RuleDefinitionError: If the pattern is malformed
        """
        if not isinstance(pattern, str) or not pattern.strip(PATH_SEPARATOR):
            raise RuleDefinitionError(f"Invalid match pattern: {pattern!r}")

        segments = tuple(pattern.strip(PATH_SEPARATOR).split(PATH_SEPARATOR))
        wildcards: List[Optional[str]] = []
        seen = set()

        for segment in segments:
            if not segment:
                raise RuleDefinitionError(f"Empty segment in pattern {pattern!r}")
            match = _WILDCARD.match(segment)
            if match:
                name = match.group(1)
                if name in seen:
                    raise RuleDefinitionError(
                        f"Wildcard '{name}' bound twice in pattern {pattern!r}"
                    )
                seen.add(name)
                wildcards.append(name)
            elif "{" in segment or "}" in segment:
                raise RuleDefinitionError(
                    f"Unsupported wildcard segment {segment!r} in {pattern!r}"
                )
            else:
                wildcards.append(None)

        if len(segments) % 2 != 0:
            raise RuleDefinitionError(f"Pattern {pattern!r} does not match documents")

        return cls(
            source=PATH_SEPARATOR.join(segments),
            segments=segments,
            wildcards=tuple(wildcards),
        )

    @property
    def variables(self) -> Tuple[str, ...]:
        return tuple(name for name in self.wildcards if name is not None)

    @property
    def specificity(self) -> Tuple[int, int]:
        """
        Ranking key: more literal segments first, then longer literal prefix.
        """
        literal_count = sum(1 for name in self.wildcards if name is None)
        prefix = 0
        for name in self.wildcards:
            if name is not None:
                break
            prefix += 1
        return literal_count, prefix

    def match(self, segments: List[str]) -> Optional[Dict[str, str]]:
        """
        Match path segments against the pattern.

        Returns:
            Variable bindings, or None if the path does not match
        """
        if len(segments) != len(self.segments):
            return None

        bindings: Dict[str, str] = {}
        for literal, name, segment in zip(self.segments, self.wildcards, segments):
            if name is None:
                if literal != segment:
                    return None
            else:
                bindings[name] = segment
        return bindings

    def overlaps(self, other: 'PathPattern') -> bool:
        """True if some document path matches both patterns."""
        if len(self.segments) != len(other.segments):
            return False
        for a, a_var, b, b_var in zip(self.segments, self.wildcards, other.segments, other.wildcards):
            if a_var is None and b_var is None and a != b:
                return False
        return True

    def __str__(self):
        return self.source
