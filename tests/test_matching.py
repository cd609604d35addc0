"""
Tests for document paths, path patterns and rule table resolution.
"""

import pytest

from docrules.errors import AmbiguousRuleError, InvalidPathError, RuleDefinitionError
from docrules.rules import PathPattern, load_rules_from_string, split_path


class TestSplitPath:
    """Test request path validation."""

    def test_plain_path(self):
        assert split_path("users/abc") == ("(default)", ["users", "abc"])

    def test_leading_slash(self):
        assert split_path("/users/abc/connections/xyz") == (
            "(default)", ["users", "abc", "connections", "xyz"]
        )

    def test_database_prefix(self):
        assert split_path("/databases/prod/documents/users/abc") == ("prod", ["users", "abc"])

    @pytest.mark.parametrize("path", [
        "",
        "/",
        "users",
        "users/",
        "users//abc",
        "users/../abc/x",
        "users/./x/y",
        "users/__id__",
        "users/abc/connections",
        "databases/prod/documents",
        "databases/prod/documents/users",
    ])
    def test_invalid_paths(self, path):
        with pytest.raises(InvalidPathError):
            split_path(path)

    def test_non_string_path(self):
        with pytest.raises(InvalidPathError):
            split_path(42)


class TestPathPattern:
    """Test pattern parsing and matching."""

    def test_variables(self):
        pattern = PathPattern.parse("users/{userId}/connections/{connectionId}")
        assert pattern.variables == ("userId", "connectionId")
        assert pattern.source == "users/{userId}/connections/{connectionId}"

    def test_slashes_trimmed(self):
        assert PathPattern.parse("/users/{userId}/").source == "users/{userId}"

    def test_match_binds_wildcards(self):
        pattern = PathPattern.parse("users/{userId}/connections/{connectionId}")
        assert pattern.match(["users", "abc", "connections", "xyz"]) == {
            "userId": "abc",
            "connectionId": "xyz",
        }

    def test_literal_mismatch(self):
        pattern = PathPattern.parse("users/{userId}")
        assert pattern.match(["rooms", "abc"]) is None
        assert pattern.match(["users", "abc", "missions", "m1"]) is None

    def test_specificity_prefers_literals(self):
        literal = PathPattern.parse("users/admin")
        wildcard = PathPattern.parse("users/{userId}")
        leading = PathPattern.parse("{collection}/admin")

        assert literal.specificity > wildcard.specificity
        assert wildcard.specificity > leading.specificity

    @pytest.mark.parametrize("pattern", [
        "",
        "users",
        "users/{userId}/connections",
        "users//{userId}",
        "users/{userId}/x/{userId}",
        "users/{user-id}",
        "users/id{x}",
    ])
    def test_invalid_patterns(self, pattern):
        with pytest.raises(RuleDefinitionError):
            PathPattern.parse(pattern)

    def test_overlap(self):
        a = PathPattern.parse("users/{userId}")
        assert a.overlaps(PathPattern.parse("{c}/{id}"))
        assert not a.overlaps(PathPattern.parse("rooms/{id}"))
        assert not a.overlaps(PathPattern.parse("users/{u}/missions/{m}"))


RULES = """
version: 2
rules:
  - match: users/{userId}
    allow:
      read: "true"
    rules:
      - match: connections/{connectionId}
        allow:
          read: "true"
  - match: users/admin
    allow:
      read: "true"
  - match: "{collection}/{docId}"
    allow:
      read: "true"
"""


class TestRuleTable:
    """Test most-specific RuleSet selection."""

    def test_nested_rule_selected(self):
        table = load_rules_from_string(RULES)
        match = table.match(["users", "abc", "connections", "xyz"])

        assert match.pattern == "users/{userId}/connections/{connectionId}"
        assert match.bindings == {"userId": "abc", "connectionId": "xyz"}

    def test_literal_beats_wildcard(self):
        table = load_rules_from_string(RULES)
        assert table.match(["users", "admin"]).pattern == "users/admin"
        assert table.match(["users", "abc"]).pattern == "users/{userId}"

    def test_catch_all_used_last(self):
        table = load_rules_from_string(RULES)
        match = table.match(["rooms", "r1"])
        assert match.pattern == "{collection}/{docId}"
        assert match.bindings == {"collection": "rooms", "docId": "r1"}

    def test_no_match(self):
        table = load_rules_from_string(RULES)
        assert table.match(["rooms", "r1", "messages", "m1"]) is None

    def test_same_shape_is_ambiguous(self):
        rules = """
version: 2
rules:
  - match: users/{a}
  - match: users/{b}
"""
        with pytest.raises(AmbiguousRuleError):
            load_rules_from_string(rules)

    def test_crossed_wildcards_are_ambiguous(self):
        """Test that {a}/x/y/{b} and {a}/{b}/y/z tie on specificity and overlap."""
        rules = """
version: 2
rules:
  - match: "{a}/x/y/{b}"
  - match: "{a}/{b}/y/z"
"""
        with pytest.raises(AmbiguousRuleError):
            load_rules_from_string(rules)

    def test_disjoint_patterns_with_equal_rank(self):
        rules = """
version: 2
rules:
  - match: users/{a}
  - match: rooms/{b}
"""
        table = load_rules_from_string(rules)
        assert len(table) == 2
