"""
Tests for security invariant validation.
These tests attempt to violate core security invariants.
"""

import pytest

from docrules import DocRulesEngine, Decision, RequestContext
from docrules.config import REASON_ALLOWED, REASON_PREDICATE_FALSE
from docrules.errors import InvalidRequestError, InvariantViolationError
from docrules.invariants import (
    check_all_invariants,
    validate_decision,
    validate_deterministic_evaluation,
    validate_no_implicit_allow,
    validate_operation,
    validate_request_hash_format,
)


class TestDecisionInvariants:
    """Test decision consistency checks."""

    def test_valid_decisions(self):
        validate_decision(Decision.allowed("users/{userId}", "read", {"userId": "a"}))
        validate_decision(Decision.denied(REASON_PREDICATE_FALSE, "users/{userId}", "read"))

    def test_allow_with_deny_reason(self):
        with pytest.raises(InvariantViolationError):
            validate_decision(Decision(True, REASON_PREDICATE_FALSE, "users/{userId}", "read"))

    def test_deny_with_allow_reason(self):
        with pytest.raises(InvariantViolationError):
            validate_decision(Decision(False, REASON_ALLOWED))

    def test_unknown_reason(self):
        with pytest.raises(InvariantViolationError):
            validate_decision(Decision(False, "Because"))

    def test_truthy_allow_flag(self):
        with pytest.raises(InvariantViolationError):
            validate_decision(Decision(1, REASON_ALLOWED, "users/{userId}", "read"))

    def test_implicit_allow(self):
        with pytest.raises(InvariantViolationError):
            validate_no_implicit_allow(Decision(True, REASON_ALLOWED))

    def test_nondeterminism_detected(self):
        with pytest.raises(InvariantViolationError):
            validate_deterministic_evaluation(
                Decision.denied(REASON_PREDICATE_FALSE),
                Decision.allowed("users/{userId}", "read", {}),
            )


class TestRequestInvariants:
    """Test request validation."""

    def test_invalid_operation(self):
        with pytest.raises(InvariantViolationError):
            validate_operation("write")

    def test_request_rejects_unknown_operation(self):
        with pytest.raises(InvalidRequestError):
            RequestContext("alice", "list", "users/alice")

    def test_request_rejects_empty_actor(self):
        with pytest.raises(InvalidRequestError):
            RequestContext("", "read", "users/alice")

    def test_request_rejects_non_mapping_snapshot(self):
        with pytest.raises(InvalidRequestError):
            RequestContext("alice", "update", "users/alice", resource=["not", "a", "map"])

    def test_from_dict_requires_fields(self):
        with pytest.raises(InvalidRequestError):
            RequestContext.from_dict({"actor": "alice", "path": "users/alice"})

    def test_request_hash_format(self):
        request = RequestContext("alice", "read", "users/alice")
        validate_request_hash_format(request.get_request_hash())

        with pytest.raises(InvariantViolationError):
            validate_request_hash_format("abc")
        with pytest.raises(InvariantViolationError):
            validate_request_hash_format("z" * 64)


class TestEngineInvariants:
    """Test that the engine upholds invariants end to end."""

    def test_check_all_passes_for_engine_decisions(self):
        with DocRulesEngine() as engine:
            request = RequestContext("alice", "read", "users/alice", resource={})
            decision = engine.authorize(request)
            check_all_invariants(request, decision)

    def test_authorize_dict(self):
        with DocRulesEngine() as engine:
            decision = engine.authorize_dict({
                "actor": "alice",
                "operation": "create",
                "path": "reports/r1",
                "proposed": {"reporterId": "alice"},
            })
            assert decision.allow

    def test_every_allow_names_rule_and_clause(self):
        with DocRulesEngine() as engine:
            for uid in ("alice", "bob"):
                decision = engine.authorize(RequestContext(uid, "read", f"users/{uid}", resource={}))
                assert decision.rule == "users/{userId}"
                assert decision.category == "read"
