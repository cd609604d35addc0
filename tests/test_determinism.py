"""
Tests for deterministic, side-effect-free evaluation.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from docrules import InMemoryDocumentStore, PolicyEvaluator, RequestContext, load_rules
from docrules.config import DEFAULT_RULES_FILE
from docrules.invariants import validate_deterministic_evaluation


TABLE = load_rules(DEFAULT_RULES_FILE)

REQUESTS = [
    RequestContext("alice", "read", "users/alice", resource={"email": "a"}),
    RequestContext("bob", "read", "users/alice", resource={"codinome": "Fox"}),
    RequestContext("bob", "read", "users/alice", resource={"email": "a"}),
    RequestContext("minor", "create", "age_restricted_interactions/a1", proposed={}),
    RequestContext("adult", "read", "age_restricted_interactions/a1", resource={}),
    RequestContext(None, "read", "shop_items/hat", resource={}),
    RequestContext("bob", "update", "connection_invites/i1",
                   resource={"senderId": "alice", "receiverId": "bob", "status": "pending"},
                   proposed={"senderId": "alice", "receiverId": "bob", "status": "accepted"}),
    RequestContext("alice", "delete", "minigames/g1", resource={"player1": "alice"}),
    RequestContext("alice", "read", "nowhere/x"),
]


def make_evaluator():
    store = InMemoryDocumentStore({
        "users/minor": {"isMinor": True, "onboardingCompleted": True},
        "users/adult": {"isMinor": False, "onboardingCompleted": True},
    })
    return PolicyEvaluator(TABLE, store)


class TestDeterministicEvaluation:
    """Test that evaluation is deterministic."""

    @pytest.mark.parametrize("request_context", REQUESTS)
    def test_same_request_same_result(self, request_context):
        evaluator = make_evaluator()
        results = [evaluator.evaluate(request_context) for _ in range(5)]

        for result in results[1:]:
            validate_deterministic_evaluation(results[0], result)

    def test_fresh_evaluators_agree(self):
        first = [make_evaluator().evaluate(r) for r in REQUESTS]
        second = [make_evaluator().evaluate(r) for r in REQUESTS]
        assert first == second

    def test_concurrent_evaluation(self):
        """Test that evaluations on many threads match sequential results."""
        evaluator = make_evaluator()
        expected = [evaluator.evaluate(r) for r in REQUESTS]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(evaluator.evaluate, REQUESTS * 20))

        assert results == expected * 20

    def test_evaluation_does_not_mutate_snapshots(self):
        resource = {"senderId": "alice", "receiverId": "bob", "status": "pending"}
        proposed = dict(resource, status="accepted")
        request = RequestContext("bob", "update", "connection_invites/i1",
                                 resource=resource, proposed=proposed)

        make_evaluator().evaluate(request)

        assert resource == {"senderId": "alice", "receiverId": "bob", "status": "pending"}
        assert proposed["status"] == "accepted"

    def test_request_hash_stable(self):
        a = RequestContext("alice", "read", "users/alice", resource={"b": 1, "a": 2})
        b = RequestContext("alice", "read", "users/alice", resource={"a": 2, "b": 1})
        c = RequestContext("alice", "read", "users/bob", resource={"a": 2, "b": 1})

        assert a.get_request_hash() == b.get_request_hash()
        assert a.get_request_hash() != c.get_request_hash()
