"""
Runtime security invariant validation.
These checks ensure the evaluator never grants by accident.
"""

from .errors import InvariantViolationError
from .config import REASON_ALLOWED, VALID_OPERATIONS, VALID_REASONS
from .request import Decision, RequestContext


def validate_decision(decision: Decision):
    """
    Validate that a decision is well formed.

    A decision allows iff its reason is Allowed.

    Args:
        decision: Decision to check

    Raises:
        InvariantViolationError: If decision is invalid
    """
    if decision.allow is not True and decision.allow is not False:
        raise InvariantViolationError(f"Decision allow flag must be a bool, got {decision.allow!r}")

    if decision.reason not in VALID_REASONS:
        raise InvariantViolationError(f"Invalid decision reason: {decision.reason}")

    if decision.allow != (decision.reason == REASON_ALLOWED):
        raise InvariantViolationError(
            f"Decision allow={decision.allow} contradicts reason {decision.reason}"
        )


def validate_operation(operation: str):
    """
    Validate that operation is one of the allowed values.

    Raises:
        InvariantViolationError: If operation is invalid
    """
    if operation not in VALID_OPERATIONS:
        raise InvariantViolationError(f"Invalid operation: {operation}")


def validate_no_implicit_allow(decision: Decision):
    """
    Validate that allow decisions come from a matched rule and clause.

    Raises:
        InvariantViolationError: If allow is implicit
    """
    if decision.allow and (decision.rule is None or decision.category is None):
        raise InvariantViolationError(
            "Allow decision without a matched rule and clause (implicit allow)"
        )


def validate_deterministic_evaluation(first: Decision, second: Decision):
    """
    Validate that evaluating the same request twice agreed.

    Raises:
        InvariantViolationError: If results differ
    """
    if first != second:
        raise InvariantViolationError(
            f"Non-deterministic evaluation: same request produced "
            f"{first.to_dict()} and {second.to_dict()}"
        )


def validate_request_hash_format(request_hash: str):
    """
    Validate request hash format.

    Args:
        request_hash: Request hash to validate

    Raises:
        InvariantViolationError: If format is invalid
    """
    if not isinstance(request_hash, str):
        raise InvariantViolationError("Request hash must be a string")

    if len(request_hash) != 64:
        raise InvariantViolationError(
            f"Request hash must be 64 characters, got {len(request_hash)}"
        )

    try:
        int(request_hash, 16)
    except ValueError:
        raise InvariantViolationError("Request hash must be valid hexadecimal")


def check_all_invariants(request: RequestContext, decision: Decision):
    """
    Check all applicable invariants for an evaluated request.

    Args:
        request: Evaluated request
        decision: Its decision

    Raises:
        InvariantViolationError: If any invariant is violated
    """
    validate_operation(request.operation)
    validate_decision(decision)
    validate_no_implicit_allow(decision)
    validate_request_hash_format(request.get_request_hash())
