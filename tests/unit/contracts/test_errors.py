# tests/unit/contracts/test_errors.py
"""Tests for the error hierarchy and failure records."""

from __future__ import annotations

import pytest

from nodeflow.contracts.errors import (
    BoundExceededError,
    ConditionEvaluationError,
    FieldNotFoundError,
    GraphValidationError,
    LoopLimitExceededError,
    NodeConfigurationError,
    NodeError,
    NodeflowError,
    NodeInputError,
    NodeTimeoutError,
    OrchestrationInvariantError,
    RunCancelledError,
    RunLimitExceededError,
    StateError,
    VariableNotFoundError,
)
from nodeflow.contracts.results import NodeFailure


class TestHierarchy:
    """Error categories map onto the documented taxonomy."""

    @pytest.mark.parametrize(
        ("error_cls", "base"),
        [
            (GraphValidationError, NodeConfigurationError),
            (ConditionEvaluationError, NodeInputError),
            (NodeInputError, NodeError),
            (LoopLimitExceededError, BoundExceededError),
            (NodeTimeoutError, BoundExceededError),
            (RunLimitExceededError, BoundExceededError),
            (VariableNotFoundError, StateError),
            (FieldNotFoundError, StateError),
            (RunCancelledError, NodeflowError),
        ],
    )
    def test_subclass(self, error_cls: type[Exception], base: type[Exception]) -> None:
        assert issubclass(error_cls, base)

    def test_invariant_error_outside_hierarchy(self) -> None:
        """Engine bugs are never caught as ordinary node failures."""
        assert not issubclass(OrchestrationInvariantError, NodeflowError)


class TestNodeAttribution:
    """Errors carry the id of the node they belong to."""

    def test_str_includes_node(self) -> None:
        error = NodeInputError("bad input", node_id="chunk1")
        assert str(error) == "node 'chunk1': bad input"
        assert error.message == "bad input"

    def test_attach_node_keeps_innermost(self) -> None:
        """The first (innermost) node to claim an error keeps it."""
        error = NodeInputError("bad input")
        error.attach_node("inner")
        error.attach_node("outer")
        assert error.node_id == "inner"

    def test_bound_error_carries_limit_and_actual(self) -> None:
        error = LoopLimitExceededError("while_loop exceeded max iterations: 3", limit=3, actual=4)
        assert (error.limit, error.actual) == (3, 4)
        assert error.partial_result is None

    def test_state_error_carries_name(self) -> None:
        error = FieldNotFoundError("field 'x' not found in input", name="x")
        assert error.name == "x"


class TestNodeFailure:
    """Run-level failure records."""

    def test_from_exception(self) -> None:
        failure = NodeFailure.from_exception(FieldNotFoundError("field 'x' not found in input", name="x", node_id="ex"))
        assert failure.node_id == "ex"
        assert failure.error_type == "FieldNotFoundError"
        assert failure.describe() == "FieldNotFoundError in node 'ex': field 'x' not found in input"

    def test_describe_without_node(self) -> None:
        failure = NodeFailure(node_id=None, error_type="RunCancelledError", message="cancelled")
        assert failure.describe() == "RunCancelledError: cancelled"
