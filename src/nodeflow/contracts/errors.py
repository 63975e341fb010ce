"""Error taxonomy for workflow compilation and execution.

Configuration errors are raised at compile time and never reach execution.
Everything raised while a run is in progress derives from NodeError and
carries the id of the node that failed; the scheduler attaches the id when
an executor raises without one.

Hierarchy:
    NodeflowError
    ├── NodeConfigurationError
    │   └── GraphValidationError
    ├── NodeError
    │   ├── NodeInputError
    │   │   └── ConditionEvaluationError
    │   ├── BoundExceededError
    │   │   ├── LoopLimitExceededError
    │   │   ├── NodeTimeoutError
    │   │   └── RunLimitExceededError
    │   ├── StateError
    │   │   ├── VariableNotFoundError
    │   │   └── FieldNotFoundError
    │   └── NodeExecutionError
    └── RunCancelledError

OrchestrationInvariantError is deliberately outside the hierarchy: it
signals an engine bug and is never converted into a failed run result.
"""

from __future__ import annotations

from typing import Any


class NodeflowError(Exception):
    """Base error for nodeflow.

    Attributes:
        message: Human-readable description without the node prefix
        node_id: Id of the node the error belongs to, if known
    """

    def __init__(self, message: str, *, node_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.node_id = node_id

    def attach_node(self, node_id: str) -> None:
        """Record the failing node unless a more specific one is already set."""
        if self.node_id is None:
            self.node_id = node_id

    def __str__(self) -> str:
        if self.node_id is None:
            return self.message
        return f"node '{self.node_id}': {self.message}"


# =============================================================================
# Compile-time errors
# =============================================================================


class NodeConfigurationError(NodeflowError):
    """Raised when a node's configuration payload is invalid."""


class GraphValidationError(NodeConfigurationError):
    """Raised when the workflow graph violates a structural invariant."""


# =============================================================================
# Runtime errors
# =============================================================================


class NodeError(NodeflowError):
    """Raised by a node while it executes.

    A node that produces a result and fails at the same time (a timeout
    with action "error") passes the result as partial_result; the scheduler
    records it before failing the run.
    """

    def __init__(
        self,
        message: str,
        *,
        node_id: str | None = None,
        partial_result: Any = None,
    ) -> None:
        super().__init__(message, node_id=node_id)
        self.partial_result = partial_result


class NodeInputError(NodeError):
    """Missing or malformed input, e.g. a non-array where an array is expected."""


class ConditionEvaluationError(NodeInputError):
    """A predicate failed while being evaluated against its input."""


class BoundExceededError(NodeError):
    """A configured bound was reached.

    Attributes:
        limit: The configured bound
        actual: The value observed when the bound was hit
    """

    def __init__(
        self,
        message: str,
        *,
        limit: float,
        actual: float,
        node_id: str | None = None,
        partial_result: Any = None,
    ) -> None:
        super().__init__(message, node_id=node_id, partial_result=partial_result)
        self.limit = limit
        self.actual = actual


class LoopLimitExceededError(BoundExceededError):
    """A while loop was still running when it reached its iteration bound."""


class NodeTimeoutError(BoundExceededError):
    """Wrapped work took longer than the timeout node allows."""


class RunLimitExceededError(BoundExceededError):
    """The run exceeded its wall-clock deadline or node execution budget."""


class StateError(NodeError):
    """A node referenced a name that does not exist.

    Attributes:
        name: The missing variable or field name
    """

    def __init__(self, message: str, *, name: str, node_id: str | None = None) -> None:
        super().__init__(message, node_id=node_id)
        self.name = name


class VariableNotFoundError(StateError):
    """A variable was read before any node set it."""


class FieldNotFoundError(StateError):
    """A required field is absent from the node's input."""


class NodeExecutionError(NodeError):
    """An executor raised something other than a NodeError.

    The original exception is chained via __cause__.
    """


class RunCancelledError(NodeflowError):
    """The run was cancelled externally before the named node started."""


class OrchestrationInvariantError(RuntimeError):
    """The engine broke one of its own guarantees (e.g. a node result written twice)."""
