"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE: it has no runtime imports from core, engine
or nodes, so every other package can depend on it without import cycles.

Import patterns:
    from nodeflow.contracts import NodeType, RunResult, NodeInputError
    from nodeflow.contracts.context import ExecutionContext
"""

from nodeflow.contracts.enums import (
    AccumulatorOperation,
    CacheOperation,
    CounterOperation,
    NodeType,
    RunStatus,
    TimeoutAction,
    VariableOperation,
)
from nodeflow.contracts.errors import (
    BoundExceededError,
    ConditionEvaluationError,
    FieldNotFoundError,
    GraphValidationError,
    LoopLimitExceededError,
    NodeConfigurationError,
    NodeError,
    NodeExecutionError,
    NodeflowError,
    NodeInputError,
    NodeTimeoutError,
    OrchestrationInvariantError,
    RunCancelledError,
    RunLimitExceededError,
    StateError,
    VariableNotFoundError,
)
from nodeflow.contracts.results import NodeFailure, RunResult, SubgraphResult
from nodeflow.contracts.types import NodeID, RunID

__all__ = [
    "AccumulatorOperation",
    "BoundExceededError",
    "CacheOperation",
    "ConditionEvaluationError",
    "CounterOperation",
    "FieldNotFoundError",
    "GraphValidationError",
    "LoopLimitExceededError",
    "NodeConfigurationError",
    "NodeError",
    "NodeExecutionError",
    "NodeFailure",
    "NodeID",
    "NodeInputError",
    "NodeTimeoutError",
    "NodeType",
    "NodeflowError",
    "OrchestrationInvariantError",
    "RunCancelledError",
    "RunID",
    "RunLimitExceededError",
    "RunResult",
    "RunStatus",
    "StateError",
    "SubgraphResult",
    "TimeoutAction",
    "VariableNotFoundError",
    "VariableOperation",
]
