"""Status codes, modes, and kinds used across subsystem boundaries."""

from enum import StrEnum


class NodeType(StrEnum):
    """Built-in node type tags.

    The registry is keyed by these values. Workflow definitions refer to
    node types by their string value.
    """

    TEXT_INPUT = "text_input"
    DATE_INPUT = "date_input"
    CHUNK = "chunk"
    REVERSE = "reverse"
    EXTRACT = "extract"
    VISUALIZATION = "visualization"
    CONDITION = "condition"
    SWITCH = "switch"
    WHILE_LOOP = "while_loop"
    TIMEOUT = "timeout"
    CACHE = "cache"
    VARIABLE = "variable"
    ACCUMULATOR = "accumulator"
    COUNTER = "counter"
    CONTEXT_VARIABLE = "context_variable"
    CONTEXT_CONSTANT = "context_constant"


class RunStatus(StrEnum):
    """Overall outcome of a workflow run."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TimeoutAction(StrEnum):
    """What a timeout node does when the wrapped work overruns its limit."""

    ERROR = "error"
    CONTINUE_WITH_PARTIAL = "continue_with_partial"


class CacheOperation(StrEnum):
    """Operation performed by a cache node."""

    GET_OR_COMPUTE = "get_or_compute"
    GET = "get"
    SET = "set"
    DELETE = "delete"


class VariableOperation(StrEnum):
    """Operation performed by a variable node."""

    GET = "get"
    SET = "set"


class AccumulatorOperation(StrEnum):
    """Fold applied by an accumulator node."""

    SUM = "sum"
    PRODUCT = "product"
    CONCAT = "concat"
    ARRAY = "array"
    COUNT = "count"


class CounterOperation(StrEnum):
    """Operation performed by a counter node."""

    INCREMENT = "increment"
    DECREMENT = "decrement"
    RESET = "reset"
    GET = "get"
