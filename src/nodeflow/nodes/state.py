"""Nodes that read and write run-scoped state.

variable, accumulator and counter operate on the run's ExecutionState
slots. context_variable and context_constant define workflow context
entries that later nodes read through templates and conditions; they
produce no workflow output of their own.
"""

from __future__ import annotations

import copy
import json
import math
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from pydantic import AliasChoices, BaseModel, Field, model_validator

from nodeflow.contracts.enums import AccumulatorOperation, CounterOperation, NodeType, VariableOperation
from nodeflow.contracts.errors import NodeInputError
from nodeflow.nodes.base import BaseNode
from nodeflow.nodes.config_base import NodeSettings

if TYPE_CHECKING:
    from nodeflow.contracts.context import ExecutionContext
    from nodeflow.core.dag import NodeInfo


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


# === Variable ===


class VariableSettings(NodeSettings):
    name: str = Field(min_length=1, validation_alias=AliasChoices("name", "var_name"))
    operation: VariableOperation = Field(
        default=VariableOperation.GET,
        validation_alias=AliasChoices("operation", "var_op"),
    )


class VariableNode(BaseNode):
    """Read or write a named variable.

    set stores the node's first input and passes it through; get returns the
    stored value or fails with VariableNotFoundError.
    """

    node_type = NodeType.VARIABLE
    settings_model: ClassVar[type[NodeSettings]] = VariableSettings
    min_inputs = 0

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: VariableSettings = node.settings  # type: ignore[assignment]
        if settings.operation == VariableOperation.SET:
            inputs = ctx.node_inputs(node.node_id)
            if not inputs:
                raise NodeInputError(f"variable set '{settings.name}' requires an input")
            value = inputs[0]
            ctx.set_variable(settings.name, value)
        else:
            value = ctx.get_variable(settings.name)
        return {"var_name": settings.name, "operation": str(settings.operation), "value": value}


# === Accumulator ===

_ACCUMULATOR_DEFAULTS: dict[AccumulatorOperation, Any] = {
    AccumulatorOperation.SUM: 0,
    AccumulatorOperation.PRODUCT: 1,
    AccumulatorOperation.CONCAT: "",
    AccumulatorOperation.ARRAY: [],
    AccumulatorOperation.COUNT: 0,
}


class AccumulatorSettings(NodeSettings):
    operation: AccumulatorOperation = Field(
        default=AccumulatorOperation.SUM,
        validation_alias=AliasChoices("operation", "accum_op"),
    )
    initial_value: Any = Field(default=None, description="Starting value; defaults per operation")


def _fold(operation: AccumulatorOperation, current: Any, value: Any) -> Any:
    match operation:
        case AccumulatorOperation.SUM | AccumulatorOperation.PRODUCT:
            if not _is_number(value):
                raise NodeInputError(f"accumulator {operation} requires a numeric input, got {type(value).__name__}")
            if not _is_number(current):
                raise NodeInputError(f"accumulator holds {type(current).__name__}, cannot apply {operation}")
            return current + value if operation == AccumulatorOperation.SUM else current * value
        case AccumulatorOperation.CONCAT:
            if not isinstance(value, str):
                raise NodeInputError(f"accumulator concat requires a string input, got {type(value).__name__}")
            if not isinstance(current, str):
                raise NodeInputError(f"accumulator holds {type(current).__name__}, cannot apply concat")
            return current + value
        case AccumulatorOperation.ARRAY:
            if not isinstance(current, list):
                raise NodeInputError(f"accumulator holds {type(current).__name__}, cannot apply array")
            return [*current, value]
        case AccumulatorOperation.COUNT:
            if not _is_number(current):
                raise NodeInputError(f"accumulator holds {type(current).__name__}, cannot apply count")
            return current + 1


class AccumulatorNode(BaseNode):
    """Fold the first input into the run's accumulator slot.

    An empty slot starts from initial_value (or the operation's identity).
    Without inputs the node reports the current value unchanged.
    """

    node_type = NodeType.ACCUMULATOR
    settings_model: ClassVar[type[NodeSettings]] = AccumulatorSettings
    min_inputs = 0

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: AccumulatorSettings = node.settings  # type: ignore[assignment]
        operation = settings.operation
        # Copied so results never alias the shared defaults or the settings payload
        start = copy.deepcopy(settings.initial_value if settings.initial_value is not None else _ACCUMULATOR_DEFAULTS[operation])
        inputs = ctx.node_inputs(node.node_id)

        if not inputs:
            current = ctx.get_accumulator()
            return {"operation": str(operation), "value": start if current is None else current}

        def update(current: Any) -> Any:
            return _fold(operation, start if current is None else current, inputs[0])

        return {"operation": str(operation), "value": ctx.update_accumulator(update)}


# === Counter ===


class CounterSettings(NodeSettings):
    operation: CounterOperation = Field(
        default=CounterOperation.INCREMENT,
        validation_alias=AliasChoices("operation", "counter_op"),
    )
    delta: float = Field(default=1.0, allow_inf_nan=False, description="Step for increment/decrement")
    initial_value: float = Field(default=0.0, allow_inf_nan=False, description="Value restored by reset")


class CounterNode(BaseNode):
    """Increment, decrement, reset or read the run counter."""

    node_type = NodeType.COUNTER
    settings_model: ClassVar[type[NodeSettings]] = CounterSettings
    min_inputs = 0

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: CounterSettings = node.settings  # type: ignore[assignment]
        match settings.operation:
            case CounterOperation.INCREMENT:
                value = ctx.increment_counter(settings.delta)
            case CounterOperation.DECREMENT:
                value = ctx.increment_counter(-settings.delta)
            case CounterOperation.RESET:
                ctx.set_counter(settings.initial_value)
                value = settings.initial_value
            case CounterOperation.GET:
                value = ctx.get_counter()
        return {"operation": str(settings.operation), "value": value}


# === Workflow context ===

ValueType = Literal["any", "string", "number", "boolean", "json"]

_TRUE_STRINGS = frozenset({"1", "t", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "f", "false", "no", "off"})


def convert_typed_value(value: Any, value_type: str) -> Any:
    """Coerce an authored value to its declared type.

    Raises:
        ValueError: If the value cannot be represented as value_type
    """
    match value_type:
        case "any":
            return value
        case "string":
            return value if isinstance(value, str) else json.dumps(value)
        case "number":
            if _is_number(value):
                return float(value)
            if isinstance(value, str):
                number = float(value)
                if not math.isfinite(number):
                    raise ValueError(f"cannot convert {value!r} to a finite number")
                return number
            raise ValueError(f"cannot convert {type(value).__name__} to number")
        case "boolean":
            if isinstance(value, bool):
                return value
            if _is_number(value):
                return value != 0
            if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
                return value.strip().lower() in _TRUE_STRINGS
            raise ValueError(f"cannot convert {value!r} to boolean")
        case "json":
            if not isinstance(value, str):
                return value
            return json.loads(value)
    raise ValueError(f"unknown value type: {value_type!r}")


class ContextValue(BaseModel):
    """One named, optionally typed, context entry."""

    model_config = {"extra": "forbid", "frozen": True}

    name: str = Field(min_length=1)
    value: Any
    type: ValueType = "any"

    @model_validator(mode="after")
    def validate_value_type(self) -> ContextValue:
        convert_typed_value(self.value, self.type)
        return self

    def converted(self) -> Any:
        return convert_typed_value(self.value, self.type)


class ContextSettings(NodeSettings):
    name: str | None = Field(default=None, min_length=1, validation_alias=AliasChoices("name", "context_name"))
    value: Any = Field(default=None, validation_alias=AliasChoices("value", "context_value"))
    values: list[ContextValue] | None = Field(
        default=None,
        min_length=1,
        validation_alias=AliasChoices("values", "context_values"),
    )

    @model_validator(mode="after")
    def validate_entries(self) -> ContextSettings:
        if self.values is not None:
            if self.name is not None:
                raise ValueError("give either 'values' or 'name'/'value', not both")
            return self
        if self.name is None:
            raise ValueError("requires 'name' or 'values'")
        if "value" not in self.model_fields_set:
            raise ValueError(f"context entry '{self.name}' requires a 'value'")
        return self

    def entries(self) -> list[tuple[str, Any]]:
        if self.values is not None:
            return [(entry.name, entry.converted()) for entry in self.values]
        return [(self.name or "", self.value)]


class ContextVariableNode(BaseNode):
    """Define workflow context variables, overwriting earlier values."""

    node_type = NodeType.CONTEXT_VARIABLE
    settings_model: ClassVar[type[NodeSettings]] = ContextSettings
    min_inputs = 0
    produces_output = False

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: ContextSettings = node.settings  # type: ignore[assignment]
        defined: dict[str, Any] = {}
        for name, value in settings.entries():
            ctx.set_context_variable(name, value)
            defined[name] = value
        return {"type": "variable", "variables": defined}


class ContextConstantNode(BaseNode):
    """Define workflow constants that are not already set.

    Constants supplied when the run starts, or defined by an earlier node,
    win; the result reports the value in effect for each name.
    """

    node_type = NodeType.CONTEXT_CONSTANT
    settings_model: ClassVar[type[NodeSettings]] = ContextSettings
    min_inputs = 0
    produces_output = False

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: ContextSettings = node.settings  # type: ignore[assignment]
        defined: dict[str, Any] = {}
        for name, value in settings.entries():
            if not ctx.set_context_constant(name, value):
                value, _ = ctx.get_context_constant(name)
            defined[name] = value
        return {"type": "const", "constants": defined}
