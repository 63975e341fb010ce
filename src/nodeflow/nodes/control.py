"""Control-flow nodes: branching, bounded loops, timeouts and caching.

condition and switch are branching nodes: their result names the branch
they selected and the scheduler activates only the outgoing edges labelled
with it. while_loop, timeout and cache may wrap a body sub-workflow, which
they execute through ExecutionContext.run_subgraph against the run's shared
state.
"""

from __future__ import annotations

import contextvars
import json
import queue
import threading
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

import structlog
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from nodeflow.contracts.enums import CacheOperation, NodeType, TimeoutAction
from nodeflow.contracts.errors import (
    ConditionEvaluationError,
    LoopLimitExceededError,
    NodeConfigurationError,
    NodeInputError,
    NodeTimeoutError,
)
from nodeflow.core.durations import format_duration, parse_duration
from nodeflow.engine.conditions import compile_condition, validate_condition
from nodeflow.nodes.base import BaseNode
from nodeflow.nodes.config_base import NodeSettings

if TYPE_CHECKING:
    from nodeflow.contracts.context import ExecutionContext
    from nodeflow.contracts.results import SubgraphResult
    from nodeflow.core.dag import NodeInfo

slog = structlog.get_logger(__name__)


def _validate_duration(value: str | int | None) -> str | int | None:
    if value is None:
        return None
    seconds = parse_duration(value)
    if seconds <= 0:
        raise ValueError(f"duration must be positive, got {value!r}")
    return value


def _condition_names(ctx: ExecutionContext) -> dict[str, Any]:
    return {"variables": ctx.variables(), "context": ctx.workflow_context()}


# === Condition ===


class ConditionSettings(NodeSettings):
    condition: str = Field(min_length=1, validation_alias=AliasChoices("condition", "expression"))

    @field_validator("condition")
    @classmethod
    def validate_expression(cls, v: str) -> str:
        return validate_condition(v)


class ConditionNode(BaseNode):
    """Two-way branch on a predicate over the first input.

    Outgoing edges carry the handle "true" or "false".
    """

    node_type = NodeType.CONDITION
    settings_model: ClassVar[type[NodeSettings]] = ConditionSettings

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: ConditionSettings = node.settings  # type: ignore[assignment]
        value = self.first_input(ctx, node)
        met = compile_condition(settings.condition).test(value, **_condition_names(ctx))
        return {
            "value": value,
            "condition_met": met,
            "condition": settings.condition,
            "path": "true" if met else "false",
        }

    def branch_labels(self, settings: BaseModel) -> frozenset[str] | None:
        return frozenset({"true", "false"})

    def selected_branch(self, node: NodeInfo, result: Any) -> str | None:
        if isinstance(result, Mapping):
            return result.get("path")
        return None


# === Switch ===


class SwitchCase(BaseModel):
    """One switch case: a predicate (or literal) and the branch it selects."""

    model_config = {"extra": "forbid", "frozen": True, "populate_by_name": True}

    when: str | None = Field(default=None, min_length=1)
    value: Any = None
    output_path: str | None = Field(default=None, min_length=1)
    is_default: bool = Field(default=False, validation_alias=AliasChoices("is_default", "default"))

    @field_validator("when")
    @classmethod
    def validate_when(cls, v: str | None) -> str | None:
        return None if v is None else validate_condition(v)

    @model_validator(mode="after")
    def validate_case(self) -> SwitchCase:
        if self.is_default:
            if self.when is not None:
                raise ValueError("the default case cannot have a 'when' predicate")
            return self
        if self.output_path is None:
            raise ValueError("non-default cases require an 'output_path'")
        if (self.when is not None) == ("value" in self.model_fields_set):
            raise ValueError("a case needs exactly one of 'when' or 'value'")
        return self

    @property
    def path(self) -> str:
        if self.output_path is not None:
            return self.output_path
        return "default"

    @property
    def label(self) -> str:
        if self.is_default:
            return "default"
        return self.when if self.when is not None else json.dumps(self.value, default=str)

    def matches(self, value: Any, names: Mapping[str, Any]) -> bool:
        if self.when is None:
            return bool(value == self.value)
        return compile_condition(self.when).test(value, **names)


class SwitchSettings(NodeSettings):
    cases: list[SwitchCase] = Field(min_length=1)

    @model_validator(mode="after")
    def validate_default_case(self) -> SwitchSettings:
        defaults = [i for i, case in enumerate(self.cases) if case.is_default]
        if len(defaults) != 1:
            raise ValueError(f"switch requires exactly one default case, found {len(defaults)}")
        if defaults[0] != len(self.cases) - 1:
            raise ValueError("the default case must be the last case")
        return self


class SwitchNode(BaseNode):
    """Multi-way branch: the first matching case selects the output path.

    Cases are tried in order. A case whose predicate fails to evaluate is
    skipped rather than failing the node. The default case, always last,
    matches when nothing else does.
    """

    node_type = NodeType.SWITCH
    settings_model: ClassVar[type[NodeSettings]] = SwitchSettings

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: SwitchSettings = node.settings  # type: ignore[assignment]
        value = self.first_input(ctx, node)
        names = _condition_names(ctx)

        for index, case in enumerate(settings.cases):
            if not case.is_default:
                try:
                    if not case.matches(value, names):
                        continue
                except ConditionEvaluationError as exc:
                    slog.debug("switch_case_skipped", node_id=node.node_id, case_index=index, error=exc.message)
                    continue
            return {
                "value": value,
                "matched": not case.is_default,
                "case": case.label,
                "output_path": case.path,
                "case_index": index,
            }
        # Unreachable: settings guarantee a trailing default case
        raise NodeInputError("switch reached the end of its cases without a default")

    def branch_labels(self, settings: BaseModel) -> frozenset[str] | None:
        assert isinstance(settings, SwitchSettings)
        return frozenset(case.path for case in settings.cases)

    def selected_branch(self, node: NodeInfo, result: Any) -> str | None:
        if isinstance(result, Mapping):
            return result.get("output_path")
        return None


# === While loop ===


class WhileLoopSettings(NodeSettings):
    condition: str = Field(min_length=1, validation_alias=AliasChoices("condition", "expression"))
    max_iterations: int | None = Field(default=None, gt=0, description="Overrides the engine default")

    @field_validator("condition")
    @classmethod
    def validate_expression(cls, v: str) -> str:
        return validate_condition(v)


class WhileLoopNode(BaseNode):
    """Repeat while a predicate holds, up to a bounded number of iterations.

    Each true evaluation is one iteration. With a body, the body runs once
    per iteration seeded with the current value and its output becomes the
    next value; without one the value is carried unchanged. A loop whose
    condition is still true after max_iterations iterations fails with
    LoopLimitExceededError.
    """

    node_type = NodeType.WHILE_LOOP
    settings_model: ClassVar[type[NodeSettings]] = WhileLoopSettings
    accepts_body = True

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: WhileLoopSettings = node.settings  # type: ignore[assignment]
        limit = settings.max_iterations or ctx.settings.default_max_iterations
        condition = compile_condition(settings.condition)

        value = self.first_input(ctx, node)
        iterations = 0
        while True:
            ctx.check_cancelled()
            if not condition.test(value, **_condition_names(ctx)):
                break
            if iterations >= limit:
                raise LoopLimitExceededError(
                    f"while_loop exceeded max iterations: {limit}",
                    limit=limit,
                    actual=iterations + 1,
                    partial_result={"final_value": value, "iterations": iterations, "condition": settings.condition},
                )
            if node.body is not None:
                value = ctx.run_subgraph(node.body, value).output
            iterations += 1

        return {"final_value": value, "iterations": iterations, "condition": settings.condition}


# === Timeout ===


class TimeoutSettings(NodeSettings):
    timeout: str | int | None = Field(default=None, description="Duration; defaults to the engine default")
    timeout_action: TimeoutAction = Field(
        default=TimeoutAction.ERROR,
        validation_alias=AliasChoices("timeout_action", "action"),
    )

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str | int | None) -> str | int | None:
        return _validate_duration(v)


class TimeoutNode(BaseNode):
    """Bound the duration of wrapped work.

    With a body, the body runs on a worker thread and the node waits at most
    the configured duration. On expiry the body is cancelled cooperatively
    (it stops at its next node boundary) and the node returns at once.
    Without a body, the elapsed time is read from the input's
    execution_time field.

    An overrun either fails with NodeTimeoutError (action "error") carrying
    the result as partial result, or is reported with partial_result=True
    and the run continues (action "continue_with_partial").
    """

    node_type = NodeType.TIMEOUT
    settings_model: ClassVar[type[NodeSettings]] = TimeoutSettings
    min_inputs = 0
    accepts_body = True

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: TimeoutSettings = node.settings  # type: ignore[assignment]
        limit = parse_duration(settings.timeout) if settings.timeout is not None else ctx.settings.default_timeout_seconds
        inputs = ctx.node_inputs(node.node_id)
        seed = inputs[0] if inputs else None

        if node.body is not None:
            value, elapsed, timed_out = self._run_bounded(ctx, node, seed, limit)
        else:
            if not inputs:
                raise NodeInputError("timeout node without a body requires an input")
            value, elapsed = seed, self._reported_execution_time(seed)
            timed_out = elapsed > limit

        result: dict[str, Any] = {
            "value": value,
            "timeout_duration": format_duration(limit),
            "execution_time": format_duration(elapsed),
            "timed_out": timed_out,
            "timeout_exceeded": timed_out,
        }
        if not timed_out:
            return result

        if settings.timeout_action == TimeoutAction.CONTINUE_WITH_PARTIAL:
            slog.warning("timeout_continued", node_id=node.node_id, limit=result["timeout_duration"])
            result["partial_result"] = True
            return result
        raise NodeTimeoutError(
            f"operation timed out after {result['execution_time']} (limit: {result['timeout_duration']})",
            limit=limit,
            actual=elapsed,
            partial_result=result,
        )

    def _reported_execution_time(self, value: Any) -> float:
        if not isinstance(value, Mapping) or "execution_time" not in value:
            return 0.0
        try:
            return parse_duration(value["execution_time"])
        except (TypeError, ValueError) as e:
            raise NodeInputError(f"invalid execution_time in timeout input: {value['execution_time']!r}") from e

    def _run_bounded(self, ctx: ExecutionContext, node: NodeInfo, seed: Any, limit: float) -> tuple[Any, float, bool]:
        """Run the body on a worker thread; returns (value, elapsed, timed_out)."""
        assert node.body is not None
        body = node.body
        cancel = threading.Event()
        outcome: queue.Queue[tuple[SubgraphResult | None, BaseException | None]] = queue.Queue(maxsize=1)

        def worker() -> None:
            try:
                outcome.put((ctx.run_subgraph(body, seed, cancel_event=cancel), None))
            except BaseException as exc:
                outcome.put((None, exc))

        started = time.perf_counter()
        thread = threading.Thread(
            target=contextvars.copy_context().run,
            args=(worker,),
            name=f"nodeflow-timeout-{node.node_id}",
            daemon=True,
        )
        thread.start()

        try:
            subgraph, error = outcome.get(timeout=limit)
        except queue.Empty:
            cancel.set()
            return seed, time.perf_counter() - started, True

        elapsed = time.perf_counter() - started
        if error is not None:
            raise error
        assert subgraph is not None
        return subgraph.output, elapsed, False


# === Cache ===


class CacheSettings(NodeSettings):
    key: str | None = Field(
        default=None,
        min_length=1,
        validation_alias=AliasChoices("key", "cache_key"),
        description="Key template; derived from node id and input when omitted",
    )
    ttl: str | int | None = Field(default=None, description="Entry lifetime; defaults to the engine default")
    operation: CacheOperation = Field(
        default=CacheOperation.GET_OR_COMPUTE,
        validation_alias=AliasChoices("operation", "cache_op"),
    )

    @field_validator("ttl")
    @classmethod
    def validate_ttl(cls, v: str | int | None) -> str | int | None:
        return _validate_duration(v)

    @model_validator(mode="after")
    def validate_key(self) -> CacheSettings:
        if self.key is None and self.operation != CacheOperation.GET_OR_COMPUTE:
            raise ValueError(f"cache operation '{self.operation}' requires a 'key'")
        return self


class CacheNode(BaseNode):
    """Memoise a value under a templated key with a TTL.

    get_or_compute returns the stored value on a hit. On a miss it runs the
    body (or takes the input as-is when there is no body), stores the
    result and returns it; concurrent misses on one key compute once. A
    failed computation stores nothing.
    """

    node_type = NodeType.CACHE
    settings_model: ClassVar[type[NodeSettings]] = CacheSettings
    min_inputs = 0
    accepts_body = True

    def validate(self, node: NodeInfo) -> None:
        settings: CacheSettings = node.settings  # type: ignore[assignment]
        if node.body is not None and settings.operation != CacheOperation.GET_OR_COMPUTE:
            raise NodeConfigurationError(f"cache operation '{settings.operation}' does not run a body")

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: CacheSettings = node.settings  # type: ignore[assignment]
        ttl = parse_duration(settings.ttl) if settings.ttl is not None else ctx.settings.default_cache_ttl_seconds
        inputs = ctx.node_inputs(node.node_id)
        key = self._resolve_key(ctx, node, settings, inputs)
        operation = settings.operation

        match operation:
            case CacheOperation.GET_OR_COMPUTE:
                if node.body is None and not inputs:
                    raise NodeInputError("cache get_or_compute without a body requires an input")
                seed = inputs[0] if inputs else None
                body = node.body

                def compute() -> Any:
                    if body is None:
                        return seed
                    return ctx.run_subgraph(body, seed).output

                value, hit = ctx.cache_get_or_fill(key, ttl, compute)
                slog.debug("cache_lookup", node_id=node.node_id, key=key, hit=hit)
                return {"operation": str(operation), "key": key, "hit": hit, "value": value, "ttl": format_duration(ttl)}
            case CacheOperation.GET:
                value, found = ctx.get_cache(key)
                return {"operation": str(operation), "key": key, "found": found, "value": value}
            case CacheOperation.SET:
                if not inputs:
                    raise NodeInputError("cache set requires an input value")
                ctx.set_cache(key, inputs[0], ttl)
                return {"operation": str(operation), "key": key, "value": inputs[0], "ttl": format_duration(ttl)}
            case CacheOperation.DELETE:
                return {"operation": str(operation), "key": key, "deleted": ctx.delete_cache(key)}

    def _resolve_key(self, ctx: ExecutionContext, node: NodeInfo, settings: CacheSettings, inputs: list[Any]) -> str:
        if settings.key is not None:
            return ctx.interpolate_template(settings.key)
        seed = inputs[0] if inputs else None
        return f"{node.node_id}:{json.dumps(seed, sort_keys=True, default=str)}"
