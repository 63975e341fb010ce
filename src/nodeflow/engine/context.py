"""Concrete ExecutionContext handed to node executors.

RunContext binds one graph scope (the top-level workflow or one execution
of a body) to the run's shared ExecutionState, that scope's result store,
and the run's RunControl. Executors only see it through the
ExecutionContext protocol.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

from nodeflow.contracts.errors import RunCancelledError, RunLimitExceededError
from nodeflow.core.durations import format_duration
from nodeflow.engine.clock import Clock
from nodeflow.engine.templates import interpolate

if TYPE_CHECKING:
    from nodeflow.contracts.results import SubgraphResult
    from nodeflow.core.config import EngineSettings
    from nodeflow.core.dag import EdgeInfo, NodeInfo, WorkflowGraph
    from nodeflow.engine.state import ExecutionState, NodeResultStore
    from nodeflow.nodes.registry import NodeRegistry


class _NoSeed:
    """Marker for scopes whose entry nodes receive no seed value."""

    def __repr__(self) -> str:
        return "NO_SEED"


NO_SEED: Any = _NoSeed()


@dataclass
class _ExecutionBudget:
    limit: int
    used: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class RunControl:
    """Cancellation, deadline and execution budget of one run.

    Bodies share the run's budget and deadline. A timeout body gets a child
    control that additionally observes the timeout's own cancel event.

    Args:
        clock: Time source for the deadline
        settings: Engine settings supplying the limits
        cancel_events: Events that cancel execution when set
    """

    def __init__(
        self,
        *,
        clock: Clock,
        settings: EngineSettings,
        cancel_events: tuple[threading.Event, ...] = (),
        _budget: _ExecutionBudget | None = None,
        _started_at: float | None = None,
    ) -> None:
        self._clock = clock
        self._settings = settings
        self._cancel_events = cancel_events
        self._budget = _budget if _budget is not None else _ExecutionBudget(limit=settings.max_node_executions)
        self._started_at = _started_at if _started_at is not None else clock.monotonic()

    @property
    def nodes_executed(self) -> int:
        with self._budget.lock:
            return self._budget.used

    def elapsed(self) -> float:
        return self._clock.monotonic() - self._started_at

    def child(self, cancel_event: threading.Event) -> RunControl:
        """Control for a body that can also be cancelled through cancel_event."""
        return RunControl(
            clock=self._clock,
            settings=self._settings,
            cancel_events=(*self._cancel_events, cancel_event),
            _budget=self._budget,
            _started_at=self._started_at,
        )

    def check_cancelled(self, node_id: str | None = None) -> None:
        """Raise RunCancelledError if any cancel event is set."""
        if any(event.is_set() for event in self._cancel_events):
            raise RunCancelledError("run cancelled before node started", node_id=node_id)

    def check(self, node_id: str) -> None:
        """Node-boundary check: cancellation, then the run deadline."""
        self.check_cancelled(node_id)
        limit = self._settings.max_execution_seconds
        if limit > 0:
            elapsed = self.elapsed()
            if elapsed > limit:
                raise RunLimitExceededError(
                    f"run exceeded max execution time of {format_duration(limit)} (elapsed: {format_duration(elapsed)})",
                    limit=limit,
                    actual=elapsed,
                    node_id=node_id,
                )

    def count_execution(self, node_id: str) -> None:
        """Consume one node execution from the run's budget."""
        with self._budget.lock:
            self._budget.used += 1
            used = self._budget.used
        if self._budget.limit and used > self._budget.limit:
            raise RunLimitExceededError(
                f"run exceeded max node executions: {self._budget.limit}",
                limit=self._budget.limit,
                actual=used,
                node_id=node_id,
            )


BodyRunner: TypeAlias = "Callable[[WorkflowGraph, Any, RunControl], SubgraphResult]"


class RunContext:
    """ExecutionContext implementation for one graph scope.

    Args:
        graph: Graph whose nodes this context serves
        state: Shared run state
        results: Result store of this scope
        registry: Registry used to ask branching nodes which branch they took
        control: Run control for this scope
        settings: Engine settings
        run_id: Current run id
        body_runner: Callback that executes a body graph (supplied by the engine)
        seed: Input for entry nodes of a body scope
    """

    def __init__(
        self,
        *,
        graph: WorkflowGraph,
        state: ExecutionState,
        results: NodeResultStore,
        registry: NodeRegistry,
        control: RunControl,
        settings: EngineSettings,
        run_id: str,
        body_runner: BodyRunner,
        seed: Any = NO_SEED,
    ) -> None:
        self._graph = graph
        self._state = state
        self._results = results
        self._registry = registry
        self._control = control
        self._settings = settings
        self._run_id = run_id
        self._body_runner = body_runner
        self._seed = seed

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def graph(self) -> WorkflowGraph:
        return self._graph

    @property
    def control(self) -> RunControl:
        return self._control

    # === Inputs and node results ===

    def is_edge_active(self, edge: EdgeInfo) -> bool:
        """An edge is active when its source ran and, for branch edges, selected this branch."""
        result, found = self._results.get(edge.source)
        if not found:
            return False
        if edge.branch is None:
            return True
        source = self._graph.get_node_info(edge.source)
        return self._registry.get(source.node_type).selected_branch(source, result) == edge.branch

    def is_node_active(self, node_id: str) -> bool:
        """Entry nodes always run; others need at least one active incoming edge."""
        edges = self._graph.get_incoming_edges(node_id)
        return not edges or any(self.is_edge_active(edge) for edge in edges)

    def node_inputs(self, node_id: str) -> list[Any]:
        edges = self._graph.get_incoming_edges(node_id)
        if edges:
            return [self._results.get(edge.source)[0] for edge in edges if self.is_edge_active(edge)]
        node = self._graph.get_node_info(node_id)
        if node.has_literal_input:
            return [node.literal_input]
        if self._seed is not NO_SEED:
            return [self._seed]
        return []

    def get_node(self, node_id: str) -> NodeInfo:
        return self._graph.get_node_info(node_id)

    def get_node_result(self, node_id: str) -> tuple[Any, bool]:
        return self._results.get(node_id)

    def all_node_results(self) -> dict[str, Any]:
        return self._results.snapshot()

    # === Variables, accumulator, counter ===

    def get_variable(self, name: str) -> Any:
        return self._state.get_variable(name)

    def set_variable(self, name: str, value: Any) -> None:
        self._state.set_variable(name, value)

    def variables(self) -> dict[str, Any]:
        return self._state.variables()

    def get_accumulator(self) -> Any:
        return self._state.get_accumulator()

    def set_accumulator(self, value: Any) -> None:
        self._state.set_accumulator(value)

    def update_accumulator(self, update: Callable[[Any], Any]) -> Any:
        return self._state.update_accumulator(update)

    def get_counter(self) -> float:
        return self._state.get_counter()

    def set_counter(self, value: float) -> None:
        self._state.set_counter(value)

    def increment_counter(self, delta: float) -> float:
        return self._state.increment_counter(delta)

    # === Cache ===

    def get_cache(self, key: str) -> tuple[Any, bool]:
        return self._state.get_cache(key)

    def set_cache(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._state.set_cache(key, value, ttl_seconds)

    def delete_cache(self, key: str) -> bool:
        return self._state.delete_cache(key)

    def cache_get_or_fill(self, key: str, ttl_seconds: float, compute: Callable[[], Any]) -> tuple[Any, bool]:
        return self._state.get_or_fill(key, ttl_seconds, compute)

    # === Workflow context ===

    def workflow_context(self) -> dict[str, Any]:
        return self._state.workflow_context()

    def get_context_variable(self, name: str) -> tuple[Any, bool]:
        return self._state.get_context_variable(name)

    def set_context_variable(self, name: str, value: Any) -> None:
        self._state.set_context_variable(name, value)

    def context_variables(self) -> dict[str, Any]:
        return self._state.context_variables()

    def get_context_constant(self, name: str) -> tuple[Any, bool]:
        return self._state.get_context_constant(name)

    def set_context_constant(self, name: str, value: Any) -> bool:
        return self._state.set_context_constant(name, value)

    def interpolate_template(self, template: str) -> str:
        constants, context_variables, variables = self._state.template_sources()
        return interpolate(
            template,
            constants=constants,
            context_variables=context_variables,
            variables=variables,
        )

    # === Control ===

    def run_subgraph(
        self,
        body: WorkflowGraph,
        seed: Any,
        *,
        cancel_event: threading.Event | None = None,
    ) -> SubgraphResult:
        control = self._control if cancel_event is None else self._control.child(cancel_event)
        return self._body_runner(body, seed, control)

    def check_cancelled(self) -> None:
        self._control.check_cancelled()
