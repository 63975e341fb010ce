"""WorkflowEngine: compiles workflow definitions and runs compiled graphs.

Run lifecycle:
1. Create a fresh ExecutionState seeded with workflow constants
2. Walk the graph in dependency order (ties broken by declaration order)
3. At every node boundary check cancellation, the run deadline and the
   node execution budget
4. Skip nodes whose incoming edges are all inactive (an unexecuted
   producer, or a branch edge its switch/condition did not select);
   skipping propagates transitively through the skipped node's consumers
5. Dispatch the node to its executor, record the result write-once
6. On the first node error, record any partial result it carries and stop

Loop, timeout and cache nodes execute their bodies through
RunContext.run_subgraph, which re-enters this module with the same state,
the same RunControl, and a fresh result scope.
"""

from __future__ import annotations

import contextvars
import logging
import threading
import time
import uuid
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

import structlog

from nodeflow.contracts.enums import RunStatus
from nodeflow.contracts.errors import (
    NodeError,
    NodeExecutionError,
    NodeflowError,
    OrchestrationInvariantError,
    RunCancelledError,
)
from nodeflow.contracts.results import NodeFailure, RunResult, SubgraphResult
from nodeflow.contracts.types import NodeID
from nodeflow.core.config import EngineSettings, WorkflowDefinition
from nodeflow.core.dag import WorkflowGraph, build_workflow_graph
from nodeflow.engine.clock import DEFAULT_CLOCK, Clock
from nodeflow.engine.context import NO_SEED, RunContext, RunControl
from nodeflow.engine.state import ExecutionState, NodeResultStore
from nodeflow.nodes.registry import NodeRegistry, build_default_registry

logger = logging.getLogger(__name__)
slog = structlog.get_logger(__name__)


class _GraphWalker:
    """Executes one graph scope against shared run state."""

    def __init__(
        self,
        engine: WorkflowEngine,
        graph: WorkflowGraph,
        state: ExecutionState,
        control: RunControl,
        *,
        results: NodeResultStore,
        run_id: str,
        seed: Any = NO_SEED,
    ) -> None:
        self._engine = engine
        self._graph = graph
        self._control = control
        self._results = results
        self._registry = engine.registry
        self.skipped: list[NodeID] = []
        self.context = RunContext(
            graph=graph,
            state=state,
            results=self._results,
            registry=engine.registry,
            control=control,
            settings=engine.settings,
            run_id=run_id,
            body_runner=self._run_body,
            seed=seed,
        )
        self._state = state
        self._run_id = run_id

    @property
    def results(self) -> NodeResultStore:
        return self._results

    def walk(self, *, parallel: bool) -> None:
        if parallel:
            self._walk_waves()
        else:
            self._walk_sequential()

    def final_output(self) -> Any:
        """Result of the first executed terminal node, in declaration order.

        Context nodes count only when no output-producing terminal ran.
        """
        terminals = self._graph.get_terminal_nodes()
        for info in sorted(terminals, key=lambda info: not info.produces_output):
            value, found = self._results.get(info.node_id)
            if found:
                return value
        return None

    def _walk_sequential(self) -> None:
        for node_id in self._graph.topological_order():
            self._control.check(node_id)
            if not self.context.is_node_active(node_id):
                self._skip(node_id)
                continue
            self._results.record(node_id, self._execute(node_id))

    def _walk_waves(self) -> None:
        workers = self._engine.settings.max_workers
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="nodeflow-node") as pool:
            for wave in self._graph.dependency_waves():
                ready: list[NodeID] = []
                for node_id in wave:
                    self._control.check(node_id)
                    if self.context.is_node_active(node_id):
                        ready.append(node_id)
                    else:
                        self._skip(node_id)

                if len(ready) <= 1:
                    for node_id in ready:
                        self._results.record(node_id, self._execute(node_id))
                    continue

                futures: list[tuple[NodeID, Future[Any]]] = [
                    (node_id, pool.submit(contextvars.copy_context().run, self._execute, node_id)) for node_id in ready
                ]
                first_error: BaseException | None = None
                for node_id, future in futures:
                    try:
                        value = future.result()
                    except BaseException as exc:
                        if first_error is None:
                            first_error = exc
                        continue
                    self._results.record(node_id, value)
                if first_error is not None:
                    raise first_error

    def _skip(self, node_id: NodeID) -> None:
        self.skipped.append(node_id)
        slog.debug("node_skipped", node_id=node_id, reason="no active incoming edge")

    def _execute(self, node_id: NodeID) -> Any:
        node = self._graph.get_node_info(node_id)
        executor = self._registry.get(node.node_type)
        self._control.count_execution(node_id)

        start = time.perf_counter()
        try:
            result = executor.execute(self.context, node)
        except NodeError as exc:
            exc.attach_node(node_id)
            if exc.partial_result is not None and exc.node_id == node_id:
                self._results.record(node_id, exc.partial_result)
            slog.warning(
                "node_failed",
                node_id=node_id,
                node_type=node.node_type,
                error_type=type(exc).__name__,
                error=exc.message,
            )
            raise
        except NodeflowError as exc:
            exc.attach_node(node_id)
            raise
        except OrchestrationInvariantError:
            raise
        except Exception as exc:
            slog.error(
                "node_crashed",
                node_id=node_id,
                node_type=node.node_type,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise NodeExecutionError(f"{type(exc).__name__}: {exc}", node_id=node_id) from exc

        slog.debug(
            "node_completed",
            node_id=node_id,
            node_type=node.node_type,
            duration_ms=round((time.perf_counter() - start) * 1000, 3),
        )
        return result

    def _run_body(self, body: WorkflowGraph, seed: Any, control: RunControl) -> SubgraphResult:
        walker = _GraphWalker(
            self._engine,
            body,
            self._state,
            control,
            results=NodeResultStore(),
            run_id=self._run_id,
            seed=seed,
        )
        walker.walk(parallel=False)
        return SubgraphResult(
            node_results=walker.results.snapshot(),
            output=walker.final_output(),
            skipped_nodes=tuple(walker.skipped),
        )


class WorkflowEngine:
    """Compiles and runs workflows.

    Args:
        registry: Node registry; defaults to one with every built-in node type
        settings: Engine limits and defaults
        clock: Time source for cache expiry and the run deadline

    Example:
        engine = WorkflowEngine()
        graph = engine.compile(WorkflowDefinition.model_validate(document))
        result = engine.run(graph)
        if not result.succeeded:
            print(result.failure.describe())
    """

    def __init__(
        self,
        registry: NodeRegistry | None = None,
        settings: EngineSettings | None = None,
        *,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        self.registry = registry if registry is not None else build_default_registry()
        self.settings = settings if settings is not None else EngineSettings()
        self.clock = clock

    def compile(self, definition: WorkflowDefinition) -> WorkflowGraph:
        """Validate every node, check graph invariants, compute the dependency order.

        Raises:
            NodeConfigurationError: If a node payload is invalid
            GraphValidationError: If the graph violates a structural invariant
        """
        graph = build_workflow_graph(definition, self.registry)
        logger.debug("Compiled workflow %r: %d nodes, %d edges", graph.workflow_id, graph.node_count, graph.edge_count)
        return graph

    def run(
        self,
        workflow: WorkflowGraph | WorkflowDefinition,
        *,
        constants: Mapping[str, Any] | None = None,
        context_variables: Mapping[str, Any] | None = None,
        variables: Mapping[str, Any] | None = None,
        cancel_event: threading.Event | None = None,
        run_id: str | None = None,
    ) -> RunResult:
        """Execute a workflow against fresh execution state.

        Node failures, cancellation and run limits are reported in the
        returned RunResult rather than raised. Configuration errors (when a
        definition is passed) are raised before anything executes.

        Args:
            workflow: Compiled graph, or a definition to compile first
            constants: Extra workflow constants (override the graph's)
            context_variables: Initial context variables
            variables: Initial variables
            cancel_event: threading.Event; setting it stops the run at the
                next node boundary
            run_id: Explicit run id (generated when omitted)

        Raises:
            NodeConfigurationError: If a definition fails to compile
        """
        graph = workflow if isinstance(workflow, WorkflowGraph) else self.compile(workflow)
        run_id = run_id or uuid.uuid4().hex

        state = ExecutionState(
            clock=self.clock,
            constants={**graph.constants, **(constants or {})},
            context_variables=context_variables,
            variables=variables,
        )
        control = RunControl(
            clock=self.clock,
            settings=self.settings,
            cancel_events=(cancel_event,) if cancel_event is not None else (),
        )
        walker = _GraphWalker(self, graph, state, control, results=state.results, run_id=run_id)

        status = RunStatus.COMPLETED
        failure: NodeFailure | None = None
        started = time.perf_counter()

        with structlog.contextvars.bound_contextvars(run_id=run_id, workflow_id=graph.workflow_id):
            slog.info("run_started", nodes=graph.node_count)
            try:
                walker.walk(parallel=self.settings.max_workers > 1)
            except RunCancelledError as exc:
                status = RunStatus.CANCELLED
                failure = NodeFailure.from_exception(exc)
                slog.warning("run_cancelled", node_id=exc.node_id)
            except NodeflowError as exc:
                status = RunStatus.FAILED
                failure = NodeFailure.from_exception(exc)
                slog.error("run_failed", node_id=exc.node_id, error_type=failure.error_type, error=exc.message)

            duration = time.perf_counter() - started
            slog.info(
                "run_completed",
                status=str(status),
                nodes_executed=control.nodes_executed,
                skipped=len(walker.skipped),
                duration_ms=round(duration * 1000, 3),
            )

        return RunResult(
            run_id=run_id,
            workflow_id=graph.workflow_id,
            status=status,
            node_results=walker.results.snapshot(),
            final_output=walker.final_output() if status == RunStatus.COMPLETED else None,
            skipped_nodes=tuple(walker.skipped),
            failure=failure,
            duration_seconds=duration,
            nodes_executed=control.nodes_executed,
            variables=state.variables(),
        )
