"""ExecutionContext protocol: the capability interface nodes depend on.

Node executors only ever see this protocol. The engine supplies the
concrete implementation (nodeflow.engine.context.RunContext), so node
modules never import the scheduler and the scheduler only knows nodes
through BaseNode.

All accessors are safe to call from any executor, including executors
running on worker threads; the implementation serialises writes to shared
run state.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from nodeflow.contracts.results import SubgraphResult
    from nodeflow.core.config import EngineSettings
    from nodeflow.core.dag import NodeInfo, WorkflowGraph


class ExecutionContext(Protocol):
    """Run-scoped facade over execution state."""

    @property
    def run_id(self) -> str:
        """Identifier of the current run."""
        ...

    @property
    def settings(self) -> EngineSettings:
        """Engine configuration for this run."""
        ...

    # === Inputs and node results ===

    def node_inputs(self, node_id: str) -> list[Any]:
        """Results of the node's active producers, in edge declaration order.

        Entry nodes receive their literal input, or the seed value when they
        run inside a loop/timeout/cache body.
        """
        ...

    def get_node(self, node_id: str) -> NodeInfo:
        """Compiled node in the graph currently being executed."""
        ...

    def get_node_result(self, node_id: str) -> tuple[Any, bool]:
        """Return (result, found) for a node in the current scope."""
        ...

    def all_node_results(self) -> dict[str, Any]:
        """Snapshot of every result recorded in the current scope."""
        ...

    # === Variables, accumulator, counter ===

    def get_variable(self, name: str) -> Any:
        """Read a variable. Raises VariableNotFoundError if it was never set."""
        ...

    def set_variable(self, name: str, value: Any) -> None: ...

    def variables(self) -> dict[str, Any]: ...

    def get_accumulator(self) -> Any: ...

    def set_accumulator(self, value: Any) -> None: ...

    def update_accumulator(self, update: Callable[[Any], Any]) -> Any:
        """Atomically replace the accumulator with update(current); return the new value."""
        ...

    def get_counter(self) -> float: ...

    def set_counter(self, value: float) -> None: ...

    def increment_counter(self, delta: float) -> float:
        """Atomically add delta to the counter; return the new value."""
        ...

    # === Cache ===

    def get_cache(self, key: str) -> tuple[Any, bool]:
        """Return (value, found); found is False when absent or expired."""
        ...

    def set_cache(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    def delete_cache(self, key: str) -> bool: ...

    def cache_get_or_fill(self, key: str, ttl_seconds: float, compute: Callable[[], Any]) -> tuple[Any, bool]:
        """Return (value, hit), running compute at most once per concurrent miss."""
        ...

    # === Workflow context ===

    def workflow_context(self) -> dict[str, Any]:
        """Constants overlaid by context variables."""
        ...

    def get_context_variable(self, name: str) -> tuple[Any, bool]: ...

    def set_context_variable(self, name: str, value: Any) -> None: ...

    def context_variables(self) -> dict[str, Any]: ...

    def get_context_constant(self, name: str) -> tuple[Any, bool]: ...

    def set_context_constant(self, name: str, value: Any) -> bool:
        """Define a constant; returns False if it was already defined."""
        ...

    def interpolate_template(self, template: str) -> str:
        """Substitute {{name}} placeholders; unresolved ones are left verbatim."""
        ...

    # === Control ===

    def run_subgraph(
        self,
        body: WorkflowGraph,
        seed: Any,
        *,
        cancel_event: threading.Event | None = None,
    ) -> SubgraphResult:
        """Execute a compiled body against the shared state with its own result scope."""
        ...

    def check_cancelled(self) -> None:
        """Raise RunCancelledError if the run (or this body) was cancelled."""
        ...
