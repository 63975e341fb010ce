"""Result types returned by the engine.

These are frozen: once a run finishes its outcome does not change.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from nodeflow.contracts.enums import RunStatus
from nodeflow.contracts.errors import NodeflowError


@dataclass(frozen=True, slots=True)
class NodeFailure:
    """Why a run stopped: the failing node and the error it raised."""

    node_id: str | None
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, exc: NodeflowError) -> NodeFailure:
        """Build a failure record from a nodeflow error."""
        return cls(node_id=exc.node_id, error_type=type(exc).__name__, message=exc.message)

    def describe(self) -> str:
        """Return the user-facing one-line description."""
        if self.node_id is None:
            return f"{self.error_type}: {self.message}"
        return f"{self.error_type} in node '{self.node_id}': {self.message}"


@dataclass(frozen=True, slots=True)
class SubgraphResult:
    """Outcome of running a loop, timeout or cache body.

    Attributes:
        node_results: Results of the body nodes that executed (isolated scope)
        output: Result of the body's first executed terminal node, or None
        skipped_nodes: Body nodes skipped by branch selection
    """

    node_results: Mapping[str, Any]
    output: Any
    skipped_nodes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RunResult:
    """Outcome of one workflow run.

    node_results always holds every result recorded before the run stopped,
    including a partial result left behind by the failing node.
    """

    run_id: str
    workflow_id: str
    status: RunStatus
    node_results: Mapping[str, Any]
    final_output: Any = None
    skipped_nodes: tuple[str, ...] = ()
    failure: NodeFailure | None = None
    duration_seconds: float = 0.0
    nodes_executed: int = 0
    variables: Mapping[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """True if every scheduled node completed or was skipped."""
        return self.status == RunStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form for JSON rendering."""
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "status": str(self.status),
            "node_results": dict(self.node_results),
            "final_output": self.final_output,
            "skipped_nodes": list(self.skipped_nodes),
            "failure": (
                None
                if self.failure is None
                else {
                    "node_id": self.failure.node_id,
                    "error_type": self.failure.error_type,
                    "message": self.failure.message,
                }
            ),
            "duration_seconds": self.duration_seconds,
            "nodes_executed": self.nodes_executed,
            "variables": dict(self.variables),
        }
