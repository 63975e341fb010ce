"""Types for compiled workflow graphs.

Leaf module: no imports from the rest of core.dag (prevents import cycles).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from nodeflow.contracts.types import NodeID

if TYPE_CHECKING:
    from pydantic import BaseModel

    from nodeflow.core.dag.graph import WorkflowGraph


@dataclass(frozen=True, slots=True)
class NodeInfo:
    """A compiled node. Immutable once the graph is compiled.

    config is the raw payload as authored (read-only view); settings is the
    same payload parsed by the node type's settings model. Executors read
    settings, never config.

    The capability fields (min_inputs, branch_labels, produces_output) are
    copied from the executor at compile time so the graph can validate
    itself without knowing about executors.
    """

    node_id: NodeID
    node_type: str
    settings: BaseModel
    index: int
    config: Mapping[str, Any] = field(default_factory=dict)
    min_inputs: int = 1
    branch_labels: frozenset[str] | None = None
    produces_output: bool = True
    literal_input: Any = None
    has_literal_input: bool = False
    body: WorkflowGraph | None = None

    @property
    def is_branching(self) -> bool:
        """True for nodes whose outgoing edges are selected by label."""
        return self.branch_labels is not None


@dataclass(frozen=True, slots=True)
class EdgeInfo:
    """A compiled edge.

    branch is the source_handle when the source is a branching node, and
    None otherwise; handles on edges leaving ordinary nodes carry no meaning
    for scheduling.
    """

    source: NodeID
    target: NodeID
    index: int
    source_handle: str | None = None
    branch: str | None = None
