"""Compiled workflow graphs.

- models.py: NodeInfo and EdgeInfo (leaf)
- graph.py: WorkflowGraph (networkx-backed query, validation, ordering)
- builder.py: compile a WorkflowDefinition against the node registry
"""

from nodeflow.contracts.errors import GraphValidationError
from nodeflow.core.dag.builder import build_workflow_graph
from nodeflow.core.dag.graph import WorkflowGraph
from nodeflow.core.dag.models import EdgeInfo, NodeInfo

__all__ = [
    "EdgeInfo",
    "GraphValidationError",
    "NodeInfo",
    "WorkflowGraph",
    "build_workflow_graph",
]
