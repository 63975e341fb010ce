"""Compile a WorkflowDefinition into a validated WorkflowGraph.

Compilation resolves every node's executor through the registry, parses
and validates its configuration payload, compiles nested bodies
recursively, and then checks the graph invariants. Every problem found
here is a NodeConfigurationError naming the node; nothing in a compiled
graph can fail for configuration reasons at run time.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING

from nodeflow.contracts.errors import NodeConfigurationError
from nodeflow.contracts.types import NodeID
from nodeflow.core.dag.graph import WorkflowGraph
from nodeflow.core.dag.models import EdgeInfo, NodeInfo

if TYPE_CHECKING:
    from nodeflow.core.config import NodeDefinition, WorkflowDefinition
    from nodeflow.nodes.registry import NodeRegistry


def build_workflow_graph(
    definition: WorkflowDefinition,
    registry: NodeRegistry,
    *,
    seeded: bool = False,
    workflow_id: str | None = None,
) -> WorkflowGraph:
    """Compile and validate a workflow definition.

    Args:
        definition: Workflow as authored
        registry: Registry used to resolve node types
        seeded: Compile as a body whose entry nodes receive a seed value
        workflow_id: Override for the definition's workflow_id

    Returns:
        Validated graph with its dependency order computed

    Raises:
        NodeConfigurationError: If any node payload is invalid
        GraphValidationError: If the graph violates a structural invariant
    """
    graph = WorkflowGraph(
        workflow_id or definition.workflow_id,
        constants=definition.constants,
        seeded=seeded,
    )

    for index, node_def in enumerate(definition.nodes):
        graph.add_node(_compile_node(node_def, index, registry, parent_id=graph.workflow_id))

    for index, edge_def in enumerate(definition.edges):
        branch: str | None = None
        if graph.has_node(edge_def.source) and graph.get_node_info(edge_def.source).is_branching:
            branch = edge_def.source_handle
        graph.add_edge(
            EdgeInfo(
                source=NodeID(edge_def.source),
                target=NodeID(edge_def.target),
                index=index,
                source_handle=edge_def.source_handle,
                branch=branch,
            )
        )

    graph.validate()
    graph.topological_order()
    return graph


def _compile_node(
    node_def: NodeDefinition,
    index: int,
    registry: NodeRegistry,
    *,
    parent_id: str,
) -> NodeInfo:
    try:
        executor = registry.get(node_def.type)
        settings = executor.parse_settings(node_def.config)

        body: WorkflowGraph | None = None
        if node_def.body is not None:
            if not executor.accepts_body:
                raise NodeConfigurationError(f"Node type '{node_def.type}' does not accept a body")
            if node_def.body.constants:
                raise NodeConfigurationError("Body workflows share the run's constants and cannot declare their own")
            body = build_workflow_graph(
                node_def.body,
                registry,
                seeded=True,
                workflow_id=f"{parent_id}/{node_def.id}",
            )

        info = NodeInfo(
            node_id=NodeID(node_def.id),
            node_type=node_def.type,
            settings=settings,
            index=index,
            config=MappingProxyType(dict(node_def.config)),
            min_inputs=executor.min_inputs,
            branch_labels=executor.branch_labels(settings),
            produces_output=executor.produces_output,
            literal_input=node_def.input,
            has_literal_input=node_def.has_literal_input,
            body=body,
        )
        executor.validate(info)
    except NodeConfigurationError as e:
        e.attach_node(node_def.id)
        raise
    return info
