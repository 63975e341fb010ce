# tests/unit/core/test_graph.py
"""Tests for WorkflowGraph and compilation from definitions."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import networkx as nx
import pytest

from nodeflow.contracts.errors import GraphValidationError, NodeConfigurationError
from nodeflow.core.config import WorkflowDefinition
from nodeflow.core.dag import WorkflowGraph, build_workflow_graph
from nodeflow.nodes.registry import NodeRegistry

BuildWorkflow = Callable[..., WorkflowDefinition]


def _text(node_id: str, text: str = "x") -> dict[str, Any]:
    return {"id": node_id, "type": "text_input", "config": {"text": text}}


class TestDependencyOrder:
    """Topological order with declaration-order tie breaking."""

    def test_producers_before_consumers(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow(
            [{"id": "r", "type": "reverse"}, _text("src")],
            [{"source": "src", "target": "r"}],
        )
        graph = build_workflow_graph(definition, registry)
        assert graph.topological_order() == ["src", "r"]

    def test_ties_broken_by_declaration_order(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        """Independently ready nodes run in the order they were declared."""
        definition = build_workflow(
            [_text("b"), _text("a"), _text("c"), {"id": "viz", "type": "visualization"}],
            [{"source": "c", "target": "viz"}, {"source": "a", "target": "viz"}],
        )
        graph = build_workflow_graph(definition, registry)
        assert graph.topological_order() == ["b", "a", "c", "viz"]

    def test_dependency_waves(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow(
            [_text("t1"), _text("t2"), {"id": "v1", "type": "visualization"}, {"id": "v2", "type": "visualization"}],
            [{"source": "t1", "target": "v1"}, {"source": "v1", "target": "v2"}, {"source": "t2", "target": "v2"}],
        )
        graph = build_workflow_graph(definition, registry)
        assert graph.dependency_waves() == [["t1", "t2"], ["v1"], ["v2"]]

    def test_terminal_nodes_in_declaration_order(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow(
            [_text("t"), {"id": "z", "type": "visualization"}, {"id": "y", "type": "visualization"}],
            [{"source": "t", "target": "z"}, {"source": "t", "target": "y"}],
        )
        graph = build_workflow_graph(definition, registry)
        assert [info.node_id for info in graph.get_terminal_nodes()] == ["z", "y"]


class TestGraphValidation:
    """Structural invariants checked at compile time."""

    def test_cycle_rejected(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow(
            [{"id": "a", "type": "reverse"}, {"id": "b", "type": "reverse"}],
            [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
        )
        with pytest.raises(GraphValidationError, match="cycle"):
            build_workflow_graph(definition, registry)

    def test_edge_to_unknown_node(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow([_text("a")], [{"source": "a", "target": "ghost"}])
        with pytest.raises(GraphValidationError, match="ghost"):
            build_workflow_graph(definition, registry)

    def test_node_without_inputs_rejected(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        """A node that needs input must have an edge or a literal input."""
        definition = build_workflow([{"id": "r", "type": "reverse"}])
        with pytest.raises(GraphValidationError) as exc_info:
            build_workflow_graph(definition, registry)
        assert exc_info.value.node_id == "r"

    def test_literal_input_satisfies_min_inputs(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow([{"id": "r", "type": "reverse", "input": [1, 2]}])
        graph = build_workflow_graph(definition, registry)
        assert graph.get_node_info("r").has_literal_input

    def test_branch_edge_requires_handle(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow(
            [{"id": "c", "type": "condition", "config": {"condition": "> 1"}, "input": 2}, {"id": "v", "type": "visualization"}],
            [{"source": "c", "target": "v"}],
        )
        with pytest.raises(GraphValidationError, match="source_handle"):
            build_workflow_graph(definition, registry)

    def test_branch_edge_with_unknown_label(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow(
            [{"id": "c", "type": "condition", "config": {"condition": "> 1"}, "input": 2}, {"id": "v", "type": "visualization"}],
            [{"source": "c", "target": "v", "sourceHandle": "maybe"}],
        )
        with pytest.raises(GraphValidationError, match="maybe"):
            build_workflow_graph(definition, registry)

    def test_handle_on_plain_edge_is_not_a_branch(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        """Handles leaving non-branching nodes carry no scheduling meaning."""
        definition = build_workflow(
            [_text("t"), {"id": "v", "type": "visualization"}],
            [{"source": "t", "target": "v", "sourceHandle": "out"}],
        )
        graph = build_workflow_graph(definition, registry)
        edge = graph.get_edges()[0]
        assert edge.source_handle == "out"
        assert edge.branch is None


class TestNodeCompilation:
    """Per-node validation through the registry."""

    def test_unknown_type_suggests_closest(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow([{"id": "r", "type": "revers", "input": [1]}])
        with pytest.raises(NodeConfigurationError, match="did you mean 'reverse'") as exc_info:
            build_workflow_graph(definition, registry)
        assert exc_info.value.node_id == "r"

    def test_invalid_payload_names_node(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        """A non-positive chunk size is a configuration error for that node."""
        definition = build_workflow([{"id": "ch", "type": "chunk", "config": {"size": 0}, "input": [1]}])
        with pytest.raises(NodeConfigurationError) as exc_info:
            build_workflow_graph(definition, registry)
        assert exc_info.value.node_id == "ch"
        assert "size" in exc_info.value.message

    def test_body_on_node_without_body_support(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow([{"id": "r", "type": "reverse", "input": [1], "body": {"nodes": [_text("t")]}}])
        with pytest.raises(NodeConfigurationError, match="does not accept a body"):
            build_workflow_graph(definition, registry)

    def test_body_compiled_as_seeded_subgraph(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        """Body entry nodes receive the seed, so they need no edges of their own."""
        definition = build_workflow(
            [
                {
                    "id": "loop",
                    "type": "while_loop",
                    "config": {"condition": "< 3"},
                    "input": 0,
                    "body": {"nodes": [{"id": "rev", "type": "reverse"}]},
                }
            ]
        )
        graph = build_workflow_graph(definition, registry)
        body = graph.get_node_info("loop").body
        assert isinstance(body, WorkflowGraph)
        assert body.seeded
        assert body.workflow_id == "workflow/loop"

    def test_body_cannot_declare_constants(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        definition = build_workflow(
            [
                {
                    "id": "loop",
                    "type": "while_loop",
                    "config": {"condition": "< 3"},
                    "input": 0,
                    "body": {"nodes": [{"id": "c", "type": "counter"}], "constants": {"x": 1}},
                }
            ]
        )
        with pytest.raises(NodeConfigurationError, match="constants"):
            build_workflow_graph(definition, registry)


class TestWorkflowGraphDirect:
    """WorkflowGraph API independent of compilation."""

    def test_duplicate_node(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        graph = build_workflow_graph(build_workflow([_text("a")]), registry)
        with pytest.raises(GraphValidationError, match="Duplicate"):
            graph.add_node(graph.get_node_info("a"))

    def test_get_node_info_missing(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        graph = build_workflow_graph(build_workflow([_text("a")]), registry)
        with pytest.raises(KeyError):
            graph.get_node_info("zzz")

    def test_nx_graph_is_read_only(self, registry: NodeRegistry, build_workflow: BuildWorkflow) -> None:
        graph = build_workflow_graph(build_workflow([_text("a")]), registry)
        frozen = graph.get_nx_graph()
        assert nx.is_frozen(frozen)
        with pytest.raises(nx.NetworkXError):
            frozen.add_node("b")
