"""WorkflowGraph class: query, validation, and traversal operations.

Construction from a WorkflowDefinition lives in builder.py; this module
contains the graph class with all runtime methods.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

import networkx as nx
from networkx import MultiDiGraph

from nodeflow.contracts.errors import GraphValidationError
from nodeflow.contracts.types import NodeID
from nodeflow.core.dag.models import EdgeInfo, NodeInfo


class WorkflowGraph:
    """Compiled workflow: typed nodes plus producer -> consumer edges.

    Wraps a networkx MultiDiGraph (two edges may join the same pair of
    nodes under different branch labels). Each node carries its NodeInfo
    under the "info" attribute and each edge its EdgeInfo.

    Attributes:
        workflow_id: Identifier carried into run results
        constants: Workflow constants seeded into every run
        seeded: True for loop/timeout/cache bodies, whose entry nodes
            receive the seed value as input
    """

    def __init__(
        self,
        workflow_id: str = "workflow",
        *,
        constants: Mapping[str, Any] | None = None,
        seeded: bool = False,
    ) -> None:
        self.workflow_id = workflow_id
        self.constants: Mapping[str, Any] = MappingProxyType(dict(constants or {}))
        self.seeded = seeded
        self._graph: MultiDiGraph[str] = nx.MultiDiGraph()
        self._order: list[NodeID] | None = None

    @property
    def node_count(self) -> int:
        return int(self._graph.number_of_nodes())

    @property
    def edge_count(self) -> int:
        return int(self._graph.number_of_edges())

    def has_node(self, node_id: str) -> bool:
        return bool(self._graph.has_node(node_id))

    def get_nx_graph(self) -> MultiDiGraph[str]:
        """Read-only view of the underlying networkx graph."""
        return nx.freeze(self._graph.copy())  # type: ignore[no-any-return]

    def add_node(self, info: NodeInfo) -> None:
        """Add a compiled node.

        Raises:
            GraphValidationError: If a node with the same id already exists
        """
        if self._graph.has_node(info.node_id):
            raise GraphValidationError(f"Duplicate node id: '{info.node_id}'")
        self._graph.add_node(info.node_id, info=info)
        self._order = None

    def add_edge(self, info: EdgeInfo) -> None:
        """Add a compiled edge between two existing nodes.

        Raises:
            GraphValidationError: If either endpoint is not in the graph
        """
        for endpoint in (info.source, info.target):
            if not self._graph.has_node(endpoint):
                raise GraphValidationError(f"Edge {info.source} -> {info.target} references unknown node '{endpoint}'")
        self._graph.add_edge(info.source, info.target, key=info.index, info=info)
        self._order = None

    def get_node_info(self, node_id: str) -> NodeInfo:
        """Get the compiled node for an id.

        Raises:
            KeyError: If the node does not exist
        """
        if not self._graph.has_node(node_id):
            raise KeyError(f"Node not found: {node_id}")
        info: NodeInfo = self._graph.nodes[node_id]["info"]
        return info

    def get_nodes(self) -> list[NodeInfo]:
        """All nodes in declaration order."""
        nodes: list[NodeInfo] = [data["info"] for _, data in self._graph.nodes(data=True)]
        return sorted(nodes, key=lambda info: info.index)

    def get_edges(self) -> list[EdgeInfo]:
        """All edges in declaration order."""
        edges: list[EdgeInfo] = [data["info"] for _, _, data in self._graph.edges(data=True)]
        return sorted(edges, key=lambda info: info.index)

    def get_incoming_edges(self, node_id: str) -> list[EdgeInfo]:
        """Edges pointing at node_id, in declaration order."""
        edges: list[EdgeInfo] = [data["info"] for _, _, data in self._graph.in_edges(node_id, data=True)]
        return sorted(edges, key=lambda info: info.index)

    def get_outgoing_edges(self, node_id: str) -> list[EdgeInfo]:
        """Edges leaving node_id, in declaration order."""
        edges: list[EdgeInfo] = [data["info"] for _, _, data in self._graph.out_edges(node_id, data=True)]
        return sorted(edges, key=lambda info: info.index)

    def get_terminal_nodes(self) -> list[NodeInfo]:
        """Nodes with no outgoing edges, in declaration order."""
        return [info for info in self.get_nodes() if self._graph.out_degree(info.node_id) == 0]

    def is_acyclic(self) -> bool:
        return bool(nx.is_directed_acyclic_graph(self._graph))

    def validate(self) -> None:
        """Validate the graph structure.

        Validates:
        1. Graph is acyclic (loops repeat internally, never via back-edges)
        2. Every node that needs inputs can receive them: it has incoming
           edges, a literal input, or is an entry node of a seeded body
        3. Edges leaving a branching node are labelled with one of the
           branch labels that node can select

        Edge endpoints and id uniqueness are enforced on insertion.

        Raises:
            GraphValidationError: If validation fails
        """
        if not self.is_acyclic():
            try:
                cycle = nx.find_cycle(self._graph)
                # MultiDiGraph returns (u, v, key) tuples; u is enough for display
                cycle_str = " -> ".join(f"{edge[0]}" for edge in cycle)
                raise GraphValidationError(f"Graph contains a cycle: {cycle_str}")
            except nx.NetworkXNoCycle:
                raise GraphValidationError("Graph contains a cycle") from None

        for info in self.get_nodes():
            if info.min_inputs <= 0 or info.has_literal_input:
                continue
            in_degree = self._graph.in_degree(info.node_id)
            if in_degree == 0 and self.seeded:
                continue
            if in_degree < info.min_inputs:
                raise GraphValidationError(
                    f"Node '{info.node_id}' ({info.node_type}) requires at least {info.min_inputs} input(s) "
                    f"but has {in_degree} incoming edge(s) and no literal input",
                    node_id=info.node_id,
                )

        for edge in self.get_edges():
            source = self.get_node_info(edge.source)
            if source.branch_labels is None:
                continue
            if edge.source_handle is None:
                raise GraphValidationError(
                    f"Edge {edge.source} -> {edge.target} leaves branching node '{edge.source}' "
                    f"without a source_handle; expected one of {sorted(source.branch_labels)}",
                    node_id=edge.source,
                )
            if edge.source_handle not in source.branch_labels:
                raise GraphValidationError(
                    f"Edge {edge.source} -> {edge.target} uses unknown branch '{edge.source_handle}'; "
                    f"'{edge.source}' can select {sorted(source.branch_labels)}",
                    node_id=edge.source,
                )

    def topological_order(self) -> list[NodeID]:
        """Return node ids in dependency order.

        A node appears only after all of its producers. Ties among nodes that
        are ready at the same time are broken by declaration order, so the
        order is deterministic for a given definition.

        Raises:
            GraphValidationError: If the graph has cycles
        """
        if self._order is None:
            try:
                ordered = nx.lexicographical_topological_sort(self._graph, key=self._declaration_index)
                self._order = [NodeID(node_id) for node_id in ordered]
            except nx.NetworkXUnfeasible as e:
                raise GraphValidationError(f"Cannot sort graph: {e}") from e
        return list(self._order)

    def dependency_waves(self) -> list[list[NodeID]]:
        """Group nodes into waves with no dependencies inside a wave.

        Each wave is in declaration order. Concatenating the waves gives a
        valid dependency order.
        """
        try:
            generations = list(nx.topological_generations(self._graph))
        except nx.NetworkXUnfeasible as e:
            raise GraphValidationError(f"Cannot sort graph: {e}") from e
        return [[NodeID(node_id) for node_id in sorted(wave, key=self._declaration_index)] for wave in generations]

    def _declaration_index(self, node_id: str) -> int:
        index: int = self._graph.nodes[node_id]["info"].index
        return index

    def __repr__(self) -> str:
        return f"WorkflowGraph({self.workflow_id!r}, nodes={self.node_count}, edges={self.edge_count})"
