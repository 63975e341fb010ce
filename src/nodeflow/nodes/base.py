"""Node contract: the capability set every node type implements.

A node type is a BaseNode subclass registered under its node_type tag.
The registry creates one instance per type at startup; instances hold no
per-run state, so the same instance serves every node of that type in
every run.

    class ReverseNode(BaseNode):
        node_type = NodeType.REVERSE

        def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
            items = self.first_input(ctx, node)
            return {"reversed": list(reversed(items)), "count": len(items)}

Contract:
- parse_settings() and validate() run at compile time and raise
  NodeConfigurationError; they never touch execution state.
- execute() runs once per node per run (bodies excepted). It returns the
  node's result or raises a NodeError. All state access goes through the
  ExecutionContext.
- Branching nodes (switch, condition) declare their branch labels and
  report which branch a result selected; the scheduler activates only the
  edges labelled with that branch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from nodeflow.contracts.errors import NodeInputError
from nodeflow.nodes.config_base import NodeSettings

if TYPE_CHECKING:
    from pydantic import BaseModel

    from nodeflow.contracts.context import ExecutionContext
    from nodeflow.core.dag import NodeInfo


class BaseNode(ABC):
    """Base class for node executors.

    Class attributes:
        node_type: Registry tag
        settings_model: Pydantic model for the configuration payload
        min_inputs: Incoming edges required (0 for entry/source nodes)
        produces_output: False for nodes that only write workflow context;
            they are never reported as the workflow's final output
        accepts_body: True for node types that execute a nested body
    """

    node_type: ClassVar[str]
    settings_model: ClassVar[type[NodeSettings]] = NodeSettings
    min_inputs: ClassVar[int] = 1
    produces_output: ClassVar[bool] = True
    accepts_body: ClassVar[bool] = False

    def parse_settings(self, config: Mapping[str, Any]) -> NodeSettings:
        """Parse the raw configuration payload."""
        return self.settings_model.from_dict(config)

    def validate(self, node: NodeInfo) -> None:
        """Compile-time checks beyond what the settings model expresses.

        Raises:
            NodeConfigurationError: If the node is structurally invalid
        """
        return None

    @abstractmethod
    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        """Run the node and return its result.

        Raises:
            NodeError: On failure
        """
        ...

    def branch_labels(self, settings: BaseModel) -> frozenset[str] | None:
        """Labels this node can select, or None for non-branching nodes."""
        return None

    def selected_branch(self, node: NodeInfo, result: Any) -> str | None:
        """Label selected by a recorded result (branching nodes only)."""
        return None

    def first_input(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        """The node's first input.

        Raises:
            NodeInputError: If the node received no inputs
        """
        inputs = ctx.node_inputs(node.node_id)
        if not inputs:
            raise NodeInputError(f"{self.node_type} node requires at least one input")
        return inputs[0]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(node_type={self.node_type!r})"
