"""Built-in node types registered by NodeRegistry.register_builtin_nodes."""

from nodeflow.nodes.base import BaseNode
from nodeflow.nodes.control import CacheNode, ConditionNode, SwitchNode, TimeoutNode, WhileLoopNode
from nodeflow.nodes.inputs import DateInputNode, TextInputNode
from nodeflow.nodes.state import (
    AccumulatorNode,
    ContextConstantNode,
    ContextVariableNode,
    CounterNode,
    VariableNode,
)
from nodeflow.nodes.transforms import ChunkNode, ExtractNode, ReverseNode, VisualizationNode

BUILTIN_NODES: list[type[BaseNode]] = [
    TextInputNode,
    DateInputNode,
    ChunkNode,
    ReverseNode,
    ExtractNode,
    VisualizationNode,
    ConditionNode,
    SwitchNode,
    WhileLoopNode,
    TimeoutNode,
    CacheNode,
    VariableNode,
    AccumulatorNode,
    CounterNode,
    ContextVariableNode,
    ContextConstantNode,
]
