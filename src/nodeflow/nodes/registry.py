"""Node registry: maps node type tags to executor instances.

Uses pluggy for hook-based registration. Built-in node types are
registered through a dynamically generated hookimpl; third-party providers
register an object implementing nodeflow_get_nodes.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING, Any

import pluggy

from nodeflow.contracts.errors import NodeConfigurationError
from nodeflow.nodes.hookspecs import PROJECT_NAME, NodeflowNodeSpec

if TYPE_CHECKING:
    from nodeflow.nodes.base import BaseNode


def create_dynamic_hookimpl(node_classes: list[type[BaseNode]]) -> object:
    """Create a pluggy hookimpl object that provides the given node classes.

    Args:
        node_classes: BaseNode subclasses to register

    Returns:
        Object instance with a decorated nodeflow_get_nodes method
    """
    from nodeflow.nodes.hookspecs import hookimpl

    class DynamicHookImpl:
        """Dynamically generated hook implementer."""

        pass

    def hook_method(self: Any) -> list[type[BaseNode]]:
        return list(node_classes)

    setattr(DynamicHookImpl, "nodeflow_get_nodes", hookimpl(hook_method))
    return DynamicHookImpl()


class NodeRegistry:
    """Registry of node executors keyed by node type.

    Usage:
        registry = NodeRegistry()
        registry.register_builtin_nodes()
        registry.register_node(MyNode)

        executor = registry.get("reverse")
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(NodeflowNodeSpec)
        self._executors: dict[str, BaseNode] = {}

    def register_builtin_nodes(self) -> None:
        """Register every built-in node type."""
        from nodeflow.nodes.builtins import BUILTIN_NODES

        self.register(create_dynamic_hookimpl(BUILTIN_NODES))

    def register(self, provider: Any) -> None:
        """Register a provider implementing nodeflow_get_nodes.

        Raises:
            ValueError: If the provider declares a node type that is already
                registered; the provider is unregistered again
        """
        self._pm.register(provider)
        try:
            self._refresh()
        except ValueError:
            self._pm.unregister(provider)
            raise

    def register_node(self, node_cls: type[BaseNode]) -> None:
        """Register a single node class."""
        self.register(create_dynamic_hookimpl([node_cls]))

    def _refresh(self) -> None:
        """Rebuild the executor table from all providers.

        Raises:
            ValueError: If two providers declare the same node type
        """
        classes: dict[str, type[BaseNode]] = {}
        for provided in self._pm.hook.nodeflow_get_nodes():
            for cls in provided:
                node_type = str(cls.node_type)
                if node_type in classes:
                    raise ValueError(f"Duplicate node type: '{node_type}'. Already registered by {classes[node_type].__name__}")
                classes[node_type] = cls

        executors: dict[str, BaseNode] = {}
        for node_type, cls in classes.items():
            existing = self._executors.get(node_type)
            executors[node_type] = existing if type(existing) is cls else cls()
        self._executors = executors

    def get(self, node_type: str) -> BaseNode:
        """Get the executor for a node type.

        Raises:
            NodeConfigurationError: If the type is not registered
        """
        try:
            return self._executors[node_type]
        except KeyError:
            hint = ""
            close = difflib.get_close_matches(str(node_type), list(self._executors), n=1)
            if close:
                hint = f" (did you mean '{close[0]}'?)"
            raise NodeConfigurationError(f"Unknown node type: '{node_type}'{hint}") from None

    def list_types(self) -> list[str]:
        """Registered node types, sorted."""
        return sorted(self._executors)

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._executors

    def __len__(self) -> int:
        return len(self._executors)


def build_default_registry() -> NodeRegistry:
    """Registry with every built-in node type registered."""
    registry = NodeRegistry()
    registry.register_builtin_nodes()
    return registry
