"""Node types and the registry that dispatches to them.

Executor modules are imported lazily by the registry; import them directly
when subclassing:

    from nodeflow.nodes.base import BaseNode
    from nodeflow.nodes.registry import NodeRegistry, build_default_registry
"""
