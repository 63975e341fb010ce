"""pluggy hook specifications for node type providers.

Node type providers implement these hooks to register their executors.
The registry calls them whenever a provider is registered.

Usage (implementing a provider):
    from nodeflow.nodes.hookspecs import hookimpl

    class MyNodes:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def nodeflow_get_nodes(self):
            return [MyNode]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from nodeflow.nodes.base import BaseNode

# Project name for pluggy
PROJECT_NAME = "nodeflow"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class NodeflowNodeSpec:
    """Hook specifications for node type providers."""

    @hookspec
    def nodeflow_get_nodes(self) -> list[type["BaseNode"]]:  # type: ignore[empty-body]
        """Return node executor classes (not instances).

        Returns:
            List of BaseNode subclasses
        """
