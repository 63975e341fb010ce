"""Stateless transforms over a node's first input.

Each transform is a pure function of its input and settings. Malformed
input raises NodeInputError; shared execution state is never touched.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import AliasChoices, Field, model_validator

from nodeflow.contracts.enums import NodeType
from nodeflow.contracts.errors import FieldNotFoundError, NodeInputError
from nodeflow.nodes.base import BaseNode
from nodeflow.nodes.config_base import NodeSettings

if TYPE_CHECKING:
    from nodeflow.contracts.context import ExecutionContext
    from nodeflow.core.dag import NodeInfo


def _require_list(value: Any, node_type: str) -> list[Any]:
    if not isinstance(value, list | tuple):
        raise NodeInputError(f"{node_type} node requires an array input, got {type(value).__name__}")
    return list(value)


def chunk_items(items: Sequence[Any], size: int) -> list[list[Any]]:
    """Split items into consecutive sub-lists of at most size elements.

    Raises:
        ValueError: If size is not positive
    """
    if size <= 0:
        raise ValueError(f"chunk size must be greater than 0, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


# === Chunk ===


class ChunkSettings(NodeSettings):
    size: int = Field(default=10, gt=0, description="Maximum elements per chunk")


class ChunkNode(BaseNode):
    """Split an array into fixed-size chunks; the last chunk may be shorter."""

    node_type = NodeType.CHUNK
    settings_model: ClassVar[type[NodeSettings]] = ChunkSettings

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: ChunkSettings = node.settings  # type: ignore[assignment]
        items = _require_list(self.first_input(ctx, node), self.node_type)
        chunks = chunk_items(items, settings.size)
        return {
            "chunks": chunks,
            "input_count": len(items),
            "chunk_count": len(chunks),
            "chunk_size": settings.size,
        }


# === Reverse ===


class ReverseNode(BaseNode):
    """Reverse the order of an array."""

    node_type = NodeType.REVERSE

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        items = _require_list(self.first_input(ctx, node), self.node_type)
        return {"reversed": items[::-1], "count": len(items)}


# === Extract ===


class ExtractSettings(NodeSettings):
    field_name: str | None = Field(
        default=None,
        min_length=1,
        validation_alias=AliasChoices("field", "field_name"),
        description="Single field to extract",
    )
    field_names: list[str] | None = Field(
        default=None,
        min_length=1,
        validation_alias=AliasChoices("fields", "field_names"),
        description="Fields to keep when present",
    )

    @model_validator(mode="after")
    def validate_field_selection(self) -> ExtractSettings:
        if self.field_name is None and self.field_names is None:
            raise ValueError("extract requires 'field' or 'fields'")
        if self.field_name is not None and self.field_names is not None:
            raise ValueError("extract accepts 'field' or 'fields', not both")
        return self


class ExtractNode(BaseNode):
    """Pull one named field, or the present subset of several, out of an object.

    A single field that is absent is an error naming the field, never a
    silent null. In multi-field mode absent fields are simply omitted.
    """

    node_type = NodeType.EXTRACT
    settings_model: ClassVar[type[NodeSettings]] = ExtractSettings

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: ExtractSettings = node.settings  # type: ignore[assignment]
        value = self.first_input(ctx, node)

        if settings.field_name is not None:
            if not isinstance(value, Mapping) or settings.field_name not in value:
                raise FieldNotFoundError(f"field '{settings.field_name}' not found in input", name=settings.field_name)
            return {"field": settings.field_name, "value": value[settings.field_name]}

        if not isinstance(value, Mapping):
            raise NodeInputError(f"extract node requires object input, got {type(value).__name__}")
        return {name: value[name] for name in settings.field_names or () if name in value}


# === Visualization ===


class VisualizationSettings(NodeSettings):
    mode: str = Field(default="text", min_length=1, description="Rendering hint for the editor")


class VisualizationNode(BaseNode):
    """Pass the first input through, tagged with a display mode."""

    node_type = NodeType.VISUALIZATION
    settings_model: ClassVar[type[NodeSettings]] = VisualizationSettings

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: VisualizationSettings = node.settings  # type: ignore[assignment]
        return {"mode": settings.mode, "value": self.first_input(ctx, node)}
