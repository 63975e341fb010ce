"""Source nodes that emit a configured literal."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import AliasChoices, Field, field_validator

from nodeflow.contracts.enums import NodeType
from nodeflow.nodes.base import BaseNode
from nodeflow.nodes.config_base import NodeSettings

if TYPE_CHECKING:
    from nodeflow.contracts.context import ExecutionContext
    from nodeflow.core.dag import NodeInfo


class TextInputSettings(NodeSettings):
    text: str = Field(description="Literal text; {{name}} placeholders are interpolated at run time")


class DateInputSettings(NodeSettings):
    date_value: str = Field(
        validation_alias=AliasChoices("date_value", "date"),
        description="ISO 8601 date or datetime",
    )

    @field_validator("date_value")
    @classmethod
    def validate_iso_date(cls, v: str) -> str:
        try:
            date.fromisoformat(v)
        except ValueError:
            try:
                datetime.fromisoformat(v)
            except ValueError:
                raise ValueError(f"not an ISO 8601 date: {v!r}") from None
        return v


class TextInputNode(BaseNode):
    """Emit configured text with {{name}} placeholders filled in."""

    node_type = NodeType.TEXT_INPUT
    settings_model: ClassVar[type[NodeSettings]] = TextInputSettings
    min_inputs = 0

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: TextInputSettings = node.settings  # type: ignore[assignment]
        return ctx.interpolate_template(settings.text)


class DateInputNode(BaseNode):
    """Emit a configured ISO 8601 date string."""

    node_type = NodeType.DATE_INPUT
    settings_model: ClassVar[type[NodeSettings]] = DateInputSettings
    min_inputs = 0

    def execute(self, ctx: ExecutionContext, node: NodeInfo) -> Any:
        settings: DateInputSettings = node.settings  # type: ignore[assignment]
        return settings.date_value
