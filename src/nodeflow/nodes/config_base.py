"""Base class for typed node configuration payloads.

Every node type declares a NodeSettings subclass. Parsing happens once, at
compile time; executors read the parsed settings from NodeInfo.settings.

Example:
    class ChunkSettings(NodeSettings):
        size: int = Field(default=10, gt=0)

    settings = ChunkSettings.from_dict({"size": 5})
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Self

from pydantic import BaseModel, ValidationError

from nodeflow.contracts.errors import NodeConfigurationError


def _summarise(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"]) or "config"
        parts.append(f"{loc}: {item['msg']}")
    return "; ".join(parts)


class NodeSettings(BaseModel):
    """Base class for node configuration payloads.

    Unknown keys are rejected so that typos surface at compile time. The
    editor-only label field is accepted on every node type.
    """

    model_config = {"extra": "forbid", "frozen": True, "populate_by_name": True}

    label: str | None = None

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> Self:
        """Create settings from a raw payload.

        Raises:
            NodeConfigurationError: If the payload is invalid
        """
        if not isinstance(config, Mapping):
            raise NodeConfigurationError(f"Invalid configuration for {cls.__name__}: config must be a mapping, got {type(config).__name__}")
        try:
            return cls.model_validate(dict(config))
        except ValidationError as e:
            raise NodeConfigurationError(f"Invalid configuration for {cls.__name__}: {_summarise(e)}") from e
