"""Configuration and workflow definition models.

Two kinds of document are loaded here:

- Engine settings (EngineSettings): run limits and defaults, loaded from an
  optional YAML file with NODEFLOW_* environment overrides via Dynaconf.
- Workflow definitions (WorkflowDefinition): the node/edge graph a caller
  wants executed, loaded from YAML or JSON.

Both are frozen Pydantic models. Node configuration payloads stay plain
dicts at this layer; each node type validates its own payload at compile
time (see nodeflow.nodes.config_base).
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from nodeflow.contracts.errors import NodeConfigurationError
from nodeflow.core.durations import parse_duration


class EngineSettings(BaseModel):
    """Engine limits and defaults applied to every run."""

    model_config = {"frozen": True, "extra": "forbid"}

    max_workers: int = Field(
        default=1,
        ge=1,
        description=(
            "Worker threads used to execute independent nodes of the same dependency wave. "
            "1 executes strictly in dependency order, which keeps accumulator/counter folds deterministic."
        ),
    )
    default_max_iterations: int = Field(
        default=100,
        gt=0,
        description="Iteration bound for while_loop nodes that do not configure max_iterations",
    )
    default_timeout: str = Field(
        default="30s",
        description="Limit for timeout nodes that do not configure one",
    )
    default_cache_ttl: str = Field(
        default="5m",
        description="TTL for cache nodes that do not configure one",
    )
    max_execution_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Wall-clock deadline for a whole run (0 disables the deadline)",
    )
    max_node_executions: int = Field(
        default=0,
        ge=0,
        description="Upper bound on node executions per run, loop bodies included (0 = unlimited)",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_json: bool = Field(default=False)

    @field_validator("default_timeout", "default_cache_ttl")
    @classmethod
    def validate_positive_duration(cls, v: str) -> str:
        """Durations must parse and be strictly positive."""
        if parse_duration(v) <= 0:
            raise ValueError(f"duration must be positive, got {v!r}")
        return v

    @property
    def default_timeout_seconds(self) -> float:
        return parse_duration(self.default_timeout)

    @property
    def default_cache_ttl_seconds(self) -> float:
        return parse_duration(self.default_cache_ttl)


# =============================================================================
# Workflow definition
# =============================================================================


class NodeDefinition(BaseModel):
    """One node as authored.

    Attributes:
        id: Unique node id within its workflow (or body)
        type: Node type tag, resolved against the registry at compile time
        config: Type-specific payload, validated by the node type
        input: Literal input for entry nodes (no incoming edges)
        body: Sub-workflow executed by while_loop, timeout and cache nodes
    """

    model_config = {"frozen": True, "extra": "forbid"}

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    config: dict[str, Any] = Field(default_factory=dict)
    input: Any = None
    body: WorkflowDefinition | None = None

    @property
    def has_literal_input(self) -> bool:
        """True when the author supplied an input value, even an explicit null."""
        return "input" in self.model_fields_set


class EdgeDefinition(BaseModel):
    """Directed producer -> consumer edge.

    source_handle labels the branch of a switch/condition source the edge
    belongs to; unlabelled edges are unconditional.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    source_handle: str | None = Field(
        default=None,
        validation_alias=AliasChoices("source_handle", "sourceHandle", "handle"),
    )
    id: str | None = None


class WorkflowDefinition(BaseModel):
    """A workflow as authored: nodes, edges and workflow constants."""

    model_config = {"frozen": True, "extra": "forbid"}

    workflow_id: str = Field(default="workflow", min_length=1)
    nodes: list[NodeDefinition] = Field(..., min_length=1)
    edges: list[EdgeDefinition] = Field(default_factory=list)
    constants: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_unique_node_ids(self) -> WorkflowDefinition:
        """Node ids must be unique within one workflow."""
        seen: set[str] = set()
        duplicates: list[str] = []
        for node in self.nodes:
            if node.id in seen:
                duplicates.append(node.id)
            seen.add(node.id)
        if duplicates:
            raise ValueError(f"duplicate node ids: {sorted(set(duplicates))}")
        return self


NodeDefinition.model_rebuild()


# =============================================================================
# Loading
# =============================================================================

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            default = match.group(2)
            if default is not None:
                return default
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        if isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [_expand_value(item) for item in value]
        return value

    return {k: _expand_value(v) for k, v in config.items()}


def load_settings(config_path: Path | None = None) -> EngineSettings:
    """Load engine settings with environment variable overrides.

    Precedence, highest first:
    1. Environment variables (NODEFLOW_MAX_WORKERS, ...)
    2. Settings file, when given
    3. Defaults from the Pydantic schema

    Args:
        config_path: Optional path to a YAML settings file

    Returns:
        Validated EngineSettings instance

    Raises:
        ValidationError: If the merged configuration fails validation
        FileNotFoundError: If config_path is given but does not exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Settings file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="NODEFLOW",
        settings_files=[str(config_path)] if config_path is not None else [],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys and its own bookkeeping entries
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)

    return EngineSettings(**raw_config)


def load_workflow(path: Path) -> WorkflowDefinition:
    """Load a workflow definition from a YAML or JSON file.

    Files ending in .json are parsed as JSON; anything else as YAML.

    Raises:
        FileNotFoundError: If the file does not exist
        NodeConfigurationError: If the file cannot be parsed or is not a mapping
        ValidationError: If the document does not match WorkflowDefinition
    """
    if not path.exists():
        raise FileNotFoundError(f"Workflow file not found: {path}")

    text = path.read_text(encoding="utf-8")
    try:
        document = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise NodeConfigurationError(f"Failed to parse {path.name}: {e}") from e

    if not isinstance(document, dict):
        raise NodeConfigurationError(f"{path.name} must contain a mapping at the top level, got {type(document).__name__}")
    return WorkflowDefinition.model_validate(document)
