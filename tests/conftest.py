# tests/conftest.py
"""Shared test fixtures.

Fixtures:
- registry: NodeRegistry with every built-in node type
- engine: WorkflowEngine over that registry with default settings
- mock_clock: MockClock for deterministic TTL and deadline tests
- build_workflow: Build a WorkflowDefinition from plain node/edge dicts
- run_workflow: Compile and run a workflow document in one call

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from typing import Any

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from nodeflow.contracts.results import RunResult
from nodeflow.core.config import EngineSettings, WorkflowDefinition
from nodeflow.engine import MockClock, WorkflowEngine
from nodeflow.nodes.registry import NodeRegistry, build_default_registry

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Logging isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """Undo configure_logging calls made by a test (CLI commands make them too)."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


# =============================================================================
# Engine fixtures
# =============================================================================


@pytest.fixture
def registry() -> NodeRegistry:
    return build_default_registry()


@pytest.fixture
def engine(registry: NodeRegistry) -> WorkflowEngine:
    return WorkflowEngine(registry)


@pytest.fixture
def mock_clock() -> MockClock:
    return MockClock(start=1000.0)


def _build_workflow(nodes: list[dict[str, Any]], edges: list[dict[str, Any]] | None = None, **extra: Any) -> WorkflowDefinition:
    return WorkflowDefinition.model_validate({"nodes": nodes, "edges": edges or [], **extra})


@pytest.fixture
def build_workflow() -> Callable[..., WorkflowDefinition]:
    """Build a WorkflowDefinition: build_workflow(nodes, edges, constants=...)."""
    return _build_workflow


@pytest.fixture
def run_workflow(registry: NodeRegistry) -> Callable[..., RunResult]:
    """Compile and run: run_workflow(nodes, edges, settings=..., clock=..., **run_kwargs)."""

    def _run(
        nodes: list[dict[str, Any]],
        edges: list[dict[str, Any]] | None = None,
        *,
        settings: EngineSettings | None = None,
        clock: MockClock | None = None,
        **run_kwargs: Any,
    ) -> RunResult:
        kwargs: dict[str, Any] = {} if clock is None else {"clock": clock}
        engine = WorkflowEngine(registry, settings, **kwargs)
        return engine.run(_build_workflow(nodes, edges), **run_kwargs)

    return _run
