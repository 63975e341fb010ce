# tests/integration/test_examples.py
"""The workflows shipped in examples/ compile and run."""

from __future__ import annotations

from pathlib import Path

import pytest

from nodeflow.core.config import load_settings, load_workflow
from nodeflow.engine import WorkflowEngine

pytestmark = pytest.mark.integration

EXAMPLES = Path(__file__).resolve().parents[2] / "examples"


@pytest.fixture
def example_engine() -> WorkflowEngine:
    return WorkflowEngine(settings=load_settings(EXAMPLES / "settings.yaml"))


class TestExamples:
    def test_order_routing(self, example_engine: WorkflowEngine) -> None:
        result = example_engine.run(load_workflow(EXAMPLES / "order_routing.yaml"))
        assert result.succeeded
        assert result.final_output == "Manual review required for 1250 EUR"
        assert result.skipped_nodes == ("approve", "reject")

    def test_batch_loop(self, example_engine: WorkflowEngine) -> None:
        result = example_engine.run(load_workflow(EXAMPLES / "batch_loop.yaml"))
        assert result.succeeded
        assert result.node_results["loop"]["iterations"] == 3
        assert result.final_output == {"mode": "json", "value": result.node_results["loop"]}

    def test_cached_lookup(self, example_engine: WorkflowEngine) -> None:
        result = example_engine.run(load_workflow(EXAMPLES / "cached_lookup.json"))
        assert result.succeeded
        assert result.node_results["profile"]["key"] == "profile:42"
        assert result.final_output["found"] is True
        assert result.final_output["value"]["value"] == {"name": "Ada", "roles": ["admin", "dev"]}

    def test_settings_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WORKFLOW_TIMEOUT", "5s")
        settings = load_settings(EXAMPLES / "settings.yaml")
        assert settings.default_timeout_seconds == 5.0
        assert settings.max_node_executions == 10000
