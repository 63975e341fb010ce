# tests/unit/engine/test_state.py
"""Tests for run-scoped execution state."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from nodeflow.contracts.errors import NodeInputError, OrchestrationInvariantError, VariableNotFoundError
from nodeflow.engine import ExecutionState, MockClock, NodeResultStore


class TestNodeResultStore:
    """Write-once node results."""

    def test_record_and_get(self) -> None:
        store = NodeResultStore()
        store.record("a", {"x": 1})
        assert store.get("a") == ({"x": 1}, True)
        assert "a" in store
        assert len(store) == 1

    def test_missing_result(self) -> None:
        assert NodeResultStore().get("a") == (None, False)

    def test_none_is_a_recorded_result(self) -> None:
        """A node that returned None still has a result."""
        store = NodeResultStore()
        store.record("a", None)
        assert store.get("a") == (None, True)

    def test_single_assignment(self) -> None:
        store = NodeResultStore()
        store.record("a", 1)
        with pytest.raises(OrchestrationInvariantError):
            store.record("a", 2)
        assert store.get("a") == (1, True)

    def test_snapshot_is_a_copy(self) -> None:
        store = NodeResultStore()
        store.record("a", 1)
        snapshot = store.snapshot()
        snapshot["b"] = 2
        assert "b" not in store


class TestVariablesAndCounters:
    """Variables, accumulator and counter slots."""

    def test_missing_variable_names_it(self) -> None:
        state = ExecutionState()
        with pytest.raises(VariableNotFoundError) as exc_info:
            state.get_variable("total")
        assert exc_info.value.name == "total"
        assert "total" in exc_info.value.message

    def test_set_and_get_variable(self) -> None:
        state = ExecutionState(variables={"seed": 1})
        state.set_variable("total", 5)
        assert state.get_variable("total") == 5
        assert state.variables() == {"seed": 1, "total": 5}

    def test_accumulator_update(self) -> None:
        state = ExecutionState()
        assert state.get_accumulator() is None
        assert state.update_accumulator(lambda current: (current or 0) + 3) == 3
        assert state.get_accumulator() == 3

    def test_failed_accumulator_update_leaves_value(self) -> None:
        state = ExecutionState()
        state.set_accumulator(10)

        def boom(current: int) -> int:
            raise ValueError("nope")

        with pytest.raises(ValueError):
            state.update_accumulator(boom)
        assert state.get_accumulator() == 10

    def test_counter(self) -> None:
        state = ExecutionState()
        assert state.increment_counter(2) == 2
        assert state.increment_counter(-0.5) == 1.5
        state.set_counter(0)
        assert state.get_counter() == 0

    def test_concurrent_increments_are_not_lost(self) -> None:
        state = ExecutionState()
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: state.increment_counter(1), range(1000)))
        assert state.get_counter() == 1000


class TestCache:
    """TTL expiry and single-flight fill."""

    def test_entry_expires_after_ttl(self, mock_clock: MockClock) -> None:
        state = ExecutionState(clock=mock_clock)
        state.set_cache("k", "v", ttl_seconds=60)

        mock_clock.advance(59.9)
        assert state.get_cache("k") == ("v", True)

        mock_clock.advance(0.1)
        assert state.get_cache("k") == (None, False)

    def test_delete(self, mock_clock: MockClock) -> None:
        state = ExecutionState(clock=mock_clock)
        state.set_cache("k", 1, ttl_seconds=10)
        assert state.delete_cache("k") is True
        assert state.delete_cache("k") is False
        assert state.get_cache("k") == (None, False)

    def test_purge_expired(self, mock_clock: MockClock) -> None:
        state = ExecutionState(clock=mock_clock)
        state.set_cache("short", 1, ttl_seconds=1)
        state.set_cache("long", 2, ttl_seconds=100)
        mock_clock.advance(5)
        assert state.purge_expired_cache() == 1
        assert state.get_cache("long") == (2, True)

    def test_get_or_fill_miss_then_hit(self, mock_clock: MockClock) -> None:
        state = ExecutionState(clock=mock_clock)
        calls: list[int] = []

        def compute() -> str:
            calls.append(1)
            return "value"

        assert state.get_or_fill("k", 60, compute) == ("value", False)
        assert state.get_or_fill("k", 60, compute) == ("value", True)
        assert len(calls) == 1

    def test_get_or_fill_recomputes_after_expiry(self, mock_clock: MockClock) -> None:
        state = ExecutionState(clock=mock_clock)
        values = iter(["first", "second"])

        assert state.get_or_fill("k", 10, lambda: next(values)) == ("first", False)
        mock_clock.advance(10)
        assert state.get_or_fill("k", 10, lambda: next(values)) == ("second", False)

    def test_failed_fill_leaves_key_empty(self) -> None:
        state = ExecutionState()

        def fail() -> str:
            raise RuntimeError("compute failed")

        with pytest.raises(RuntimeError, match="compute failed"):
            state.get_or_fill("k", 60, fail)
        assert state.get_cache("k") == (None, False)
        assert state.get_or_fill("k", 60, lambda: "ok") == ("ok", False)

    def test_concurrent_misses_compute_once(self) -> None:
        """Only one caller computes; the rest wait and reuse its value."""
        state = ExecutionState()
        started = threading.Event()
        calls: list[int] = []
        lock = threading.Lock()

        def compute() -> str:
            with lock:
                calls.append(1)
            started.set()
            time.sleep(0.05)
            return "shared"

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(lambda _: state.get_or_fill("k", 60, compute), range(6)))

        assert len(calls) == 1
        assert [value for value, _ in results] == ["shared"] * 6
        assert sum(1 for _, hit in results if not hit) == 1

    def test_reentrant_fill_raises(self) -> None:
        """compute asking for its own key fails rather than waiting on itself."""
        state = ExecutionState()

        def compute() -> str:
            state.get_or_fill("k", 60, lambda: "inner")
            return "outer"

        with pytest.raises(NodeInputError, match="already being filled"):
            state.get_or_fill("k", 60, compute)
        assert state.get_cache("k") == (None, False)
        assert state.get_or_fill("k", 60, lambda: "ok") == ("ok", False)

    def test_compute_may_touch_state(self) -> None:
        """compute runs without the state lock held."""
        state = ExecutionState()

        def compute() -> int:
            state.set_variable("inside", True)
            return state.increment_counter(1)

        state.get_or_fill("k", 60, compute)
        assert state.get_variable("inside") is True


class TestWorkflowContext:
    """Constants and context variables."""

    def test_constant_defined_once(self) -> None:
        state = ExecutionState(constants={"region": "eu"})
        assert state.set_context_constant("region", "us") is False
        assert state.get_context_constant("region") == ("eu", True)
        assert state.set_context_constant("tier", "gold") is True
        assert state.get_context_constant("tier") == ("gold", True)

    def test_context_variables_overwrite(self) -> None:
        state = ExecutionState()
        state.set_context_variable("user", "a")
        state.set_context_variable("user", "b")
        assert state.get_context_variable("user") == ("b", True)
        assert state.get_context_variable("missing") == (None, False)

    def test_workflow_context_overlays_variables_on_constants(self) -> None:
        state = ExecutionState(constants={"name": "const", "only_const": 1}, context_variables={"name": "ctx"})
        assert state.workflow_context() == {"name": "ctx", "only_const": 1}

    def test_template_sources_snapshot(self) -> None:
        state = ExecutionState(constants={"a": 1}, context_variables={"b": 2}, variables={"c": 3})
        assert state.template_sources() == ({"a": 1}, {"b": 2}, {"c": 3})
