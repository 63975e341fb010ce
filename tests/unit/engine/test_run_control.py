# tests/unit/engine/test_run_control.py
"""Tests for RunControl: cancellation, deadline and execution budget."""

from __future__ import annotations

import threading

import pytest

from nodeflow.contracts.errors import RunCancelledError, RunLimitExceededError
from nodeflow.core.config import EngineSettings
from nodeflow.engine import MockClock, RunControl


class TestCancellation:
    def test_not_cancelled(self, mock_clock: MockClock) -> None:
        control = RunControl(clock=mock_clock, settings=EngineSettings(), cancel_events=(threading.Event(),))
        control.check("a")

    def test_cancel_event_names_next_node(self, mock_clock: MockClock) -> None:
        event = threading.Event()
        control = RunControl(clock=mock_clock, settings=EngineSettings(), cancel_events=(event,))
        event.set()

        with pytest.raises(RunCancelledError) as exc_info:
            control.check("b")
        assert exc_info.value.node_id == "b"

    def test_child_observes_parent_and_own_event(self, mock_clock: MockClock) -> None:
        """A timeout body stops when either the run or the timeout cancels it."""
        run_event = threading.Event()
        body_event = threading.Event()
        control = RunControl(clock=mock_clock, settings=EngineSettings(), cancel_events=(run_event,))
        child = control.child(body_event)

        body_event.set()
        with pytest.raises(RunCancelledError):
            child.check_cancelled()
        control.check_cancelled()


class TestLimits:
    def test_deadline(self, mock_clock: MockClock) -> None:
        control = RunControl(clock=mock_clock, settings=EngineSettings(max_execution_seconds=5))
        mock_clock.advance(5)
        control.check("a")

        mock_clock.advance(1)
        with pytest.raises(RunLimitExceededError, match="max execution time") as exc_info:
            control.check("a")
        assert exc_info.value.limit == 5
        assert exc_info.value.actual == 6

    def test_zero_deadline_disables_it(self, mock_clock: MockClock) -> None:
        control = RunControl(clock=mock_clock, settings=EngineSettings(max_execution_seconds=0))
        mock_clock.advance(10_000)
        control.check("a")

    def test_execution_budget(self, mock_clock: MockClock) -> None:
        control = RunControl(clock=mock_clock, settings=EngineSettings(max_node_executions=2))
        control.count_execution("a")
        control.count_execution("b")
        with pytest.raises(RunLimitExceededError, match="max node executions: 2") as exc_info:
            control.count_execution("c")
        assert exc_info.value.node_id == "c"
        assert exc_info.value.actual == 3

    def test_child_shares_budget(self, mock_clock: MockClock) -> None:
        control = RunControl(clock=mock_clock, settings=EngineSettings(max_node_executions=2))
        child = control.child(threading.Event())
        control.count_execution("a")
        child.count_execution("b")
        assert control.nodes_executed == 2
        with pytest.raises(RunLimitExceededError):
            child.count_execution("c")

    def test_unlimited_budget(self, mock_clock: MockClock) -> None:
        control = RunControl(clock=mock_clock, settings=EngineSettings())
        for i in range(500):
            control.count_execution(f"n{i}")
        assert control.nodes_executed == 500
