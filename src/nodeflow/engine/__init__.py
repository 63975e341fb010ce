"""Execution engine: run-scoped state, context, and the graph scheduler.

Public API:
    from nodeflow.engine import WorkflowEngine, ExecutionState, MockClock
"""

from nodeflow.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from nodeflow.engine.conditions import Condition, compile_condition
from nodeflow.engine.context import RunContext, RunControl
from nodeflow.engine.scheduler import WorkflowEngine
from nodeflow.engine.state import CacheEntry, ExecutionState, NodeResultStore

__all__ = [
    "DEFAULT_CLOCK",
    "CacheEntry",
    "Clock",
    "Condition",
    "ExecutionState",
    "MockClock",
    "NodeResultStore",
    "RunContext",
    "RunControl",
    "SystemClock",
    "WorkflowEngine",
    "compile_condition",
]
