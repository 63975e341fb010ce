"""Run-scoped execution state.

One ExecutionState is created per run and discarded when the run ends. It
is never a process-wide singleton, so concurrent runs are isolated by
construction.

Access discipline:
- Variables, accumulator, counter, cache and workflow context are guarded
  by a single run-wide RLock (one writer at a time; readers see the latest
  completed write).
- Node results live in NodeResultStore: append-only, single assignment per
  key, with its own lock. Loop/timeout/cache bodies get a fresh store per
  execution so body results never collide with the enclosing scope.
- Cache fill uses a per-key in-flight marker (owning thread id plus a
  threading.Event) so that concurrent misses on one key compute the value
  exactly once.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from nodeflow.contracts.errors import NodeInputError, OrchestrationInvariantError, VariableNotFoundError
from nodeflow.engine.clock import DEFAULT_CLOCK, Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Cached value plus the monotonic instant it expires at."""

    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class NodeResultStore:
    """Write-once mapping from node id to result."""

    def __init__(self) -> None:
        self._results: dict[str, Any] = {}
        self._lock = threading.Lock()

    def record(self, node_id: str, value: Any) -> None:
        """Record a node's result.

        Raises:
            OrchestrationInvariantError: If the node already has a result
        """
        with self._lock:
            if node_id in self._results:
                raise OrchestrationInvariantError(f"Result for node '{node_id}' was already recorded in this scope")
            self._results[node_id] = value

    def get(self, node_id: str) -> tuple[Any, bool]:
        with self._lock:
            if node_id in self._results:
                return self._results[node_id], True
            return None, False

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._results)

    def __contains__(self, node_id: object) -> bool:
        with self._lock:
            return node_id in self._results

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


class ExecutionState:
    """Shared mutable state of one run.

    Args:
        clock: Time source for cache expiry
        constants: Workflow constants (read-mostly)
        context_variables: Initial context variables
        variables: Initial variables
    """

    def __init__(
        self,
        *,
        clock: Clock = DEFAULT_CLOCK,
        constants: Mapping[str, Any] | None = None,
        context_variables: Mapping[str, Any] | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._variables: dict[str, Any] = dict(variables or {})
        self._accumulator: Any = None
        self._counter: float = 0.0
        self._cache: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, tuple[int, threading.Event]] = {}
        self._constants: dict[str, Any] = dict(constants or {})
        self._context_variables: dict[str, Any] = dict(context_variables or {})
        self.results = NodeResultStore()

    @property
    def clock(self) -> Clock:
        return self._clock

    # === Variables ===

    def get_variable(self, name: str) -> Any:
        """Read a variable.

        Raises:
            VariableNotFoundError: If no node has set the variable
        """
        with self._lock:
            if name not in self._variables:
                raise VariableNotFoundError(f"variable '{name}' not found", name=name)
            return self._variables[name]

    def set_variable(self, name: str, value: Any) -> None:
        with self._lock:
            self._variables[name] = value

    def variables(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._variables)

    # === Accumulator and counter ===

    def get_accumulator(self) -> Any:
        with self._lock:
            return self._accumulator

    def set_accumulator(self, value: Any) -> None:
        with self._lock:
            self._accumulator = value

    def update_accumulator(self, update: Callable[[Any], Any]) -> Any:
        """Replace the accumulator with update(current) under the state lock."""
        with self._lock:
            self._accumulator = update(self._accumulator)
            return self._accumulator

    def get_counter(self) -> float:
        with self._lock:
            return self._counter

    def set_counter(self, value: float) -> None:
        with self._lock:
            self._counter = value

    def increment_counter(self, delta: float) -> float:
        with self._lock:
            self._counter += delta
            return self._counter

    # === Cache ===

    def get_cache(self, key: str) -> tuple[Any, bool]:
        """Return (value, found); expired entries are reported as absent."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None or entry.is_expired(self._clock.monotonic()):
                return None, False
            return entry.value, True

    def set_cache(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store value under key, expiring ttl_seconds from now."""
        with self._lock:
            self._cache[key] = CacheEntry(value=value, expires_at=self._clock.monotonic() + ttl_seconds)

    def delete_cache(self, key: str) -> bool:
        """Remove key; returns True if a live entry was removed."""
        with self._lock:
            entry = self._cache.pop(key, None)
            return entry is not None and not entry.is_expired(self._clock.monotonic())

    def purge_expired_cache(self) -> int:
        """Compact expired entries; returns how many were removed."""
        with self._lock:
            now = self._clock.monotonic()
            expired = [key for key, entry in self._cache.items() if entry.is_expired(now)]
            for key in expired:
                del self._cache[key]
            return len(expired)

    def get_or_fill(self, key: str, ttl_seconds: float, compute: Callable[[], Any]) -> tuple[Any, bool]:
        """Return the cached value for key, computing and storing it on a miss.

        Concurrent callers that miss on the same key serialise on an
        in-flight marker: one runs compute, the others wait and then reuse
        the stored value. compute runs without the state lock held, so it
        may itself read and write run state.

        A failed fill stores nothing, releases the marker (a waiter then
        retries the fill) and re-raises the error to this caller.

        Returns:
            (value, hit) where hit is False when this call ran compute

        Raises:
            NodeInputError: If compute asks for the key it is filling
        """
        while True:
            with self._lock:
                entry = self._cache.get(key)
                if entry is not None and not entry.is_expired(self._clock.monotonic()):
                    return entry.value, True
                pending = self._in_flight.get(key)
                if pending is None:
                    marker = threading.Event()
                    self._in_flight[key] = (threading.get_ident(), marker)
                    break
                owner, event = pending
                if owner == threading.get_ident():
                    # Waiting here would wait on this thread's own fill
                    raise NodeInputError(f"cache key {key!r} is already being filled by an enclosing cache node")
            logger.debug("Waiting for in-flight cache fill of %r", key)
            event.wait()

        try:
            value = compute()
        except BaseException:
            with self._lock:
                del self._in_flight[key]
            marker.set()
            raise

        with self._lock:
            self._cache[key] = CacheEntry(value=value, expires_at=self._clock.monotonic() + ttl_seconds)
            del self._in_flight[key]
        marker.set()
        return value, False

    # === Workflow context ===

    def get_context_variable(self, name: str) -> tuple[Any, bool]:
        with self._lock:
            if name in self._context_variables:
                return self._context_variables[name], True
            return None, False

    def set_context_variable(self, name: str, value: Any) -> None:
        with self._lock:
            self._context_variables[name] = value

    def context_variables(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._context_variables)

    def get_context_constant(self, name: str) -> tuple[Any, bool]:
        with self._lock:
            if name in self._constants:
                return self._constants[name], True
            return None, False

    def set_context_constant(self, name: str, value: Any) -> bool:
        """Define a constant once; later definitions of the same name are ignored."""
        with self._lock:
            if name in self._constants:
                return False
            self._constants[name] = value
            return True

    def constants(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._constants)

    def workflow_context(self) -> dict[str, Any]:
        """Constants overlaid by context variables."""
        with self._lock:
            return {**self._constants, **self._context_variables}

    def template_sources(self) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
        """Consistent (constants, context_variables, variables) snapshot."""
        with self._lock:
            return dict(self._constants), dict(self._context_variables), dict(self._variables)
