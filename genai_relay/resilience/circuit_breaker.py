"""Async circuit breaker for backend endpoints.

Implements the standard three-state circuit breaker:

    CLOSED    →  (connection failure / backend-down status)  →  OPEN
    OPEN      →  (cooldown elapsed)                          →  HALF_OPEN
    HALF_OPEN →  (probe succeeds)                            →  CLOSED
    HALF_OPEN →  (probe fails)                               →  OPEN

A single failure trips the circuit: the breaker protects the endpoint,
not the caller, and every caller of an endpoint shares one instance via
``CircuitBreakerRegistry``.  Only one probe is let through while
HALF_OPEN; its outcome alone decides between CLOSED and OPEN.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum

from genai_relay.core.errors import CircuitOpenError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Async-safe circuit breaker for a single backend endpoint.

    Args:
        name:     Human-readable backend name (for logging/errors).
        cooldown: Seconds the circuit stays OPEN before probing.
        clock:    Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        cooldown: float = 30.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.cooldown = cooldown
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._opened_at: float = 0.0
        self._probe_in_flight = False
        self._lock = asyncio.Lock()

        # Metrics
        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0
        self.total_successes = 0
        self.total_trips = 0

    # ── Public properties ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        """Return the current state, reporting an expired OPEN as HALF_OPEN."""
        if self._state == CircuitState.OPEN and self._elapsed() >= self.cooldown:
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def opened_at(self) -> float:
        """Clock reading of the last trip; ``0.0`` unless OPEN or HALF_OPEN."""
        return self._opened_at

    def _elapsed(self) -> float:
        return self._clock() - self._opened_at

    # ── Core call wrapper ────────────────────────────────────────────

    async def pre_check(self) -> bool:
        """Check whether a call may go out; raise if the circuit is open.

        Must be called **before** the actual HTTP dispatch.  Returns
        ``True`` when the admitted call is the HALF_OPEN probe; pass that
        flag back to ``on_success``/``on_failure``/``release_probe``.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._elapsed()
                if elapsed < self.cooldown:
                    self.total_rejections += 1
                    raise CircuitOpenError(self.name, self.cooldown - elapsed)
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False
                logger.info("Circuit HALF_OPEN for %s — allowing one probe", self.name)

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    self.total_rejections += 1
                    raise CircuitOpenError(self.name, 0.0)
                self._probe_in_flight = True
                self.total_calls += 1
                return True

            self.total_calls += 1
            return False

    async def on_success(self, probe: bool = False) -> None:
        """Record a call that reached the backend — close if it was the probe."""
        async with self._lock:
            self.total_successes += 1
            if probe and self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._opened_at = 0.0
                self._probe_in_flight = False
                logger.info("Circuit CLOSED for %s — probe succeeded", self.name)

    async def on_failure(self, probe: bool = False) -> None:
        """Record a failed call — trip the circuit.

        A failure while already OPEN only refreshes ``opened_at``.  While
        HALF_OPEN, only the probe's own failure re-opens the circuit; a
        late failure from a call admitted before the trip is ignored.
        """
        async with self._lock:
            self.total_failures += 1
            if self._state == CircuitState.CLOSED:
                self._trip()
            elif self._state == CircuitState.OPEN:
                self._opened_at = self._clock()
            elif probe:
                self._trip()

    def release_probe(self, probe: bool = False) -> None:
        """Give back the probe slot without recording an outcome.

        Used when the probe was cancelled by its caller: the state is
        left untouched and the next call becomes the probe.  Synchronous
        so it can run inside a cancellation handler without awaiting.
        """
        if probe and self._state == CircuitState.HALF_OPEN:
            self._probe_in_flight = False

    def _trip(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._probe_in_flight = False
        self.total_trips += 1
        logger.warning(
            "Circuit OPEN for %s — backend unreachable. Suppressing requests for %.0fs.",
            self.name,
            self.cooldown,
        )

    async def reset(self) -> None:
        """Force-reset the circuit breaker to CLOSED state."""
        async with self._lock:
            self._state = CircuitState.CLOSED
            self._opened_at = 0.0
            self._probe_in_flight = False

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "opened_at": self._opened_at,
            "cooldown": self.cooldown,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_successes": self.total_successes,
            "total_trips": self.total_trips,
        }


class CircuitBreakerRegistry:
    """Owns one ``CircuitBreaker`` per backend endpoint.

    Construct once at startup and share it; every caller of an endpoint
    must observe the same breaker.

    Usage::

        registry = CircuitBreakerRegistry(cooldown=30.0)
        cb = registry.get("http://localhost:8000")
        probe = await cb.pre_check()
        # ... dispatch ...
        await cb.on_success(probe)
    """

    def __init__(self, cooldown: float = 30.0, clock: Clock = time.monotonic) -> None:
        self._cooldown = cooldown
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, backend_name: str) -> CircuitBreaker:
        """Return (or create) the circuit breaker for *backend_name*."""
        if backend_name not in self._breakers:
            self._breakers[backend_name] = CircuitBreaker(
                name=backend_name,
                cooldown=self._cooldown,
                clock=self._clock,
            )
        return self._breakers[backend_name]

    def all_snapshots(self) -> list[dict]:
        """Return snapshots for every registered breaker."""
        return [cb.snapshot() for cb in self._breakers.values()]

    async def reset_all(self) -> None:
        """Reset every circuit breaker to CLOSED."""
        for cb in self._breakers.values():
            await cb.reset()
