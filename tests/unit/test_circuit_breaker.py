"""Tests for the circuit breaker state machine and registry.

Covers:
- CircuitBreaker state transitions (CLOSED → OPEN → HALF_OPEN → CLOSED)
- Single-flight HALF_OPEN probe and late-failure handling
- Idempotent trips and one warning per OPEN transition
- CircuitBreakerRegistry per-endpoint isolation
"""

from __future__ import annotations

import logging

import pytest

from genai_relay.core.errors import CircuitOpenError
from genai_relay.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CircuitBreaker State Machine Tests
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCircuitBreakerStates:
    """Test the three-state circuit breaker transitions."""

    async def test_initial_state_is_closed(self, clock):
        cb = CircuitBreaker("test-backend", clock=clock)
        assert cb.state == CircuitState.CLOSED
        assert cb.opened_at == 0.0

    async def test_single_failure_opens(self, clock):
        cb = CircuitBreaker("test", clock=clock)
        await cb.pre_check()
        await cb.on_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.opened_at == clock.now
        assert cb.opened_at > 0

    async def test_success_keeps_closed(self, clock):
        cb = CircuitBreaker("test", clock=clock)
        probe = await cb.pre_check()
        await cb.on_success(probe)
        assert probe is False
        assert cb.state == CircuitState.CLOSED

    async def test_open_rejects_calls(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        await cb.on_failure()
        clock.advance(10.0)
        with pytest.raises(CircuitOpenError, match="Circuit open for 'test'") as exc_info:
            await cb.pre_check()
        assert exc_info.value.retry_after == pytest.approx(20.0)
        assert cb.total_rejections == 1

    async def test_open_reports_half_open_after_cooldown(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        await cb.on_failure()
        assert cb._state == CircuitState.OPEN
        clock.advance(30.0)
        assert cb.state == CircuitState.HALF_OPEN

    async def test_first_call_after_cooldown_is_probe(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        for _ in range(5):
            await cb.on_failure()
        opened = cb.opened_at
        clock.advance(30.001)
        probe = await cb.pre_check()
        assert probe is True
        assert cb._state == CircuitState.HALF_OPEN
        assert cb.opened_at == opened

    async def test_many_rejections_do_not_delay_probe(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        await cb.on_failure()
        for _ in range(50):
            clock.advance(0.5)
            with pytest.raises(CircuitOpenError):
                await cb.pre_check()
        clock.advance(5.001)
        assert await cb.pre_check() is True

    async def test_half_open_probe_success_closes(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        await cb.on_failure()
        clock.advance(31.0)
        probe = await cb.pre_check()
        await cb.on_success(probe)
        assert cb.state == CircuitState.CLOSED
        assert cb.opened_at == 0.0

    async def test_half_open_probe_failure_reopens_with_fresh_timestamp(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        await cb.on_failure()
        first_opened = cb.opened_at
        clock.advance(31.0)
        probe = await cb.pre_check()
        await cb.on_failure(probe)
        assert cb.state == CircuitState.OPEN
        assert cb.opened_at == first_opened + 31.0

    async def test_half_open_limits_concurrent_probes(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        await cb.on_failure()
        clock.advance(31.0)
        assert await cb.pre_check() is True  # First probe allowed
        with pytest.raises(CircuitOpenError):
            await cb.pre_check()  # Second probe blocked

    async def test_late_non_probe_failure_does_not_flap(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        straggler = await cb.pre_check()  # admitted while CLOSED
        await cb.on_failure()
        clock.advance(31.0)
        probe = await cb.pre_check()

        await cb.on_failure(straggler)
        assert cb._state == CircuitState.HALF_OPEN

        await cb.on_success(probe)
        assert cb.state == CircuitState.CLOSED

    async def test_non_probe_success_does_not_close_open_circuit(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        straggler = await cb.pre_check()
        await cb.on_failure()
        await cb.on_success(straggler)
        assert cb.state == CircuitState.OPEN

    async def test_release_probe_leaves_state_and_frees_slot(self, clock):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        await cb.on_failure()
        clock.advance(31.0)
        probe = await cb.pre_check()
        cb.release_probe(probe)
        assert cb._state == CircuitState.HALF_OPEN
        assert await cb.pre_check() is True

    async def test_force_reset(self, clock):
        cb = CircuitBreaker("test", clock=clock)
        await cb.on_failure()
        assert cb.state == CircuitState.OPEN
        await cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.opened_at == 0.0


class TestTripIdempotence:
    """Concurrent failures trip once; later ones only refresh opened_at."""

    async def test_repeated_failures_refresh_opened_at(self, clock):
        cb = CircuitBreaker("test", clock=clock)
        await cb.on_failure()
        clock.advance(5.0)
        await cb.on_failure()
        assert cb.state == CircuitState.OPEN
        assert cb.opened_at == clock.now
        assert cb.total_trips == 1

    async def test_warning_logged_once_per_open_transition(self, clock, caplog):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        with caplog.at_level(logging.WARNING, logger="genai_relay.resilience.circuit_breaker"):
            for _ in range(3):
                await cb.on_failure()
            for _ in range(3):
                with pytest.raises(CircuitOpenError):
                    await cb.pre_check()
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "Circuit OPEN" in warnings[0].getMessage()

    async def test_failed_probe_is_a_new_transition(self, clock, caplog):
        cb = CircuitBreaker("test", cooldown=30.0, clock=clock)
        with caplog.at_level(logging.WARNING, logger="genai_relay.resilience.circuit_breaker"):
            await cb.on_failure()
            clock.advance(31.0)
            probe = await cb.pre_check()
            await cb.on_failure(probe)
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 2
        assert cb.total_trips == 2


class TestCircuitBreakerMetrics:
    """Test the metrics/snapshot reporting."""

    async def test_snapshot_structure(self, clock):
        cb = CircuitBreaker("my-backend", clock=clock)
        snap = cb.snapshot()
        assert snap["name"] == "my-backend"
        assert snap["state"] == "closed"
        assert snap["opened_at"] == 0.0
        assert snap["cooldown"] == 30.0
        assert snap["total_calls"] == 0

    async def test_metrics_track_correctly(self, clock):
        cb = CircuitBreaker("test", clock=clock)
        probe = await cb.pre_check()
        await cb.on_success(probe)
        probe = await cb.pre_check()
        await cb.on_failure(probe)
        with pytest.raises(CircuitOpenError):
            await cb.pre_check()
        assert cb.total_calls == 2
        assert cb.total_successes == 1
        assert cb.total_failures == 1
        assert cb.total_rejections == 1


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CircuitBreakerRegistry Tests
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestCircuitBreakerRegistry:
    """Test per-endpoint isolation and registry management."""

    def test_creates_breakers_on_demand(self):
        reg = CircuitBreakerRegistry()
        cb = reg.get("http://localhost:8000")
        assert isinstance(cb, CircuitBreaker)
        assert cb.name == "http://localhost:8000"

    def test_returns_same_breaker_for_same_name(self):
        reg = CircuitBreakerRegistry()
        assert reg.get("a") is reg.get("a")

    def test_different_names_get_different_breakers(self):
        reg = CircuitBreakerRegistry()
        assert reg.get("a") is not reg.get("b")

    def test_all_snapshots(self):
        reg = CircuitBreakerRegistry()
        reg.get("a")
        reg.get("b")
        snaps = reg.all_snapshots()
        assert len(snaps) == 2
        assert {s["name"] for s in snaps} == {"a", "b"}

    async def test_reset_all(self, clock):
        reg = CircuitBreakerRegistry(clock=clock)
        cb1 = reg.get("a")
        cb2 = reg.get("b")
        await cb1.on_failure()
        await cb2.on_failure()
        assert cb1.state == CircuitState.OPEN
        assert cb2.state == CircuitState.OPEN
        await reg.reset_all()
        assert cb1.state == CircuitState.CLOSED
        assert cb2.state == CircuitState.CLOSED

    def test_passes_config_to_breakers(self, clock):
        reg = CircuitBreakerRegistry(cooldown=60.0, clock=clock)
        cb = reg.get("test")
        assert cb.cooldown == 60.0
        assert cb._clock is clock
