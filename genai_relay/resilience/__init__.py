"""Resilience patterns — circuit breaker for backend dispatch.

Provides per-endpoint circuit breakers so a known-unreachable backend
is answered locally instead of being hammered on every call.
"""

from genai_relay.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
]
