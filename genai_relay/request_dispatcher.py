"""RequestDispatcher — circuit-breaker-protected HTTP dispatch.

Every outbound call to the backend API goes through
``RequestDispatcher.dispatch()``.  Each backend origin has one shared
circuit breaker.  While a circuit is OPEN, calls are answered locally
with a synthetic 503 instead of touching the network, which turns
connection timeouts and refused connections into an immediate, cheap
response during known-bad windows.

The dispatcher never retries; retrying is the caller's decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from genai_relay.core.config import Settings
from genai_relay.core.errors import CircuitOpenError
from genai_relay.resilience.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

# Failures where the request never reached a working server.  Read,
# write and pool timeouts are caller-set deadlines, not outages.
CONNECTION_ERRORS: tuple[type[Exception], ...] = (
    httpx.NetworkError,
    httpx.ConnectTimeout,
    httpx.RemoteProtocolError,
    httpx.ProxyError,
)

# ── Data classes ────────────────────────────────────────────────────────


@dataclass
class DispatchRequest:
    """HTTP request descriptor.

    Attributes:
        url:     Absolute target URL.
        method:  HTTP method (default ``POST``).
        headers: Extra request headers.
        json:    JSON-serializable body (ignored for GET).
        timeout: Per-call timeout in seconds; ``None`` uses the client default.
    """

    url: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    json: Any = None
    timeout: float | None = None


def backend_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for *url* — the breaker key."""
    parsed = httpx.URL(url)
    origin = f"{parsed.scheme}://{parsed.host}"
    if parsed.port:
        origin += f":{parsed.port}"
    return origin


def unavailable_response(request: DispatchRequest, error: str) -> httpx.Response:
    """Build the synthetic 503 returned instead of a network response."""
    return httpx.Response(
        503,
        json={"error": error},
        request=httpx.Request(request.method.upper(), request.url),
    )


# ── Dispatcher ──────────────────────────────────────────────────────────


class RequestDispatcher:
    """Dispatches HTTP calls to backend services behind circuit breakers.

    Uses a single ``httpx.AsyncClient`` per backend origin for connection
    pooling.  The breaker registry is owned by the composition root and
    may be shared with other dispatchers.

    Args:
        settings: Application settings with resilience configuration.
        registry: Circuit breaker registry; built from *settings* if omitted.
    """

    def __init__(
        self,
        settings: Settings,
        registry: CircuitBreakerRegistry | None = None,
    ) -> None:
        self._cb_registry = registry or CircuitBreakerRegistry(
            cooldown=settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
        )
        self._backend_down_status_codes = frozenset(settings.BACKEND_DOWN_STATUS_CODES)
        # Connection pool: one AsyncClient per backend origin
        self._clients: dict[str, httpx.AsyncClient] = {}
        # Single-client override — tests can set this
        self._client: httpx.AsyncClient | None = None

    def _get_client(self, origin: str) -> httpx.AsyncClient:
        """Return a pooled ``AsyncClient`` for *origin*.

        If ``_client`` has been explicitly set (e.g. by tests injecting
        a mock), that client is used for all backends.
        """
        if self._client is not None:
            return self._client
        if origin not in self._clients:
            self._clients[origin] = httpx.AsyncClient()
        return self._clients[origin]

    async def _send_request(
        self,
        client: httpx.AsyncClient,
        request: DispatchRequest,
    ) -> httpx.Response:
        """Send a single HTTP request."""
        kwargs: dict[str, Any] = {"headers": request.headers}
        if request.method.upper() != "GET" and request.json is not None:
            kwargs["json"] = request.json
        if request.timeout is not None:
            kwargs["timeout"] = request.timeout
        return await client.request(request.method.upper(), request.url, **kwargs)

    async def dispatch(self, request: DispatchRequest) -> httpx.Response:
        """Send *request* unless its backend's circuit is open.

        Returns:
            The backend's response, or a synthetic 503 with a JSON
            ``{"error": ...}`` body when the circuit is open or the
            backend could not be reached.

        Raises:
            asyncio.CancelledError: If the caller cancelled the call.
            httpx.TimeoutException: If a caller-set read/write/pool
                timeout expired.  Neither changes the circuit state.
        """
        origin = backend_origin(request.url)
        cb = self._cb_registry.get(origin)

        try:
            probe = await cb.pre_check()
        except CircuitOpenError as exc:
            logger.debug("Rejected %s %s locally: %s", request.method, request.url, exc)
            return unavailable_response(request, "Backend unavailable (circuit open)")

        client = self._get_client(origin)
        try:
            response = await self._send_request(client, request)
        except CONNECTION_ERRORS as exc:
            await cb.on_failure(probe)
            logger.debug("Connection to %s failed: %r", origin, exc)
            return unavailable_response(request, "Backend unavailable")
        except BaseException:
            # Cancellation or a caller-side error: not a health signal.
            cb.release_probe(probe)
            raise

        if response.status_code in self._backend_down_status_codes:
            await cb.on_failure(probe)
            return response

        await cb.on_success(probe)
        return response

    @property
    def circuit_breakers(self) -> CircuitBreakerRegistry:
        """Expose circuit breaker registry for health/metrics endpoints."""
        return self._cb_registry

    async def close(self) -> None:
        """Close all pooled httpx clients."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
