"""Structured error responses and the genai-relay exception hierarchy.

Infrastructure failures (unreachable backend, open circuit) and
application failures (a proxy or provider answering with an error
status) get distinct types so callers can tell an outage from a bug.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GenAIRelayError(Exception):
    """Base exception for all genai-relay errors."""


class BackendUnavailableError(GenAIRelayError):
    """Raised when an HTTP connection to a backend service fails."""

    def __init__(self, service_name: str, detail: str = "") -> None:
        self.service_name = service_name
        self.detail = detail
        msg = f"Backend unavailable: {service_name}"
        if detail:
            msg += f" — {detail}"
        super().__init__(msg)


class CircuitOpenError(GenAIRelayError):
    """Raised by a circuit breaker when a call is rejected locally.

    Attributes:
        backend_name: Friendly name of the failing backend.
        retry_after: Seconds until the circuit allows a probe.
    """

    def __init__(self, backend_name: str, retry_after: float) -> None:
        self.backend_name = backend_name
        self.retry_after = max(0.0, retry_after)
        super().__init__(f"Circuit open for '{backend_name}' — retry after {self.retry_after:.1f}s")


class ProxyResponseError(GenAIRelayError):
    """Raised when the generative proxy answers with a non-2xx status
    that is not eligible for direct fallback.
    """

    def __init__(self, status_code: int, message: str = "", body: dict | None = None) -> None:
        self.status_code = status_code
        self.message = message
        self.body = body or {}
        msg = f"Proxy returned HTTP {status_code}"
        if message:
            msg += f": {message}"
        super().__init__(msg)


class ProviderResponseError(GenAIRelayError):
    """Raised when the generative provider rejects a direct call."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        self.message = message
        msg = f"Provider returned HTTP {status_code}"
        if message:
            msg += f": {message}"
        super().__init__(msg)


class StructuredErrorResponse(BaseModel):
    """JSON error body returned by the proxy service.

    Serializes as ``{"error", "code", "message"?, "shouldFallback"}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    error: str
    code: str
    message: str | None = None
    should_fallback: bool = Field(default=False, serialization_alias="shouldFallback")

    @classmethod
    def from_exception(cls, exc: Exception) -> StructuredErrorResponse:
        """Create from an exception, mapping to machine-readable codes.

        Provider failures carry the provider message and a fallback hint;
        anything unrecognized never exposes internal details.
        """
        if isinstance(exc, ProviderResponseError):
            return cls(
                error="Gemini API call failed",
                code="PROVIDER_ERROR",
                message=exc.message or str(exc),
                should_fallback=True,
            )
        if isinstance(exc, BackendUnavailableError):
            return cls(
                error="Gemini API call failed",
                code="BACKEND_UNAVAILABLE",
                message=str(exc),
                should_fallback=True,
            )
        # Unhandled — never expose internal details
        return cls(error="An internal error occurred", code="INTERNAL_ERROR")

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
