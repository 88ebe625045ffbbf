"""AIRouter — proxy-first generate calls with direct-provider fallback.

Callers see one ``generate()`` operation.  The request is posted to the
server-side proxy through the circuit-breaker dispatcher.  When the
proxy is confirmed unusable (a not-found / unavailable / unauthorized
status, or a network failure) and a direct credential was configured,
the router calls the provider itself instead.

Ordinary application errors (e.g. a 400 for a malformed request) are
never masked as outages: they are raised as ``ProxyResponseError``.
The direct path exists for local development and partial outages only;
without a credential it is unreachable.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from genai_relay.core.config import Settings
from genai_relay.core.errors import ProxyResponseError
from genai_relay.gemini_client import GeminiClient
from genai_relay.models.ai_models import timeout_for
from genai_relay.models.schemas import GenerateRequest, GenerateResponse
from genai_relay.request_dispatcher import DispatchRequest, RequestDispatcher
from genai_relay.resilience.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_STATUS_CODES = frozenset({401, 404, 503})


def _parse_body(response: httpx.Response) -> dict:
    """Safely parse a JSON response body."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class AIRouter:
    """Routes generate calls to the proxy, falling back to the provider.

    Args:
        dispatcher:                 Circuit-breaker-protected dispatcher.
        proxy_url:                  Absolute URL of the proxy endpoint.
        direct_fallback_credential: Provider credential enabling the
                                    direct fallback; ``None`` disables it.
        gemini_base_url:            Provider API root for the fallback.
        fallback_status_codes:      Proxy statuses that allow fallback.
        request_timeout:            Overrides the per-model timeout.
        direct_http_client:         Optional client for the fallback call.
    """

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        proxy_url: str,
        *,
        direct_fallback_credential: str | None = None,
        gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        fallback_status_codes: frozenset[int] = DEFAULT_FALLBACK_STATUS_CODES,
        request_timeout: float | None = None,
        direct_http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self.proxy_url = proxy_url
        self._fallback_status_codes = frozenset(fallback_status_codes)
        self._request_timeout = request_timeout
        self._direct: GeminiClient | None = None
        if direct_fallback_credential:
            self._direct = GeminiClient(
                direct_fallback_credential,
                base_url=gemini_base_url,
                http_client=direct_http_client,
            )

    @property
    def fallback_enabled(self) -> bool:
        return self._direct is not None

    async def generate(
        self,
        request: GenerateRequest,
        *,
        timeout: float | None = None,
    ) -> GenerateResponse:
        """Generate content for *request*.

        Returns:
            The normalized outcome, from the proxy or the direct fallback.

        Raises:
            ProxyResponseError: The proxy failed and fallback does not apply.
                An unreachable proxy without a credential surfaces as the
                dispatcher's local 503.
            ProviderResponseError: The direct fallback was rejected or
                answered with a malformed body.
            BackendUnavailableError: The direct fallback could not connect.
            httpx.TransportError: The dispatcher raised a transport error it
                does not classify (e.g. an unsupported URL scheme) and no
                credential is configured.
            asyncio.CancelledError, httpx.TimeoutException: Propagated
                untouched; the caller gave up.
        """
        if timeout is None:
            timeout = self._request_timeout if self._request_timeout is not None else timeout_for(request.model)
        dispatch_request = DispatchRequest(
            url=self.proxy_url,
            method="POST",
            json=request.to_payload(),
            timeout=timeout,
        )

        try:
            response = await self._dispatcher.dispatch(dispatch_request)
        except httpx.TimeoutException:
            raise
        except httpx.TransportError as exc:
            if self._direct is None:
                raise
            logger.warning(
                "Proxy unreachable (%s), falling back to direct provider call for %s",
                type(exc).__name__,
                request.model,
            )
            return await self._direct.generate(request, timeout=timeout)

        if response.is_success:
            return self._parse_outcome(response)

        if response.status_code in self._fallback_status_codes and self._direct is not None:
            logger.warning(
                "Proxy returned HTTP %d, falling back to direct provider call for %s",
                response.status_code,
                request.model,
            )
            return await self._direct.generate(request, timeout=timeout)

        body = _parse_body(response)
        message = str(body.get("message") or body.get("error") or "")
        raise ProxyResponseError(response.status_code, message, body)

    async def generate_content(
        self,
        model: str,
        contents: Any,
        *,
        config: dict | None = None,
        system_instruction: str | None = None,
        thinking_budget: int | None = None,
        timeout: float | None = None,
    ) -> GenerateResponse:
        """Keyword-argument convenience wrapper around ``generate()``."""
        request = GenerateRequest(
            model=model,
            contents=contents,
            config=config,
            system_instruction=system_instruction,
            thinking_budget=thinking_budget,
        )
        return await self.generate(request, timeout=timeout)

    def _parse_outcome(self, response: httpx.Response) -> GenerateResponse:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProxyResponseError(response.status_code, "Malformed proxy response") from exc
        if not isinstance(data, dict):
            raise ProxyResponseError(response.status_code, "Malformed proxy response")
        return GenerateResponse.model_validate(data)

    async def close(self) -> None:
        await self._dispatcher.close()
        if self._direct is not None:
            await self._direct.close()


def build_router(
    settings: Settings,
    registry: CircuitBreakerRegistry | None = None,
) -> AIRouter:
    """Composition root: wire registry, dispatcher and router from *settings*."""
    dispatcher = RequestDispatcher(settings, registry=registry)
    credential = settings.DIRECT_FALLBACK_API_KEY
    return AIRouter(
        dispatcher,
        settings.proxy_url,
        direct_fallback_credential=credential.get_secret_value() if credential else None,
        gemini_base_url=settings.GEMINI_API_BASE_URL,
        fallback_status_codes=frozenset(settings.FALLBACK_STATUS_CODES),
        request_timeout=settings.REQUEST_TIMEOUT_SECONDS,
    )
