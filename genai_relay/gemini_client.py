"""GeminiClient — direct calls to the provider's ``generateContent`` API.

Shared by the proxy service (server-side credential) and by the
router's direct fallback (client-side credential).  Translates a
``GenerateRequest`` into the provider's native body and the provider's
response back into a ``GenerateResponse``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from genai_relay.core.errors import BackendUnavailableError, ProviderResponseError
from genai_relay.models.ai_models import supports_thinking, timeout_for
from genai_relay.models.schemas import GenerateRequest, GenerateResponse
from genai_relay.request_dispatcher import CONNECTION_ERRORS

logger = logging.getLogger(__name__)

SERVICE_NAME = "gemini"

# Request-level fields the SDK accepts inside ``config`` but the REST
# API expects beside ``generationConfig``.
_TOP_LEVEL_CONFIG_KEYS = frozenset({"safetySettings", "tools", "toolConfig", "cachedContent"})


def _as_part(item: Any) -> dict:
    if isinstance(item, str):
        return {"text": item}
    return item


def _build_contents(contents: Any) -> list[dict]:
    """Normalize SDK-style ``contents`` into a list of Content objects."""
    if isinstance(contents, str):
        return [{"role": "user", "parts": [{"text": contents}]}]
    if isinstance(contents, dict):
        if "parts" in contents:
            return [contents]
        return [{"role": "user", "parts": [contents]}]
    if isinstance(contents, list):
        if all(isinstance(c, dict) and "parts" in c for c in contents):
            return contents
        return [{"role": "user", "parts": [_as_part(c) for c in contents]}]
    return [{"role": "user", "parts": [{"text": str(contents)}]}]


def build_generate_body(request: GenerateRequest) -> dict:
    """Translate *request* into a ``generateContent`` request body."""
    body: dict[str, Any] = {"contents": _build_contents(request.contents)}

    generation_config: dict[str, Any] = {}
    for key, value in (request.config or {}).items():
        if key in _TOP_LEVEL_CONFIG_KEYS:
            body[key] = value
        elif key == "systemInstruction":
            continue
        else:
            generation_config[key] = value

    if request.thinking_budget and supports_thinking(request.model):
        generation_config["thinkingConfig"] = {"thinkingBudget": request.thinking_budget}

    if generation_config:
        body["generationConfig"] = generation_config

    system_instruction = request.system_instruction or (request.config or {}).get("systemInstruction")
    if system_instruction:
        body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

    return body


def extract_text(candidates: list) -> str:
    """Return the concatenated text parts of the first candidate.

    Thought-summary parts are skipped.  No text is not an error.
    """
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    if not isinstance(content, dict):
        return ""
    texts = [
        part["text"]
        for part in content.get("parts") or []
        if isinstance(part, dict) and part.get("text") and not part.get("thought")
    ]
    return "".join(texts)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message", "")
    return str(error or "")


class GeminiClient:
    """Async client for the provider's REST ``generateContent`` endpoint.

    Args:
        api_key:     Provider credential.  Sent as a header, never logged.
        base_url:    API root, e.g. ``https://generativelanguage.googleapis.com/v1beta``.
        http_client: Optional shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def generate(
        self,
        request: GenerateRequest,
        timeout: float | None = None,
    ) -> GenerateResponse:
        """Call ``models/{model}:generateContent`` and normalize the result.

        Raises:
            ProviderResponseError: The provider answered with a non-2xx status
                or a body that is not a JSON object.
            BackendUnavailableError: The provider could not be reached.
        """
        url = f"{self.base_url}/models/{request.model}:generateContent"
        try:
            response = await self._get_client().post(
                url,
                json=build_generate_body(request),
                headers={"x-goog-api-key": self._api_key},
                timeout=timeout if timeout is not None else timeout_for(request.model),
            )
        except CONNECTION_ERRORS as exc:
            raise BackendUnavailableError(SERVICE_NAME, type(exc).__name__) from exc

        if not response.is_success:
            message = _error_message(response)
            logger.warning("Provider call for %s failed with HTTP %d", request.model, response.status_code)
            raise ProviderResponseError(response.status_code, message)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderResponseError(response.status_code, "Malformed provider response") from exc
        if not isinstance(data, dict):
            raise ProviderResponseError(response.status_code, "Malformed provider response")
        candidates = data.get("candidates") or []
        if not isinstance(candidates, list):
            raise ProviderResponseError(response.status_code, "Malformed provider response")
        return GenerateResponse(text=extract_text(candidates), candidates=candidates)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
