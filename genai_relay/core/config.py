"""Settings — centralized configuration for genai-relay.

All settings are loaded from environment variables with the
``GENAI_RELAY_`` prefix.  Credentials are held as ``SecretStr`` so they
never show up in reprs or log lines.
"""

from __future__ import annotations

from pydantic import SecretStr
from pydantic_settings import BaseSettings

from genai_relay.models.ai_models import AI_MODELS


class Settings(BaseSettings):
    """genai-relay configuration.

    All fields can be overridden by environment variables prefixed with
    ``GENAI_RELAY_``.  For example, ``GENAI_RELAY_PORT=9999`` overrides
    the default port.
    """

    # ── Service identity ────────────────────────────────────────────
    SERVICE_NAME: str = "genai-relay"
    SERVICE_VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── Proxy endpoint (consumed by the router) ─────────────────────
    PROXY_BASE_URL: str = "http://localhost:8000"
    PROXY_PATH: str = "/api/gemini"

    # ── Generative provider ─────────────────────────────────────────
    GEMINI_API_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_API_KEY: SecretStr | None = None  # Server-side, used by the proxy
    DIRECT_FALLBACK_API_KEY: SecretStr | None = None  # Client-side, dev only
    DEFAULT_MODEL: str = AI_MODELS.text.primary.id
    REQUEST_TIMEOUT_SECONDS: float | None = None  # None → per-model timeout

    # ── Resilience ──────────────────────────────────────────────────
    CIRCUIT_BREAKER_COOLDOWN_SECONDS: float = 30.0
    BACKEND_DOWN_STATUS_CODES: list[int] = [503]
    FALLBACK_STATUS_CODES: list[int] = [401, 404, 503]

    model_config = {
        "env_prefix": "GENAI_RELAY_",
    }

    @property
    def proxy_url(self) -> str:
        return f"{self.PROXY_BASE_URL.rstrip('/')}{self.PROXY_PATH}"
