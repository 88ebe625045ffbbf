"""FastAPI application entrypoint — the generative proxy service.

Provides ``/health``, request-ID middleware, and ``POST /api/gemini``,
which forwards generate calls to the provider so the credential never
leaves the server.

    POST /api/gemini
    Body:    {model, contents, config?, systemInstruction?, thinkingBudget?}
    Returns: {text, candidates}
"""

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from genai_relay.core.config import Settings
from genai_relay.core.errors import BackendUnavailableError, GenAIRelayError, StructuredErrorResponse
from genai_relay.gemini_client import SERVICE_NAME, GeminiClient
from genai_relay.models.schemas import GenerateRequest, HealthResponse

logger = logging.getLogger(__name__)

settings = Settings()

_start_time = time.monotonic()

_gemini_client: GeminiClient | None = None


def get_gemini_client() -> GeminiClient | None:
    """Return the shared provider client, or ``None`` without a credential."""
    global _gemini_client
    if settings.GEMINI_API_KEY is None:
        return None
    if _gemini_client is None:
        _gemini_client = GeminiClient(
            settings.GEMINI_API_KEY.get_secret_value(),
            base_url=settings.GEMINI_API_BASE_URL,
        )
    return _gemini_client


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    global _gemini_client
    yield
    if _gemini_client is not None:
        await _gemini_client.close()
        _gemini_client = None


app = FastAPI(
    title=settings.SERVICE_NAME,
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    """Assign or preserve a unique request ID on every request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed generate bodies with a plain 400."""
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    missing = {"model", "contents"} & set(fields) or any(err.get("loc") == ("body",) for err in exc.errors())
    body = StructuredErrorResponse(
        error="Missing required fields: model, contents" if missing else "Invalid request body",
        code="INVALID_REQUEST",
        message=f"Invalid fields: {', '.join(fields)}" if fields else None,
    )
    return JSONResponse(status_code=400, content=body.to_body())


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return service health with name, version, status, and uptime."""
    return HealthResponse(
        service=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        status="healthy",
        uptime_seconds=round(time.monotonic() - _start_time, 2),
    )


@app.post("/api/gemini", response_model=None)
async def gemini_proxy(
    payload: GenerateRequest,
    client: GeminiClient | None = Depends(get_gemini_client),
) -> dict | JSONResponse:
    """Forward a generate call to the provider and return ``{text, candidates}``."""
    if client is None:
        return JSONResponse(status_code=500, content={"error": "GEMINI_API_KEY not configured"})

    try:
        result = await client.generate(payload)
    except httpx.TimeoutException as exc:
        logger.error("Gemini proxy error: provider call for %s timed out", payload.model)
        error = StructuredErrorResponse.from_exception(BackendUnavailableError(SERVICE_NAME, type(exc).__name__))
        return JSONResponse(status_code=502, content=error.to_body())
    except GenAIRelayError as exc:
        logger.error("Gemini proxy error: %s", exc)
        return JSONResponse(status_code=502, content=StructuredErrorResponse.from_exception(exc).to_body())

    return result.model_dump()
