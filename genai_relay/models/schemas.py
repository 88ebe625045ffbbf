"""Request/response Pydantic models for the generative proxy wire format.

The proxy speaks camelCase on the wire (``systemInstruction``,
``thinkingBudget``); Python callers may use either spelling.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    service: str
    version: str
    status: str
    uptime_seconds: float


class GenerateRequest(BaseModel):
    """Provider-agnostic generate-content payload.

    Lives for one logical call, including its fallback.
    """

    model_config = ConfigDict(populate_by_name=True)

    model: str = Field(..., min_length=1)
    contents: Any
    config: dict | None = None
    system_instruction: str | None = Field(default=None, alias="systemInstruction")
    thinking_budget: int | None = Field(default=None, alias="thinkingBudget", ge=0)

    @field_validator("contents")
    @classmethod
    def require_contents(cls, v: Any) -> Any:
        if v is None or v == "" or v == []:
            raise ValueError("contents must not be empty")
        return v

    def to_payload(self) -> dict:
        """Return the JSON body sent to the proxy, omitting unset fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class GenerateResponse(BaseModel):
    """Normalized result of a generate call, whichever path produced it."""

    text: str = ""
    candidates: list = Field(default_factory=list)

    @field_validator("text", mode="before")
    @classmethod
    def none_text_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("candidates", mode="before")
    @classmethod
    def none_candidates_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v
