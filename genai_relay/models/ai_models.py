"""Model registry — every model identifier lives here.

If the provider deprecates an endpoint, fix it in this one file.
Reasoning ("thinking") is a config flag on capable models, not a
separate model; budgets are tuned per call purpose.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ModelConfig:
    """A single model entry.

    Attributes:
        id:          Provider model identifier.
        timeout:     Request timeout in seconds (``None`` → default).
    """

    id: str
    timeout: float | None = None


@dataclass(frozen=True)
class TextModels:
    primary: ModelConfig
    fallback: ModelConfig


@dataclass(frozen=True)
class AudioModels:
    primary: ModelConfig
    voice_name: str


@dataclass(frozen=True)
class ModelRegistry:
    text: TextModels
    audio: AudioModels
    tts: ModelConfig


AI_MODELS = ModelRegistry(
    text=TextModels(
        primary=ModelConfig(id="gemini-2.5-flash-preview-05-20", timeout=15.0),
        fallback=ModelConfig(id="gemini-2.0-flash", timeout=30.0),
    ),
    audio=AudioModels(
        primary=ModelConfig(id="gemini-2.5-flash-preview-native-audio-dialog"),
        voice_name="Kore",
    ),
    tts=ModelConfig(id="gemini-2.5-flash-preview-tts"),
)

# Higher budgets = deeper reasoning = slower + more expensive.
THINKING_BUDGETS: dict[str, int] = {
    "classification": 1024,
    "toolSynthesis": 16000,
    "sovereignSynthesis": 24000,
    "theoryOfValue": 24000,
    "mvaRadar": 16000,
    "challengeScore": 8000,
    "starterDeck": 4096,
    "pilotProtocol": 8000,
}


def _all_models() -> list[ModelConfig]:
    return [
        AI_MODELS.text.primary,
        AI_MODELS.text.fallback,
        AI_MODELS.audio.primary,
        AI_MODELS.tts,
    ]


def timeout_for(model_id: str) -> float:
    """Return the registered timeout for *model_id*, or the default."""
    for model in _all_models():
        if model.id == model_id and model.timeout is not None:
            return model.timeout
    return DEFAULT_TIMEOUT_SECONDS


def supports_thinking(model_id: str) -> bool:
    """Return ``True`` if *model_id* accepts a thinking budget."""
    return "thinking" in model_id or model_id.startswith("gemini-2.5")
