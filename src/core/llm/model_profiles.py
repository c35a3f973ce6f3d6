"""
Static request shaping per model.

Every model the workbench can target is listed here with the provider that
serves it and the generation parameters that go into its request body.
Unknown model ids are a configuration error, never a silent default.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from src.config import (
    MODEL_RATE_LIMITS,
    MODEL_DAILY_LIMITS,
    DEFAULT_RATE_LIMIT_PER_MINUTE,
)
from .exceptions import ConfigurationError


PROVIDER_GEMINI = 'gemini'
PROVIDER_CEREBRAS = 'cerebras'
PROVIDER_GPT_OSS = 'gpt-oss'


@dataclass(frozen=True)
class ModelProfile:
    """Generation parameters for one model id.

    Attributes:
        model: Public model id (as shown to users and stored in usage records)
        provider: Which transport serves the model
        max_output_tokens: Output token ceiling sent with every request
        top_p: Nucleus sampling value
        supports_thinking: Whether a thinking budget may be attached
        reasoning_effort: Optional reasoning effort hint (Cerebras reasoning models)
        shares_usage: Whether daily usage is mirrored to the shared counter
        label: Human readable name
    """
    model: str
    provider: str
    max_output_tokens: int
    top_p: float
    supports_thinking: bool = False
    reasoning_effort: Optional[str] = None
    shares_usage: bool = False
    label: str = ''

    @property
    def requests_per_minute(self) -> int:
        return MODEL_RATE_LIMITS.get(self.model, DEFAULT_RATE_LIMIT_PER_MINUTE)

    @property
    def daily_limit(self) -> Optional[int]:
        return MODEL_DAILY_LIMITS.get(self.model)

    def to_dict(self) -> dict:
        return {
            'model': self.model,
            'label': self.label or self.model,
            'provider': self.provider,
            'supports_thinking': self.supports_thinking,
            'requests_per_minute': self.requests_per_minute,
            'daily_limit': self.daily_limit,
        }


MODEL_PROFILES: Dict[str, ModelProfile] = {
    'gemini-2.5-flash': ModelProfile(
        'gemini-2.5-flash', PROVIDER_GEMINI, 65536, 0.95,
        supports_thinking=True, shares_usage=True, label='Gemini 2.5 Flash'),
    'gemini-flash-lite-latest': ModelProfile(
        'gemini-flash-lite-latest', PROVIDER_GEMINI, 65536, 0.95,
        shares_usage=True, label='Gemini Flash Lite'),
    'gemini-2.5-pro': ModelProfile(
        'gemini-2.5-pro', PROVIDER_GEMINI, 65536, 0.95,
        supports_thinking=True, shares_usage=True, label='Gemini 2.5 Pro'),
    'gemini-3-pro-preview': ModelProfile(
        'gemini-3-pro-preview', PROVIDER_GEMINI, 65536, 0.95,
        supports_thinking=True, shares_usage=True, label='Gemini 3 Pro (preview)'),
    'cerebras/llama-3.1-70b': ModelProfile(
        'cerebras/llama-3.1-70b', PROVIDER_CEREBRAS, 8192, 1.0,
        label='Llama 3.1 70B (Cerebras)'),
    'cerebras/gpt-oss-120b': ModelProfile(
        'cerebras/gpt-oss-120b', PROVIDER_CEREBRAS, 65536, 1.0,
        reasoning_effort='medium', label='GPT-OSS 120B (Cerebras)'),
    'gpt-oss/custom': ModelProfile(
        'gpt-oss/custom', PROVIDER_GPT_OSS, 16384, 1.0,
        label='GPT-OSS (custom endpoint)'),
}


def get_model_profile(model: str) -> ModelProfile:
    """Look up a model profile, raising ConfigurationError for unknown ids."""
    profile = MODEL_PROFILES.get(model)
    if profile is None:
        raise ConfigurationError(
            f"Unknown model '{model}'",
            {'known_models': ', '.join(MODEL_PROFILES)}
        )
    return profile


def requests_per_minute(model: str) -> int:
    """Pacing rate for a model; unknown models fall back to the default."""
    return MODEL_RATE_LIMITS.get(model, DEFAULT_RATE_LIMIT_PER_MINUTE)
