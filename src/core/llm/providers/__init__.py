"""
LLM Provider Implementations

Streaming transports for the supported APIs, and the wiring that builds one
transport per provider from configuration.

Providers:
    - gemini: Google Gemini API
    - cerebras: Cerebras inference API
    - gpt-oss: Any OpenAI-compatible endpoint (custom GPT-OSS deployment)
"""

from typing import Dict

from src.config import (
    GEMINI_API_KEYS,
    CEREBRAS_API_KEYS,
    GPT_OSS_API_KEYS,
    GPT_OSS_BASE_URL,
    GPT_OSS_MODEL_NAME,
)
from ..base import StreamingTransport
from ..key_pool import ApiKeyPool
from ..model_profiles import (
    get_model_profile,
    PROVIDER_GEMINI,
    PROVIDER_CEREBRAS,
    PROVIDER_GPT_OSS,
)
from .gemini import GeminiTransport
from .openai_compatible import ChatCompletionsTransport
from .cerebras import CerebrasTransport


def create_transports(**kwargs) -> Dict[str, StreamingTransport]:
    """
    Build one transport per provider from the environment configuration.

    Args:
        **kwargs: Forwarded to every transport (client, sleep, ...)

    Returns:
        Mapping of provider name to transport
    """
    return {
        PROVIDER_GEMINI: GeminiTransport(
            ApiKeyPool(PROVIDER_GEMINI, GEMINI_API_KEYS), **kwargs),
        PROVIDER_CEREBRAS: CerebrasTransport(
            ApiKeyPool(PROVIDER_CEREBRAS, CEREBRAS_API_KEYS), **kwargs),
        PROVIDER_GPT_OSS: ChatCompletionsTransport(
            ApiKeyPool(PROVIDER_GPT_OSS, GPT_OSS_API_KEYS),
            base_url=GPT_OSS_BASE_URL,
            model_name=GPT_OSS_MODEL_NAME,
            **kwargs),
    }


def transport_for_model(transports: Dict[str, StreamingTransport],
                        model: str) -> StreamingTransport:
    """Pick the transport serving ``model`` (ConfigurationError if unknown)."""
    return transports[get_model_profile(model).provider]


__all__ = [
    'create_transports',
    'transport_for_model',
    'GeminiTransport',
    'ChatCompletionsTransport',
    'CerebrasTransport',
]
