"""
Google Gemini provider implementation.

This module provides the GeminiTransport class for streaming chapter
translations from Google's Gemini API.

Features:
    - Server-sent events streaming (``streamGenerateContent?alt=sse``)
    - Optional thinking budget for the models that accept one
    - Thought parts are never surfaced as translation text
"""

from typing import Any, Dict, Optional, Tuple

from src.config import GEMINI_API_BASE
from ..base import StreamingTransport, TranslationRequest
from ..model_profiles import ModelProfile, PROVIDER_GEMINI


class GeminiTransport(StreamingTransport):
    """
    Transport for the Google Gemini API.

    Supports the Gemini models listed in MODEL_PROFILES:
        - gemini-2.5-flash
        - gemini-flash-lite-latest
        - gemini-2.5-pro
        - gemini-3-pro-preview

    Error handling:
        Gemini reports errors as ``{"error": {"code", "status", "message",
        "details": [{"reason": ...}]}}``. An invalid key comes back as a 400
        with reason ``API_KEY_INVALID``, quota as 429 ``RESOURCE_EXHAUSTED``,
        overload as 503 ``UNAVAILABLE``; the base classification covers all of
        these from the structured fields.

    Example:
        >>> pool = ApiKeyPool('gemini', ["AI..."])
        >>> transport = GeminiTransport(pool)
        >>> text = await transport.stream(request, on_delta=print)
    """

    provider_name = PROVIDER_GEMINI

    def __init__(self, key_pool, api_base: Optional[str] = None, **kwargs):
        """
        Initialize the Gemini transport.

        Args:
            key_pool: Rotating pool of Gemini API keys
            api_base: API root (default: GEMINI_API_BASE)
            **kwargs: Forwarded to StreamingTransport (client, sleep, ...)
        """
        super().__init__(key_pool, **kwargs)
        self.api_base = (api_base or GEMINI_API_BASE).rstrip('/')

    def build_request(self, request: TranslationRequest, profile: ModelProfile,
                      api_key: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        url = f"{self.api_base}/models/{request.model}:streamGenerateContent?alt=sse"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": api_key
        }

        generation_config = {
            "temperature": request.temperature,
            "maxOutputTokens": profile.max_output_tokens,
            "topP": profile.top_p
        }
        # Models without thinking support reject thinkingConfig with a 400
        if profile.supports_thinking and request.thinking_budget > 0:
            generation_config["thinkingConfig"] = {
                "thinkingBudget": request.thinking_budget
            }

        payload = {
            "contents": [{
                "role": "user",
                "parts": [{"text": request.user_prompt}]
            }],
            "generationConfig": generation_config
        }
        if request.system_prompt:
            payload["systemInstruction"] = {
                "parts": [{"text": request.system_prompt}]
            }

        return url, headers, payload

    def extract_delta(self, event: Dict[str, Any]) -> str:
        candidates = event.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(
            part.get("text", "")
            for part in parts
            if isinstance(part, dict) and not part.get("thought")
        )
