"""
OpenAI-compatible provider implementation.

This module provides the ChatCompletionsTransport class for streaming from any
``/chat/completions`` endpoint (vLLM, llama.cpp, LM Studio, hosted GPT-OSS...).
It is used as-is for the custom GPT-OSS endpoint and subclassed for Cerebras.
"""

from typing import Any, Dict, Optional, Tuple

from src.config import GPT_OSS_BASE_URL, GPT_OSS_MODEL_NAME
from ..base import StreamingTransport, TranslationRequest
from ..model_profiles import ModelProfile, PROVIDER_GPT_OSS


class ChatCompletionsTransport(StreamingTransport):
    """OpenAI-compatible chat completions transport (custom GPT-OSS endpoint)"""

    provider_name = PROVIDER_GPT_OSS

    def __init__(self, key_pool, base_url: Optional[str] = None,
                 model_name: Optional[str] = None, **kwargs):
        """
        Args:
            key_pool: Rotating pool of API keys for the endpoint
            base_url: Server root, ``/chat/completions`` is appended
            model_name: Model identifier the server expects
        """
        super().__init__(key_pool, **kwargs)
        self.base_url = (base_url if base_url is not None else GPT_OSS_BASE_URL).strip()
        self.model_name = (model_name if model_name is not None else GPT_OSS_MODEL_NAME).strip()

    def configure(self, base_url: str, model_name: str):
        """Replace the endpoint settings (the key pool is initialized separately)."""
        self.base_url = (base_url or '').strip()
        self.model_name = (model_name or '').strip()

    def configuration_problem(self) -> Optional[str]:
        if len(self.key_pool) == 0 or not self.base_url or not self.model_name:
            return ("GPT-OSS is not fully configured. Provide at least one API key, "
                    "a base URL and a model name.")
        return None

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def resolve_model(self, request: TranslationRequest) -> str:
        """Model identifier sent on the wire."""
        return self.model_name

    def _messages(self, request: TranslationRequest):
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})
        return messages

    def build_request(self, request: TranslationRequest, profile: ModelProfile,
                      api_key: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}"
        }
        payload = {
            "model": self.resolve_model(request),
            "messages": self._messages(request),
            "stream": True,
            "max_tokens": profile.max_output_tokens,
            "temperature": request.temperature,
            "top_p": profile.top_p
        }
        return self.endpoint, headers, payload

    def extract_delta(self, event: Dict[str, Any]) -> str:
        choices = event.get("choices") or []
        if not choices:
            return ""
        delta = choices[0].get("delta") or {}
        return delta.get("content") or ""
