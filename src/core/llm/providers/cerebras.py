"""
Cerebras provider implementation.

Cerebras exposes an OpenAI-compatible chat completions API, so this transport
only changes the endpoint, the wire model id and the token/reasoning fields.
"""

from typing import Any, Dict, Optional, Tuple

from src.config import CEREBRAS_API_ENDPOINT
from ..base import TranslationRequest
from ..model_profiles import ModelProfile, PROVIDER_CEREBRAS
from .openai_compatible import ChatCompletionsTransport

MODEL_PREFIX = 'cerebras/'


class CerebrasTransport(ChatCompletionsTransport):
    """
    Transport for the Cerebras inference API.

    Models are exposed as ``cerebras/<id>`` and sent as ``<id>``. Reasoning
    models (gpt-oss-120b) get a larger completion budget and a
    ``reasoning_effort`` hint, as listed in MODEL_PROFILES.
    """

    provider_name = PROVIDER_CEREBRAS

    def __init__(self, key_pool, endpoint: Optional[str] = None, **kwargs):
        super().__init__(key_pool, base_url='', model_name='', **kwargs)
        self._endpoint = endpoint or CEREBRAS_API_ENDPOINT

    def configuration_problem(self) -> Optional[str]:
        if len(self.key_pool) == 0:
            return "No Cerebras API keys configured. Add at least one key in the settings."
        return None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def resolve_model(self, request: TranslationRequest) -> str:
        model = request.model
        if model.startswith(MODEL_PREFIX):
            return model[len(MODEL_PREFIX):]
        return model

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
            "max_completion_tokens": profile.max_output_tokens,
            "temperature": request.temperature,
            "top_p": profile.top_p
        }
        if profile.reasoning_effort:
            payload["reasoning_effort"] = profile.reasoning_effort
        return self.endpoint, headers, payload
