"""
Base classes and data structures for streaming LLM providers.

This module defines the abstract transport that every provider implements, and
the failover skeleton they share: one streaming HTTP request per attempt,
rotation through the provider's key pool when a credential is rejected, and
exponential backoff with the same key when the provider is overloaded.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from src.config import (
    REQUEST_TIMEOUT,
    DEFAULT_TEMPERATURE,
    OVERLOAD_MAX_ATTEMPTS,
    OVERLOAD_INITIAL_DELAY_MS,
)
from src.utils.unified_logger import get_logger, LogType
from prompts import build_chapter_query
from .exceptions import (
    ConfigurationError,
    ProviderError,
    CredentialRejectedError,
    KeyPoolExhaustedError,
    ProviderOverloadedError,
    RetryExhaustedError,
    EmptyResponseError,
    MalformedResponseError,
    ProviderRequestError,
    ProviderConnectionError,
)
from .key_pool import ApiKeyPool, KeyPoolInfo, mask_key
from .model_profiles import ModelProfile, get_model_profile
from .utils.sse import iter_sse_data, DONE_MARKER


# Structured signals that a key was refused
CREDENTIAL_HTTP_CODES = {401, 403, 429}
CREDENTIAL_STATUSES = {'UNAUTHENTICATED', 'PERMISSION_DENIED', 'RESOURCE_EXHAUSTED'}
CREDENTIAL_REASONS = {'API_KEY_INVALID'}
OVERLOAD_HTTP_CODES = {503}
OVERLOAD_STATUSES = {'UNAVAILABLE'}

# Message fallbacks, used only when the body carries no provider status
QUOTA_MARKERS = ('quota', 'limit', 'api key not valid', 'invalid api key')
OVERLOAD_MARKERS = ('overloaded', 'unavailable')


@dataclass
class TranslationRequest:
    """One logical chapter translation request."""
    title: str
    source_text: str
    model: str
    system_prompt: str
    temperature: float = DEFAULT_TEMPERATURE
    thinking_budget: int = 0

    @property
    def user_prompt(self) -> str:
        return build_chapter_query(self.title, self.source_text)


@dataclass
class ErrorDetails:
    """Fields pulled out of a provider error body."""
    message: str = ''
    code: Optional[int] = None
    status: str = ''
    reasons: Tuple[str, ...] = ()


def parse_error_body(body: str) -> ErrorDetails:
    """
    Extract message, numeric code, status and reasons from an error body.

    Accepts both ``{"error": {...}}`` and a bare ``{"message": ...}`` object;
    anything that is not JSON becomes the message verbatim.
    """
    try:
        data = json.loads(body) if body else {}
    except (json.JSONDecodeError, ValueError):
        return ErrorDetails(message=body.strip()[:500])

    # Gemini sometimes wraps the error object in a one-element list
    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return ErrorDetails(message=str(data)[:500])

    error = data.get('error', data)
    if not isinstance(error, dict):
        return ErrorDetails(message=str(error)[:500])

    reasons = []
    for detail in error.get('details') or []:
        if isinstance(detail, dict) and detail.get('reason'):
            reasons.append(str(detail['reason']))

    code = error.get('code')
    return ErrorDetails(
        message=str(error.get('message') or data.get('message') or ''),
        code=code if isinstance(code, int) else None,
        status=str(error.get('status') or '').upper(),
        reasons=tuple(reasons),
    )


DeltaCallback = Callable[[str], Any]
KeyRotatedCallback = Callable[[KeyPoolInfo], Any]
RestartCallback = Callable[[], Any]


class StreamingTransport(ABC):
    """Abstract base class for streaming chat providers"""

    provider_name = 'provider'

    def __init__(self,
                 key_pool: ApiKeyPool,
                 client: Optional[httpx.AsyncClient] = None,
                 max_attempts: int = OVERLOAD_MAX_ATTEMPTS,
                 initial_delay_ms: int = OVERLOAD_INITIAL_DELAY_MS,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        """
        Initialize the transport.

        Args:
            key_pool: Rotating pool of API keys for this provider
            client: Optional pre-built HTTP client (tests pass a MockTransport one)
            max_attempts: Overload attempts allowed per key
            initial_delay_ms: First overload backoff delay, doubled on each retry
            sleep: Awaitable sleep taking seconds, defaults to asyncio.sleep
        """
        self.key_pool = key_pool
        self.max_attempts = max_attempts
        self.initial_delay_ms = initial_delay_ms
        self._sleep = sleep or asyncio.sleep
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a persistent HTTP client with connection pooling"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                timeout=httpx.Timeout(REQUEST_TIMEOUT)
            )
        return self._client

    async def close(self):
        """Close the HTTP client if this transport created it"""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def configuration_problem(self) -> Optional[str]:
        """Return why this transport cannot run, or None when it can."""
        if len(self.key_pool) == 0:
            return f"No API keys configured for {self.provider_name}."
        return None

    def is_configured(self) -> bool:
        return self.configuration_problem() is None

    @abstractmethod
    def build_request(self, request: TranslationRequest, profile: ModelProfile,
                      api_key: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """
        Build the HTTP request for one attempt.

        Returns:
            Tuple of (url, headers, json payload)
        """
        pass

    @abstractmethod
    def extract_delta(self, event: Dict[str, Any]) -> str:
        """Return the text carried by one decoded stream event ('' if none)."""
        pass

    def classify_error(self, status_code: Optional[int], body: str) -> ProviderError:
        """
        Map an error response to the exception that drives failover.

        Structured fields (HTTP status, provider status, reasons) are checked
        first. Message matching is a fallback for bodies without a provider
        status, so an INVALID_ARGUMENT mentioning a limit stays a request error.
        """
        details = parse_error_body(body)
        code = status_code if status_code is not None else details.code
        message = details.message or (f"HTTP {code}" if code else "Unknown error")

        if (code in CREDENTIAL_HTTP_CODES
                or details.status in CREDENTIAL_STATUSES
                or CREDENTIAL_REASONS.intersection(details.reasons)):
            return CredentialRejectedError(message, self.provider_name, code)
        if code in OVERLOAD_HTTP_CODES or details.status in OVERLOAD_STATUSES:
            return ProviderOverloadedError(message, self.provider_name, code)

        if not details.status:
            lowered = message.lower()
            if any(marker in lowered for marker in QUOTA_MARKERS):
                return CredentialRejectedError(message, self.provider_name, code)
            if any(marker in lowered for marker in OVERLOAD_MARKERS):
                return ProviderOverloadedError(message, self.provider_name, code)

        return ProviderRequestError(
            f"{self.provider_name} API error ({code}): {message}" if code else message,
            self.provider_name, code
        )

    def backoff_delay_ms(self, attempt: int) -> int:
        """Delay before overload retry number ``attempt`` (0-based)."""
        return self.initial_delay_ms * (2 ** attempt)

    async def stream(self,
                     request: TranslationRequest,
                     on_delta: DeltaCallback,
                     on_key_rotated: Optional[KeyRotatedCallback] = None,
                     on_restart: Optional[RestartCallback] = None) -> str:
        """
        Stream one chapter translation, failing over between keys as needed.

        Args:
            request: What to translate and how
            on_delta: Called with each non-empty text fragment, in order
            on_key_rotated: Called with the pool position after each rotation
            on_restart: Called before every attempt after the first, so the
                caller can discard partial output of the failed attempt

        Returns:
            The full translated text

        Raises:
            ConfigurationError: Transport not configured or model unknown
            KeyPoolExhaustedError: Every key was rejected
            RetryExhaustedError: Provider stayed overloaded
            EmptyResponseError: Stream ended without text
            MalformedResponseError: A frame could not be decoded
            ProviderRequestError: Any other rejection
            ProviderConnectionError: Network failure or timeout
        """
        problem = self.configuration_problem()
        if problem:
            raise ConfigurationError(problem, {'provider': self.provider_name})
        profile = get_model_profile(request.model)

        logger = get_logger()
        client = await self._get_client()
        last_error: Optional[ProviderError] = None
        first_attempt = True

        while True:
            api_key = self.key_pool.current()
            if api_key is None:
                raise KeyPoolExhaustedError(self.provider_name, len(self.key_pool), last_error)

            attempt = 0
            while True:
                if not first_attempt and on_restart:
                    on_restart()
                first_attempt = False

                logger.debug("Streaming request", LogType.LLM_REQUEST, {
                    'title': request.title,
                    'model': request.model,
                    'key': mask_key(api_key),
                    'system_prompt': request.system_prompt,
                    'user_prompt': request.user_prompt,
                })

                try:
                    return await self._attempt(client, request, profile, api_key, on_delta)
                except CredentialRejectedError as e:
                    last_error = e
                    logger.warning(
                        f"{self.provider_name} key {mask_key(api_key)} rejected: {e.message}",
                        LogType.KEY_ROTATION, self.key_pool.describe().to_dict()
                    )
                    if not self.key_pool.advance():
                        raise KeyPoolExhaustedError(self.provider_name, len(self.key_pool), e)
                    if on_key_rotated:
                        on_key_rotated(self.key_pool.describe())
                    break
                except ProviderOverloadedError as e:
                    attempt += 1
                    if attempt >= self.max_attempts:
                        raise RetryExhaustedError(
                            f"{self.provider_name} is still overloaded after {attempt} attempts: {e.message}",
                            self.provider_name, original_error=e, attempts=attempt
                        )
                    delay_ms = self.backoff_delay_ms(attempt - 1)
                    logger.warning(
                        f"{self.provider_name} overloaded, retrying attempt "
                        f"{attempt + 1}/{self.max_attempts} in {delay_ms}ms"
                    )
                    await self._sleep(delay_ms / 1000)

    async def _attempt(self, client: httpx.AsyncClient, request: TranslationRequest,
                       profile: ModelProfile, api_key: str,
                       on_delta: DeltaCallback) -> str:
        """Run exactly one HTTP request and decode its stream."""
        url, headers, payload = self.build_request(request, profile, api_key)
        chunks: List[str] = []

        try:
            async with client.stream("POST", url, headers=headers, json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode('utf-8', errors='replace')
                    raise self.classify_error(response.status_code, body)

                async for data in iter_sse_data(response.aiter_lines()):
                    if data.strip() == DONE_MARKER:
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise MalformedResponseError(
                            f"Could not decode stream frame: {e}",
                            self.provider_name, content_preview=data
                        )
                    if not isinstance(event, dict):
                        raise MalformedResponseError(
                            "Stream frame is not a JSON object",
                            self.provider_name, content_preview=data
                        )
                    if event.get('error'):
                        raise self.classify_error(None, data)

                    text = self.extract_delta(event)
                    if text:
                        chunks.append(text)
                        on_delta(text)
        except httpx.TimeoutException as e:
            raise ProviderConnectionError(
                f"{self.provider_name} request timed out: {e}", self.provider_name
            )
        except httpx.HTTPError as e:
            raise ProviderConnectionError(
                f"{self.provider_name} connection failed: {e}", self.provider_name
            )

        if not chunks:
            raise EmptyResponseError(self.provider_name)
        return ''.join(chunks)
