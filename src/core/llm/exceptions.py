"""
Exception hierarchy for the translation queue and provider transports.

Transports raise these to describe how a streaming call ended; the scheduler
catches them at the job boundary and turns them into unit state, a notification
and a continuation to the next job.
"""

from typing import Optional, Dict, Any


class TranslationError(Exception):
    """Base exception for all translation-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context about the error
        recoverable: Whether the error can potentially be recovered from
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"{self.__class__.__name__}: {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" (context: {context_str})"
        return base


# ============================================================================
# Errors that prevent a run from starting
# ============================================================================

class ConfigurationError(TranslationError):
    """Raised when credentials or provider settings are missing or invalid."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)


class DailyLimitReachedError(TranslationError):
    """Raised when a model has used up its daily request allowance."""

    def __init__(self, model: str, count: int, limit: int):
        super().__init__(
            f"Daily limit reached for model {model} ({count}/{limit})",
            {'model': model, 'count': count, 'limit': limit},
            recoverable=False
        )
        self.model = model


# ============================================================================
# Provider errors (raised by transports)
# ============================================================================

class ProviderError(TranslationError):
    """Base exception for LLM provider errors.

    Attributes:
        provider: Provider name (gemini, cerebras, gpt-oss)
        status_code: HTTP status code when the error came from a response
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        ctx = context or {}
        if provider:
            ctx['provider'] = provider
        if status_code is not None:
            ctx['status_code'] = status_code
        super().__init__(message, ctx, recoverable)
        self.provider = provider
        self.status_code = status_code


class CredentialRejectedError(ProviderError):
    """The current API key was refused (invalid, unauthorized or out of quota).

    Recoverable by rotating to the next key of the pool.
    """

    def __init__(self, message: str, provider: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, provider, status_code, recoverable=True)


class KeyPoolExhaustedError(ProviderError):
    """Every key in the pool was rejected during this run."""

    def __init__(self, provider: str, total_keys: int,
                 last_error: Optional[Exception] = None):
        ctx = {'total_keys': total_keys}
        if last_error is not None:
            ctx['last_error'] = getattr(last_error, 'message', str(last_error))
        super().__init__(
            f"All {total_keys} API key(s) for {provider} have been tried and failed, "
            f"likely due to usage limits or invalid keys.",
            provider,
            context=ctx
        )


class ProviderOverloadedError(ProviderError):
    """The provider is temporarily unavailable (HTTP 503 or equivalent).

    Recoverable by waiting and retrying with the same key.
    """

    def __init__(self, message: str, provider: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, provider, status_code, recoverable=True)


class RetryExhaustedError(ProviderError):
    """Raised when all overload retry attempts have been exhausted.

    Attributes:
        original_error: The last overload error
        attempts: Number of attempts made
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None,
        attempts: Optional[int] = None
    ):
        ctx = {}
        if original_error:
            ctx['original_error'] = getattr(original_error, 'message', str(original_error))
        if attempts is not None:
            ctx['attempts'] = attempts
        super().__init__(message, provider, context=ctx)
        self.original_error = original_error
        self.attempts = attempts


class EmptyResponseError(ProviderError):
    """The stream closed cleanly without a single text delta.

    Usually a safety-filtered or blocked request. Kept distinct from network
    and auth failures so the two are easy to tell apart.
    """

    def __init__(self, provider: Optional[str] = None):
        super().__init__(
            "Empty response: the stream finished without any text. "
            "The request might have been blocked by safety settings.",
            provider
        )


class MalformedResponseError(ProviderError):
    """A streamed frame could not be decoded."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 content_preview: Optional[str] = None):
        ctx = {}
        if content_preview:
            ctx['content_preview'] = content_preview[:200]
        super().__init__(message, provider, context=ctx)


class ProviderRequestError(ProviderError):
    """Any other provider-side rejection (bad request, server error, ...)."""
    pass


class ProviderConnectionError(ProviderError):
    """The HTTP connection failed or timed out."""
    pass
