"""Exception taxonomy for providers and the batch pipeline.

Provider adapters translate transport failures and HTTP status codes into the
``ProviderError`` family below so the retry policy can classify them without
knowing which backend raised them.

Retryable: ``ProviderTimeoutError``, ``RateLimitedError``, ``ServerError``,
``ProviderConnectionError``.
Fatal: ``AuthError``, ``BadRequestError``, ``ParseError``.
Terminal (never retried): ``PipelineCancelledError``.
"""

from typing import Optional


class EmbedderError(Exception):
    """Base exception for all embedder errors."""
    pass


class ConfigurationError(EmbedderError):
    """Raised when configuration is missing or invalid.

    This is the only error a pipeline run raises to its caller; per-batch
    failures are contained in the batch outcome instead.
    """

    def __init__(self, message: str, key: Optional[str] = None):
        self.message = message
        self.key = key
        super().__init__(message)


class ProviderError(EmbedderError):
    """Raised when a single-batch call to an embedding provider fails.

    Parameters
    - message: Human-readable description (already sanitized)
    - status_code: HTTP status, or ``0`` when not applicable
    - error_type: Provider-specific error type string, if reported
    - provider: Provider identifier for logs
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        error_type: Optional[str] = None,
        provider: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.provider = provider
        super().__init__(message)

    @property
    def is_rate_limit_error(self) -> bool:
        """True for HTTP 429 or an explicit ``rate_limit_exceeded`` type."""
        return self.status_code == 429 or self.error_type == "rate_limit_exceeded"

    @property
    def is_auth_error(self) -> bool:
        """True for HTTP 401/403."""
        return self.status_code in (401, 403)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, "
            f"status_code={self.status_code}, error_type={self.error_type!r})"
        )


class ProviderTimeoutError(ProviderError):
    """Request timed out (client-side timeout or HTTP 408)."""
    pass


class RateLimitedError(ProviderError):
    """Provider rejected the request with HTTP 429."""
    pass


class ServerError(ProviderError):
    """Provider answered with HTTP 5xx."""
    pass


class ProviderConnectionError(ProviderError):
    """Connection could not be established or was reset."""
    pass


class AuthError(ProviderError):
    """Credentials were missing or rejected (HTTP 401/403)."""
    pass


class BadRequestError(ProviderError):
    """Provider rejected the request payload (4xx other than 408/429)."""
    pass


class ParseError(ProviderError):
    """Provider response could not be parsed or was malformed."""
    pass


class PipelineCancelledError(EmbedderError):
    """Raised for a batch abandoned by cancellation before any attempt ran."""

    def __init__(self, message: str = "Embedding operation cancelled", batch_index: Optional[int] = None):
        self.message = message
        self.batch_index = batch_index
        super().__init__(message)


class GateTimeoutError(EmbedderError):
    """Waiting for a concurrency permit exceeded the configured ceiling."""

    def __init__(self, timeout: float, batch_index: Optional[int] = None):
        self.timeout = timeout
        self.batch_index = batch_index
        super().__init__(
            f"Timed out after {timeout:.1f}s waiting for a request slot"
            + (f" (batch {batch_index})" if batch_index is not None else "")
        )


class AssemblyError(EmbedderError):
    """Assembled output violated the order/length invariant."""
    pass


def error_from_status(
    status_code: int,
    message: str,
    error_type: Optional[str] = None,
    provider: Optional[str] = None
) -> ProviderError:
    """Build the ``ProviderError`` subclass matching an HTTP status code."""
    if status_code == 408:
        error_class = ProviderTimeoutError
    elif status_code == 429 or error_type == "rate_limit_exceeded":
        error_class = RateLimitedError
    elif 500 <= status_code < 600:
        error_class = ServerError
    elif status_code in (401, 403):
        error_class = AuthError
    else:
        error_class = BadRequestError

    return error_class(message, status_code=status_code, error_type=error_type, provider=provider)
