"""Shared httpx plumbing for HTTP-based embedding providers.

Translates transport failures and non-2xx responses into the
``ProviderError`` family so every adapter reports errors the same way.
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from ..common.errors import (
    ParseError,
    ProviderConnectionError,
    ProviderError,
    ProviderTimeoutError,
    error_from_status,
)
from ..common.security import DataMasker, TextSanitizer
from .base import EmbeddingProvider

logger = structlog.get_logger("providers.http")


class HttpEmbeddingProvider(EmbeddingProvider):
    """Base class for providers that talk JSON over HTTP.

    Parameters
    - api_url: Base URL without a trailing slash
    - timeout: Per-request timeout in seconds
    - client: Optional pre-built ``httpx.AsyncClient`` (tests pass one with a
      ``MockTransport``); otherwise one is created lazily and owned here
    - sanitizer: Text preparation applied to every batch
    """

    def __init__(
        self,
        api_url: str,
        timeout: float,
        client: Optional[httpx.AsyncClient] = None,
        sanitizer: Optional[TextSanitizer] = None
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.sanitizer = sanitizer or TextSanitizer()
        self.masker = DataMasker()
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """Send one request, mapping failures onto ``ProviderError`` subclasses."""
        url = f"{self.api_url}{path}"
        try:
            response = await self.client.request(
                method,
                url,
                json=json,
                headers=self._headers(),
                timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Request to {self.provider_id} timed out after {self.timeout}s",
                provider=self.provider_id
            ) from e
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"Connection to {self.provider_id} failed: {e}",
                provider=self.provider_id
            ) from e

        if response.status_code >= 400:
            raise self._error_from_response(response)
        return response

    def _error_from_response(self, response: httpx.Response) -> ProviderError:
        """Build an error from a non-2xx response body.

        Understands ``{"error": {"type", "message"}}``, ``{"error": "..."}``
        and ``{"detail": ...}``; anything else falls back to the raw body.
        """
        error_type = None
        message = None
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                error_type = error.get("type") or error.get("code")
                message = error.get("message")
            elif isinstance(error, str):
                message = error
            elif "detail" in body:
                message = str(body["detail"])

        if not message:
            message = self.masker.truncate_body(response.text) or response.reason_phrase

        message = self.masker.mask_sensitive_data(message)
        logger.warning(
            "Provider returned error status",
            provider=self.provider_id,
            status_code=response.status_code,
            error_type=error_type,
            error=message
        )
        return error_from_status(
            response.status_code,
            f"{self.display_name} error {response.status_code}: {message}",
            error_type=error_type,
            provider=self.provider_id
        )

    def _parse_json(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise ParseError(
                f"{self.display_name} returned invalid JSON: "
                f"{self.masker.truncate_body(response.text)}",
                status_code=response.status_code,
                provider=self.provider_id
            ) from e
        if not isinstance(body, dict):
            raise ParseError(
                f"{self.display_name} returned unexpected payload type {type(body).__name__}",
                status_code=response.status_code,
                provider=self.provider_id
            )
        return body

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
