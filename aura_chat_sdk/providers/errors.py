"""
Error mapping utilities for provider adapters.

Converts httpx failures into ProviderError instances whose messages keep
the HTTP status code and the words "timeout", "network" or "rate limit",
so message-based retry predicates classify them correctly.
"""

from typing import Optional

import httpx

from .base import ProviderError


class ErrorMapper:
    """Maps transport and HTTP errors to standardized ProviderError."""

    # Common HTTP status codes that indicate retryable errors
    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

    @staticmethod
    def get_retry_after(response: Optional[httpx.Response]) -> Optional[float]:
        """Extract the Retry-After header value in seconds, if present."""
        if response is None:
            return None
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return None

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] if response.text else response.reason_phrase
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            return str(body["error"].get("message", response.reason_phrase))
        return response.reason_phrase

    @staticmethod
    def map_http_error(error: Exception, provider: str) -> ProviderError:
        """
        Map an httpx exception to ProviderError.

        Args:
            error: The exception raised by httpx
            provider: Provider name for the message

        Returns:
            ProviderError with appropriate metadata
        """
        if isinstance(error, ProviderError):
            return error

        status_code = None
        retry_after = None

        if isinstance(error, httpx.HTTPStatusError):
            response = error.response
            status_code = response.status_code
            retry_after = ErrorMapper.get_retry_after(response)
            detail = ErrorMapper._error_detail(response)
            if status_code == 429:
                message = f"{provider} API error {status_code}: rate limit exceeded ({detail})"
            else:
                message = f"{provider} API error {status_code}: {detail}"
            retryable = status_code in ErrorMapper.RETRYABLE_STATUS_CODES
        elif isinstance(error, httpx.TimeoutException):
            message = f"{provider} request timeout: {error}"
            retryable = True
        elif isinstance(error, httpx.TransportError):
            message = f"{provider} network error: {error}"
            retryable = True
        else:
            message = f"{provider} error: {error}"
            retryable = False

        provider_error = ProviderError(
            message=message,
            provider=provider,
            status_code=status_code,
            retry_after=retry_after
        )
        provider_error.is_retryable = retryable
        provider_error.original_error = error
        return provider_error
