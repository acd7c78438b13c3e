"""
Gateway error types.
"""

from typing import Any, Optional

import httpx


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str, provider: str = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class ConfigurationError(GatewayError):
    """Raised for invalid configuration, tool definitions or arguments."""

    def __init__(self, message: str, provider: str = None, field: str = None):
        super().__init__(message, provider)
        self.field = field


class ProviderError(GatewayError):
    """Raised when a provider or converter cannot serve a request."""
    pass


class ProviderNotFoundError(ProviderError):
    """Raised when a provider is not configured or not known."""
    pass


class ProviderConnectionError(ProviderError):
    """Raised when the connection to a provider fails."""
    pass


class ProviderAuthenticationError(ProviderError):
    """Raised when the provider rejects the credentials."""
    pass


class ProviderRateLimitError(ProviderError):
    """Raised when rate limit is exceeded."""

    def __init__(self, message: str, provider: str = None, retry_after: float = None):
        super().__init__(message, provider)
        self.retry_after = retry_after


class ProviderResponseError(ProviderError):
    """Raised when the provider answers with an error status or error body."""

    def __init__(self, message: str, provider: str = None, status_code: int = None):
        super().__init__(message, provider)
        self.status_code = status_code


class ToolExecutionError(GatewayError):
    """Raised when a tool handler fails."""

    def __init__(self, message: str, provider: str = None, tool_name: str = None):
        super().__init__(message, provider)
        self.tool_name = tool_name


class StreamingError(GatewayError):
    """Raised when a stream cannot be consumed."""
    pass


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        # HTTP-date form
        return None


def check_response_errors(response: httpx.Response, provider: Optional[str] = None) -> None:
    """
    Raise the matching gateway error for a non-success HTTP response.

    The body must already be read when called on a streamed response.

    Args:
        response: Provider HTTP response
        provider: Name of the provider that produced it

    Raises:
        ProviderAuthenticationError: On 401/403
        ProviderRateLimitError: On 429
        ProviderResponseError: On any other non-2xx status
    """
    if response.is_success:
        return

    if response.status_code in (401, 403):
        raise ProviderAuthenticationError(
            f"Authentication failed ({response.status_code})",
            provider=provider,
        )

    if response.status_code == 429:
        raise ProviderRateLimitError(
            "Rate limit exceeded",
            provider=provider,
            retry_after=_retry_after(response),
        )

    raise ProviderResponseError(
        f"Request failed: {response.status_code} - {_error_detail(response)}",
        provider=provider,
        status_code=response.status_code,
    )
