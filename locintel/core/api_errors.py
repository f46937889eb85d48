"""
Standardized error classification for the location intelligence pipeline.

Provides a unified error hierarchy for provider clients, the cache layer
and the report orchestrator. Each error type indicates whether the
operation should be retried and carries context for logging.
"""

from typing import Any, Dict, Optional


class APIError(Exception):
    """
    Base exception for all provider and pipeline errors.

    Attributes:
        message: Human-readable error description
        source: Provider or component name (e.g., 'foursquare', 'google')
        status_code: HTTP status code if applicable
        response_data: Raw response data for debugging
        retryable: Whether this error should trigger a retry
        attempts: Number of attempts made before the error surfaced
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.status_code = status_code
        self.response_data = response_data
        self.retryable = retryable
        self.attempts: Optional[int] = None

    def __str__(self) -> str:
        parts = [self.message]
        if self.source:
            parts.insert(0, f"[{self.source}]")
        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")
        if self.attempts:
            parts.append(f"after {self.attempts} attempt(s)")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source": self.source,
            "status_code": self.status_code,
            "retryable": self.retryable,
            "attempts": self.attempts,
            "response_data": self.response_data,
        }


class RetryableError(APIError):
    """
    Transient errors that should trigger a retry.

    Examples:
    - HTTP 500-599 server errors
    - Network timeouts
    - Provider body status UNKNOWN_ERROR
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            retryable=True,
        )


class RateLimitError(APIError):
    """
    Rate limiting error (HTTP 429 or provider-specific throttling).

    Retryable. When the provider sent a Retry-After hint, ``retry_after``
    holds the delay in seconds; otherwise it is None and the retry policy
    falls back to exponential backoff.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after: Optional[float] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=429,
            response_data=response_data,
            retryable=True,
        )
        self.retry_after = retry_after


class FatalError(APIError):
    """
    Non-retryable errors that indicate a permanent problem.

    Examples:
    - Invalid API key (401)
    - Forbidden access (403)
    - Invalid request parameters (400)
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
            retryable=False,
        )


class AuthenticationError(FatalError):
    """
    Authentication or authorization failed.

    HTTP 401/403 or provider body status REQUEST_DENIED.
    """

    def __init__(
        self,
        message: str = "Authentication failed - check API key",
        source: Optional[str] = None,
        status_code: int = 401,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            status_code=status_code,
            response_data=response_data,
        )


class NotFoundError(FatalError):
    """
    Requested resource not found.

    Provider clients translate this into a None result for lookups; the
    orchestrator raises it when the restaurant itself is unknown.
    """

    def __init__(
        self,
        message: str = "Resource not found",
        source: Optional[str] = None,
        resource_id: Optional[str] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        if resource_id:
            message = f"{message}: {resource_id}"
        super().__init__(
            message=message, source=source, status_code=404, response_data=response_data
        )
        self.resource_id = resource_id


class ValidationError(FatalError):
    """
    Request validation failed - invalid parameters.

    Raised before any network or cache access for bad query parameters,
    and for HTTP 400 / provider body status INVALID_REQUEST.
    """

    def __init__(
        self,
        message: str = "Invalid request parameters",
        source: Optional[str] = None,
        invalid_params: Optional[Dict[str, str]] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=400, response_data=response_data
        )
        self.invalid_params = invalid_params or {}


class VenueMappingError(ValidationError):
    """A raw provider venue is missing a required field (name or location)."""

    def __init__(self, message: str, source: Optional[str] = None, field: Optional[str] = None):
        super().__init__(
            message=message,
            source=source,
            invalid_params={field: "missing"} if field else None,
        )
        self.field = field


class ConfigurationError(FatalError):
    """
    Configuration error - missing required settings.

    Raised at startup when the selected provider has no credentials.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        missing_config: Optional[str] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=None, response_data=None
        )
        self.missing_config = missing_config


class ProviderUnavailableError(APIError):
    """
    A provider could not be reached after all retry attempts.

    Surfaced by the orchestrator as an unavailable report section, never
    as a request failure.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        attempts: Optional[int] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(
            message=message, source=source, status_code=status_code, retryable=False
        )
        self.attempts = attempts


class CacheUnavailableError(APIError):
    """Cache backend connection failure. Always degraded to a cache miss."""

    def __init__(self, message: str = "Cache backend unavailable", source: Optional[str] = None):
        super().__init__(message=message, source=source, retryable=False)


class UnsupportedCapabilityError(APIError):
    """The configured provider does not offer the requested capability."""

    def __init__(self, capability: str, source: Optional[str] = None):
        super().__init__(
            message=f"Capability '{capability}' is not supported",
            source=source,
            retryable=False,
        )
        self.capability = capability


def classify_http_error(
    status_code: int,
    response_text: str = "",
    source: Optional[str] = None,
    retry_after: Optional[float] = None,
) -> APIError:
    """
    Classify an HTTP error into the appropriate APIError subclass.

    Args:
        status_code: HTTP status code
        response_text: Response body text
        source: Provider name
        retry_after: Parsed Retry-After header value in seconds, if any

    Returns:
        Appropriate APIError subclass instance
    """
    if status_code == 429:
        return RateLimitError(
            message=f"Rate limited: {response_text[:200]}",
            source=source,
            retry_after=retry_after,
        )
    elif status_code == 401:
        return AuthenticationError(
            message=f"Authentication failed: {response_text[:200]}", source=source
        )
    elif status_code == 403:
        return AuthenticationError(
            message=f"Access forbidden: {response_text[:200]}",
            source=source,
            status_code=403,
        )
    elif status_code == 404:
        return NotFoundError(message=f"Not found: {response_text[:200]}", source=source)
    elif status_code in (408, 425):
        return RetryableError(
            message=f"Request timeout: {response_text[:200]}",
            source=source,
            status_code=status_code,
        )
    elif 400 <= status_code < 500:
        error = ValidationError(
            message=f"Bad request: {response_text[:200]}", source=source
        )
        error.status_code = status_code
        return error
    elif 500 <= status_code < 600:
        return RetryableError(
            message=f"Server error: {response_text[:200]}",
            source=source,
            status_code=status_code,
        )
    else:
        return APIError(
            message=f"HTTP error {status_code}: {response_text[:200]}",
            source=source,
            status_code=status_code,
            retryable=False,
        )


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds. HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, seconds)
