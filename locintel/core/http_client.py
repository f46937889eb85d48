"""
Base HTTP client with unified retry logic, rate limiting, and error handling.

Provides the foundation for the venue provider clients. Every attempt goes
through the provider's shared rate limiter before touching the network,
and the whole attempt is wrapped by the retry policy.
"""
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from locintel.core.api_errors import (
    APIError,
    ConfigurationError,
    ProviderUnavailableError,
    RetryableError,
    classify_http_error,
    parse_retry_after,
)
from locintel.core.rate_limiter import SlidingWindowRateLimiter
from locintel.core.retry import RETRYABLE_CLASSES, RetryPolicy, classify_error
from locintel.core.schemas import ProviderHealth

logger = logging.getLogger(__name__)


class BaseProviderClient(ABC):
    """
    Base class for venue provider API clients.

    Provides unified:
    - Rate limiting via the injected sliding window limiter
    - Retry with backoff via the injected retry policy
    - Standardized error classification
    - Connection pooling

    Subclasses should:
    - Set SOURCE_NAME and BASE_URL class attributes
    - Implement API-specific methods that call _request()
    - Override _check_api_error() for body-level error detection
    - Implement _probe() for health checks
    """

    # Override in subclass
    SOURCE_NAME: str = "unknown"
    BASE_URL: str = ""
    API_KEY_ENV: str = "API_KEY"

    DEFAULT_TIMEOUT: float = 10.0

    def __init__(
        self,
        api_key: Optional[str],
        rate_limiter: SlidingWindowRateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the provider client.

        Args:
            api_key: Provider API key (required)
            rate_limiter: Limiter shared by every request to this provider
            retry_policy: Retry loop for each request
            base_url: Override of the provider base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests inject MockTransport)

        Raises:
            ConfigurationError: If the API key is missing
        """
        if not api_key:
            raise ConfigurationError(
                f"{self.API_KEY_ENV} is required for the {self.SOURCE_NAME} provider",
                source=self.SOURCE_NAME,
                missing_config=self.API_KEY_ENV,
            )

        self.api_key = api_key
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self._transport = transport

        # HTTP client (lazy initialization)
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            f"Initialized {self.SOURCE_NAME} client: "
            f"rate_limit={rate_limiter.capacity}/{rate_limiter.window_seconds:.0f}s, "
            f"max_attempts={self.retry_policy.max_attempts}"
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client with connection pooling."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            logger.debug(f"{self.SOURCE_NAME} client closed")
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _build_headers(self) -> Dict[str, str]:
        """
        Build request headers.

        Override to add API-specific headers (e.g., Authorization).
        """
        return {
            "Accept": "application/json",
            "User-Agent": f"LocationIntelligence/{self.SOURCE_NAME}-client",
        }

    def _add_auth_to_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add authentication to request parameters.

        Override to add API-specific auth (e.g., key param).
        """
        return params

    def _check_api_error(
        self, data: Any, resource_id: str
    ) -> Optional[APIError]:
        """
        Check a parsed response for provider-specific errors.

        Override in subclass to handle body-level status codes.

        Returns:
            APIError if error detected, None otherwise
        """
        return None

    async def _send(
        self,
        method: str,
        url: str,
        params: Dict[str, Any],
        resource_id: str,
    ) -> Any:
        """Perform a single attempt: admit, request, classify."""
        await self.rate_limiter.admit()
        client = await self._get_client()

        logger.debug(f"[{self.SOURCE_NAME}] {method} {resource_id}")
        response = await client.request(
            method, url, params=params, headers=self._build_headers()
        )

        if response.status_code >= 400:
            raise classify_http_error(
                response.status_code,
                response.text[:500],
                self.SOURCE_NAME,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise RetryableError(
                message=f"Invalid JSON response: {e}",
                source=self.SOURCE_NAME,
                status_code=response.status_code,
            ) from e

        api_error = self._check_api_error(data, resource_id)
        if api_error:
            raise api_error

        return data

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        max_attempts: Optional[int] = None,
    ) -> Any:
        """
        Make HTTP request with retry logic.

        Args:
            method: HTTP method
            path: Path relative to the base URL, or a full URL
            params: Query parameters
            resource_id: Identifier for logging
            max_attempts: Per-call override of the retry bound

        Returns:
            Parsed JSON response

        Raises:
            ProviderUnavailableError: Retryable failure after all attempts
            APIError: Non-retryable errors (auth, validation, not found)
        """
        if path.startswith("http"):
            url = path
        else:
            url = f"{self.base_url}/{path.lstrip('/')}"
        query = self._add_auth_to_params(dict(params or {}))

        try:
            return await self.retry_policy.execute(
                lambda: self._send(method, url, query, resource_id),
                max_attempts=max_attempts,
                operation_name=f"{self.SOURCE_NAME} {resource_id}",
            )
        except Exception as e:
            if classify_error(e) not in RETRYABLE_CLASSES:
                raise
            attempts = getattr(e, "attempts", None)
            raise ProviderUnavailableError(
                message=f"{self.SOURCE_NAME} unavailable for {resource_id}: {e}",
                source=self.SOURCE_NAME,
                attempts=attempts,
                status_code=getattr(e, "status_code", None),
            ) from e

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        resource_id: str = "unknown",
        max_attempts: Optional[int] = None,
    ) -> Any:
        """Make GET request."""
        return await self._request(
            "GET", path, params=params, resource_id=resource_id, max_attempts=max_attempts
        )

    def rate_limit_status(self) -> Dict[str, Any]:
        """Current rate limit window of this provider."""
        return self.rate_limiter.status()

    @abstractmethod
    async def _probe(self) -> None:
        """Issue a tiny request that proves the provider is reachable."""

    async def health_check(self) -> ProviderHealth:
        """
        Probe the provider. Never raises.

        Returns:
            ProviderHealth with latency and rate limit status
        """
        start = time.perf_counter()
        try:
            await self._probe()
        except Exception as e:
            logger.warning(f"[{self.SOURCE_NAME}] Health check failed: {e}")
            return ProviderHealth(
                provider=self.SOURCE_NAME,
                status="unhealthy",
                error=str(e),
                rate_limit=self.rate_limit_status(),
            )
        latency_ms = (time.perf_counter() - start) * 1000
        return ProviderHealth(
            provider=self.SOURCE_NAME,
            status="healthy",
            latency_ms=round(latency_ms, 1),
            rate_limit=self.rate_limit_status(),
        )
