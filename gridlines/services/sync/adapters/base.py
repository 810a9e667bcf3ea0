"""
Base class for provider adapters.

Each adapter owns an httpx.AsyncClient, a TTL cache for list responses,
the provider's circuit breaker and the shared RetryPolicy. Subclasses only
describe endpoints and parse payloads; transport failures are translated
into ProviderUnavailableError / ProviderResponseError here.

The client can be injected (tests pass one built on httpx.MockTransport).
"""
import asyncio
from typing import Any, Dict, Optional, Tuple, Union

import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError

from gridlines.core.exceptions import ProviderResponseError, ProviderUnavailableError
from gridlines.core.logging import get_logger
from gridlines.models.domain import Provider
from gridlines.services.core.circuit_breaker import get_breaker
from gridlines.services.core.retry_policy import RetryPolicy
from gridlines.services.core.ttl_cache import TTLCache

logger = get_logger(__name__)


class BaseProviderAdapter:
    """
    Common HTTP plumbing for one upstream provider.

    Attributes:
        provider: Provider this adapter reads from
        base_url: Root URL of the provider API
    """

    provider: Provider
    base_url: str = ""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        breaker: Optional[CircuitBreaker] = None,
        cache_ttl: float = 300
    ):
        self._client = client
        self._owns_client = client is None
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.breaker = breaker or get_breaker(self.provider)
        self.cache = TTLCache(cache_ttl)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            timeout = httpx.Timeout(self.retry_policy.timeout_seconds)
            limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
            self._client = httpx.AsyncClient(
                timeout=timeout,
                limits=limits,
                headers=self._get_headers(),
            )
        return self._client

    def _get_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "User-Agent": "gridlines/1.0"}

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _on_response(self, response: httpx.Response) -> None:
        """Hook for response headers (quota tracking)."""

    async def _send(self, url: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        client = await self._get_client()
        with self.breaker.calling():
            response = await client.get(url, params=params)
            self._on_response(response)
            response.raise_for_status()
        return response

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """
        GET base_url + path through the retry policy and circuit breaker.

        Raises:
            ProviderUnavailableError: Breaker open, network failure or timeout
            ProviderResponseError: Non-2xx status after retries
        """
        url = f"{self.base_url}{path}"
        name = self.provider.value
        try:
            return await self.retry_policy.call(self._send, url, params)
        except CircuitBreakerError as e:
            logger.warning(f"{name} circuit breaker is OPEN - skipping {path}")
            raise ProviderUnavailableError(name, "circuit breaker open") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"{name} returned HTTP {status} for {path}")
            raise ProviderResponseError(name, f"HTTP {status} for {path}", status_code=status) from e
        except (httpx.TransportError, asyncio.TimeoutError) as e:
            logger.error(f"{name} request to {path} failed: {e!r}")
            raise ProviderUnavailableError(name, f"request failed: {e!r}") from e

    async def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        cache_key: Optional[str] = None,
        expected: Union[type, Tuple[type, ...]] = (dict, list)
    ) -> Any:
        """
        Fetch and decode JSON, serving from the TTL cache when cache_key is given.

        Args:
            expected: Type(s) the decoded body must have; anything else is
                rejected before it is cached

        Raises:
            ProviderResponseError: Body is not JSON or not of the expected shape
        """
        if cache_key is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"{self.provider.value} cache hit: {cache_key}")
                return cached

        response = await self._request(path, params)
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.provider.value, f"invalid JSON from {path}") from e

        if not isinstance(data, expected):
            logger.error(f"{self.provider.value} returned a {type(data).__name__} body for {path}")
            raise ProviderResponseError(
                self.provider.value, f"unexpected {type(data).__name__} payload from {path}"
            )

        if cache_key is not None:
            await self.cache.put(cache_key, data)
        return data
