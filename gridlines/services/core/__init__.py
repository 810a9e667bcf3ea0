"""
Shared helpers used by every provider adapter.

- retry_policy: Bounded retry with exponential backoff (tenacity)
- circuit_breaker: One pybreaker breaker per provider
- ttl_cache: Async-safe TTL cache for provider responses
"""
from gridlines.services.core.retry_policy import RetryPolicy
from gridlines.services.core.ttl_cache import TTLCache

__all__ = [
    "RetryPolicy",
    "TTLCache",
]
