"""
Circuit breakers for provider calls.

One pybreaker CircuitBreaker per upstream feed, so a failing odds feed does
not hold up score syncs and the other way round.

Circuit Breaker States:
- CLOSED: Requests pass through normally
- OPEN: Requests fail immediately (after fail_max consecutive failures)
- HALF_OPEN: One request allowed to test if the provider has recovered

Adapters wrap each awaited request in ``with breaker.calling():`` so the
breaker sees the outcome of the request itself, not of coroutine creation.
"""
from typing import Dict

from pybreaker import CircuitBreaker, CircuitBreakerError

from gridlines.core.config import settings
from gridlines.core.logging import get_logger
from gridlines.models.domain import Provider

logger = get_logger(__name__)

__all__ = [
    "CircuitBreakerError",
    "espn_api_breaker",
    "odds_api_breaker",
    "kalshi_api_breaker",
    "get_breaker",
    "get_breaker_state",
    "get_all_breaker_states",
    "reset_breaker",
    "reset_all_breakers",
]


# ============================================================================
# CIRCUIT BREAKERS
# ============================================================================

espn_api_breaker = CircuitBreaker(
    fail_max=settings.BREAKER_FAIL_MAX,
    reset_timeout=settings.BREAKER_RESET_TIMEOUT,
    name="espn_api",
)

odds_api_breaker = CircuitBreaker(
    fail_max=settings.BREAKER_FAIL_MAX,
    reset_timeout=settings.BREAKER_RESET_TIMEOUT,
    name="odds_api",
)

kalshi_api_breaker = CircuitBreaker(
    fail_max=settings.BREAKER_FAIL_MAX,
    reset_timeout=settings.BREAKER_RESET_TIMEOUT,
    name="kalshi_api",
)

_BREAKERS: Dict[Provider, CircuitBreaker] = {
    Provider.ESPN: espn_api_breaker,
    Provider.ODDS_API: odds_api_breaker,
    Provider.KALSHI: kalshi_api_breaker,
}


def get_breaker(provider: Provider) -> CircuitBreaker:
    """The shared breaker for a provider."""
    return _BREAKERS[Provider(provider)]


# ============================================================================
# CIRCUIT BREAKER STATE MONITORING
# ============================================================================

def get_breaker_state(breaker: CircuitBreaker) -> str:
    """
    Get the current state of a circuit breaker.

    Returns:
        State string: 'closed', 'open', or 'half-open'
    """
    return breaker.current_state


def get_all_breaker_states() -> Dict[str, str]:
    """
    Get the current state of all circuit breakers.

    Returns:
        Dictionary mapping breaker names to their states
    """
    return {breaker.name: get_breaker_state(breaker) for breaker in _BREAKERS.values()}


def reset_breaker(breaker: CircuitBreaker) -> None:
    """
    Manually reset a circuit breaker to closed state.

    Use with caution - only reset if you know the provider has recovered.
    """
    breaker.close()
    logger.warning(f"Circuit breaker '{breaker.name}' manually reset to CLOSED state")


def reset_all_breakers() -> None:
    """Close every provider breaker."""
    for breaker in _BREAKERS.values():
        breaker.close()
