"""
Services module.

This module organizes services into:
- core: Shared resilience helpers (retry policy, circuit breakers, TTL cache)
- sync: Provider adapters, matchers and the sync orchestrator
- betting: Betting-lines cache, refresh policy and slate scheduling
"""
