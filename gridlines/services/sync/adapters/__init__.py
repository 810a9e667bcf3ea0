"""API adapters for external data sources.

Available adapters:
- espn_adapter: ESPN scoreboard (slate, kickoff times, game state)
- odds_api_adapter: The Odds API (current/historical lines, player props)
- kalshi_adapter: Kalshi prediction markets

Base classes:
- BaseProviderAdapter: Shared client, retry, circuit breaker and cache
"""
from gridlines.services.sync.adapters.base import BaseProviderAdapter
from gridlines.services.sync.adapters.espn_adapter import ESPNAdapter
from gridlines.services.sync.adapters.kalshi_adapter import KalshiAdapter
from gridlines.services.sync.adapters.odds_api_adapter import OddsApiAdapter

__all__ = [
    "BaseProviderAdapter",
    "ESPNAdapter",
    "KalshiAdapter",
    "OddsApiAdapter",
]
