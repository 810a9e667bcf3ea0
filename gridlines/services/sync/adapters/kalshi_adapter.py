"""
Kalshi prediction-market adapter.

Reads open NFL markets from the public trade API (/markets). Titles are
parsed into moneyline/spread/over-under markets and yes/no prices are
converted to American odds; see market_parser.
"""
from typing import List, Optional

import httpx

from gridlines.core.config import settings
from gridlines.core.exceptions import ProviderResponseError
from gridlines.core.logging import get_logger
from gridlines.models.domain import Provider
from gridlines.services.sync.adapters.base import BaseProviderAdapter
from gridlines.services.sync.utils.market_parser import PredictionMarket, parse_market

logger = get_logger(__name__)

MARKET_PAGE_LIMIT = 1000


class KalshiAdapter(BaseProviderAdapter):
    """Read-only client for Kalshi NFL markets."""

    provider = Provider.KALSHI

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        series_ticker: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('cache_ttl', settings.KALSHI_CACHE_TTL)
        super().__init__(client=client, **kwargs)
        self.base_url = (base_url or settings.KALSHI_API_BASE_URL).rstrip('/')
        self.series_ticker = series_ticker or settings.KALSHI_SERIES_TICKER

    async def fetch_markets(self, status: str = 'open') -> List[PredictionMarket]:
        """
        Fetch and parse NFL markets.

        Markets whose title matches no known pattern are kept with
        parsed=None; the market matcher scores them on date alone.

        Raises:
            ProviderError: When Kalshi cannot be reached or the body has no market list
        """
        params = {
            'series_ticker': self.series_ticker,
            'status': status,
            'limit': MARKET_PAGE_LIMIT,
        }
        data = await self._get_json(
            '/markets',
            params,
            cache_key=self.cache.make_key('markets', **params),
            expected=dict,
        )
        raw_markets = data.get('markets') or []
        if not isinstance(raw_markets, list):
            raise ProviderResponseError(self.provider.value, "'markets' is not a list")
        markets = [parse_market(raw) for raw in raw_markets if isinstance(raw, dict)]
        parsed = sum(1 for m in markets if m.parsed is not None)
        logger.info(f"📈 Kalshi: {len(markets)} {status} markets ({parsed} with recognised titles)")
        return markets
