"""
The Odds API adapter (v4) for NFL betting lines.

Endpoints:
- /sports/{sport}/odds                    current game odds (spreads, totals, h2h)
- /historical/sports/{sport}/odds?date=   odds as they stood at a past moment
- /sports/{sport}/events/{id}/odds        player props for one event

Line extraction:
- Bookmaker: first of ODDS_API_BOOKMAKERS present (bovada, draftkings,
  fanduel), otherwise the first one listed
- Spread: the home team's spreads outcome (point and price)
- Total: the Over outcome of totals
- Moneylines: h2h price of each team
- Missing spread/total prices default to -110

Quota Tracking: Response headers x-requests-remaining, x-requests-used
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import httpx

from gridlines.core.config import settings
from gridlines.core.exceptions import ProviderResponseError
from gridlines.core.logging import get_logger
from gridlines.models.domain import LinesData, PlayerPropLine, Provider, SourceRecord
from gridlines.services.sync.adapters.base import BaseProviderAdapter
from gridlines.services.sync.utils.name_normalizer import normalize_team_name
from gridlines.utils.timezone import ensure_utc, parse_timestamp, utc_now

logger = get_logger(__name__)

THE_ODDS_API_BASE = "https://api.the-odds-api.com/v4"
GAME_MARKETS = "spreads,totals,h2h"
DEFAULT_JUICE = -110

PLAYER_PROP_MARKETS = {
    'player_pass_yds': 'passing_yards',
    'player_rush_yds': 'rushing_yards',
    'player_reception_yds': 'receiving_yards',
}
PLAYER_PROP_BOOKMAKER = 'bovada'

MONTHLY_QUOTA = 20000
QUOTA_WARNING_THRESHOLD = 4000  # < 20% remaining
QUOTA_CRITICAL_THRESHOLD = 1000  # < 5% remaining


# ============================================================================
# Payload parsing
# ============================================================================

def to_source_record(event: Dict[str, Any]) -> Optional[SourceRecord]:
    """Convert an odds event to a SourceRecord (the raw event is kept as payload)."""
    if not isinstance(event, dict):
        logger.warning(f"Skipping odds event that is not an object: {event!r:.80}")
        return None
    try:
        kickoff_time = parse_timestamp(event['commence_time'])
        return SourceRecord(
            provider=Provider.ODDS_API,
            provider_id=str(event['id']),
            away_team=event['away_team'],
            home_team=event['home_team'],
            kickoff_time=kickoff_time,
            payload=event,
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Skipping malformed odds event {event.get('id')}: {e!r}")
        return None


def _objects(items: Any) -> List[Dict[str, Any]]:
    """The dict entries of a JSON array (anything else yields nothing)."""
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def select_bookmaker(event: Dict[str, Any], preference: Sequence[str]) -> Optional[Dict[str, Any]]:
    """Preferred bookmaker present on the event, else the first listed."""
    bookmakers = _objects(event.get('bookmakers'))
    if not bookmakers:
        return None
    by_key = {b.get('key'): b for b in bookmakers}
    for key in preference:
        if key in by_key:
            return by_key[key]
    return bookmakers[0]


def _market(bookmaker: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    for market in _objects(bookmaker.get('markets')):
        if market.get('key') == key:
            return _objects(market.get('outcomes'))
    return []


def _team_outcome(outcomes: List[Dict[str, Any]], team: str) -> Optional[Dict[str, Any]]:
    token = normalize_team_name(team)
    return next((o for o in outcomes if normalize_team_name(o.get('name')) == token), None)


def _price(outcome: Optional[Dict[str, Any]]) -> Optional[int]:
    """American price of an outcome; None when absent or not a number."""
    if outcome is None or outcome.get('price') is None:
        return None
    try:
        return int(round(float(outcome['price'])))
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Ignoring unparseable price {outcome['price']!r} for {outcome.get('name')}")
        return None


def _point(outcome: Optional[Dict[str, Any]]) -> Optional[float]:
    if outcome is None or outcome.get('point') is None:
        return None
    try:
        return float(outcome['point'])
    except (TypeError, ValueError):
        logger.warning(f"Ignoring unparseable point {outcome['point']!r} for {outcome.get('name')}")
        return None


def _price_or_juice(outcome: Optional[Dict[str, Any]]) -> int:
    price = _price(outcome)
    return DEFAULT_JUICE if price is None else price


def extract_lines(
    event: Dict[str, Any],
    preference: Optional[Sequence[str]] = None,
    source: str = "odds_api"
) -> Optional[LinesData]:
    """
    Extract game lines from one odds event.

    Returns:
        LinesData, or None when no bookmaker offers any line
    """
    bookmaker = select_bookmaker(event, preference or settings.bookmaker_preference)
    if bookmaker is None:
        return None

    home_spread = _team_outcome(_market(bookmaker, 'spreads'), event.get('home_team', ''))
    over = next((o for o in _market(bookmaker, 'totals') if o.get('name') == 'Over'), None)
    h2h = _market(bookmaker, 'h2h')

    lines = LinesData(
        spread=_point(home_spread),
        spread_odds=_price_or_juice(home_spread),
        total=_point(over),
        total_odds=_price_or_juice(over),
        home_moneyline=_price(_team_outcome(h2h, event.get('home_team', ''))),
        away_moneyline=_price(_team_outcome(h2h, event.get('away_team', ''))),
        bookmaker=bookmaker.get('key'),
        source=source,
    )
    return lines if lines.has_values else None


def extract_player_props(event: Dict[str, Any]) -> List[PlayerPropLine]:
    """
    Extract passing/rushing/receiving yard props, preferring Bovada.

    Only players with both an Over and an Under outcome are kept.
    """
    bookmaker = select_bookmaker(event, [PLAYER_PROP_BOOKMAKER] + settings.bookmaker_preference)
    if bookmaker is None:
        return []

    props: List[PlayerPropLine] = []
    for market in _objects(bookmaker.get('markets')):
        stat = PLAYER_PROP_MARKETS.get(market.get('key'))
        if stat is None:
            continue

        by_player: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for outcome in _objects(market.get('outcomes')):
            player = outcome.get('description')
            if isinstance(player, str) and player:
                by_player.setdefault(player, {})[outcome.get('name')] = outcome

        for player, sides in by_player.items():
            over, under = sides.get('Over'), sides.get('Under')
            line = _point(over)
            if line is None or under is None:
                continue
            props.append(PlayerPropLine(
                player=player,
                stat=stat,
                line=line,
                over_odds=_price(over),
                under_odds=_price(under),
                bookmaker=bookmaker.get('key'),
            ))

    logger.debug(f"Extracted {len(props)} player props from {bookmaker.get('key')}")
    return props


# ============================================================================
# Adapter
# ============================================================================

class OddsApiAdapter(BaseProviderAdapter):
    """
    The Odds API client for NFL lines.

    Paid Plan: 20,000 requests/month
    Quota Tracking: Captures x-requests-remaining and x-requests-used headers
    """

    provider = Provider.ODDS_API
    base_url = THE_ODDS_API_BASE

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        sport: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('cache_ttl', settings.ODDS_API_CACHE_TTL)
        super().__init__(client=client, **kwargs)
        self.api_key = api_key if api_key is not None else settings.THE_ODDS_API_KEY
        self.sport = sport or settings.ODDS_API_SPORT

        self._requests_remaining: Optional[int] = None
        self._requests_used: Optional[int] = None
        self._quota_last_updated: Optional[datetime] = None

    def _base_params(self, markets: str) -> Dict[str, Any]:
        return {
            'apiKey': self.api_key,
            'regions': settings.ODDS_API_REGIONS,
            'markets': markets,
            'oddsFormat': 'american',
            'bookmakers': settings.ODDS_API_BOOKMAKERS,
        }

    def _on_response(self, response: httpx.Response) -> None:
        """
        Update quota tracking from response headers.

        The Odds API returns:
        - x-requests-remaining: Requests left in current billing period
        - x-requests-used: Requests used in current billing period
        """
        try:
            remaining = response.headers.get('x-requests-remaining')
            used = response.headers.get('x-requests-used')
            if remaining:
                self._requests_remaining = int(float(remaining))
            if used:
                self._requests_used = int(float(used))
            self._quota_last_updated = utc_now()
        except (ValueError, TypeError) as e:
            logger.warning(f"Failed to parse quota headers: {e}")
            return

        if self._requests_remaining is None:
            return
        if self._requests_remaining < QUOTA_CRITICAL_THRESHOLD:
            logger.error(
                f"CRITICAL: Odds API quota critically low! "
                f"Only {self._requests_remaining} requests remaining (< 5%)."
            )
        elif self._requests_remaining < QUOTA_WARNING_THRESHOLD:
            logger.warning(
                f"WARNING: Odds API quota running low. "
                f"{self._requests_remaining} requests remaining (< 20%)."
            )

    def get_quota_status(self) -> Dict[str, Any]:
        """
        Get current quota status.

        Returns:
            Dict with remaining/used requests and last update time
        """
        return {
            "requests_remaining": self._requests_remaining,
            "requests_used": self._requests_used,
            "last_updated": self._quota_last_updated.isoformat() if self._quota_last_updated else None,
            "monthly_quota": MONTHLY_QUOTA,
            "quota_percentage": round(
                (self._requests_used / MONTHLY_QUOTA * 100) if self._requests_used else 0, 2
            ),
        }

    async def fetch_odds(self, as_of: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Fetch raw odds events, current or as of a past moment.

        Args:
            as_of: When given, use the historical endpoint for that moment

        Returns:
            List of odds events (empty when the historical snapshot is missing)

        Raises:
            ProviderError: When the feed cannot be reached or the body is not
                a list of events
        """
        if as_of is None:
            events = await self._get_json(
                f"/sports/{self.sport}/odds",
                self._base_params(GAME_MARKETS),
                cache_key=self.cache.make_key('odds', sport=self.sport),
                expected=list,
            )
            logger.info(f"🎰 Odds API: {len(events)} events with current odds")
            return events

        stamp = ensure_utc(as_of).strftime('%Y-%m-%dT%H:%M:%SZ')
        params = self._base_params(GAME_MARKETS)
        params['date'] = stamp
        try:
            payload = await self._get_json(
                f"/historical/sports/{self.sport}/odds",
                params,
                cache_key=self.cache.make_key('historical', sport=self.sport, date=stamp),
            )
        except ProviderResponseError as e:
            if e.status_code == 404:
                logger.info(f"📜 No historical odds available for {stamp}")
                return []
            raise

        events = (payload.get('data') or []) if isinstance(payload, dict) else payload
        if not isinstance(events, list):
            raise ProviderResponseError(
                self.provider.value, f"historical odds for {stamp} carry no event list"
            )
        logger.info(f"📜 Odds API: {len(events)} historical events as of {stamp}")
        return events

    async def fetch_events(self, as_of: Optional[datetime] = None) -> List[SourceRecord]:
        """Odds events as SourceRecords for the game matcher."""
        events = await self.fetch_odds(as_of)
        return [r for r in (to_source_record(e) for e in events) if r is not None]

    async def fetch_player_props(self, event_id: str) -> List[PlayerPropLine]:
        """
        Fetch yardage props for one odds event.

        Returns:
            Props (empty when the event has none on offer)
        """
        try:
            event = await self._get_json(
                f"/sports/{self.sport}/events/{event_id}/odds",
                self._base_params(','.join(PLAYER_PROP_MARKETS)),
                cache_key=self.cache.make_key('props', event=event_id),
                expected=dict,
            )
        except ProviderResponseError as e:
            if e.status_code in (404, 422):
                logger.info(f"Player props not available for odds event {event_id}")
                return []
            raise
        return extract_player_props(event)
