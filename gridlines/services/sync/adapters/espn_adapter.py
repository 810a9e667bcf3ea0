"""
ESPN scoreboard adapter.

ESPN is the source of truth for the slate: which games exist, who is home,
kickoff times and game state. Each scoreboard event becomes a SourceRecord.

Game state:
- status.type.completed        → final
- status.type.state == "in"    → live
- anything else                → upcoming
"""
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from gridlines.core.config import settings
from gridlines.core.exceptions import ProviderResponseError
from gridlines.core.logging import get_logger
from gridlines.models.domain import GameState, Provider, SourceRecord
from gridlines.services.sync.adapters.base import BaseProviderAdapter
from gridlines.utils.timezone import parse_timestamp

logger = get_logger(__name__)

ESPN_BASE = "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
REGULAR_SEASON = 2
LIVE_CACHE_TTL = 30  # seconds, while any game on the board is in progress


def parse_status(status: Optional[Dict[str, Any]]) -> GameState:
    """Map an ESPN status block to a GameState."""
    status_type = (status or {}).get('type') or {}
    if status_type.get('completed'):
        return GameState.FINAL
    if status_type.get('state') == 'in' or status_type.get('description') == 'In Progress':
        return GameState.LIVE
    return GameState.UPCOMING


def _score(competitor: Dict[str, Any]) -> Optional[int]:
    try:
        return int(competitor.get('score'))
    except (TypeError, ValueError):
        return None


def _team_name(competitor: Dict[str, Any]) -> str:
    team = competitor.get('team') or {}
    return team.get('displayName') or team.get('name') or team.get('abbreviation') or ''


def parse_event(event: Dict[str, Any]) -> Optional[SourceRecord]:
    """
    Convert one scoreboard event to a SourceRecord.

    Returns:
        SourceRecord, or None when the event lacks teams or a kickoff time
    """
    if not isinstance(event, dict):
        logger.warning(f"Skipping ESPN event that is not an object: {event!r:.80}")
        return None
    competitions = event.get('competitions') or []
    if not competitions:
        logger.warning(f"ESPN event {event.get('id')} has no competition data")
        return None

    competition = competitions[0]
    competitors = competition.get('competitors') or []
    home = next((c for c in competitors if c.get('homeAway') == 'home'), None)
    away = next((c for c in competitors if c.get('homeAway') == 'away'), None)
    kickoff = event.get('date') or competition.get('date')
    if home is None or away is None or not kickoff:
        logger.warning(f"ESPN event {event.get('id')} is missing teams or kickoff time")
        return None

    try:
        kickoff_time = parse_timestamp(kickoff)
    except ValueError:
        logger.warning(f"ESPN event {event.get('id')} has unparseable date {kickoff!r}")
        return None

    state = parse_status(competition.get('status') or event.get('status'))
    return SourceRecord(
        provider=Provider.ESPN,
        provider_id=str(event.get('id')),
        away_team=_team_name(away),
        home_team=_team_name(home),
        kickoff_time=kickoff_time,
        status=state,
        away_score=_score(away) if state.started else None,
        home_score=_score(home) if state.started else None,
        payload=event,
    )


class ESPNAdapter(BaseProviderAdapter):
    """Read-only client for the ESPN NFL scoreboard."""

    provider = Provider.ESPN
    base_url = ESPN_BASE

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        season: Optional[int] = None,
        **kwargs
    ):
        kwargs.setdefault('cache_ttl', settings.ESPN_CACHE_TTL)
        super().__init__(client=client, **kwargs)
        self.season = season or settings.NFL_SEASON

    async def fetch_scoreboard(
        self,
        week: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[SourceRecord]:
        """
        Fetch scoreboard events for a regular-season week or a date range.

        Args:
            week: Week number (1-18)
            start: First date (used when week is None)
            end: Last date, inclusive (defaults to start)

        Returns:
            Parsed SourceRecords (events that cannot be parsed are skipped)

        Raises:
            ProviderError: When ESPN cannot be reached or the body is not a scoreboard
        """
        params: Dict[str, Any] = {'seasontype': REGULAR_SEASON, 'year': self.season}
        if week is not None:
            params['week'] = week
        elif start is not None:
            last = end or start
            params['dates'] = f"{start:%Y%m%d}-{last:%Y%m%d}" if last != start else f"{start:%Y%m%d}"

        cache_key = self.cache.make_key('scoreboard', **params)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        data = await self._get_json('/scoreboard', params, expected=dict)
        events = data.get('events') or []
        if not isinstance(events, list):
            raise ProviderResponseError(self.provider.value, "scoreboard 'events' is not a list")
        records = [r for r in (parse_event(e) for e in events) if r is not None]

        live = any(r.status == GameState.LIVE for r in records)
        await self.cache.put(cache_key, records, ttl=LIVE_CACHE_TTL if live else None)

        label = f"week {week}" if week is not None else params.get('dates', 'current')
        logger.info(f"📺 ESPN {label}: {len(records)} games ({'live games on board' if live else 'no live games'})")
        return records

    async def fetch_week(self, week: int) -> List[SourceRecord]:
        return await self.fetch_scoreboard(week=week)
