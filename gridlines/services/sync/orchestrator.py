"""Sync orchestrator for ESPN, The Odds API and Kalshi.

This orchestrator coordinates:
- Slate fetching from ESPN and canonical identity creation
- Linking odds events and prediction markets to canonical games
- Betting-lines maintenance for a week's slate
- Sync metadata tracking and health reporting

ESPN is the identity source: every scoreboard event becomes (or reuses) a
GameIdentity and is mapped with confidence 100. When ESPN is down, the
identities already stored for the week are used instead.

Sync Schedule (see gridlines.core.scheduler):
- lines sweep:      06:00, 12:00, 18:00 daily and every 30 min Thu-Mon
- pre-game check:   every 15 min
- provider links:   Tuesdays at midnight
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from gridlines.core.exceptions import ProviderError
from gridlines.models.domain import GameIdentity, GameState, MatchMethod, Provider, SourceRecord
from gridlines.models.models import GameIdMapping, SyncMetadata
from gridlines.repositories.game_repository import GameRepository, UnmatchedRepository
from gridlines.services.betting.lines_cache import BettingLinesCacheService
from gridlines.services.betting.slate_planner import NFLCalendar
from gridlines.services.core.circuit_breaker import get_all_breaker_states
from gridlines.services.sync.adapters.espn_adapter import ESPNAdapter
from gridlines.services.sync.adapters.kalshi_adapter import KalshiAdapter
from gridlines.services.sync.adapters.odds_api_adapter import OddsApiAdapter
from gridlines.services.sync.matchers.game_matcher import GameMatcher
from gridlines.services.sync.matchers.market_matcher import MarketMatcher, MatchedMarket
from gridlines.services.sync.utils.confidence_scorer import get_match_method_description
from gridlines.services.sync.utils.game_id_generator import identity_for
from gridlines.utils.timezone import utc_now_naive

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 70


@dataclass
class WeekSlate:
    """Canonical games of one week and their reported states."""
    week: int
    games: List[GameIdentity] = field(default_factory=list)
    states: Dict[str, GameState] = field(default_factory=dict)
    source: str = 'espn'  # espn, or stored when ESPN was unavailable


class SyncOrchestrator:
    """
    Coordinates provider syncs and betting-lines maintenance.

    This is the main entry point for the data sync layer.
    Adapters are created lazily and can be injected for tests.
    """

    def __init__(
        self,
        db: Session,
        espn_adapter: Optional[ESPNAdapter] = None,
        odds_adapter: Optional[OddsApiAdapter] = None,
        kalshi_adapter: Optional[KalshiAdapter] = None,
        calendar: Optional[NFLCalendar] = None,
        lines_service: Optional[BettingLinesCacheService] = None
    ):
        """
        Initialize the sync orchestrator.

        Args:
            db: SQLAlchemy database session
            espn_adapter: Scoreboard adapter (created on first use)
            odds_adapter: The Odds API adapter (created on first use)
            kalshi_adapter: Kalshi adapter (created on first use)
            calendar: NFL week calendar (defaults to settings)
            lines_service: Betting-lines cache (built on the odds adapter)
        """
        self.db = db
        self.games = GameRepository(db)
        self.unmatched = UnmatchedRepository(db)
        self.game_matcher = GameMatcher(db)
        self.calendar = calendar or NFLCalendar()

        self._espn_adapter = espn_adapter
        self._odds_adapter = odds_adapter
        self._kalshi_adapter = kalshi_adapter
        self._lines_service = lines_service

    @property
    def espn_adapter(self) -> ESPNAdapter:
        if self._espn_adapter is None:
            self._espn_adapter = ESPNAdapter()
        return self._espn_adapter

    @property
    def odds_adapter(self) -> OddsApiAdapter:
        if self._odds_adapter is None:
            self._odds_adapter = OddsApiAdapter()
        return self._odds_adapter

    @property
    def kalshi_adapter(self) -> KalshiAdapter:
        if self._kalshi_adapter is None:
            self._kalshi_adapter = KalshiAdapter()
        return self._kalshi_adapter

    @property
    def lines_service(self) -> BettingLinesCacheService:
        if self._lines_service is None:
            self._lines_service = BettingLinesCacheService(
                self.db, self.odds_adapter, matcher=self.game_matcher
            )
        return self._lines_service

    # ========================================================================
    # Slate
    # ========================================================================

    async def sync_week(self, week: int) -> WeekSlate:
        """
        Fetch a week from ESPN and register its canonical games.

        Falls back to the identities stored for the week when ESPN fails.

        Args:
            week: NFL week (1-18)

        Returns:
            WeekSlate with identities and reported game states
        """
        started = time.monotonic()
        metadata = self._start_metadata(Provider.ESPN.value, 'games')

        try:
            records = await self.espn_adapter.fetch_week(week)
        except ProviderError as e:
            self._finish_metadata(metadata, started, 'failed', error=str(e))
            start, end = self.calendar.week_bounds(week)
            games = self.games.find_in_range(start, end)
            logger.warning(
                f"ESPN unavailable for week {week} ({e}); using {len(games)} stored games"
            )
            return WeekSlate(week=week, games=games, source='stored')

        slate = self.register_records(week, records)
        failed = len(records) - len(slate.games)
        self._finish_metadata(
            metadata, started, 'success' if failed == 0 else 'partial',
            processed=len(records), matched=len(slate.games), failed=failed,
        )
        logger.info(f"📅 Week {week}: {len(slate.games)} games registered from ESPN")
        return slate

    def register_records(self, week: int, records: List[SourceRecord]) -> WeekSlate:
        """Create (or reuse) identities for ESPN records and map them."""
        slate = WeekSlate(week=week)
        for record in records:
            identity = identity_for(record.kickoff_time, record.away_team, record.home_team)
            if not identity.away_team or not identity.home_team:
                logger.warning(f"Skipping ESPN event {record.provider_id}: missing team names")
                continue

            stored, created = self.games.get_or_create_identity(identity)
            if created:
                logger.info(f"New game {stored.readable_id} ({stored.canonical_id})")
            self.games.add_mapping(
                stored.canonical_id, Provider.ESPN, record.provider_id, 100, MatchMethod.EXACT
            )
            slate.games.append(stored)
            slate.states[stored.canonical_id] = record.status or GameState.UPCOMING
        return slate

    # ========================================================================
    # Provider linking
    # ========================================================================

    async def link_odds(self, games: List[GameIdentity]) -> Dict[str, Any]:
        """
        Match current odds events to canonical games and store the mappings.

        Returns:
            batch_match_games summary, or {'success': False, 'error': ...}
            when the odds feed is unavailable
        """
        started = time.monotonic()
        metadata = self._start_metadata(Provider.ODDS_API.value, 'odds')
        try:
            records = await self.odds_adapter.fetch_events()
        except ProviderError as e:
            self._finish_metadata(metadata, started, 'failed', error=str(e))
            logger.error(f"❌ Odds linking failed: {e}")
            return {'success': False, 'error': str(e)}

        results = self.game_matcher.batch_match_games(games, records, Provider.ODDS_API)
        self._finish_metadata(
            metadata, started, 'success',
            processed=results['total'], matched=results['matched'], failed=results['unmatched'],
        )
        return {'success': True, **results}

    async def link_markets(self, games: List[GameIdentity]) -> Dict[str, Any]:
        """
        Match open Kalshi markets to canonical games.

        Returns:
            Dict with success, matched, unmatched and the matched markets per game
            (ticker, title, type, yes/no American odds, confidence, match)
        """
        started = time.monotonic()
        metadata = self._start_metadata(Provider.KALSHI.value, 'markets')
        try:
            markets = await self.kalshi_adapter.fetch_markets()
        except ProviderError as e:
            self._finish_metadata(metadata, started, 'failed', error=str(e))
            logger.error(f"❌ Market linking failed: {e}")
            return {'success': False, 'error': str(e)}

        results = MarketMatcher(self.db).match_markets_to_games(markets, games)
        self._finish_metadata(
            metadata, started, 'success',
            processed=len(markets), matched=results['matched'], failed=len(results['unmatched']),
        )
        return {
            'success': True,
            'matched': results['matched'],
            'unmatched': len(results['unmatched']),
            'games': {
                group.game.canonical_id: [self._market_summary(m) for m in group.markets]
                for group in results['groups']
            },
        }

    @staticmethod
    def _market_summary(match: MatchedMarket) -> Dict[str, Any]:
        market = match.market
        return {
            'ticker': market.ticker,
            'title': market.title,
            'market_type': market.parsed.market_type if market.parsed else None,
            'yes_odds': market.yes_american_odds,
            'no_odds': market.no_american_odds,
            'confidence': match.confidence,
            'match': get_match_method_description(match.confidence, match.method.value),
        }

    async def link_providers(self, week: int) -> Dict[str, Any]:
        """Sync a week and link both odds events and prediction markets."""
        slate = await self.sync_week(week)
        return {
            'week': week,
            'source': slate.source,
            'games': len(slate.games),
            'odds': await self.link_odds(slate.games),
            'markets': await self.link_markets(slate.games),
        }

    # ========================================================================
    # Betting lines
    # ========================================================================

    async def ensure_lines_for_week(self, week: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Refresh or freeze betting lines for every game of a week.

        Returns:
            Dict with week, slate source and the ensure_lines_for_games
            summary (snapshots excluded)
        """
        started = time.monotonic()
        slate = await self.sync_week(week)

        metadata = self._start_metadata('lines', 'slate')
        results = await self.lines_service.ensure_lines_for_games(slate.games, slate.states, now)
        self._finish_metadata(
            metadata, started, 'success' if not results['errors'] else 'partial',
            processed=results['total'],
            matched=results['live'] + results['frozen'],
            failed=results['defaults'] + results['missing'] + len(results['errors']),
            error='; '.join(results['errors'])[:1000] or None,
        )

        summary = {k: v for k, v in results.items() if k != 'snapshots'}
        return {'week': week, 'source': slate.source, **summary}

    def games_near_kickoff(self, now: datetime, ahead: timedelta, behind: timedelta) -> List[GameIdentity]:
        """Stored games kicking off between now - behind and now + ahead."""
        return self.games.find_in_range(now - behind, now + ahead)

    def get_week_status(self, week: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Betting-lines status of the stored games of a week."""
        start, end = self.calendar.week_bounds(week)
        games = self.games.find_in_range(start, end)
        return {'week': week, **self.lines_service.get_status_for_games(games, now)}

    # ========================================================================
    # Reporting
    # ========================================================================

    def get_unmatched_report(
        self,
        provider: Optional[Provider] = None,
        since: Optional[datetime] = None,
        limit: int = 100
    ) -> Dict[str, Any]:
        """Recent unmatched records and counts per reason."""
        rows = self.unmatched.get_unmatched(provider, since, limit)
        return {
            'by_reason': self.unmatched.count_by_reason(provider),
            'records': [
                {
                    'provider': row.provider,
                    'provider_id': row.provider_id,
                    'canonical_id': row.canonical_id,
                    'away_team': row.away_team_raw,
                    'home_team': row.home_team_raw,
                    'kickoff_time': row.kickoff_time.isoformat() if row.kickoff_time else None,
                    'reason': row.reason,
                    'best_confidence': row.best_confidence,
                    'occurrences': row.occurrences,
                    'last_seen_at': row.last_seen_at.isoformat(),
                }
                for row in rows
            ],
        }

    def get_sync_status(self) -> Dict[str, Any]:
        """
        Return overall sync health status.

        Aggregates status from all sync_metadata entries.
        """
        all_metadata = self.db.query(SyncMetadata).all()

        status_counts = {}
        last_sync_times = {}
        total_processed = 0
        total_matched = 0
        total_failed = 0

        for metadata in all_metadata:
            key = f"{metadata.source}_{metadata.data_type}"
            status_counts[key] = metadata.last_sync_status
            last_sync_times[key] = metadata.last_sync_completed_at
            total_processed += metadata.records_processed or 0
            total_matched += metadata.records_matched or 0
            total_failed += metadata.records_failed or 0

        low_confidence_count = self.db.query(GameIdMapping).filter(
            GameIdMapping.match_confidence < LOW_CONFIDENCE_THRESHOLD
        ).count()

        total_jobs = len(all_metadata)
        success_count = sum(1 for m in all_metadata if m.last_sync_status == 'success')
        health_status = 'healthy' if success_count == total_jobs else 'degraded' if success_count > 0 else 'unhealthy'

        return {
            'health_status': health_status,
            'total_jobs': total_jobs,
            'success_count': success_count,
            'status_by_job': status_counts,
            'last_sync_times': {
                k: v.isoformat() if v else None
                for k, v in last_sync_times.items()
            },
            'totals': {
                'processed': total_processed,
                'matched': total_matched,
                'failed': total_failed,
            },
            'issues': {
                'unmatched_by_reason': self.unmatched.count_by_reason(),
                'low_confidence_matches': low_confidence_count,
            },
            'circuit_breakers': get_all_breaker_states(),
            'odds_api_quota': self.odds_adapter.get_quota_status(),
        }

    # ========================================================================
    # Metadata
    # ========================================================================

    def _get_or_create_metadata(self, source: str, data_type: str) -> SyncMetadata:
        """Get or create sync metadata entry."""
        metadata = self.db.query(SyncMetadata).filter(
            SyncMetadata.source == source,
            SyncMetadata.data_type == data_type
        ).first()

        if not metadata:
            metadata = SyncMetadata(
                id=str(uuid.uuid4()),
                source=source,
                data_type=data_type
            )
            self.db.add(metadata)
            self.db.flush()

        return metadata

    def _start_metadata(self, source: str, data_type: str) -> SyncMetadata:
        metadata = self._get_or_create_metadata(source, data_type)
        metadata.last_sync_started_at = utc_now_naive()
        self.db.commit()
        return metadata

    def _finish_metadata(
        self,
        metadata: SyncMetadata,
        started: float,
        status: str,
        processed: int = 0,
        matched: int = 0,
        failed: int = 0,
        error: Optional[str] = None
    ) -> None:
        metadata.last_sync_completed_at = utc_now_naive()
        metadata.last_sync_status = status
        metadata.records_processed = processed
        metadata.records_matched = matched
        metadata.records_failed = failed
        metadata.error_message = error
        metadata.sync_duration_ms = int((time.monotonic() - started) * 1000)
        self.db.commit()

    async def cleanup(self):
        """Close any open connections."""
        for adapter in (self._espn_adapter, self._odds_adapter, self._kalshi_adapter):
            if adapter is not None:
                await adapter.close()
