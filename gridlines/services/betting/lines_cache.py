"""
Betting-lines cache and freeze manager.

Lifecycle of one game's snapshot:

    Absent ──fetch──▶ Live ──refresh──▶ Live ──freeze──▶ Frozen (terminal)

- While Live, the snapshot is replaced wholesale whenever the refresh policy
  says it is due (daily far out, every 30 minutes near kickoff).
- From FREEZE_MARGIN_MINUTES before kickoff, or once the score feed reports
  the game live or final, the Live snapshot is frozen. A frozen snapshot is
  never written again; the game is graded against these lines.
- A game that reaches its freeze point with no real lines is captured first
  (current odds before kickoff, historical odds as of the freeze point
  after it). The default snapshot is never frozen, so later sweeps keep
  trying to capture real lines.

Fallback chain when fetching fails, first success wins:
    1. the existing Frozen snapshot
    2. the existing Live snapshot, however stale
    3. DEFAULT_LINES, persisted as Live
    4. nothing, logged as a data-quality incident
"""
import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gridlines.core.config import settings
from gridlines.core.exceptions import FrozenSnapshotError, NoOddsMatchError, ProviderError
from gridlines.core.logging import get_logger
from gridlines.models.domain import (
    DEFAULT_LINES, BettingLinesSnapshot, GameIdentity, GameState, LinesData, Provider,
    SourceRecord, UnmatchedReason,
)
from gridlines.repositories.game_repository import GameRepository
from gridlines.repositories.snapshot_repository import SnapshotRepository
from gridlines.services.betting.refresh_policy import (
    RefreshPolicy, is_freeze_due, is_refresh_due, refresh_window,
)
from gridlines.services.betting.slate_planner import time_slot
from gridlines.services.sync.adapters.odds_api_adapter import OddsApiAdapter, extract_lines
from gridlines.services.sync.matchers.game_matcher import GameMatcher
from gridlines.utils.timezone import format_game_time, utc_now

logger = get_logger(__name__)

HISTORICAL_SOURCE = "odds_api_historical"


class BettingLinesCacheService:
    """
    Serve and maintain one BettingLinesSnapshot per canonical game.

    ensure_lines() never raises for provider trouble; it walks the fallback
    chain instead.
    """

    def __init__(
        self,
        db: Session,
        odds_adapter: OddsApiAdapter,
        matcher: Optional[GameMatcher] = None,
        policy: Optional[RefreshPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        fetch_player_props: Optional[bool] = None
    ):
        """
        Initialize the cache service.

        Args:
            db: SQLAlchemy database session
            odds_adapter: The Odds API adapter
            matcher: Game matcher for unmapped games (defaults to one on db)
            policy: Refresh/freeze windows (defaults to settings)
            clock: Returns aware UTC now (tests pass a fixed clock)
            fetch_player_props: Attach player props (defaults to settings)
        """
        self.db = db
        self.odds = odds_adapter
        self.matcher = matcher or GameMatcher(db)
        self.policy = policy or RefreshPolicy.from_settings()
        self.clock = clock or utc_now
        self.fetch_player_props = (
            settings.FETCH_PLAYER_PROPS if fetch_player_props is None else fetch_player_props
        )
        self.snapshots = SnapshotRepository(db)
        self.games = GameRepository(db)

    # ========================================================================
    # Reads
    # ========================================================================

    def get_lines(self, canonical_id: str) -> Optional[BettingLinesSnapshot]:
        """Current snapshot for a game (no network, no side effects)."""
        return self.snapshots.get(canonical_id)

    def get_status_for_games(
        self,
        games: Sequence[GameIdentity],
        now: Optional[datetime] = None,
        states: Optional[Dict[str, GameState]] = None
    ) -> Dict[str, Any]:
        """
        Per-game snapshot status plus a summary.

        Returns:
            Dict with:
                - games: List of per-game dicts (has_lines, is_frozen,
                  is_default, needs_fetch, source, captured_at, hours_until_game,
                  time_slot)
                - summary: total_games, games_with_lines, games_frozen,
                  games_needing_fetch
        """
        now = now or self.clock()
        states = states or {}
        snapshots = self.snapshots.get_many([g.canonical_id for g in games])

        statuses = []
        for game in games:
            snapshot = snapshots.get(game.canonical_id)
            state = states.get(game.canonical_id, GameState.UPCOMING)
            statuses.append({
                'canonical_id': game.canonical_id,
                'readable_id': game.readable_id,
                'away_team': game.away_team,
                'home_team': game.home_team,
                'kickoff_time': game.kickoff_time.isoformat(),
                'has_lines': snapshot is not None and snapshot.available,
                'is_frozen': bool(snapshot and snapshot.frozen),
                'is_default': bool(snapshot and snapshot.is_default),
                'needs_fetch': is_refresh_due(snapshot, now, game.kickoff_time, state, self.policy),
                'source': snapshot.source if snapshot else None,
                'captured_at': snapshot.captured_at.isoformat() if snapshot else None,
                'hours_until_game': round((game.kickoff_time - now).total_seconds() / 3600, 2),
                'time_slot': time_slot(game.kickoff_time),
            })

        return {
            'games': statuses,
            'summary': {
                'total_games': len(statuses),
                'games_with_lines': sum(1 for s in statuses if s['has_lines']),
                'games_frozen': sum(1 for s in statuses if s['is_frozen']),
                'games_needing_fetch': sum(1 for s in statuses if s['needs_fetch']),
            },
        }

    def count_archivable(self, now: Optional[datetime] = None) -> int:
        """Frozen snapshots past the retention window."""
        retention = timedelta(days=settings.SNAPSHOT_RETENTION_DAYS)
        return len(self.snapshots.find_archivable(now or self.clock(), retention))

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def ensure_lines(
        self,
        game: GameIdentity,
        game_state: GameState = GameState.UPCOMING,
        now: Optional[datetime] = None
    ) -> Optional[BettingLinesSnapshot]:
        """
        Bring a game's snapshot up to date with the refresh/freeze policy.

        Args:
            game: Canonical game
            game_state: State reported by the score feed
            now: Current time (defaults to the service clock)

        Returns:
            The snapshot to serve, or None when not even a default could be stored
        """
        now = now or self.clock()
        state = GameState(game_state)
        current = self.snapshots.get(game.canonical_id)

        if current is not None and current.frozen:
            return current

        if is_freeze_due(now, game.kickoff_time, state, self.policy):
            return await self._freeze(game, current, now)

        if not is_refresh_due(current, now, game.kickoff_time, state, self.policy):
            return current

        window = refresh_window(now, game.kickoff_time, state, self.policy)
        logger.info(
            f"🔄 Refreshing lines for {game.readable_id} "
            f"({window} window, kickoff {format_game_time(game.kickoff_time)})"
        )
        return await self._capture(game, now, as_of=None)

    async def ensure_lines_for_games(
        self,
        games: Sequence[GameIdentity],
        states: Optional[Dict[str, GameState]] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Run ensure_lines for a slate, concurrently and failure-isolated.

        Returns:
            Dict with total, live, frozen, defaults, missing, errors and
            snapshots ({canonical_id: snapshot or None})
        """
        now = now or self.clock()
        states = states or {}
        semaphore = asyncio.Semaphore(settings.SLATE_CONCURRENCY)

        async def run(game: GameIdentity):
            async with semaphore:
                try:
                    state = states.get(game.canonical_id, GameState.UPCOMING)
                    return game.canonical_id, await self.ensure_lines(game, state, now), None
                except Exception as e:
                    logger.exception(f"Failed to ensure lines for {game.readable_id}: {e}")
                    return game.canonical_id, None, f"{game.readable_id}: {e}"

        outcomes = await asyncio.gather(*(run(game) for game in games))

        snapshots = {cid: snapshot for cid, snapshot, _ in outcomes}
        present = [s for s in snapshots.values() if s is not None]
        results = {
            'total': len(games),
            'live': sum(1 for s in present if not s.frozen and not s.is_default),
            'frozen': sum(1 for s in present if s.frozen),
            'defaults': sum(1 for s in present if s.is_default),
            'missing': sum(1 for s in snapshots.values() if s is None),
            'errors': [error for _, _, error in outcomes if error],
            'snapshots': snapshots,
        }
        logger.info(
            f"📊 Lines for {results['total']} games: {results['live']} live, "
            f"{results['frozen']} frozen, {results['defaults']} default, {results['missing']} missing"
        )
        return results

    def invalidate(self, canonical_id: str) -> bool:
        """Drop a Live snapshot so the next ensure_lines fetches again."""
        removed = self.snapshots.invalidate(canonical_id)
        if removed:
            logger.info(f"Invalidated live betting lines for {canonical_id}")
        return removed

    async def _freeze(
        self,
        game: GameIdentity,
        current: Optional[BettingLinesSnapshot],
        now: datetime
    ) -> Optional[BettingLinesSnapshot]:
        if current is None or current.is_default:
            as_of = None if now < game.kickoff_time else self.policy.freeze_at(game.kickoff_time)
            logger.info(
                f"Capturing lines for {game.readable_id} at its freeze point "
                f"({'historical' if as_of else 'current'} odds)"
            )
            current = await self._capture(game, now, as_of=as_of)
            if current is None or current.frozen or current.is_default:
                return current

        if self.snapshots.freeze(game.canonical_id, now):
            logger.info(
                f"🧊 Froze lines for {game.readable_id}: spread {current.spread}, "
                f"total {current.total} ({current.source})"
            )
        else:
            logger.debug(f"Lines for {game.readable_id} already frozen by another worker")
        return self.snapshots.get(game.canonical_id)

    async def _capture(
        self,
        game: GameIdentity,
        now: datetime,
        as_of: Optional[datetime]
    ) -> Optional[BettingLinesSnapshot]:
        """Fetch and store lines, walking the fallback chain on failure."""
        try:
            lines = await self.fetch_lines(game, as_of=as_of)
        except (ProviderError, NoOddsMatchError) as e:
            return self._fallback(game, now, e)

        try:
            return self.snapshots.put(game.canonical_id, game.kickoff_time, lines, now)
        except FrozenSnapshotError:
            logger.debug(f"Lines for {game.readable_id} were frozen while fetching")
            return self.snapshots.get(game.canonical_id)

    def _fallback(
        self,
        game: GameIdentity,
        now: datetime,
        error: Exception
    ) -> Optional[BettingLinesSnapshot]:
        existing = self.snapshots.get(game.canonical_id)
        if existing is not None:
            logger.warning(
                f"Serving {'frozen' if existing.frozen else 'cached'} lines for "
                f"{game.readable_id} after fetch failure: {error}"
            )
            return existing

        try:
            snapshot = self.snapshots.put(game.canonical_id, game.kickoff_time, DEFAULT_LINES, now)
        except FrozenSnapshotError:
            return self.snapshots.get(game.canonical_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"No betting lines available for {game.readable_id}: {error}; default not stored: {e}",
                extra={'incident': 'lines_unavailable', 'canonical_id': game.canonical_id},
            )
            return None

        logger.error(
            f"Using default betting lines for {game.readable_id}: {error}",
            extra={'incident': 'default_lines', 'canonical_id': game.canonical_id},
        )
        return snapshot

    # ========================================================================
    # Odds lookup
    # ========================================================================

    async def fetch_lines(self, game: GameIdentity, as_of: Optional[datetime] = None) -> LinesData:
        """
        Fetch lines for one game from The Odds API.

        Args:
            game: Canonical game
            as_of: Historical moment; None for current odds

        Raises:
            ProviderError: The odds feed failed
            NoOddsMatchError: The feed has no usable event for this game
        """
        records = await self.odds.fetch_events(as_of)
        record = self._find_odds_event(game, records)

        source = HISTORICAL_SOURCE if as_of is not None else "odds_api"
        lines = extract_lines(record.payload, source=source)
        if lines is None:
            raise NoOddsMatchError(game.canonical_id, f"event {record.provider_id} offers no lines")

        if self.fetch_player_props and as_of is None:
            try:
                props = await self.odds.fetch_player_props(record.provider_id)
                lines = replace(lines, player_props=tuple(props))
            except ProviderError as e:
                logger.warning(f"Player props unavailable for {game.readable_id}: {e}")

        return lines

    def _find_odds_event(self, game: GameIdentity, records: List[SourceRecord]) -> SourceRecord:
        """Mapped odds event for a game, matching and persisting it when unmapped."""
        mapping = self.games.get_mapping(game.canonical_id, Provider.ODDS_API)
        if mapping is not None:
            record = next((r for r in records if r.provider_id == mapping.provider_id), None)
            if record is None:
                raise NoOddsMatchError(
                    game.canonical_id, f"mapped event {mapping.provider_id} not in odds feed"
                )
            return record

        taken = self.games.mapped_provider_ids(Provider.ODDS_API)
        candidates = [r for r in records if taken.get(r.provider_id, game.canonical_id) == game.canonical_id]

        match = self.matcher.find_match(game, candidates)
        if match is None:
            reason = self.matcher.diagnose(game, candidates) or UnmatchedReason.NO_CANDIDATES
            raise NoOddsMatchError(game.canonical_id, reason.value)

        stored, _ = self.games.add_mapping(
            game.canonical_id,
            Provider.ODDS_API,
            match.candidate.provider_id,
            match.confidence,
            match.method,
        )
        if stored is None or stored.canonical_id != game.canonical_id:
            raise NoOddsMatchError(game.canonical_id, UnmatchedReason.AMBIGUOUS.value)
        return match.candidate
