"""Integration tests for BettingLinesCacheService.

Test Strategy:
1. Test first fetch, cached reads and daily refresh of live lines
2. Test freezing (existing lines, capture at the freeze point, historical capture)
3. Test concurrent freezes produce exactly one frozen snapshot
4. Test a frozen snapshot is never overwritten by later provider data
5. Test the fallback chain (stale live lines, default lines, logged incident,
   malformed feed bodies)
6. Test slate-level ensure, status reporting and invalidation

Each test follows the pattern:
- Given: Database, a canonical game and a mocked (or mock-transport) odds feed
- When: ensure_lines() or a slate method is called at a fixed "now"
- Then: The served snapshot and the stored snapshot are as expected
"""
import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.orm import Session

from gridlines.core.exceptions import ProviderUnavailableError
from gridlines.models.domain import GameState, MatchMethod, Provider
from gridlines.models.models import BettingLinesRecord
from gridlines.repositories.game_repository import GameRepository
from gridlines.services.betting.lines_cache import HISTORICAL_SOURCE, BettingLinesCacheService
from gridlines.services.betting.refresh_policy import RefreshPolicy
from gridlines.services.core.retry_policy import RetryPolicy
from gridlines.services.sync.adapters.odds_api_adapter import OddsApiAdapter, to_source_record

POLICY = RefreshPolicy()


def odds_feed(*events):
    """Mocked odds adapter serving the given raw events."""
    odds = AsyncMock(spec=OddsApiAdapter)
    odds.fetch_events.return_value = [to_source_record(e) for e in events]
    odds.fetch_player_props.return_value = []
    return odds


def mock_odds_adapter(handler):
    """Real odds adapter over a mock transport, uncached and retrying without waits."""
    return OddsApiAdapter(
        api_key="test-key",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        retry_policy=RetryPolicy(attempts=3, timeout_seconds=5.0, wait_min=0, wait_max=0),
        cache_ttl=0,
    )


def make_service(db, odds):
    return BettingLinesCacheService(db, odds, policy=POLICY)


class TestLiveLines:
    """Tests for fetching and refreshing before the freeze point."""

    @pytest.mark.asyncio
    async def test_first_fetch_stores_live_snapshot(self, db_session: Session, jets_patriots, odds_event):
        """Should match the odds event, store the mapping and the lines."""
        odds = odds_feed(odds_event("evt_jets", "New York Jets", "New England Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        now = jets_patriots.kickoff_time - timedelta(days=3)

        snapshot = await service.ensure_lines(jets_patriots, now=now)

        assert snapshot.frozen is False
        assert snapshot.spread == -3.5
        assert snapshot.spread_odds == -110
        assert snapshot.total == 44.5
        assert snapshot.total_odds == -105
        assert snapshot.home_moneyline == -175
        assert snapshot.away_moneyline == 150
        assert snapshot.source == "odds_api"
        assert snapshot.captured_at == now
        assert GameRepository(db_session).find_canonical_id(Provider.ODDS_API, "evt_jets") == jets_patriots.canonical_id
        odds.fetch_events.assert_awaited_once_with(None)
        odds.fetch_player_props.assert_awaited_once_with("evt_jets")

    @pytest.mark.asyncio
    async def test_fresh_snapshot_is_served_without_fetch(self, db_session: Session, jets_patriots, odds_event):
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        now = jets_patriots.kickoff_time - timedelta(days=3)

        first = await service.ensure_lines(jets_patriots, now=now)
        second = await service.ensure_lines(jets_patriots, now=now + timedelta(hours=6))

        assert second == first
        assert odds.fetch_events.await_count == 1
        assert service.get_lines(jets_patriots.canonical_id) == first

    @pytest.mark.asyncio
    async def test_daily_refresh_replaces_lines(self, db_session: Session, jets_patriots, odds_event):
        """A day-old snapshot is replaced by the current lines."""
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        now = jets_patriots.kickoff_time - timedelta(days=3)
        await service.ensure_lines(jets_patriots, now=now)

        odds.fetch_events.return_value = [
            to_source_record(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z", spread=-4.5))
        ]
        later = now + timedelta(hours=24)
        snapshot = await service.ensure_lines(jets_patriots, now=later)

        assert snapshot.spread == -4.5
        assert snapshot.captured_at == later
        assert db_session.query(BettingLinesRecord).count() == 1


class TestFreezing:
    """Tests for the live -> frozen transition."""

    @pytest.mark.asyncio
    async def test_freeze_keeps_existing_live_lines(self, db_session: Session, jets_patriots, odds_event):
        """At the freeze point the stored lines are frozen without a fetch."""
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(days=1))

        freeze_time = jets_patriots.kickoff_time - timedelta(minutes=30)
        snapshot = await service.ensure_lines(jets_patriots, now=freeze_time)

        assert snapshot.frozen is True
        assert snapshot.frozen_at == freeze_time
        assert snapshot.spread == -3.5
        assert odds.fetch_events.await_count == 1

    @pytest.mark.asyncio
    async def test_capture_at_freeze_point(self, db_session: Session, jets_patriots, odds_event):
        """A game without lines at the freeze point is captured, then frozen."""
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)

        snapshot = await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(minutes=45))

        assert snapshot.frozen is True
        assert snapshot.source == "odds_api"
        odds.fetch_events.assert_awaited_once_with(None)

    @pytest.mark.asyncio
    async def test_historical_capture_after_kickoff(self, db_session: Session, jets_patriots, odds_event):
        """After kickoff, lines are captured as of the freeze point."""
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z", spread=-2.5))
        service = make_service(db_session, odds)
        now = jets_patriots.kickoff_time + timedelta(hours=3)

        snapshot = await service.ensure_lines(jets_patriots, GameState.FINAL, now)

        assert snapshot.frozen is True
        assert snapshot.spread == -2.5
        assert snapshot.source == HISTORICAL_SOURCE
        odds.fetch_events.assert_awaited_once_with(jets_patriots.kickoff_time - timedelta(minutes=60))
        odds.fetch_player_props.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_freeze_has_one_winner(self, db_session: Session, jets_patriots, odds_event):
        """Two sweeps past the freeze margin: one frozen snapshot, no errors."""
        records = [to_source_record(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))]

        async def slow_feed(as_of=None):
            await asyncio.sleep(0)
            return records

        odds = odds_feed()
        odds.fetch_events.side_effect = slow_feed
        service = make_service(db_session, odds)

        outcomes = []
        freeze = service.snapshots.freeze

        def recording_freeze(canonical_id, frozen_at):
            outcomes.append(freeze(canonical_id, frozen_at))
            return outcomes[-1]

        service.snapshots.freeze = recording_freeze
        now = jets_patriots.kickoff_time - timedelta(minutes=59)

        first, second = await asyncio.gather(
            service.ensure_lines(jets_patriots, now=now),
            service.ensure_lines(jets_patriots, now=now),
        )

        assert first.frozen is True
        assert second.frozen is True
        assert first == second
        assert outcomes.count(True) == 1
        assert db_session.query(BettingLinesRecord).count() == 1

    @pytest.mark.asyncio
    async def test_frozen_snapshot_ignores_later_lines(self, db_session: Session, jets_patriots, odds_event):
        """Lines frozen at -3.5 stay -3.5 when the book moves to -4."""
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z", spread=-3.5))
        service = make_service(db_session, odds)
        t0 = jets_patriots.kickoff_time - timedelta(minutes=50)
        frozen = await service.ensure_lines(jets_patriots, now=t0)

        odds.fetch_events.return_value = [
            to_source_record(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z", spread=-4.0))
        ]
        later = await service.ensure_lines(jets_patriots, GameState.LIVE, t0 + timedelta(minutes=10))

        assert frozen.frozen is True
        assert later.spread == -3.5
        assert later.captured_at == t0
        assert service.get_lines(jets_patriots.canonical_id).spread == -3.5
        assert odds.fetch_events.await_count == 1


class TestFallbackChain:
    """Tests for provider failures."""

    @pytest.mark.asyncio
    async def test_stale_live_snapshot_served_on_failure(self, db_session: Session, jets_patriots, odds_event):
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        captured = jets_patriots.kickoff_time - timedelta(days=3)
        original = await service.ensure_lines(jets_patriots, now=captured)

        odds.fetch_events.side_effect = ProviderUnavailableError("odds_api", "timeout")
        snapshot = await service.ensure_lines(jets_patriots, now=captured + timedelta(days=1))

        assert snapshot == original
        assert snapshot.captured_at == captured

    @pytest.mark.asyncio
    async def test_default_lines_after_retries_exhausted(self, db_session: Session, jets_patriots, caplog):
        """Three failed attempts and no prior snapshot: default lines, logged incident."""
        requests = []

        def unavailable(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(503, json={"message": "Service Unavailable"})

        adapter = OddsApiAdapter(
            api_key="test-key",
            client=httpx.AsyncClient(transport=httpx.MockTransport(unavailable)),
            retry_policy=RetryPolicy(attempts=3, timeout_seconds=5.0, wait_min=0, wait_max=0),
        )
        service = make_service(db_session, adapter)
        caplog.set_level(logging.ERROR, logger="gridlines.services.betting.lines_cache")

        snapshot = await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(days=2))

        assert len(requests) == 3
        assert snapshot.is_default is True
        assert snapshot.available is False
        assert snapshot.spread is None
        assert snapshot.spread_odds == -110
        assert snapshot.total_odds == -110
        assert service.get_lines(jets_patriots.canonical_id) == snapshot
        incidents = [r for r in caplog.records if getattr(r, 'incident', None) == 'default_lines']
        assert len(incidents) == 1
        assert incidents[0].canonical_id == jets_patriots.canonical_id

    @pytest.mark.asyncio
    async def test_default_lines_are_never_frozen(self, db_session: Session, jets_patriots, odds_event):
        """A default at the freeze point stays live until real lines arrive."""
        odds = odds_feed()
        odds.fetch_events.side_effect = ProviderUnavailableError("odds_api", "circuit breaker open")
        service = make_service(db_session, odds)
        now = jets_patriots.kickoff_time - timedelta(minutes=40)

        default = await service.ensure_lines(jets_patriots, now=now)

        assert default.is_default is True
        assert default.frozen is False

        odds.fetch_events.side_effect = None
        odds.fetch_events.return_value = [
            to_source_record(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        ]
        recovered = await service.ensure_lines(jets_patriots, now=now + timedelta(minutes=15))

        assert recovered.is_default is False
        assert recovered.frozen is True
        assert recovered.spread == -3.5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"message": "Unknown sport"}, ["junk"], "maintenance"])
    async def test_malformed_feed_serves_default_lines(self, db_session: Session, jets_patriots, body):
        """A 200 whose body is not a list of events ends in default lines."""
        adapter = mock_odds_adapter(lambda request: httpx.Response(200, json=body))
        service = make_service(db_session, adapter)

        snapshot = await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(days=2))

        assert snapshot.is_default is True
        assert snapshot.frozen is False

    @pytest.mark.asyncio
    async def test_malformed_feed_serves_stale_lines(self, db_session: Session, jets_patriots, odds_event):
        event = odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z")
        bodies = [[event], {"message": "Unknown sport"}]

        def feed(request: httpx.Request) -> httpx.Response:
            if "/events/" in request.url.path:
                return httpx.Response(404, json={"message": "Event not found"})
            return httpx.Response(200, json=bodies.pop(0))

        service = make_service(db_session, mock_odds_adapter(feed))
        captured = jets_patriots.kickoff_time - timedelta(days=3)
        original = await service.ensure_lines(jets_patriots, now=captured)

        snapshot = await service.ensure_lines(jets_patriots, now=captured + timedelta(days=1))

        assert original.spread == -3.5
        assert snapshot == original

    @pytest.mark.asyncio
    async def test_unparseable_price_keeps_other_lines(self, db_session: Session, jets_patriots, odds_event):
        event = odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z")
        event["bookmakers"][0]["markets"][2]["outcomes"][0]["price"] = "N/A"

        def feed(request: httpx.Request) -> httpx.Response:
            if "/events/" in request.url.path:
                return httpx.Response(200, json=["not", "an", "event"])
            return httpx.Response(200, json=[event])

        service = make_service(db_session, mock_odds_adapter(feed))

        snapshot = await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(days=2))

        assert snapshot.is_default is False
        assert snapshot.spread == -3.5
        assert snapshot.home_moneyline is None
        assert snapshot.away_moneyline == 150

    @pytest.mark.asyncio
    async def test_mapped_event_missing_from_feed(self, db_session: Session, jets_patriots, odds_event):
        """A mapped event that left the feed is not replaced by another event."""
        GameRepository(db_session).add_mapping(
            jets_patriots.canonical_id, Provider.ODDS_API, "evt_gone", 100, MatchMethod.EXACT
        )
        odds = odds_feed(odds_event("evt_new", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)

        snapshot = await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(days=1))

        assert snapshot.is_default is True
        assert GameRepository(db_session).find_canonical_id(Provider.ODDS_API, "evt_new") is None


class TestSlateOperations:
    """Tests for slate-level helpers."""

    @pytest.mark.asyncio
    async def test_ensure_lines_for_games_isolates_errors(
        self, db_session: Session, jets_patriots, niners_seahawks, odds_event
    ):
        """One failing game does not stop the rest of the slate."""
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        ensure = service.ensure_lines

        async def flaky(game, state, now):
            if game.canonical_id == niners_seahawks.canonical_id:
                raise RuntimeError("database went away")
            return await ensure(game, state, now)

        service.ensure_lines = flaky
        now = jets_patriots.kickoff_time - timedelta(days=3)

        results = await service.ensure_lines_for_games([jets_patriots, niners_seahawks], now=now)

        assert results['total'] == 2
        assert results['live'] == 1
        assert results['missing'] == 1
        assert results['errors'] == ["20250907-49ers-seahawks: database went away"]
        assert results['snapshots'][niners_seahawks.canonical_id] is None

    @pytest.mark.asyncio
    async def test_status_for_games(self, db_session: Session, jets_patriots, niners_seahawks, odds_event):
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        now = jets_patriots.kickoff_time - timedelta(days=3)
        await service.ensure_lines(jets_patriots, now=now)

        status = service.get_status_for_games([jets_patriots, niners_seahawks], now)

        assert status['summary'] == {
            'total_games': 2,
            'games_with_lines': 1,
            'games_frozen': 0,
            'games_needing_fetch': 1,
        }
        jets = status['games'][0]
        assert jets['has_lines'] is True
        assert jets['needs_fetch'] is False
        assert jets['source'] == "odds_api"
        assert jets['hours_until_game'] == 72.0
        assert jets['time_slot'] == 'sunday_early'
        assert status['games'][1]['time_slot'] == 'sunday_afternoon'

    @pytest.mark.asyncio
    async def test_invalidate_drops_live_lines_only(self, db_session: Session, jets_patriots, odds_event):
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(days=2))

        assert service.invalidate(jets_patriots.canonical_id) is True
        assert service.get_lines(jets_patriots.canonical_id) is None

        await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(minutes=30))

        assert service.invalidate(jets_patriots.canonical_id) is False
        assert service.get_lines(jets_patriots.canonical_id).frozen is True

    @pytest.mark.asyncio
    async def test_count_archivable(self, db_session: Session, jets_patriots, odds_event):
        odds = odds_feed(odds_event("evt_jets", "Jets", "Patriots", "2025-09-14T17:00:00Z"))
        service = make_service(db_session, odds)
        await service.ensure_lines(jets_patriots, now=jets_patriots.kickoff_time - timedelta(minutes=30))

        assert service.count_archivable(jets_patriots.kickoff_time + timedelta(days=29)) == 0
        assert service.count_archivable(jets_patriots.kickoff_time + timedelta(days=31)) == 1
