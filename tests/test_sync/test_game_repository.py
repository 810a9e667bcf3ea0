"""Integration tests for GameRepository and UnmatchedRepository.

Test Strategy:
1. Test identities are created once and never updated
2. Test natural-key and range lookups
3. Test mapping rules (reverse lookup, first mapping wins)
4. Test the unmatched report (one entry per repeated miss)
"""
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from gridlines.models.domain import MatchMethod, Provider, SourceRecord, UnmatchedReason
from gridlines.models.models import GameIdentityRecord, GameIdMapping
from gridlines.repositories.game_repository import GameRepository, UnmatchedRepository
from gridlines.services.sync.utils.game_id_generator import identity_for
from gridlines.utils.timezone import UTC


class TestGameRepository:
    """Tests for identity and mapping persistence."""

    # Identity Tests
    # ─────────────────────────────────────────────────────────────

    def test_get_or_create_identity(self, db_session: Session, jets_patriots):
        """Should insert once and return the stored identity afterwards."""
        repo = GameRepository(db_session)

        stored, created = repo.get_or_create_identity(jets_patriots)
        again, created_again = repo.get_or_create_identity(jets_patriots)

        assert created is True
        assert created_again is False
        assert stored == again == jets_patriots
        assert db_session.query(GameIdentityRecord).count() == 1

    def test_first_kickoff_is_kept(self, db_session: Session, jets_patriots):
        """A later report with a different kickoff reuses the stored identity."""
        repo = GameRepository(db_session)
        repo.get_or_create_identity(jets_patriots)

        moved = identity_for(datetime(2025, 9, 14, 20, 25, tzinfo=UTC), "Jets", "Patriots")
        stored, created = repo.get_or_create_identity(moved)

        assert created is False
        assert stored.canonical_id == jets_patriots.canonical_id
        assert stored.kickoff_time == jets_patriots.kickoff_time

    def test_find_by_natural_key_accepts_raw_names(self, db_session: Session, jets_patriots):
        """Should normalize team names before the lookup."""
        repo = GameRepository(db_session)
        repo.get_or_create_identity(jets_patriots)

        found = repo.find_by_natural_key(jets_patriots.game_date, "NY Jets", "New England Patriots")

        assert found.canonical_id == jets_patriots.canonical_id

    def test_find_in_range(self, db_session: Session, jets_patriots, niners_seahawks):
        """Should return identities in kickoff order within the window."""
        repo = GameRepository(db_session)
        repo.get_or_create_identity(jets_patriots)
        repo.get_or_create_identity(niners_seahawks)

        games = repo.find_in_range(
            datetime(2025, 9, 1, tzinfo=UTC), datetime(2025, 9, 30, tzinfo=UTC)
        )
        only_week_two = repo.find_in_range(
            jets_patriots.kickoff_time - timedelta(hours=1), jets_patriots.kickoff_time
        )

        assert [g.canonical_id for g in games] == [niners_seahawks.canonical_id, jets_patriots.canonical_id]
        assert [g.canonical_id for g in only_week_two] == [jets_patriots.canonical_id]
        assert games[0].kickoff_time.tzinfo is not None

    # Mapping Tests
    # ─────────────────────────────────────────────────────────────

    def test_reverse_lookup(self, db_session: Session, jets_patriots):
        """Should find the canonical id for a provider id."""
        repo = GameRepository(db_session)
        repo.add_mapping(jets_patriots.canonical_id, Provider.ESPN, "401772510", 100, MatchMethod.EXACT)

        assert repo.find_canonical_id(Provider.ESPN, "401772510") == jets_patriots.canonical_id
        assert repo.find_canonical_id(Provider.ODDS_API, "401772510") is None
        assert repo.get_mappings(jets_patriots.canonical_id) == {"espn": "401772510"}

    def test_first_mapping_wins_for_provider_id(self, db_session: Session, jets_patriots, niners_seahawks):
        """A provider id already linked elsewhere is not relinked."""
        repo = GameRepository(db_session)
        repo.add_mapping(jets_patriots.canonical_id, Provider.ODDS_API, "evt_1", 95, MatchMethod.EXACT)

        mapping, created = repo.add_mapping(
            niners_seahawks.canonical_id, Provider.ODDS_API, "evt_1", 100, MatchMethod.EXACT
        )

        assert created is False
        assert mapping.canonical_id == jets_patriots.canonical_id
        assert repo.find_canonical_id(Provider.ODDS_API, "evt_1") == jets_patriots.canonical_id

    def test_first_mapping_wins_for_game(self, db_session: Session, jets_patriots):
        """A game keeps its first id for a provider."""
        repo = GameRepository(db_session)
        repo.add_mapping(jets_patriots.canonical_id, Provider.ODDS_API, "evt_1", 95, MatchMethod.EXACT)

        mapping, created = repo.add_mapping(
            jets_patriots.canonical_id, Provider.ODDS_API, "evt_2", 100, MatchMethod.EXACT
        )

        assert mapping is None
        assert created is False
        assert db_session.query(GameIdMapping).count() == 1

    def test_same_mapping_twice_is_idempotent(self, db_session: Session, jets_patriots):
        """Re-adding an identical mapping returns the stored row."""
        repo = GameRepository(db_session)
        first, created = repo.add_mapping(jets_patriots.canonical_id, Provider.ESPN, "1", 100, MatchMethod.EXACT)
        second, created_again = repo.add_mapping(jets_patriots.canonical_id, Provider.ESPN, "1", 100, MatchMethod.EXACT)

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert first.match_method == "exact"


class TestUnmatchedRepository:
    """Tests for the unmatched-records report."""

    def test_records_and_counts(self, db_session: Session, jets_patriots):
        """Should store source and identity entries and count them by reason."""
        repo = UnmatchedRepository(db_session)
        record = SourceRecord(
            provider=Provider.ODDS_API,
            provider_id="evt_x",
            away_team="Springfield Atoms",
            home_team="Patriots",
            kickoff_time=jets_patriots.kickoff_time,
        )

        repo.record_source(record, UnmatchedReason.NO_TEAM_MATCH)
        repo.record_identity(jets_patriots, Provider.ODDS_API, UnmatchedReason.OUTSIDE_TOLERANCE, 80)
        repo.record_identity(jets_patriots, Provider.KALSHI, UnmatchedReason.NO_CANDIDATES)

        assert repo.count_by_reason() == {
            "no_team_match": 1,
            "outside_tolerance": 1,
            "no_candidates": 1,
        }
        odds_rows = repo.get_unmatched(Provider.ODDS_API)
        assert len(odds_rows) == 2
        assert {row.provider_id for row in odds_rows} == {"evt_x", None}

    def test_repeat_miss_updates_entry(self, db_session: Session, jets_patriots):
        """Should keep one entry per miss and count how often it was seen."""
        repo = UnmatchedRepository(db_session)
        record = SourceRecord(
            provider=Provider.ODDS_API,
            provider_id="evt_x",
            away_team="Springfield Atoms",
            home_team="Patriots",
            kickoff_time=jets_patriots.kickoff_time,
        )
        moved = SourceRecord(
            provider=Provider.ODDS_API,
            provider_id="evt_x",
            away_team="Springfield Atoms",
            home_team="Patriots",
            kickoff_time=jets_patriots.kickoff_time + timedelta(hours=3),
        )

        first = repo.record_source(record, UnmatchedReason.NO_TEAM_MATCH)
        repo.record_source(record, UnmatchedReason.NO_TEAM_MATCH)
        latest = repo.record_source(moved, UnmatchedReason.NO_TEAM_MATCH)
        repo.record_identity(jets_patriots, Provider.ODDS_API, UnmatchedReason.NO_CANDIDATES)
        repo.record_identity(jets_patriots, Provider.ODDS_API, UnmatchedReason.NO_CANDIDATES, 40)
        repo.record_identity(jets_patriots, Provider.ODDS_API, UnmatchedReason.OUTSIDE_TOLERANCE, 80)

        assert latest.id == first.id
        assert latest.occurrences == 3
        assert latest.kickoff_time == datetime(2025, 9, 14, 20, 0)
        assert latest.last_seen_at >= latest.created_at
        assert repo.count() == 3
        assert repo.count_by_reason(Provider.ODDS_API) == {
            "no_team_match": 1,
            "no_candidates": 1,
            "outside_tolerance": 1,
        }
        by_reason = {row.reason: row for row in repo.get_unmatched(Provider.ODDS_API)}
        assert by_reason["no_candidates"].occurrences == 2
        assert by_reason["no_candidates"].best_confidence == 40
