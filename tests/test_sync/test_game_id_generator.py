"""Unit tests for canonical game identities.

Test Strategy:
1. Test readable id format (YYYYMMDD-away-home)
2. Test canonical id is the MD5 hex of the readable id
3. Test provider spellings and kickoff drift give the same identity
4. Test the game date is taken in the reference timezone
5. Test regenerate_game_ids reports changed ids
"""
from datetime import date, datetime

from gridlines.services.sync.utils.game_id_generator import (
    game_date_for,
    generate_game_id,
    generate_readable_game_id,
    hash_readable_id,
    identity_for,
    regenerate_game_ids,
)
from gridlines.utils.timezone import UTC


class TestGameIdGenerator:
    """Test suite for deterministic game ids."""

    # Format Tests
    # ─────────────────────────────────────────────────────────────

    def test_readable_id_format(self):
        """Should build date-away-home from normalized tokens."""
        readable = generate_readable_game_id("2025-09-14T17:00Z", "New York Jets", "New England Patriots")
        assert readable == "20250914-jets-patriots"

    def test_canonical_id_is_md5_of_readable_id(self):
        """Should hash the readable id to 32 lowercase hex characters."""
        assert hash_readable_id("20250914-jets-patriots") == "277b53383c53728c43190d9ff6f5a29f"
        assert hash_readable_id("20251012-rams-cardinals") == "2b3468260cee8e4ccf834bd83113644f"
        assert hash_readable_id("20250907-49ers-seahawks") == "4edf30d527e4d570e5030e228e04625e"

    def test_generate_game_id(self):
        """Should combine readable id and hash."""
        game_id = generate_game_id("2025-09-07T20:05Z", "San Francisco 49ers", "Seattle Seahawks")
        assert game_id == "4edf30d527e4d570e5030e228e04625e"

    # Stability Tests
    # ─────────────────────────────────────────────────────────────

    def test_same_game_from_two_providers(self):
        """Different spellings and kickoff drift on one day give one identity."""
        espn = identity_for(datetime(2025, 10, 12, 17, 0, tzinfo=UTC), "Los Angeles Rams", "Arizona Cardinals")
        odds = identity_for(datetime(2025, 10, 12, 20, 0, tzinfo=UTC), "Rams", "Cardinals")

        assert espn.canonical_id == odds.canonical_id
        assert espn.canonical_id == "2b3468260cee8e4ccf834bd83113644f"
        assert espn.readable_id == "20251012-rams-cardinals"

    def test_swapped_teams_are_a_different_game(self):
        """Home and away are part of the identity."""
        game = identity_for("2025-09-14T17:00Z", "Jets", "Patriots")
        swapped = identity_for("2025-09-14T17:00Z", "Patriots", "Jets")
        assert game.canonical_id != swapped.canonical_id

    def test_string_naive_and_aware_inputs_agree(self):
        """Should treat naive datetimes as UTC."""
        aware = identity_for(datetime(2025, 9, 14, 17, 0, tzinfo=UTC), "Jets", "Patriots")
        naive = identity_for(datetime(2025, 9, 14, 17, 0), "Jets", "Patriots")
        text = identity_for("2025-09-14T17:00:00Z", "Jets", "Patriots")

        assert aware == naive == text
        assert aware.kickoff_time.tzinfo is not None

    # Reference Timezone Tests
    # ─────────────────────────────────────────────────────────────

    def test_late_kickoff_belongs_to_local_day(self):
        """Sunday night 8:20 PM ET is 00:20 UTC Monday but a Sunday game."""
        kickoff = datetime(2025, 9, 15, 0, 20, tzinfo=UTC)

        assert game_date_for(kickoff) == date(2025, 9, 14)
        assert identity_for(kickoff, "Jets", "Patriots").readable_id == "20250914-jets-patriots"

    def test_timezone_override(self):
        """Should use the timezone passed in."""
        kickoff = datetime(2025, 9, 15, 0, 20, tzinfo=UTC)
        assert game_date_for(kickoff, tz="UTC") == date(2025, 9, 15)

    # Regeneration Tests
    # ─────────────────────────────────────────────────────────────

    def test_regenerate_reports_changed_ids(self):
        """Should keep the old id as previous_id when it changed."""
        games = [
            {"canonical_id": "stale", "kickoff_time": "2025-09-14T17:00Z",
             "away_team": "NY Jets", "home_team": "New England"},
            {"canonical_id": "277b53383c53728c43190d9ff6f5a29f", "kickoff_time": "2025-09-14T17:00Z",
             "away_team": "Jets", "home_team": "Patriots"},
        ]
        updated = regenerate_game_ids(games)

        assert updated[0]["canonical_id"] == "277b53383c53728c43190d9ff6f5a29f"
        assert updated[0]["previous_id"] == "stale"
        assert "previous_id" not in updated[1]
        assert games[0]["canonical_id"] == "stale"
