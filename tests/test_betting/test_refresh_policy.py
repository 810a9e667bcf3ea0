"""Unit tests for refresh and freeze timing.

Test Strategy:
1. Test freeze is due at the margin or once the game started
2. Test each refresh rule in order (started, absent, frozen, default, past kickoff)
3. Test the near-kickoff and daily refresh intervals
4. Test window names and settings-driven policy
"""
from datetime import datetime, timedelta

import pytest

from gridlines.core.config import Settings
from gridlines.models.domain import BettingLinesSnapshot, GameState
from gridlines.services.betting.refresh_policy import (
    RefreshPolicy,
    is_freeze_due,
    is_refresh_due,
    refresh_window,
)
from gridlines.utils.timezone import UTC

KICKOFF = datetime(2025, 9, 14, 17, 0, tzinfo=UTC)
POLICY = RefreshPolicy()


def snapshot(captured_at, frozen=False, is_default=False):
    return BettingLinesSnapshot(
        canonical_id="277b53383c53728c43190d9ff6f5a29f",
        spread=None if is_default else -3.5,
        spread_odds=-110,
        total=None if is_default else 44.5,
        total_odds=-110,
        home_moneyline=None,
        away_moneyline=None,
        player_props=(),
        bookmaker=None,
        source="default" if is_default else "odds_api",
        is_default=is_default,
        captured_at=captured_at,
        frozen=frozen,
    )


class TestFreezeTiming:
    """Tests for is_freeze_due()."""

    def test_not_due_before_margin(self):
        assert not is_freeze_due(KICKOFF - timedelta(minutes=61), KICKOFF, policy=POLICY)

    def test_due_at_margin(self):
        """The freeze point itself is inclusive."""
        assert is_freeze_due(KICKOFF - timedelta(minutes=60), KICKOFF, policy=POLICY)

    @pytest.mark.parametrize("state", [GameState.LIVE, GameState.FINAL])
    def test_due_once_started(self, state):
        """A game reported started freezes even if the clock says otherwise."""
        assert is_freeze_due(KICKOFF - timedelta(days=1), KICKOFF, state, POLICY)

    def test_freeze_at(self):
        assert POLICY.freeze_at(KICKOFF) == datetime(2025, 9, 14, 16, 0, tzinfo=UTC)


class TestRefreshTiming:
    """Tests for is_refresh_due()."""

    # Rule Order Tests
    # ─────────────────────────────────────────────────────────────

    def test_started_game_never_refreshes(self):
        now = KICKOFF - timedelta(days=2)
        assert not is_refresh_due(None, now, KICKOFF, GameState.LIVE, POLICY)

    def test_absent_snapshot_is_due(self):
        assert is_refresh_due(None, KICKOFF - timedelta(days=5), KICKOFF, policy=POLICY)

    def test_frozen_snapshot_is_never_due(self):
        now = KICKOFF - timedelta(days=3)
        frozen = snapshot(now - timedelta(days=10), frozen=True)

        assert not is_refresh_due(frozen, now, KICKOFF, policy=POLICY)

    def test_default_snapshot_is_always_due(self):
        now = KICKOFF - timedelta(days=3)
        default = snapshot(now - timedelta(minutes=1), is_default=True)

        assert is_refresh_due(default, now, KICKOFF, policy=POLICY)

    def test_past_kickoff_is_not_due(self):
        now = KICKOFF + timedelta(minutes=5)
        live = snapshot(now - timedelta(days=2))

        assert not is_refresh_due(live, now, KICKOFF, policy=POLICY)

    # Interval Tests
    # ─────────────────────────────────────────────────────────────

    def test_daily_interval_far_from_kickoff(self):
        """Three days out: due only once the snapshot is a day old."""
        now = KICKOFF - timedelta(days=3)

        assert not is_refresh_due(snapshot(now - timedelta(hours=23)), now, KICKOFF, policy=POLICY)
        assert is_refresh_due(snapshot(now - timedelta(hours=24)), now, KICKOFF, policy=POLICY)

    def test_near_kickoff_interval(self):
        """Ninety minutes out: due every thirty minutes."""
        now = KICKOFF - timedelta(minutes=90)

        assert not is_refresh_due(snapshot(now - timedelta(minutes=29)), now, KICKOFF, policy=POLICY)
        assert is_refresh_due(snapshot(now - timedelta(minutes=30)), now, KICKOFF, policy=POLICY)

    def test_window_boundary_is_near_kickoff(self):
        """Exactly two hours out already uses the short interval."""
        now = KICKOFF - timedelta(minutes=120)

        assert is_refresh_due(snapshot(now - timedelta(minutes=45)), now, KICKOFF, policy=POLICY)


class TestRefreshWindow:
    """Tests for window names and policy construction."""

    def test_window_names(self):
        assert refresh_window(KICKOFF - timedelta(days=1), KICKOFF, policy=POLICY) == 'daily'
        assert refresh_window(KICKOFF - timedelta(minutes=100), KICKOFF, policy=POLICY) == 'near_kickoff'
        assert refresh_window(KICKOFF - timedelta(minutes=30), KICKOFF, policy=POLICY) == 'freeze'
        assert refresh_window(KICKOFF - timedelta(days=1), KICKOFF, GameState.FINAL, POLICY) == 'freeze'

    def test_policy_from_settings(self):
        config = Settings(
            ENVIRONMENT="test",
            FREEZE_MARGIN_MINUTES=45,
            NEAR_KICKOFF_WINDOW_MINUTES=90,
            NEAR_KICKOFF_REFRESH_MINUTES=15,
            DAILY_REFRESH_HOURS=12,
        )

        policy = RefreshPolicy.from_settings(config)

        assert policy.freeze_margin == timedelta(minutes=45)
        assert policy.near_kickoff_window == timedelta(minutes=90)
        assert policy.near_kickoff_refresh == timedelta(minutes=15)
        assert policy.daily_refresh == timedelta(hours=12)
        assert policy.freeze_at(KICKOFF) == KICKOFF - timedelta(minutes=45)
