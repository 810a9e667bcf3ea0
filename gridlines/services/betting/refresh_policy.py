"""
Refresh and freeze timing for one game's betting lines.

Timing windows (defaults, all configurable):
- More than 2 hours before kickoff: refresh once per 24 hours
- Within 2 hours of kickoff: refresh every 30 minutes
- From 60 minutes before kickoff, or once the game has started: freeze

Both functions are pure; `now` is always passed in.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from gridlines.core.config import Settings, settings
from gridlines.models.domain import BettingLinesSnapshot, GameState


@dataclass(frozen=True)
class RefreshPolicy:
    freeze_margin: timedelta = timedelta(minutes=60)
    near_kickoff_window: timedelta = timedelta(minutes=120)
    near_kickoff_refresh: timedelta = timedelta(minutes=30)
    daily_refresh: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "RefreshPolicy":
        return cls(
            freeze_margin=timedelta(minutes=config.FREEZE_MARGIN_MINUTES),
            near_kickoff_window=timedelta(minutes=config.NEAR_KICKOFF_WINDOW_MINUTES),
            near_kickoff_refresh=timedelta(minutes=config.NEAR_KICKOFF_REFRESH_MINUTES),
            daily_refresh=timedelta(hours=config.DAILY_REFRESH_HOURS),
        )

    def freeze_at(self, kickoff_time: datetime) -> datetime:
        return kickoff_time - self.freeze_margin


def is_freeze_due(
    now: datetime,
    kickoff_time: datetime,
    game_state: GameState = GameState.UPCOMING,
    policy: Optional[RefreshPolicy] = None
) -> bool:
    """True once the game has started or the freeze margin before kickoff is reached."""
    policy = policy or RefreshPolicy.from_settings()
    return GameState(game_state).started or now >= policy.freeze_at(kickoff_time)


def is_refresh_due(
    snapshot: Optional[BettingLinesSnapshot],
    now: datetime,
    kickoff_time: datetime,
    game_state: GameState = GameState.UPCOMING,
    policy: Optional[RefreshPolicy] = None
) -> bool:
    """
    Decide whether a game's lines should be fetched again.

    Rules, first match wins:
        game started or final          → False
        no snapshot                    → True
        snapshot frozen                → False
        snapshot is the default        → True
        clock already past kickoff     → False
        within the near-kickoff window → True if age ≥ near_kickoff_refresh
        otherwise                      → True if age ≥ daily_refresh
    """
    policy = policy or RefreshPolicy.from_settings()

    if GameState(game_state).started:
        return False
    if snapshot is None:
        return True
    if snapshot.frozen:
        return False
    if snapshot.is_default:
        return True
    if now >= kickoff_time:
        return False

    age = snapshot.age(now)
    if kickoff_time - now <= policy.near_kickoff_window:
        return age >= policy.near_kickoff_refresh
    return age >= policy.daily_refresh


def refresh_window(
    now: datetime,
    kickoff_time: datetime,
    game_state: GameState = GameState.UPCOMING,
    policy: Optional[RefreshPolicy] = None
) -> str:
    """Name of the timing window a game is in: 'freeze', 'near_kickoff' or 'daily'."""
    policy = policy or RefreshPolicy.from_settings()
    if is_freeze_due(now, kickoff_time, game_state, policy):
        return 'freeze'
    if kickoff_time - now <= policy.near_kickoff_window:
        return 'near_kickoff'
    return 'daily'
