"""
In-memory domain types shared by the sync and betting services.

Persisted rows live in gridlines.models.models; these dataclasses are what
services pass around and return to callers. All datetimes are timezone-aware
UTC.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Provider(str, Enum):
    """Upstream feeds a game can be seen through."""
    ESPN = "espn"
    ODDS_API = "odds_api"
    KALSHI = "kalshi"


class GameState(str, Enum):
    """Game status as reported by the live-score feed."""
    UPCOMING = "upcoming"
    LIVE = "live"
    FINAL = "final"

    @property
    def started(self) -> bool:
        return self is not GameState.UPCOMING


class MatchMode(str, Enum):
    STRICT = "strict"
    RELAXED = "relaxed"


class MatchMethod(str, Enum):
    EXACT = "exact"
    TEAM_DATE = "team_date"
    PARTIAL = "partial"


class UnmatchedReason(str, Enum):
    NO_CANDIDATES = "no_candidates"
    NO_TEAM_MATCH = "no_team_match"
    DIFFERENT_DAY = "different_day"
    OUTSIDE_TOLERANCE = "outside_tolerance"
    AMBIGUOUS = "ambiguous"
    BELOW_THRESHOLD = "below_threshold"


@dataclass
class SourceRecord:
    """One provider's view of a game. Ephemeral: never persisted as-is."""
    provider: Provider
    provider_id: str
    away_team: str
    home_team: str
    kickoff_time: datetime
    status: Optional[GameState] = None
    away_score: Optional[int] = None
    home_score: Optional[int] = None
    payload: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class GameIdentity:
    """Canonical identity for one real-world game."""
    canonical_id: str
    readable_id: str
    game_date: date
    kickoff_time: datetime
    away_team: str
    home_team: str

    @property
    def natural_key(self) -> Tuple[date, str, str]:
        return (self.game_date, self.away_team, self.home_team)


@dataclass(frozen=True)
class MatchResult:
    """Matcher output for one (target, candidate) pair."""
    candidate: SourceRecord
    confidence: int
    method: MatchMethod
    time_delta: Optional[timedelta] = None


@dataclass(frozen=True)
class PlayerPropLine:
    """Over/under line for one player and stat."""
    player: str
    stat: str  # passing_yards, rushing_yards, receiving_yards
    line: float
    over_odds: Optional[int] = None
    under_odds: Optional[int] = None
    bookmaker: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player,
            "stat": self.stat,
            "line": self.line,
            "over_odds": self.over_odds,
            "under_odds": self.under_odds,
            "bookmaker": self.bookmaker,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlayerPropLine":
        return cls(
            player=data["player"],
            stat=data["stat"],
            line=float(data["line"]),
            over_odds=data.get("over_odds"),
            under_odds=data.get("under_odds"),
            bookmaker=data.get("bookmaker"),
        )


@dataclass(frozen=True)
class LinesData:
    """Betting lines extracted from one provider response, before persistence."""
    spread: Optional[float] = None
    spread_odds: Optional[int] = None
    total: Optional[float] = None
    total_odds: Optional[int] = None
    home_moneyline: Optional[int] = None
    away_moneyline: Optional[int] = None
    player_props: Tuple[PlayerPropLine, ...] = ()
    bookmaker: Optional[str] = None
    source: str = "odds_api"
    is_default: bool = False

    @property
    def has_values(self) -> bool:
        return any(
            value is not None
            for value in (self.spread, self.total, self.home_moneyline, self.away_moneyline)
        )


# Used when no provider data has ever been seen for a game: no line values,
# standard -110 juice on both sides of spread and total.
DEFAULT_LINES = LinesData(
    spread=None,
    spread_odds=-110,
    total=None,
    total_odds=-110,
    home_moneyline=None,
    away_moneyline=None,
    bookmaker=None,
    source="default",
    is_default=True,
)


@dataclass(frozen=True)
class BettingLinesSnapshot:
    """Authoritative betting lines for one canonical game."""
    canonical_id: str
    spread: Optional[float]
    spread_odds: Optional[int]
    total: Optional[float]
    total_odds: Optional[int]
    home_moneyline: Optional[int]
    away_moneyline: Optional[int]
    player_props: Tuple[PlayerPropLine, ...]
    bookmaker: Optional[str]
    source: str
    is_default: bool
    captured_at: datetime
    frozen: bool
    frozen_at: Optional[datetime] = None

    @property
    def available(self) -> bool:
        """False when no real line exists; consumers must show "unavailable", not 0."""
        return not self.is_default and any(
            value is not None
            for value in (self.spread, self.total, self.home_moneyline, self.away_moneyline)
        )

    def age(self, now: datetime) -> timedelta:
        return now - self.captured_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canonical_id": self.canonical_id,
            "available": self.available,
            "spread": self.spread,
            "spread_odds": self.spread_odds,
            "total": self.total,
            "total_odds": self.total_odds,
            "home_moneyline": self.home_moneyline,
            "away_moneyline": self.away_moneyline,
            "player_props": [prop.to_dict() for prop in self.player_props],
            "bookmaker": self.bookmaker,
            "source": self.source,
            "is_default": self.is_default,
            "captured_at": self.captured_at.isoformat(),
            "frozen": self.frozen,
            "frozen_at": self.frozen_at.isoformat() if self.frozen_at else None,
        }


@dataclass(frozen=True)
class ParsedMarket:
    """Prediction-market title parsed into structured fields."""
    market_type: str  # moneyline, spread, over_under
    team: Optional[str] = None
    opponent: Optional[str] = None
    line: Optional[float] = None
