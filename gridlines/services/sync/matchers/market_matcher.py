"""Prediction-market matcher.

Prediction markets do not carry an (away, home) pair, so they cannot use
the team-exact GameMatcher. Each market is scored against every canonical
game and assigned to the best one scoring at least 50:

- Date: same calendar day as kickoff (+30), or within two days (+15)
- Moneyline: named team plays in the game (+40), and the opponent too (+20);
  otherwise a partial name overlap (+20)
- Spread: named team plays in the game (+50)
- Over/under: date matched (+20), the title is the only other signal
- Title mentions a word of either team's full name (+10)

Methods: exact (90+), team_date (70+), partial (below 70).
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from rapidfuzz import fuzz
from sqlalchemy.orm import Session

from gridlines.models.domain import GameIdentity, MatchMethod, Provider
from gridlines.repositories.game_repository import GameRepository
from gridlines.services.sync.utils.game_id_generator import game_date_for
from gridlines.services.sync.utils.market_parser import PredictionMarket
from gridlines.services.sync.utils.name_normalizer import team_display_name

logger = logging.getLogger(__name__)

MARKET_MIN_CONFIDENCE = 50
PARTIAL_NAME_RATIO = 90


@dataclass(frozen=True)
class MatchedMarket:
    market: PredictionMarket
    game: GameIdentity
    confidence: int
    method: MatchMethod


@dataclass
class GameMarketGroup:
    game: GameIdentity
    markets: List[MatchedMarket] = field(default_factory=list)


def method_for_confidence(confidence: int) -> MatchMethod:
    """Map a market confidence to its match method."""
    if confidence >= 90:
        return MatchMethod.EXACT
    if confidence >= 70:
        return MatchMethod.TEAM_DATE
    return MatchMethod.PARTIAL


class MarketMatcher:
    """Assign prediction markets to canonical games."""

    def __init__(self, db: Optional[Session] = None, min_confidence: int = MARKET_MIN_CONFIDENCE):
        self.db = db
        self.min_confidence = min_confidence

    def score(self, market: PredictionMarket, game: GameIdentity) -> int:
        """Confidence (0-100) that market is about game."""
        confidence = 0
        parsed = market.parsed
        teams = (game.away_team, game.home_team)

        if market.close_time is not None:
            if game_date_for(market.close_time) == game.game_date:
                confidence += 30
            elif abs(market.close_time - game.kickoff_time) <= timedelta(days=2):
                confidence += 15

        if parsed is not None and parsed.market_type == 'moneyline' and parsed.team:
            if parsed.team in teams:
                confidence += 40
                if parsed.opponent and parsed.opponent in teams:
                    confidence += 20
            elif self._partial_team_match(market.title, teams):
                confidence += 20
        elif parsed is not None and parsed.market_type == 'spread' and parsed.team:
            if parsed.team in teams:
                confidence += 50
        elif parsed is not None and parsed.market_type == 'over_under':
            if confidence >= 30:
                confidence += 20

        if self._title_mentions(market.title, teams):
            confidence += 10

        return min(confidence, 100)

    def find_best_game(self, market: PredictionMarket, games: Sequence[GameIdentity]) -> Optional[MatchedMarket]:
        """Best-scoring game for a market, if it clears the threshold."""
        best: Optional[MatchedMarket] = None
        for game in games:
            confidence = self.score(market, game)
            if confidence >= self.min_confidence and (best is None or confidence > best.confidence):
                best = MatchedMarket(
                    market=market,
                    game=game,
                    confidence=confidence,
                    method=method_for_confidence(confidence),
                )
        return best

    def match_markets_to_games(
        self,
        markets: Sequence[PredictionMarket],
        games: Sequence[GameIdentity]
    ) -> Dict[str, Any]:
        """
        Match markets to games and group them per game.

        When a database session is available, each matched market's event
        ticker is stored as the game's kalshi mapping.

        Returns:
            Dict with:
                - groups: List of GameMarketGroup (one per game with markets)
                - matched: Number of markets matched
                - unmatched: List of markets that matched no game
        """
        groups: Dict[str, GameMarketGroup] = {}
        unmatched: List[PredictionMarket] = []

        for market in markets:
            match = self.find_best_game(market, games)
            if match is None:
                unmatched.append(market)
                continue
            group = groups.setdefault(match.game.canonical_id, GameMarketGroup(game=match.game))
            group.markets.append(match)

        if self.db is not None:
            self._persist_mappings(groups.values())

        matched = sum(len(g.markets) for g in groups.values())
        logger.info(f"Matched {matched} prediction markets to {len(groups)} games")
        if unmatched:
            logger.info(f"{len(unmatched)} prediction markets could not be matched")

        return {
            'groups': list(groups.values()),
            'matched': matched,
            'unmatched': unmatched,
        }

    def _persist_mappings(self, groups) -> None:
        repo = GameRepository(self.db)
        for group in groups:
            best = max(group.markets, key=lambda m: m.confidence)
            if best.market.event_ticker:
                repo.add_mapping(
                    group.game.canonical_id,
                    Provider.KALSHI,
                    best.market.event_ticker,
                    best.confidence,
                    best.method,
                )

    @staticmethod
    def _partial_team_match(title: str, teams: Sequence[str]) -> bool:
        title_lower = (title or '').lower()
        for token in teams:
            name = team_display_name(token).lower()
            if fuzz.partial_ratio(name.split()[-1], title_lower) >= PARTIAL_NAME_RATIO:
                return True
        return False

    @staticmethod
    def _title_mentions(title: str, teams: Sequence[str]) -> bool:
        title_lower = (title or '').lower()
        for token in teams:
            words = team_display_name(token).lower().split()
            if any(len(word) > 3 and word in title_lower for word in words):
                return True
        return False
