"""Prediction-market title parsing and price conversion.

Kalshi lists football markets as yes/no questions. Titles are parsed into
a market type plus the teams and line they refer to:

    "Will the Ravens beat the Bills?"      → moneyline, ravens vs bills
    "Will Kansas City win by 7+ points?"  → spread, chiefs, 7.0
    "Will total points exceed 45.5?"      → over_under, 45.5

Prices are quoted in cents (implied probability) and converted to
American odds for display next to sportsbook lines.
"""
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from gridlines.models.domain import ParsedMarket
from gridlines.services.sync.utils.name_normalizer import find_teams_in_text
from gridlines.utils.timezone import parse_timestamp

MONEYLINE_PATTERN = re.compile(r'will\s+([^?]+?)\s+(?:win|beat)', re.IGNORECASE)
BEAT_PATTERN = re.compile(r'beat\s+([^?]+)', re.IGNORECASE)
SPREAD_PATTERN = re.compile(r'will\s+([^?]+?)\s+win\s+by\s+([\d.]+)\+?\s+points?', re.IGNORECASE)
OVER_UNDER_PATTERN = re.compile(r'(?:total\s+points?\s+)?(?:exceed|be\s+over|over)\s+([\d.]+)', re.IGNORECASE)


@dataclass(frozen=True)
class PredictionMarket:
    """One Kalshi market with its parsed title and converted prices."""
    ticker: str
    title: str
    status: str
    close_time: Optional[datetime]
    yes_price: Optional[int]
    no_price: Optional[int]
    parsed: Optional[ParsedMarket]
    event_ticker: Optional[str] = None
    volume: Optional[int] = None

    @property
    def yes_american_odds(self) -> Optional[int]:
        return price_to_american_odds(self.yes_price)

    @property
    def no_american_odds(self) -> Optional[int]:
        return price_to_american_odds(self.no_price)


def _first_team(text: str) -> Optional[str]:
    teams = find_teams_in_text(text)
    return teams[0][0] if teams else None


def parse_market_title(title: Optional[str]) -> Optional[ParsedMarket]:
    """
    Parse a market title into type, team(s) and line.

    Over/under wins over the other patterns, then spread, then moneyline.

    Returns:
        ParsedMarket, or None when the title matches no known pattern
    """
    if not title:
        return None

    over_under = OVER_UNDER_PATTERN.search(title)
    if over_under:
        return ParsedMarket(market_type='over_under', line=_to_float(over_under.group(1)))

    spread = SPREAD_PATTERN.search(title)
    if spread:
        return ParsedMarket(
            market_type='spread',
            team=_first_team(spread.group(1)),
            line=_to_float(spread.group(2)),
        )

    moneyline = MONEYLINE_PATTERN.search(title)
    if moneyline:
        opponent = None
        beat = BEAT_PATTERN.search(title)
        if beat:
            opponent = _first_team(beat.group(1))
        return ParsedMarket(
            market_type='moneyline',
            team=_first_team(moneyline.group(1)),
            opponent=opponent,
        )

    return None


def price_to_american_odds(price_cents: Optional[float]) -> Optional[int]:
    """
    Convert a yes/no price in cents (implied probability) to American odds.

    Favorites (price above 50) get negative odds, underdogs positive.

    Examples:
        >>> price_to_american_odds(75)
        -300
        >>> price_to_american_odds(25)
        300
        >>> price_to_american_odds(50)
        100

    Returns:
        American odds, or None for prices outside (0, 100)
    """
    if price_cents is None:
        return None
    probability = float(price_cents) / 100
    if probability <= 0 or probability >= 1:
        return None
    if probability > 0.5:
        return -round(probability / (1 - probability) * 100)
    return round((1 - probability) / probability * 100)


def parse_market(raw: Dict[str, Any]) -> PredictionMarket:
    """Build a PredictionMarket from a Kalshi /markets entry."""
    title = raw.get('title') if isinstance(raw.get('title'), str) else ''
    close_time = None
    if raw.get('close_time'):
        try:
            close_time = parse_timestamp(raw['close_time'])
        except ValueError:
            close_time = None

    return PredictionMarket(
        ticker=str(raw.get('ticker', '')),
        title=title,
        status=raw.get('status') or 'unknown',
        close_time=close_time,
        yes_price=_price(raw, 'yes'),
        no_price=_price(raw, 'no'),
        parsed=parse_market_title(title),
        event_ticker=raw.get('event_ticker'),
        volume=raw.get('volume'),
    )


def _price(raw: Dict[str, Any], side: str) -> Optional[int]:
    """Price in cents; falls back to the ask when no last price is given."""
    for key in (f'{side}_price', f'{side}_ask', f'{side}_bid'):
        value = raw.get(key)
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError):
                return None
    return None


def _to_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None
