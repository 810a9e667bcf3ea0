"""Confidence scoring for cross-provider game matches.

Scores are integers from 0 to 100 made of two parts:
- Team strength (max 60): both sides of both records resolved through the
  alias table (60) or at least one side fell back to its stripped form (50).
- Time proximity (max 40): kickoffs within 30 minutes (40), within the
  strict tolerance (35), same calendar day only (20).

A team-exact, same-day match therefore never scores below 70, and the
default acceptance threshold of 50 only rejects non-matches.
"""
from datetime import timedelta
from typing import Optional, Tuple

from gridlines.models.domain import MatchMethod
from gridlines.services.sync.utils.name_normalizer import is_known_team

TEAM_SCORE_ALIASED = 60
TEAM_SCORE_FALLBACK = 50

TIME_SCORE_CLOSE = 40
TIME_SCORE_TOLERANCE = 35
TIME_SCORE_SAME_DAY = 20

CLOSE_KICKOFF = timedelta(minutes=30)


def team_match_strength(*raw_names: str) -> int:
    """
    Score how trustworthy a team-exact match is.

    Args:
        raw_names: Raw names of every team on both records

    Returns:
        60 if every name is a known alias, 50 otherwise
    """
    if all(is_known_team(name) for name in raw_names):
        return TEAM_SCORE_ALIASED
    return TEAM_SCORE_FALLBACK


def time_proximity_score(delta: timedelta, tolerance: timedelta) -> int:
    """
    Score kickoff agreement between two same-day records.

    Args:
        delta: Kickoff difference (sign ignored)
        tolerance: Strict-mode tolerance

    Returns:
        40, 35 or 20
    """
    delta = abs(delta)
    if delta <= CLOSE_KICKOFF:
        return TIME_SCORE_CLOSE
    if delta <= tolerance:
        return TIME_SCORE_TOLERANCE
    return TIME_SCORE_SAME_DAY


def calculate_game_match_confidence(
    team_strength: int,
    delta: timedelta,
    tolerance: timedelta
) -> Tuple[int, MatchMethod]:
    """
    Combine team strength and time proximity into a confidence and method.

    Confidence levels:
    - 100: known aliases, kickoffs within 30 minutes
    - 95: known aliases, within tolerance
    - 80: known aliases, same day beyond tolerance (relaxed mode only)
    - 70-90: same, with a name that only matched by its stripped form

    Returns:
        (confidence, method) where method is exact within tolerance and
        team_date beyond it
    """
    confidence = min(100, team_strength + time_proximity_score(delta, tolerance))
    method = MatchMethod.EXACT if abs(delta) <= tolerance else MatchMethod.TEAM_DATE
    return confidence, method


def get_match_method_description(confidence: int, method: Optional[str]) -> str:
    """
    Get human-readable description of a match.

    Args:
        confidence: Confidence score (0 to 100)
        method: Match method identifier

    Returns:
        Human-readable description
    """
    descriptions = {
        'exact': f'Exact match ({confidence}% confidence)',
        'team_date': f'Team and date match, kickoff outside tolerance ({confidence}% confidence)',
        'partial': f'Partial team match ({confidence}% confidence)',
        'source': 'Identity derived from this provider',
    }

    return descriptions.get(method or '', f'Unknown method ({confidence}% confidence)')
