"""Deterministic canonical game identities.

A game is identified by (game date, away team, home team). The date is the
kickoff's calendar day in the league reference timezone, so providers that
disagree by a few minutes on kickoff still produce the same identity, while
no calendar day can hold two games between the same two teams.

    readable_id  = "20250914-jets-patriots"
    canonical_id = md5(readable_id) as 32 lowercase hex chars

MD5 is used as a stable content hash, not for security; the digest is the
same across processes, machines and languages.
"""
import hashlib
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from gridlines.core.config import settings
from gridlines.models.domain import GameIdentity
from gridlines.services.sync.utils.name_normalizer import normalize_team_name
from gridlines.utils.timezone import local_date, parse_timestamp

KickoffInput = Union[str, datetime]


def game_date_for(kickoff_time: KickoffInput, tz: Optional[str] = None) -> date:
    """
    Calendar date of a kickoff in the reference timezone.

    Args:
        kickoff_time: Aware datetime, naive UTC datetime or ISO-8601 string
        tz: Timezone name (defaults to settings.IDENTITY_TIMEZONE)
    """
    return local_date(parse_timestamp(kickoff_time), tz or settings.IDENTITY_TIMEZONE)


def generate_readable_game_id(
    kickoff_time: KickoffInput,
    away_team: str,
    home_team: str,
    tz: Optional[str] = None
) -> str:
    """
    Build the human-readable id "YYYYMMDD-away-home".

    Example:
        >>> generate_readable_game_id("2025-09-14T17:00Z", "New York Jets", "New England Patriots")
        '20250914-jets-patriots'
    """
    game_date = game_date_for(kickoff_time, tz)
    return _readable_id(game_date, normalize_team_name(away_team), normalize_team_name(home_team))


def generate_game_id(
    kickoff_time: KickoffInput,
    away_team: str,
    home_team: str,
    tz: Optional[str] = None
) -> str:
    """Build the canonical id (MD5 hex of the readable id)."""
    return hash_readable_id(generate_readable_game_id(kickoff_time, away_team, home_team, tz))


def hash_readable_id(readable_id: str) -> str:
    """Content hash of a readable id."""
    return hashlib.md5(readable_id.encode("utf-8")).hexdigest()


def identity_for(
    kickoff_time: KickoffInput,
    away_team: str,
    home_team: str,
    tz: Optional[str] = None
) -> GameIdentity:
    """
    Derive the canonical identity of a game.

    Pure: no clock, no randomness, no storage. Calling it twice with the same
    date and teams (in any provider's spelling) gives the same canonical_id.

    Args:
        kickoff_time: Kickoff as a datetime (naive = UTC) or ISO-8601 string
        away_team: Raw away team name
        home_team: Raw home team name
        tz: Reference timezone for the game date (defaults to settings)

    Returns:
        GameIdentity with canonical tokens and aware UTC kickoff
    """
    kickoff = parse_timestamp(kickoff_time)
    game_date = local_date(kickoff, tz or settings.IDENTITY_TIMEZONE)
    away = normalize_team_name(away_team)
    home = normalize_team_name(home_team)
    readable_id = _readable_id(game_date, away, home)

    return GameIdentity(
        canonical_id=hash_readable_id(readable_id),
        readable_id=readable_id,
        game_date=game_date,
        kickoff_time=kickoff,
        away_team=away,
        home_team=home,
    )


def regenerate_game_ids(games: Iterable[Dict[str, Any]], tz: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Re-derive ids for stored game dicts after a normalization change.

    Each dict needs 'kickoff_time', 'away_team' and 'home_team'; returns
    copies with 'canonical_id' and 'readable_id' set and 'previous_id'
    holding the old canonical id when it changed.
    """
    result = []
    for game in games:
        identity = identity_for(game['kickoff_time'], game['away_team'], game['home_team'], tz)
        updated = dict(game)
        if game.get('canonical_id') and game['canonical_id'] != identity.canonical_id:
            updated['previous_id'] = game['canonical_id']
        updated['canonical_id'] = identity.canonical_id
        updated['readable_id'] = identity.readable_id
        result.append(updated)
    return result


def _readable_id(game_date: date, away: str, home: str) -> str:
    return f"{game_date.strftime('%Y%m%d')}-{away}-{home}"
