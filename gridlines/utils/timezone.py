"""
Timezone utilities.

All times are stored in UTC. Rows in the database hold naive UTC datetimes;
everything above the repository layer works with timezone-aware UTC.

Game dates are taken in the league reference timezone (Eastern Time by
default) so that a late kickoff, e.g. 8:15 PM ET = 00:15 UTC next day,
belongs to the day it is played on.
"""
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Optional, Union
from zoneinfo import ZoneInfo

UTC = timezone.utc


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Return an aware UTC datetime.

    Naive datetimes are assumed to already be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert to the naive UTC form stored in the database."""
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def from_db(value: Optional[datetime]) -> Optional[datetime]:
    """Convert a naive UTC datetime loaded from the database to aware UTC."""
    if value is None:
        return None
    return ensure_utc(value)


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse a provider timestamp into aware UTC.

    Accepts datetimes and ISO-8601 strings, including the trailing 'Z'
    form used by ESPN, The Odds API and Kalshi ("2025-09-14T17:00Z").

    Raises:
        ValueError: If the value is not an ISO-8601 string or datetime
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"not a timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


@lru_cache(maxsize=16)
def get_zone(name: str) -> ZoneInfo:
    """Cached ZoneInfo lookup."""
    return ZoneInfo(name)


def to_local(value: datetime, tz_name: str) -> datetime:
    """Convert an aware (or naive UTC) datetime to the given timezone."""
    return ensure_utc(value).astimezone(get_zone(tz_name))


def local_date(value: datetime, tz_name: str) -> date:
    """Calendar date of a moment in the given timezone."""
    return to_local(value, tz_name).date()


def format_game_time(value: Optional[datetime], tz_name: str = "America/New_York") -> str:
    """
    Format a kickoff for logs.

    Example:
        >>> format_game_time(datetime(2025, 9, 14, 17, 0, tzinfo=UTC))
        '2025-09-14 01:00 PM EDT'
    """
    if value is None:
        return "N/A"
    return to_local(value, tz_name).strftime("%Y-%m-%d %I:%M %p %Z")


def utc_now_naive() -> datetime:
    """Naive UTC now, the form stored in every DateTime column."""
    return utc_now().replace(tzinfo=None)
