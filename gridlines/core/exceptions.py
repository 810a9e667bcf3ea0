"""
Exception types raised across gridlines.

Unmatched records and lost freeze races are normal outcomes and are
reported through return values, not exceptions.
"""
from typing import Optional


class GridlinesError(Exception):
    """Base class for all gridlines errors."""


class ProviderError(GridlinesError):
    """An upstream feed (ESPN, The Odds API, Kalshi) failed."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderUnavailableError(ProviderError):
    """Provider could not be reached, timed out, or its circuit is open."""


class ProviderResponseError(ProviderError):
    """Provider answered with a payload we cannot use."""


class NoOddsMatchError(GridlinesError):
    """No sportsbook event could be linked to a canonical game."""

    def __init__(self, canonical_id: str, reason: str):
        super().__init__(f"No odds event for {canonical_id}: {reason}")
        self.canonical_id = canonical_id
        self.reason = reason


class FrozenSnapshotError(GridlinesError):
    """A write targeted a betting-lines snapshot that is already frozen."""

    def __init__(self, canonical_id: str):
        super().__init__(f"Betting lines for {canonical_id} are frozen")
        self.canonical_id = canonical_id


class AliasTableError(GridlinesError, ValueError):
    """The team alias artifact is malformed or inconsistent."""
