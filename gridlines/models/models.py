"""
Database models for gridlines.

Datetimes are stored as naive UTC. Game identities, provider mappings and
frozen betting-line snapshots are never deleted.
"""

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, Integer, JSON, String, Text,
    UniqueConstraint, event,
)
from sqlalchemy.orm import Session, declarative_base
from sqlalchemy.orm.attributes import get_history

from gridlines.core.exceptions import FrozenSnapshotError

Base = declarative_base()


class GameIdentityRecord(Base):
    """Canonical identity of one real-world game.

    canonical_id is the MD5 hex digest of readable_id
    ("YYYYMMDD-away-home"), so the same game gets the same key no matter
    which provider first reported it.
    """
    __tablename__ = "game_identities"

    canonical_id = Column(String(32), primary_key=True)
    readable_id = Column(String(96), unique=True, nullable=False)
    game_date = Column(Date, nullable=False, index=True)
    kickoff_time = Column(DateTime, nullable=False, index=True)
    away_team = Column(String(48), nullable=False)
    home_team = Column(String(48), nullable=False)
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('game_date', 'away_team', 'home_team', name='uq_game_identities_natural_key'),
    )


class GameIdMapping(Base):
    """Links a provider-native id to a canonical game.

    One row per (provider, provider_id) and at most one per
    (canonical_id, provider). Rows are never removed; a conflicting later
    match is logged and ignored.
    """
    __tablename__ = "game_id_mappings"

    id = Column(String(36), primary_key=True)
    canonical_id = Column(String(32), nullable=False, index=True)
    provider = Column(String(16), nullable=False)  # espn, odds_api, kalshi
    provider_id = Column(String(128), nullable=False)
    match_confidence = Column(Integer, nullable=False)  # 0 to 100
    match_method = Column(String(16), nullable=False)  # exact, team_date, partial, source
    created_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('provider', 'provider_id', name='uq_game_id_mappings_provider_id'),
        UniqueConstraint('canonical_id', 'provider', name='uq_game_id_mappings_canonical_provider'),
    )


class BettingLinesRecord(Base):
    """Current betting-lines snapshot for one canonical game.

    Lifecycle: absent -> live (frozen = False) -> frozen (terminal).
    Writes go through SnapshotRepository, which only updates rows where
    frozen is false; the before_flush guard below rejects ORM edits to
    frozen rows.
    """
    __tablename__ = "betting_lines_snapshots"

    canonical_id = Column(String(32), primary_key=True)
    spread = Column(Float, nullable=True)  # home team spread
    spread_odds = Column(Integer, nullable=True)
    total = Column(Float, nullable=True)
    total_odds = Column(Integer, nullable=True)
    home_moneyline = Column(Integer, nullable=True)
    away_moneyline = Column(Integer, nullable=True)
    player_props = Column(JSON, nullable=True)
    bookmaker = Column(String(32), nullable=True)
    source = Column(String(32), nullable=False)  # odds_api, odds_api_historical, default
    is_default = Column(Boolean, nullable=False, default=False)
    kickoff_time = Column(DateTime, nullable=False, index=True)
    captured_at = Column(DateTime, nullable=False)
    frozen = Column(Boolean, nullable=False, default=False, index=True)
    frozen_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False)


class UnmatchedRecord(Base):
    """A provider record or canonical game that could not be linked.

    Feeds the coverage report. One row per (provider, provider record or
    canonical game, reason); later sweeps that hit the same miss bump
    occurrences and last_seen_at instead of adding rows.
    """
    __tablename__ = "unmatched_records"

    id = Column(String(36), primary_key=True)
    provider = Column(String(16), nullable=False, index=True)
    provider_id = Column(String(128), nullable=True)
    canonical_id = Column(String(32), nullable=True)
    away_team_raw = Column(String(96), nullable=True)
    home_team_raw = Column(String(96), nullable=True)
    kickoff_time = Column(DateTime, nullable=True)
    reason = Column(String(32), nullable=False, index=True)
    best_confidence = Column(Integer, nullable=True)
    occurrences = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False)
    last_seen_at = Column(DateTime, nullable=False, index=True)

    # NULLs never collide, so each constraint only binds its own kind of row
    __table_args__ = (
        UniqueConstraint('provider', 'provider_id', 'reason', name='uq_unmatched_records_source'),
        UniqueConstraint('provider', 'canonical_id', 'reason', name='uq_unmatched_records_identity'),
    )


class SyncMetadata(Base):
    """Tracks sync job status and health metrics for each provider and data type."""
    __tablename__ = "sync_metadata"

    id = Column(String(36), primary_key=True)
    source = Column(String(32), nullable=False)  # espn, odds_api, kalshi, lines
    data_type = Column(String(32), nullable=False)  # games, odds, markets, slate
    last_sync_started_at = Column(DateTime, nullable=True)
    last_sync_completed_at = Column(DateTime, nullable=True, index=True)
    last_sync_status = Column(String(16), nullable=True, index=True)  # success, failed, partial
    records_processed = Column(Integer, nullable=False, default=0)
    records_matched = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    sync_duration_ms = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint('source', 'data_type', name='uq_sync_metadata_source_type'),
    )


def _was_frozen(record: BettingLinesRecord) -> bool:
    """Frozen flag as loaded from the database, ignoring pending changes."""
    history = get_history(record, 'frozen')
    previous = history.deleted or history.unchanged
    return bool(previous and previous[0])


@event.listens_for(Session, "before_flush")
def _reject_frozen_snapshot_writes(session, flush_context, instances):
    """Refuse to flush edits or deletes of frozen betting-lines rows."""
    for record in list(session.dirty) + list(session.deleted):
        if not isinstance(record, BettingLinesRecord):
            continue
        if record in session.deleted or session.is_modified(record):
            if _was_frozen(record):
                raise FrozenSnapshotError(record.canonical_id)
