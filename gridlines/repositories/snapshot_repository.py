"""
Betting-lines snapshot store.

This is the write path that enforces the freeze invariant:
- put() replaces a live snapshot with UPDATE ... WHERE frozen = false and
  raises FrozenSnapshotError when the row is already frozen.
- freeze() is a compare-and-set on the frozen flag; exactly one caller
  sees True for a given game.

Reads always go back to the database (populate_existing) because the
writes above bypass the ORM identity map.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gridlines.core.exceptions import FrozenSnapshotError
from gridlines.models.domain import BettingLinesSnapshot, LinesData, PlayerPropLine
from gridlines.models.models import BettingLinesRecord
from gridlines.repositories.base import BaseRepository
from gridlines.utils.timezone import from_db, to_naive_utc, utc_now_naive

logger = logging.getLogger(__name__)


def to_snapshot(record: BettingLinesRecord) -> BettingLinesSnapshot:
    """Convert a stored row to the immutable domain snapshot."""
    props = tuple(PlayerPropLine.from_dict(p) for p in (record.player_props or []))
    return BettingLinesSnapshot(
        canonical_id=record.canonical_id,
        spread=record.spread,
        spread_odds=record.spread_odds,
        total=record.total,
        total_odds=record.total_odds,
        home_moneyline=record.home_moneyline,
        away_moneyline=record.away_moneyline,
        player_props=props,
        bookmaker=record.bookmaker,
        source=record.source,
        is_default=bool(record.is_default),
        captured_at=from_db(record.captured_at),
        frozen=bool(record.frozen),
        frozen_at=from_db(record.frozen_at),
    )


def _line_values(lines: LinesData) -> Dict[str, Any]:
    return {
        'spread': lines.spread,
        'spread_odds': lines.spread_odds,
        'total': lines.total,
        'total_odds': lines.total_odds,
        'home_moneyline': lines.home_moneyline,
        'away_moneyline': lines.away_moneyline,
        'player_props': [p.to_dict() for p in lines.player_props] or None,
        'bookmaker': lines.bookmaker,
        'source': lines.source,
        'is_default': lines.is_default,
    }


class SnapshotRepository(BaseRepository[BettingLinesRecord]):
    """Persistence for BettingLinesSnapshot with a frozen-write guard."""

    def __init__(self, db: Session):
        super().__init__(BettingLinesRecord, db)

    def _load(self, canonical_id: str) -> Optional[BettingLinesRecord]:
        return self.query().populate_existing().filter(
            BettingLinesRecord.canonical_id == canonical_id
        ).first()

    def get(self, canonical_id: str) -> Optional[BettingLinesSnapshot]:
        """Current snapshot for a game, or None when absent."""
        record = self._load(canonical_id)
        return to_snapshot(record) if record else None

    def get_many(self, canonical_ids: List[str]) -> Dict[str, BettingLinesSnapshot]:
        """Snapshots for several games, keyed by canonical id (absent games omitted)."""
        if not canonical_ids:
            return {}
        records = self.query().populate_existing().filter(
            BettingLinesRecord.canonical_id.in_(canonical_ids)
        ).all()
        return {r.canonical_id: to_snapshot(r) for r in records}

    def put(
        self,
        canonical_id: str,
        kickoff_time: datetime,
        lines: LinesData,
        captured_at: datetime
    ) -> BettingLinesSnapshot:
        """
        Store a complete snapshot (absent -> live, or live -> live).

        The whole snapshot is replaced; nothing is merged with the previous
        values.

        Raises:
            FrozenSnapshotError: If the stored snapshot is frozen
        """
        values = _line_values(lines)
        now = utc_now_naive()

        if self._load(canonical_id) is None:
            try:
                self.create(
                    canonical_id=canonical_id,
                    kickoff_time=to_naive_utc(kickoff_time),
                    captured_at=to_naive_utc(captured_at),
                    frozen=False,
                    updated_at=now,
                    **values,
                )
                self.db.commit()
                logger.debug(f"Created betting lines for {canonical_id} ({lines.source})")
                return self.get(canonical_id)
            except IntegrityError:
                # Inserted concurrently; fall through to the guarded update
                self.db.rollback()

        result = self.db.execute(
            update(BettingLinesRecord)
            .where(
                BettingLinesRecord.canonical_id == canonical_id,
                BettingLinesRecord.frozen.is_(False),
            )
            .values(captured_at=to_naive_utc(captured_at), updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        if result.rowcount != 1:
            logger.error(f"Rejected write to frozen betting lines for {canonical_id}")
            raise FrozenSnapshotError(canonical_id)

        logger.debug(f"Refreshed betting lines for {canonical_id} ({lines.source})")
        return self.get(canonical_id)

    def freeze(self, canonical_id: str, frozen_at: datetime) -> bool:
        """
        Compare-and-set the snapshot to frozen.

        Returns:
            True if this call froze it; False if it was already frozen or absent
        """
        result = self.db.execute(
            update(BettingLinesRecord)
            .where(
                BettingLinesRecord.canonical_id == canonical_id,
                BettingLinesRecord.frozen.is_(False),
            )
            .values(frozen=True, frozen_at=to_naive_utc(frozen_at), updated_at=utc_now_naive())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def invalidate(self, canonical_id: str) -> bool:
        """
        Drop a live snapshot so the next ensure fetches again.

        Frozen snapshots are never removed.

        Returns:
            True if a live snapshot was deleted
        """
        result = self.db.execute(
            delete(BettingLinesRecord)
            .where(
                BettingLinesRecord.canonical_id == canonical_id,
                BettingLinesRecord.frozen.is_(False),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def find_archivable(self, now: datetime, retention: timedelta) -> List[str]:
        """Canonical ids of frozen snapshots whose kickoff is older than the retention window."""
        cutoff = to_naive_utc(now - retention)
        rows = self.db.query(BettingLinesRecord.canonical_id).filter(
            BettingLinesRecord.frozen.is_(True),
            BettingLinesRecord.kickoff_time < cutoff,
        ).order_by(BettingLinesRecord.kickoff_time).all()
        return [row[0] for row in rows]

    def count_by_state(self) -> Dict[str, int]:
        """Number of live, frozen and default snapshots."""
        return {
            'live': self.count(BettingLinesRecord.frozen.is_(False)),
            'frozen': self.count(BettingLinesRecord.frozen.is_(True)),
            'default': self.count(BettingLinesRecord.is_default.is_(True)),
        }
