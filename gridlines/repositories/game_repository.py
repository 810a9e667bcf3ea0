"""
Repositories for canonical game identities, provider mappings and the
unmatched-records report.

Identity and mapping rows are insert-only. Inserts follow a
check-then-insert pattern with IntegrityError handling so that two workers
creating the same row at once both end up with the single stored row.
Unmatched entries use the same pattern as an upsert: a repeat miss updates
the stored entry.
"""
import logging
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gridlines.models.domain import GameIdentity, Provider, SourceRecord, UnmatchedReason
from gridlines.models.models import GameIdentityRecord, GameIdMapping, UnmatchedRecord
from gridlines.repositories.base import BaseRepository
from gridlines.services.sync.utils.name_normalizer import normalize_team_name
from gridlines.utils.timezone import from_db, to_naive_utc, utc_now_naive

logger = logging.getLogger(__name__)


def to_identity(record: GameIdentityRecord) -> GameIdentity:
    """Convert a stored identity row to the domain type."""
    return GameIdentity(
        canonical_id=record.canonical_id,
        readable_id=record.readable_id,
        game_date=record.game_date,
        kickoff_time=from_db(record.kickoff_time),
        away_team=record.away_team,
        home_team=record.home_team,
    )


class GameRepository(BaseRepository[GameIdentityRecord]):
    """Data access for game identities and their provider mappings."""

    def __init__(self, db: Session):
        super().__init__(GameIdentityRecord, db)

    # ========================================================================
    # Identities
    # ========================================================================

    def get_or_create_identity(self, identity: GameIdentity) -> Tuple[GameIdentity, bool]:
        """
        Persist an identity unless it already exists.

        The first stored kickoff time is kept; identities are never updated.

        Returns:
            (stored identity, created)
        """
        existing = self.find_by_id(identity.canonical_id)
        if existing:
            return to_identity(existing), False

        try:
            self.create(
                canonical_id=identity.canonical_id,
                readable_id=identity.readable_id,
                game_date=identity.game_date,
                kickoff_time=to_naive_utc(identity.kickoff_time),
                away_team=identity.away_team,
                home_team=identity.home_team,
                created_at=utc_now_naive(),
            )
            self.db.commit()
            logger.debug(f"Created game identity {identity.readable_id} ({identity.canonical_id})")
            return identity, True
        except IntegrityError:
            # Another worker inserted the same game first
            self.db.rollback()
            existing = self.find_by_id(identity.canonical_id)
            if existing is None:
                raise
            logger.debug(f"Game identity {identity.readable_id} created concurrently, using existing")
            return to_identity(existing), False

    def find_identity(self, canonical_id: str) -> Optional[GameIdentity]:
        """Look up an identity by canonical id."""
        record = self.find_by_id(canonical_id)
        return to_identity(record) if record else None

    def find_by_natural_key(self, game_date: date, away_team: str, home_team: str) -> Optional[GameIdentity]:
        """
        Look up an identity by (date, away, home).

        Team names may be raw; they are normalized before the lookup.
        """
        record = self.where_first(
            GameIdentityRecord.game_date == game_date,
            GameIdentityRecord.away_team == normalize_team_name(away_team),
            GameIdentityRecord.home_team == normalize_team_name(home_team),
        )
        return to_identity(record) if record else None

    def find_in_range(self, start: datetime, end: datetime) -> List[GameIdentity]:
        """Identities with kickoff between start and end (inclusive), earliest first."""
        records = self.in_date_range('kickoff_time', to_naive_utc(start), to_naive_utc(end))
        return [to_identity(r) for r in records]

    # ========================================================================
    # Provider mappings
    # ========================================================================

    def find_canonical_id(self, provider: Provider, provider_id: str) -> Optional[str]:
        """Reverse lookup: canonical id for a provider-native id."""
        mapping = self.db.query(GameIdMapping).filter(
            GameIdMapping.provider == Provider(provider).value,
            GameIdMapping.provider_id == str(provider_id),
        ).first()
        return mapping.canonical_id if mapping else None

    def get_mapping(self, canonical_id: str, provider: Provider) -> Optional[GameIdMapping]:
        """The mapping of a canonical game for one provider, if any."""
        return self.db.query(GameIdMapping).filter(
            GameIdMapping.canonical_id == canonical_id,
            GameIdMapping.provider == Provider(provider).value,
        ).first()

    def get_mappings(self, canonical_id: str) -> Dict[str, str]:
        """All provider ids known for a canonical game: {provider: provider_id}."""
        mappings = self.db.query(GameIdMapping).filter(
            GameIdMapping.canonical_id == canonical_id
        ).all()
        return {m.provider: m.provider_id for m in mappings}

    def add_mapping(
        self,
        canonical_id: str,
        provider: Provider,
        provider_id: str,
        confidence: int,
        method: str
    ) -> Tuple[Optional[GameIdMapping], bool]:
        """
        Link a provider id to a canonical game.

        The first mapping wins: if the provider id is already linked to a
        different game, or the game already has a different id for this
        provider, the conflict is logged and nothing is written.

        Returns:
            (mapping now stored for this provider id, created)
        """
        provider_value = Provider(provider).value
        provider_id = str(provider_id)

        existing = self.db.query(GameIdMapping).filter(
            GameIdMapping.provider == provider_value,
            GameIdMapping.provider_id == provider_id,
        ).first()
        if existing:
            if existing.canonical_id != canonical_id:
                logger.warning(
                    f"Mapping conflict: {provider_value}:{provider_id} already linked to "
                    f"{existing.canonical_id}, ignoring link to {canonical_id}"
                )
            return existing, False

        current = self.get_mapping(canonical_id, provider_value)
        if current:
            logger.warning(
                f"Mapping conflict: {canonical_id} already has {provider_value} id "
                f"{current.provider_id}, ignoring {provider_id}"
            )
            return None, False

        try:
            mapping = GameIdMapping(
                id=str(uuid.uuid4()),
                canonical_id=canonical_id,
                provider=provider_value,
                provider_id=provider_id,
                match_confidence=int(confidence),
                match_method=str(getattr(method, 'value', method)),
                created_at=utc_now_naive(),
            )
            self.db.add(mapping)
            self.db.commit()
            logger.debug(f"Mapped {provider_value}:{provider_id} -> {canonical_id} ({mapping.match_method})")
            return mapping, True
        except IntegrityError:
            self.db.rollback()
            mapping = self.db.query(GameIdMapping).filter(
                GameIdMapping.provider == provider_value,
                GameIdMapping.provider_id == provider_id,
            ).first()
            logger.debug(f"Mapping for {provider_value}:{provider_id} created concurrently")
            return mapping, False

    def mapped_provider_ids(self, provider: Provider) -> Dict[str, str]:
        """All mappings for one provider: {provider_id: canonical_id}."""
        rows = self.db.query(GameIdMapping.provider_id, GameIdMapping.canonical_id).filter(
            GameIdMapping.provider == Provider(provider).value
        ).all()
        return {provider_id: canonical_id for provider_id, canonical_id in rows}


class UnmatchedRepository(BaseRepository[UnmatchedRecord]):
    """
    Coverage report: provider records and games that could not be linked.

    Entries are keyed by (provider, provider_id, reason) for provider
    records and (provider, canonical_id, reason) for canonical games. A
    repeat miss updates the existing entry: occurrences is incremented,
    last_seen_at and the latest team names, kickoff and confidence are
    stored.
    """

    def __init__(self, db: Session):
        super().__init__(UnmatchedRecord, db)

    def record_source(
        self,
        record: SourceRecord,
        reason: UnmatchedReason,
        best_confidence: Optional[int] = None
    ) -> UnmatchedRecord:
        """Log a provider record that matched no canonical game."""
        provider = Provider(record.provider).value
        reason = UnmatchedReason(reason).value
        return self._upsert(
            key=(
                UnmatchedRecord.provider == provider,
                UnmatchedRecord.provider_id == str(record.provider_id),
                UnmatchedRecord.reason == reason,
            ),
            provider=provider,
            provider_id=str(record.provider_id),
            reason=reason,
            away_team_raw=record.away_team,
            home_team_raw=record.home_team,
            kickoff_time=to_naive_utc(record.kickoff_time),
            best_confidence=best_confidence,
        )

    def record_identity(
        self,
        identity: GameIdentity,
        provider: Provider,
        reason: UnmatchedReason,
        best_confidence: Optional[int] = None
    ) -> UnmatchedRecord:
        """Log a canonical game for which a provider had no matching record."""
        provider = Provider(provider).value
        reason = UnmatchedReason(reason).value
        return self._upsert(
            key=(
                UnmatchedRecord.provider == provider,
                UnmatchedRecord.canonical_id == identity.canonical_id,
                UnmatchedRecord.reason == reason,
            ),
            provider=provider,
            canonical_id=identity.canonical_id,
            reason=reason,
            away_team_raw=identity.away_team,
            home_team_raw=identity.home_team,
            kickoff_time=to_naive_utc(identity.kickoff_time),
            best_confidence=best_confidence,
        )

    def _upsert(self, key, **fields) -> UnmatchedRecord:
        now = utc_now_naive()
        row = self.where_first(*key)
        if row is None:
            try:
                row = self.create(id=str(uuid.uuid4()), occurrences=1, created_at=now, last_seen_at=now, **fields)
                self.db.commit()
                return row
            except IntegrityError:
                # Another worker logged the same miss first
                self.db.rollback()
                row = self.where_first(*key)
                if row is None:
                    raise

        for name in ('away_team_raw', 'home_team_raw', 'kickoff_time', 'best_confidence'):
            setattr(row, name, fields[name])
        row.occurrences += 1
        row.last_seen_at = now
        self.db.commit()
        return row

    def get_unmatched(
        self,
        provider: Optional[Provider] = None,
        since: Optional[datetime] = None,
        limit: int = 100
    ) -> List[UnmatchedRecord]:
        """Unmatched entries, most recently seen first, optionally filtered."""
        query = self.query()
        if provider is not None:
            query = query.filter(UnmatchedRecord.provider == Provider(provider).value)
        if since is not None:
            query = query.filter(UnmatchedRecord.last_seen_at >= to_naive_utc(since))
        return query.order_by(UnmatchedRecord.last_seen_at.desc()).limit(limit).all()

    def count_by_reason(self, provider: Optional[Provider] = None) -> Dict[str, int]:
        """Unmatched counts per reason."""
        criteria = []
        if provider is not None:
            criteria.append(UnmatchedRecord.provider == Provider(provider).value)
        return {reason: count for reason, count in self.group_by_and_count('reason', *criteria)}
