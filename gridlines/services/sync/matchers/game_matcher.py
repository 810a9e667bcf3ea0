"""Game matcher for linking provider records to canonical games.

Matching rules:
1. Team names are normalized; the (away, home) pair must be identical.
   A swapped home/away pair is a different game (or a data error) and is
   never matched.
2. The kickoff must fall on the same calendar day (reference timezone).
   Strict mode also requires the kickoffs to be within the tolerance
   (default 2 hours); relaxed mode accepts any same-day kickoff and is only
   tried when strict mode finds nothing.
3. The smallest kickoff difference wins. Two different candidates at the
   same distance are ambiguous and produce no match.
4. Matches below the minimum confidence (default 50) are rejected.

"No match" is a normal result. Unmatched games and records go to the
unmatched_records report instead of raising.

Results are stored in game_id_mappings so later lookups skip the matcher.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from gridlines.core.config import settings
from gridlines.models.domain import (
    GameIdentity, MatchMode, MatchResult, Provider, SourceRecord, UnmatchedReason,
)
from gridlines.repositories.game_repository import GameRepository, UnmatchedRepository
from gridlines.services.sync.utils.confidence_scorer import (
    calculate_game_match_confidence, team_match_strength,
)
from gridlines.services.sync.utils.game_id_generator import game_date_for
from gridlines.services.sync.utils.name_normalizer import normalize_team_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Evaluation:
    result: Optional[MatchResult]
    reason: Optional[UnmatchedReason]
    best_confidence: Optional[int] = None


def _candidate_key(candidate: Any) -> str:
    """Identity of a candidate for tie detection (provider id or canonical id)."""
    return str(getattr(candidate, 'provider_id', None) or getattr(candidate, 'canonical_id', id(candidate)))


class GameMatcher:
    """
    Match provider records against canonical games.

    match() and find_match() are pure and need no database session.
    batch_match_games() persists mappings and unmatched entries and
    therefore requires one.
    """

    def __init__(
        self,
        db: Optional[Session] = None,
        tolerance: Optional[timedelta] = None,
        min_confidence: Optional[int] = None
    ):
        """
        Initialize the game matcher.

        Args:
            db: SQLAlchemy database session (only needed for batch matching)
            tolerance: Strict-mode kickoff tolerance (defaults to settings)
            min_confidence: Acceptance threshold 0-100 (defaults to settings)
        """
        self.db = db
        self.tolerance = tolerance or timedelta(minutes=settings.MATCH_STRICT_TOLERANCE_MINUTES)
        self.min_confidence = settings.MATCH_MIN_CONFIDENCE if min_confidence is None else min_confidence

    # ========================================================================
    # Pure matching
    # ========================================================================

    def match(
        self,
        target: Any,
        candidates: Sequence[Any],
        mode: MatchMode = MatchMode.STRICT
    ) -> Optional[MatchResult]:
        """
        Find the candidate describing the same game as target.

        Args:
            target: Anything with kickoff_time, away_team and home_team
                (GameIdentity or SourceRecord)
            candidates: Records from another provider
            mode: strict (same day and within tolerance) or relaxed (same day)

        Returns:
            MatchResult, or None when nothing qualifies or the best is tied
        """
        return self._evaluate(target, candidates, MatchMode(mode)).result

    def find_match(self, target: Any, candidates: Sequence[Any]) -> Optional[MatchResult]:
        """
        Strict match first, relaxed as fallback, then the confidence threshold.

        Returns:
            Accepted MatchResult or None
        """
        return self._find(target, candidates).result

    def diagnose(self, target: Any, candidates: Sequence[Any]) -> Optional[UnmatchedReason]:
        """Why find_match() returns None for target (None when it matches)."""
        return self._find(target, candidates).reason

    def _find(self, target: Any, candidates: Sequence[Any]) -> _Evaluation:
        evaluation = self._evaluate(target, candidates, MatchMode.STRICT)
        if evaluation.result is None and evaluation.reason == UnmatchedReason.OUTSIDE_TOLERANCE:
            evaluation = self._evaluate(target, candidates, MatchMode.RELAXED)

        result = evaluation.result
        if result is not None and result.confidence < self.min_confidence:
            return _Evaluation(None, UnmatchedReason.BELOW_THRESHOLD, result.confidence)
        return evaluation

    def _evaluate(self, target: Any, candidates: Sequence[Any], mode: MatchMode) -> _Evaluation:
        if not candidates:
            return _Evaluation(None, UnmatchedReason.NO_CANDIDATES)

        away = normalize_team_name(target.away_team)
        home = normalize_team_name(target.home_team)

        team_matches = [
            c for c in candidates
            if normalize_team_name(c.away_team) == away and normalize_team_name(c.home_team) == home
        ]
        if not team_matches:
            return _Evaluation(None, UnmatchedReason.NO_TEAM_MATCH)

        target_date = game_date_for(target.kickoff_time)
        same_day = [c for c in team_matches if game_date_for(c.kickoff_time) == target_date]
        if not same_day:
            return _Evaluation(None, UnmatchedReason.DIFFERENT_DAY)

        def delta_of(candidate: Any) -> timedelta:
            return abs(candidate.kickoff_time - target.kickoff_time)

        if mode == MatchMode.STRICT:
            eligible = [c for c in same_day if delta_of(c) <= self.tolerance]
            if not eligible:
                return _Evaluation(None, UnmatchedReason.OUTSIDE_TOLERANCE)
        else:
            eligible = same_day

        ranked = sorted(eligible, key=delta_of)
        best = ranked[0]
        best_delta = delta_of(best)

        strength = team_match_strength(target.away_team, target.home_team, best.away_team, best.home_team)
        confidence, method = calculate_game_match_confidence(strength, best_delta, self.tolerance)

        for other in ranked[1:]:
            if delta_of(other) != best_delta:
                break
            if _candidate_key(other) != _candidate_key(best):
                logger.info(
                    f"Ambiguous match for {away} @ {home}: "
                    f"{_candidate_key(best)} and {_candidate_key(other)} are both {best_delta} away"
                )
                return _Evaluation(None, UnmatchedReason.AMBIGUOUS, confidence)

        return _Evaluation(
            MatchResult(candidate=best, confidence=confidence, method=method, time_delta=best_delta),
            None,
            confidence,
        )

    # ========================================================================
    # Batch matching with persistence
    # ========================================================================

    def batch_match_games(
        self,
        identities: List[GameIdentity],
        records: List[SourceRecord],
        provider: Provider
    ) -> Dict[str, Any]:
        """
        Link one provider's records to canonical games and store the links.

        Existing mappings are reused without re-running the matcher.
        Canonical games without a match, and provider records on the same
        days that matched no game, are written to the unmatched report.

        Args:
            identities: Canonical games to link
            records: Records from one provider
            provider: The provider the records came from

        Returns:
            Summary dict with:
                - total: Games processed
                - matched: Games linked (cached or new)
                - unmatched: Games without a link
                - matches: List of match details
                - unmatched_records: Provider records that matched nothing
        """
        if self.db is None:
            raise ValueError("batch_match_games requires a database session")

        games = GameRepository(self.db)
        unmatched = UnmatchedRepository(self.db)
        provider = Provider(provider)

        results: Dict[str, Any] = {
            'total': len(identities),
            'matched': 0,
            'unmatched': 0,
            'matches': [],
            'unmatched_records': 0,
        }

        already_mapped = games.mapped_provider_ids(provider)
        used_ids = set()

        for identity in identities:
            existing = games.get_mapping(identity.canonical_id, provider)
            if existing:
                used_ids.add(existing.provider_id)
                results['matched'] += 1
                results['matches'].append({
                    'canonical_id': identity.canonical_id,
                    'provider_id': existing.provider_id,
                    'match_confidence': existing.match_confidence,
                    'match_method': existing.match_method,
                    'cached': True,
                })
                continue

            # Records already linked to some other game are not candidates
            candidates = [
                r for r in records
                if already_mapped.get(str(r.provider_id), identity.canonical_id) == identity.canonical_id
                and str(r.provider_id) not in used_ids
            ]
            evaluation = self._find(identity, candidates)

            if evaluation.result is None:
                unmatched.record_identity(identity, provider, evaluation.reason, evaluation.best_confidence)
                results['unmatched'] += 1
                logger.info(
                    f"No {provider.value} match for {identity.readable_id}: {evaluation.reason.value}"
                )
                continue

            match = evaluation.result
            mapping, _ = games.add_mapping(
                identity.canonical_id,
                provider,
                match.candidate.provider_id,
                match.confidence,
                match.method,
            )
            if mapping is None or mapping.canonical_id != identity.canonical_id:
                unmatched.record_identity(identity, provider, UnmatchedReason.AMBIGUOUS, match.confidence)
                results['unmatched'] += 1
                continue

            used_ids.add(str(match.candidate.provider_id))
            results['matched'] += 1
            results['matches'].append({
                'canonical_id': identity.canonical_id,
                'provider_id': str(match.candidate.provider_id),
                'match_confidence': match.confidence,
                'match_method': match.method.value,
                'cached': False,
            })

        results['unmatched_records'] = self._record_leftovers(
            identities, records, used_ids, already_mapped, unmatched
        )

        logger.info(
            f"Batch {provider.value} matching complete: {results['matched']}/{results['total']} matched, "
            f"{results['unmatched']} unmatched, {results['unmatched_records']} unmatched provider records"
        )

        return results

    def _record_leftovers(
        self,
        identities: List[GameIdentity],
        records: List[SourceRecord],
        used_ids: set,
        already_mapped: Dict[str, str],
        unmatched: UnmatchedRepository
    ) -> int:
        """Report provider records on the processed days that matched no game."""
        if not identities:
            return 0

        dates = {identity.game_date for identity in identities}
        count = 0
        for record in records:
            record_id = str(record.provider_id)
            if record_id in used_ids or record_id in already_mapped:
                continue
            if game_date_for(record.kickoff_time) not in dates:
                continue
            reason = self.diagnose(record, identities) or UnmatchedReason.AMBIGUOUS
            unmatched.record_source(record, reason)
            count += 1
        return count
