"""
Repository layer for data access.

Usage:
    from gridlines.repositories import GameRepository, SnapshotRepository
    from gridlines.core.database import SessionLocal

    db = SessionLocal()
    games = GameRepository(db)
    canonical_id = games.find_canonical_id("odds_api", "e912304de2b2ce35b473ce2ecd3d1502")
    db.close()
"""

from gridlines.repositories.base import BaseRepository
from gridlines.repositories.game_repository import GameRepository, UnmatchedRepository
from gridlines.repositories.snapshot_repository import SnapshotRepository

__all__ = [
    "BaseRepository",
    "GameRepository",
    "UnmatchedRepository",
    "SnapshotRepository",
]
