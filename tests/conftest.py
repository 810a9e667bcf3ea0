"""Shared pytest fixtures for gridlines tests."""
import os
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional

os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gridlines.models.domain import GameIdentity
from gridlines.services.core.circuit_breaker import reset_all_breakers
from gridlines.services.sync.utils.game_id_generator import identity_for

UTC = timezone.utc


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create fresh test database session with isolated in-memory database."""
    from gridlines.models.models import Base

    # One shared connection so every session sees the same in-memory database
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture(autouse=True)
def closed_breakers():
    """Provider circuit breakers are module-level; start every test closed."""
    reset_all_breakers()
    yield
    reset_all_breakers()


# Games
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def jets_patriots() -> GameIdentity:
    """NYJ @ NE, Sunday 2025-09-14 1:00 PM ET."""
    return identity_for(utc(2025, 9, 14, 17, 0), "New York Jets", "New England Patriots")


@pytest.fixture
def niners_seahawks() -> GameIdentity:
    """SF @ SEA, Sunday 2025-09-07 4:05 PM ET."""
    return identity_for(utc(2025, 9, 7, 20, 5), "San Francisco 49ers", "Seattle Seahawks")


@pytest.fixture
def rams_cardinals() -> GameIdentity:
    """LAR @ ARI, Sunday 2025-10-12 4:05 PM ET."""
    return identity_for(utc(2025, 10, 12, 20, 5), "Los Angeles Rams", "Arizona Cardinals")


# Provider payloads
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def odds_event():
    """Factory for The Odds API events with one bookmaker offering all three markets."""

    def build(
        event_id: str,
        away: str,
        home: str,
        commence_time: str,
        spread: Optional[float] = -3.5,
        total: Optional[float] = 44.5,
        home_ml: Optional[int] = -175,
        away_ml: Optional[int] = 150,
        bookmaker: str = "draftkings",
    ) -> Dict[str, Any]:
        markets: List[Dict[str, Any]] = []
        if spread is not None:
            markets.append({
                "key": "spreads",
                "outcomes": [
                    {"name": home, "price": -110, "point": spread},
                    {"name": away, "price": -110, "point": -spread},
                ],
            })
        if total is not None:
            markets.append({
                "key": "totals",
                "outcomes": [
                    {"name": "Over", "price": -105, "point": total},
                    {"name": "Under", "price": -115, "point": total},
                ],
            })
        if home_ml is not None and away_ml is not None:
            markets.append({
                "key": "h2h",
                "outcomes": [
                    {"name": home, "price": home_ml},
                    {"name": away, "price": away_ml},
                ],
            })
        return {
            "id": event_id,
            "sport_key": "americanfootball_nfl",
            "commence_time": commence_time,
            "home_team": home,
            "away_team": away,
            "bookmakers": [{"key": bookmaker, "title": bookmaker.title(), "markets": markets}],
        }

    return build


@pytest.fixture
def espn_event():
    """Factory for ESPN scoreboard events."""

    def build(
        event_id: str,
        away: str,
        home: str,
        date: str,
        state: str = "pre",
        completed: bool = False,
        away_score: str = "0",
        home_score: str = "0",
    ) -> Dict[str, Any]:
        return {
            "id": event_id,
            "date": date,
            "name": f"{away} at {home}",
            "competitions": [{
                "date": date,
                "status": {"type": {"state": state, "completed": completed}},
                "competitors": [
                    {"homeAway": "home", "score": home_score, "team": {"displayName": home}},
                    {"homeAway": "away", "score": away_score, "team": {"displayName": away}},
                ],
            }],
        }

    return build
