"""
Database configuration and session management.
"""
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from gridlines.core.config import settings

DATABASE_URL = settings.DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    """Pool settings per backend; SQLite connections must cross threads for APScheduler."""
    kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
    }
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = 10
        kwargs["max_overflow"] = 20
    return kwargs


engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Initialize database tables."""
    from gridlines.models.models import Base
    # checkfirst=True will only create tables that don't exist
    Base.metadata.create_all(bind=engine, checkfirst=True)
