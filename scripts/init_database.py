#!/usr/bin/env python3
"""
Initialize database tables from SQLAlchemy models.

Creates game_identities, game_id_mappings, betting_lines_snapshots,
unmatched_records and sync_metadata if they do not exist.
"""
import logging

from gridlines.core.database import engine, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    """Create all database tables from models."""
    logger.info(f"Creating database tables on {engine.url.render_as_string(hide_password=True)}...")
    init_db()
    logger.info("✓ All database tables created successfully!")


if __name__ == "__main__":
    main()
