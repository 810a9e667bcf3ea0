"""
Models module.

- domain: In-memory dataclasses passed between services
- models: SQLAlchemy tables (game_identities, game_id_mappings,
  betting_lines_snapshots, unmatched_records, sync_metadata)
"""
