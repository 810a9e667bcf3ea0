"""
gridlines: canonical NFL game identities and frozen betting lines.

Packages:
- core: Configuration, logging, database and scheduler
- models: Domain dataclasses and SQLAlchemy tables
- repositories: Data access for identities, mappings and snapshots
- services: Provider sync and betting-lines lifecycle
"""
__version__ = "1.0.0"
