"""Core infrastructure: settings, logging, database sessions and the job scheduler."""
