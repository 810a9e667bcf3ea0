"""
Betting services package.

This package maintains one betting-lines snapshot per canonical game:
refresh windows, freezing at kickoff and slate-level scheduling.
"""
