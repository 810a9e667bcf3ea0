"""
NFL Data Sync Service

Links ESPN (scores and slate), The Odds API (betting lines) and Kalshi
(prediction markets) through canonical game identities.

Key components:
- Utils: Team name normalization, game ids, confidence scoring, market parsing
- Matchers: Correlate games and markets across providers
- Adapters: Fetch and parse provider payloads
- Orchestrator: Coordinate sync jobs and monitoring
"""
