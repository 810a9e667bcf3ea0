"""
Application configuration with environment-specific secrets management.

Supported environment files (loaded in order of precedence):
1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
2. .env (fallback)

Required secrets for production:
- THE_ODDS_API_KEY
"""
import os
import logging
from pathlib import Path
from typing import Literal
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

# Get the project root directory (3 levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment-specific configuration."""

    # Environment
    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Allow extra fields from .env
    )

    # Application
    APP_NAME: str = "gridlines"
    APP_VERSION: str = "1.0.0"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'gridlines.db'}")

    # The Odds API
    THE_ODDS_API_KEY: str = ""
    ODDS_API_SPORT: str = "americanfootball_nfl"
    ODDS_API_REGIONS: str = "us"  # us, uk, eu, au
    ODDS_API_BOOKMAKERS: str = "bovada,draftkings,fanduel"  # preference order
    ODDS_API_CACHE_TTL: int = 600  # 10 minutes
    FETCH_PLAYER_PROPS: bool = True

    # ESPN scoreboard
    ESPN_CACHE_TTL: int = 300  # 5 minutes

    # Kalshi prediction markets (public endpoints only)
    KALSHI_API_BASE_URL: str = "https://api.elections.kalshi.com/trade-api/v2"
    KALSHI_SERIES_TICKER: str = "NFL"
    KALSHI_CACHE_TTL: int = 300

    # Game identity
    IDENTITY_TIMEZONE: str = "America/New_York"  # league reference timezone for the game date

    # Cross-source matching
    MATCH_STRICT_TOLERANCE_MINUTES: int = 120
    MATCH_MIN_CONFIDENCE: int = 50

    # Betting-line lifecycle
    FREEZE_MARGIN_MINUTES: int = 60  # freeze this long before kickoff
    NEAR_KICKOFF_WINDOW_MINUTES: int = 120
    NEAR_KICKOFF_REFRESH_MINUTES: int = 30
    DAILY_REFRESH_HOURS: int = 24
    SNAPSHOT_RETENTION_DAYS: int = 30

    # Provider resilience
    PROVIDER_TIMEOUT_SECONDS: float = 10.0
    PROVIDER_RETRY_ATTEMPTS: int = 3
    PROVIDER_RETRY_MIN_WAIT: float = 2.0
    PROVIDER_RETRY_MAX_WAIT: float = 10.0
    BREAKER_FAIL_MAX: int = 5
    BREAKER_RESET_TIMEOUT: int = 60

    # Slate processing
    SLATE_CONCURRENCY: int = 8
    NFL_SEASON: int = 2025
    NFL_SEASON_START: str = "2025-09-04"  # Thursday of week 1
    NFL_REGULAR_SEASON_WEEKS: int = 18
    SCHEDULER_TIMEZONE: str = "America/New_York"

    @property
    def bookmaker_preference(self) -> list[str]:
        """Bookmaker keys in preference order."""
        return [b.strip() for b in self.ODDS_API_BOOKMAKERS.split(",") if b.strip()]

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"

    def validate_required_secrets(self) -> list[str]:
        """
        Validate that required secrets are set for the current environment.

        Returns:
            List of missing secret names (empty if all present)
        """
        missing = []

        # Odds are fetched on every sweep; without a key every lookup falls back to defaults
        if not self.THE_ODDS_API_KEY and self.ENVIRONMENT != "test":
            missing.append("THE_ODDS_API_KEY")

        return missing


def _load_env_file() -> Path:
    """
    Load the appropriate environment file based on ENVIRONMENT variable.

    Loads in order of precedence:
    1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
    2. .env (fallback)
    """
    environment = os.getenv("ENVIRONMENT", "development")

    # Try environment-specific file first
    env_file = PROJECT_ROOT / f".env.{environment}"
    if env_file.exists():
        logger.info(f"Loading environment from {env_file.name}")
        return env_file

    default_env = PROJECT_ROOT / ".env"
    if default_env.exists():
        logger.info(f"Loading environment from .env (environment: {environment})")
    return default_env


# Auto-detect and load environment file
_env_file = _load_env_file()


class _SettingsWithEnvFile(Settings):
    model_config = ConfigDict(
        env_file=str(_env_file),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


settings = _SettingsWithEnvFile()


# Validate secrets on startup
missing_secrets = settings.validate_required_secrets()
if missing_secrets:
    logger.warning(f"Missing required secrets for {settings.ENVIRONMENT}: {', '.join(missing_secrets)}")
    if settings.is_production():
        raise ValueError(
            f"Cannot start in production with missing secrets: {', '.join(missing_secrets)}. "
            f"Please set these environment variables in .env.production"
        )
