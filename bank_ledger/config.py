"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Pydantic Settings resolves values in this order:
  1. Environment variables (highest priority)
  2. .env file values
  3. Defaults defined here (lowest priority)

Usage:
    from bank_ledger.config import settings
    print(settings.DATABASE_URL)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Bank Ledger API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Bank Ledger API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    # JSON lines for log shippers; set false for human-readable local output
    LOG_JSON: bool = True

    # --- Database ---
    # SQLite for local development; use a postgresql+asyncpg URL in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/bank.db"

    # --- Authentication ---
    # REQUIRED: No default, forces the operator to set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- API keys ---
    API_KEY_PREFIX: str = "cs_160"
    # Keys generated without an explicit lifetime expire after this many days
    API_KEY_DEFAULT_TTL_DAYS: int = 365

    # --- Money movement ---
    # Routing number stamped on every internal account
    DEFAULT_ROUTING_NUMBER: str = "724722907"
    # External transfers to recipients we cannot resolve debit the source
    # and post no inbound leg. Disable to reject them with 404 instead.
    ALLOW_BLACK_HOLE_TRANSFERS: bool = True
    BLACK_HOLE_RECIPIENT_NAME: str = "External Recipient"

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
