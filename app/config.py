"""Configuration management for the URL shortener application.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from app.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    db_url = settings.DATABASE_URL

**Step 3 — Build a short link**::
    short_url = f"{settings.BASE_URL}/{code}"

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables (and a local ``.env`` file) override defaults.
- BASE_URL is normalised without a trailing slash.
- Allocation and stats limits are tunable without code changes.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "url-shortener"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Relational backend
    DATABASE_URL: str = "postgresql+asyncpg://urlshortener:urlshortener@db:5432/urlshortener"
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    # Only honoured by the asyncpg driver (command_timeout)
    DB_STATEMENT_TIMEOUT_SECONDS: float | None = None

    # Short code allocation
    SHORT_CODE_LENGTH: int = 6
    MAX_CODE_RETRIES: int = 10

    # Stats
    STATS_RECENT_VISITS_LIMIT: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )

    @field_validator("BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
