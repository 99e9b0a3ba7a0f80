from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly.
    """

    # Debounce window for auto-save, in seconds. Only the last change
    # registered within this window is promoted into the version history.
    autosave_debounce_seconds: float = float(os.getenv("AUTOSAVE_DEBOUNCE_SECONDS", "5"))

    # Timer implementation used for auto-save: "asyncio" (default, for the
    # HTTP service) or "thread" (for embedding outside an event loop).
    autosave_scheduler: str = os.getenv("AUTOSAVE_SCHEDULER", "asyncio")

    # Optional database configuration for the SQL-backed note store.
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    use_sql_repos: bool = os.getenv("USE_SQL_REPOS", "false").lower() == "true"

    # Basic API authentication configuration.
    # When ENABLE_API_AUTH=true, protected endpoints require a valid API key.
    enable_api_auth: bool = os.getenv("ENABLE_API_AUTH", "false").lower() == "true"
    # Comma-separated list of allowed API keys when auth is enabled.
    api_keys: Optional[str] = os.getenv("API_KEYS")

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")


settings = Settings()
