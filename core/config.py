"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for CyberDash happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used to reject paging limits that would
      make the default page larger than the maximum page.

Layer rule: core/ is the kernel. This module may not import from api/,
feeds/, dashboards/, or metrics/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("cyberdash.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent.parent / 'cyberdash.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    # SQLite by default; a PostgreSQL URL works unchanged (SQLAlchemy Core).
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    metrics_rate_limit: str = "120/minute"
    list_rate_limit: str = "60/minute"
    dashboards_rate_limit: str = "30/minute"

    # ------------------------------------------------------------------
    # Query limits
    # ------------------------------------------------------------------

    default_page_limit: int = 20
    max_page_limit: int = 100
    # Rows returned by GROUP BY widgets (vendor breakdown, product distribution).
    distribution_limit: int = 15
    # A KEV due date within this many days counts as "approaching".
    due_soon_days: int = 7

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    max_widgets_per_dashboard: int = 50

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_page_limits(self) -> "Settings":
        """Refuse to start with a default page size above the maximum page size.

        The list engine clamps every requested limit into [1, max_page_limit];
        a default outside that interval would be clamped on every request
        that omits ?limit, which hides the misconfiguration.
        """
        if self.max_page_limit < 1:
            raise ValueError("MAX_PAGE_LIMIT must be at least 1.")
        if not 1 <= self.default_page_limit <= self.max_page_limit:
            raise ValueError("DEFAULT_PAGE_LIMIT must be between 1 and MAX_PAGE_LIMIT.")
        if self.debug:
            logger.warning("DEBUG mode enabled -- do not run this configuration in production.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
