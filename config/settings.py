"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., WORKER_POLL_INTERVAL env var → Settings.WORKER_POLL_INTERVAL)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every module imports `settings` from here instead of hardcoding values.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database (embedded SQLite file) ─────────────────────────
    DATABASE_PATH: str = "saas.db"

    # ── Worker ──────────────────────────────────────────────────
    WORKER_POLL_INTERVAL: float = 5.0      # seconds between poll ticks (one job per tick)
    MAINTENANCE_INTERVAL: float = 86400.0  # seconds between maintenance enqueues (24h)
    JOB_LEASE_TIMEOUT: float = 1800.0      # seconds before a RUNNING job counts as abandoned; 0 disables

    # ── Retry ───────────────────────────────────────────────────
    JOB_MAX_ATTEMPTS: int = 3

    # ── Maintenance ─────────────────────────────────────────────
    USAGE_EVENT_RETENTION_DAYS: int = 90

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        """Async connection string for FastAPI (uses aiosqlite driver)."""
        return f"sqlite+aiosqlite:///{self.DATABASE_PATH}"

    @property
    def sync_database_url(self) -> str:
        """Sync connection string for worker threads (uses the stdlib pysqlite driver)."""
        return f"sqlite:///{self.DATABASE_PATH}"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import this everywhere
settings = Settings()
