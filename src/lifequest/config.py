"""Application settings via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables with LIFEQUEST_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="LIFEQUEST_",
        env_file=".env",
        case_sensitive=False,
    )

    # --- Core ---
    app_version: str = "0.1.0"
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8000
    debug: bool = False
    environment: str = "development"
    # Empty database_url runs the service on the in-memory store only
    database_url: str = ""
    redis_url: str = ""
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8080"]
    log_level: str = "INFO"
    log_format: str = "json"

    # --- Storage ---
    storage_timeout_seconds: float = 2.0
    storage_cas_attempts: int = 5
    create_schema: bool = True
    seed_fallback_catalog: bool = True

    # --- Ledger ---
    xp_per_level: int = 100
    redemption_write_attempts: int = 2
    lifescore_min: int = 0
    lifescore_max: int = 100

    # --- Missions ---
    mission_step_count: int = 3
    allow_adhoc_missions: bool = True

    # --- Quotas (per identity, fixed windows) ---
    quota_dev_bypass: bool = False
    rate_limit_window_seconds: int = 900
    rate_limit_requests_production: int = 100
    rate_limit_requests_development: int = 1000
    mission_completion_limit: int = 50
    mission_completion_window_seconds: int = 900
    mission_generation_limit: int = 10
    mission_generation_window_seconds: int = 3600
    ai_daily_limit: int = 60
    ai_daily_window_seconds: int = 86_400

    # --- AI usage ---
    ai_call_coin_cost: int = 0

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def rate_limit_requests(self) -> int:
        if self.is_production:
            return self.rate_limit_requests_production
        return self.rate_limit_requests_development


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
