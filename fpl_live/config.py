"""Application configuration using pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # FPL API
    fpl_api_base_url: str = "https://fantasy.premierleague.com/api"
    requests_per_second: float = 1.0
    max_concurrent_requests: int = 5

    # CORS - comma-separated list of allowed origins
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Logging
    log_level: str = "INFO"

    # Cache TTL in seconds
    cache_ttl_bootstrap: int = 300  # 5 minutes for bootstrap-static

    # Live polling
    poll_interval_seconds: float = 15.0
    poll_max_attempts: int = 3
    poll_backoff_max_seconds: float = 30.0
    poll_check_bps: bool = False

    # Database - results are kept in memory when unset
    database_url: str | None = None

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
