"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "DayChain Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://daychain@localhost:5432/daychain"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "daychain"
    redis_url: str | None = None
    plan_cache_ttl_seconds: int = 300
    default_timezone: str = "UTC"
    default_travel_minutes: int = 30
    chain_completion_buffer_minutes: int = 45
    max_step_duration_minutes: int = 240
    task_fetch_limit: int = 10


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
