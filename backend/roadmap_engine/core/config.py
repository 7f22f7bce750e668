"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Roadmap Engine"
    debug: bool = False
    log_level: str = "INFO"
    openai_api_key: str | None = None
    generation_model: str = "gpt-4o-mini"
    generation_timeout_s: float = 45.0
    generation_temperature: float = 0.3
    transport_retries: int = 1
    quality_max_regenerations: int = 3
    context_block_max_chars: int = 4000
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "roadmap-engine"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
