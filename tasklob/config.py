"""Application configuration."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "Task Lob API"
    database_url: str = f"sqlite+pysqlite:///{_PROJECT_DIR / 'tasklob.db'}"
    log_level: str = "INFO"

    ai_provider: str = "mistral"
    ai_model: str | None = None
    ai_api_key: str | None = None
    ai_base_url: str | None = None
    ai_timeout_seconds: int = 60

    parser_temperature: float = 0.2
    parser_max_tokens: int = 4000
    max_tasks_per_lob: int = 20

    auto_resolve_threshold: float = 0.9
    runner_up_ceiling: float = 0.7
    context_clue_boost: float = 0.15
    min_match_score: float = 0.5
    min_account_match_score: float = 0.4
    new_entity_confidence: float = 0.8

    success_weight: float = 0.1
    max_context_resolutions: int = 5
    resolutions_per_keyword: int = 3
    max_terms_per_query: int = 5

    max_concurrent_lookups: int = 8
    enrichment_timeout_seconds: float = 45.0
    max_store_candidates: int = 500

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
