"""Environment-driven settings for the embedding engine.

Every field can be overridden with an ``EES_``-prefixed environment variable
or a line in ``.env`` (e.g. ``EES_OLLAMA_BASE_URL=http://gpu-box:11434``).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DATA_DIR: Path = Path("data")
    DATABASE_URL: str | None = None

    DEFAULT_PROVIDER: str = "ollama"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_DEFAULT_MODEL: str = "nomic-embed-text"
    OPENAI_COMPATIBLE_BASE_URL: str | None = None
    OPENAI_COMPATIBLE_API_KEY: SecretStr | None = None
    OPENAI_COMPATIBLE_DEFAULT_MODEL: str | None = None

    PROVIDER_TIMEOUT: float = 30.0
    STATUS_TIMEOUT: float = 5.0
    MIGRATION_WORKERS: int = 4

    CACHE_ENABLED: bool = True
    CACHE_MAX_SIZE: int = 1000
    CACHE_EMBEDDING_TTL: float = 3600.0
    CACHE_SEARCH_TTL: float = 300.0
    CACHE_MODELS_TTL: float = 86400.0
    CACHE_PROVIDER_STATUS_TTL: float = 30.0

    LOG_LEVEL: str = "INFO"

    @property
    def db_path(self) -> Path:
        return self.DATA_DIR / "embeddings.db"

    @property
    def database_url(self) -> str:
        """Explicit ``DATABASE_URL`` wins; otherwise a SQLite file under ``DATA_DIR``."""
        return self.DATABASE_URL or f"sqlite:///{self.db_path}"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
