"""Runtime configuration, read from ``VAULT_SEARCH_*`` environment variables."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderKind(str, Enum):
    """Embedding provider selector."""

    LOCAL = "local"
    GEMINI = "gemini"
    OPENAI = "openai"


class Settings(BaseSettings):
    """Settings for providers, stores, indexing and the search API.

    Remote provider keys also fall back to the vendor's conventional
    variable names (``OPENAI_API_KEY``, ``GEMINI_API_KEY``).
    """

    model_config = SettingsConfigDict(
        env_prefix="VAULT_SEARCH_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Embedding provider
    embedding_provider: ProviderKind = ProviderKind.LOCAL
    local_model: str = "all-MiniLM-L6-v2"
    model_cache_dir: str | None = None
    openai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("VAULT_SEARCH_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    openai_model: str = "text-embedding-3-small"
    gemini_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("VAULT_SEARCH_GEMINI_API_KEY", "GEMINI_API_KEY"),
    )
    gemini_model: str = "text-embedding-004"
    embedding_dimensions: int | None = Field(default=None, ge=1)

    # Vector store
    store_backend: Literal["database", "usearch"] = "database"
    database_url: str | None = None
    database_password: SecretStr | None = None
    local_database_path: str = "local.db"
    index_dir: str = ".vault-search"

    # Indexing
    content_dir: str = "content"
    batch_size: int = Field(default=16, ge=1, le=64)
    chunk_size: int | None = Field(default=None, ge=200)
    chunk_overlap: int = Field(default=200, ge=0)

    # Query
    min_query_length: int = Field(default=2, ge=1)
    default_limit: int = Field(default=10, ge=1)
    max_limit: int = Field(default=50, ge=1)

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_limits(self) -> Settings:
        if self.default_limit > self.max_limit:
            msg = f"default_limit ({self.default_limit}) exceeds max_limit ({self.max_limit})"
            raise ValueError(msg)
        return self

    @property
    def local_database_url(self) -> str:
        """SQLAlchemy URL of the file-backed fallback store."""
        return f"sqlite+aiosqlite:///{self.local_database_path}"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
