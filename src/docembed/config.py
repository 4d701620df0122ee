from __future__ import annotations

import codecs
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment/.env."""

    documents_dir: Path = Field(default=Path("docs"))
    glob_pattern: str = Field(default="*.toml")
    file_encoding: str = Field(default="utf-8")
    read_concurrency: int = Field(default=8, ge=1)
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DOCEMBED_OPENAI_API_KEY", "OPENAI_API_KEY", "openai_api_key"),
    )
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    embedding_model: str = Field(default="text-embedding-ada-002")
    embedding_batch_size: int = Field(default=64, ge=1)
    user_agent: str = Field(default="docembed/0.1")
    api_timeout: float = Field(default=30.0)
    api_max_retries: int = Field(default=4)
    api_backoff_seconds: float = Field(default=0.5)
    api_max_backoff_seconds: float = Field(default=8.0)
    hash_dimension: int = Field(default=64, ge=1)
    qdrant_url: str = Field(default="http://localhost:6333")
    qdrant_api_key: str | None = Field(default=None)
    collection: str = Field(default="documents")
    database_url: str = Field(default="sqlite:///data/vectors.db")
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="DOCEMBED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("file_encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError as exc:
            raise ValueError(f"unknown text encoding {value!r}") from exc
        return value

    @property
    def default_pattern(self) -> str:
        return str(self.documents_dir / self.glob_pattern)
