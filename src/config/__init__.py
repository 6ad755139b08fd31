"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Settings are constructed explicitly with load_settings() and handed to the
ServiceContainer at startup. Nothing here is cached at module level.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="support-knowledge", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Storage ==========
    storage_backend: str = Field(
        default="postgres",
        description="Dialog/solution storage: 'postgres' (pgvector) or 'memory'"
    )
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/support",
        description="PostgreSQL connection URL (async, pgvector enabled)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Embeddings ==========
    embedding_provider: str = Field(
        default="openai",
        description="Embedding backend: 'openai', 'zai' or 'mock'"
    )
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    zai_api_key: Optional[str] = Field(default=None, description="Z.AI API key")
    embedding_model: str = Field(
        default="text-embedding-ada-002",
        description="Embedding model name"
    )
    embedding_dimension: int = Field(
        default=1536,
        description="Embedding vector dimension",
        ge=8
    )
    embedding_timeout_seconds: float = Field(
        default=10.0,
        description="Hard timeout for one embedding call",
        gt=0,
        le=60
    )
    embedding_max_chars: int = Field(
        default=8000,
        description="Input is truncated to this many characters before embedding",
        ge=100
    )

    # ========== Knowledge tuning ==========
    knowledge_config_path: Path = Field(
        default=Path("knowledge_config.yaml"),
        description="Path to the YAML file with gate/feedback/scoring tuning"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        allowed = {"postgres", "memory"}
        if v not in allowed:
            raise ValueError(f"storage_backend must be one of {allowed}")
        return v

    @field_validator("embedding_provider")
    @classmethod
    def validate_embedding_provider(cls, v: str) -> str:
        allowed = {"openai", "zai", "mock"}
        if v not in allowed:
            raise ValueError(f"embedding_provider must be one of {allowed}")
        return v


def load_settings(**overrides) -> Settings:
    """Build a fresh Settings instance (environment first, then overrides)."""
    return Settings(**overrides)


# ========== Constants ==========

class AnswerType(str):
    """Who produced a dialog answer."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class FeedbackRating(str):
    """Client/operator judgment on an answer."""
    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"
    PARTIALLY = "partially"


class SolutionVote(str):
    """Usage signal recorded against a catalog solution."""
    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"
    USED = "used"


class MatchType(str):
    """How a solution recommendation was produced."""
    KEYWORD_MATCH = "keyword_match"
    CATEGORY_FALLBACK = "category_fallback"
    NO_MATCH = "no_match"


class SuggestionSource(str):
    """Where a suggestion came from."""
    DIALOGS = "dialogs"
    SOLUTIONS = "solutions"
    NONE = "none"


# ========== Lists for validation ==========

VALID_ANSWER_TYPES = [AnswerType.MANUAL, AnswerType.AUTOMATIC]
VALID_FEEDBACK_RATINGS = [
    FeedbackRating.HELPFUL, FeedbackRating.NOT_HELPFUL, FeedbackRating.PARTIALLY
]
VALID_SOLUTION_VOTES = [SolutionVote.HELPFUL, SolutionVote.NOT_HELPFUL, SolutionVote.USED]
