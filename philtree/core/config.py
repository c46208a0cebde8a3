"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables (and an optional
``.env`` file) with defaults suitable for local development.
"""

from typing import List, Optional
from functools import lru_cache

from pydantic import Field, field_validator, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Settings are validated using Pydantic and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    APP_NAME: str = "PhilTree"
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    # Render structlog output as JSON (production) or as console text (dev).
    LOG_JSON: bool = False

    # -------------------------------------------------------------------------
    # API
    # -------------------------------------------------------------------------
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "philtree"
    POSTGRES_PASSWORD: str = "philtree_dev_password"
    POSTGRES_DB: str = "philtree"

    # Optional full DSN overrides (used by some deployments and tooling)
    POSTGRES_URL: Optional[str] = None
    POSTGRES_URL_SYNC: Optional[str] = None

    # Test-only DB overrides (used by pytest fixtures)
    TEST_DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL_SYNC: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        """Build the async database URL."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL:
            return self.TEST_DATABASE_URL
        if self.POSTGRES_URL:
            return self.POSTGRES_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Build the sync database URL (for Alembic)."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL_SYNC:
            return self.TEST_DATABASE_URL_SYNC
        if self.POSTGRES_URL_SYNC:
            return self.POSTGRES_URL_SYNC
        return (
            f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # -------------------------------------------------------------------------
    # Qdrant (concept embeddings)
    # -------------------------------------------------------------------------
    QDRANT_HOST: str = "localhost"
    QDRANT_PORT: int = 6333
    QDRANT_API_KEY: str | None = None
    # Set to ":memory:" (or a path) to run the embedded local mode instead of a server.
    QDRANT_LOCATION: str | None = None
    QDRANT_COLLECTION_NAME: str = "concepts"

    # -------------------------------------------------------------------------
    # Embeddings
    # -------------------------------------------------------------------------
    # auto | openai | ollama
    EMBEDDING_PROVIDER: str = "auto"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = 1536
    EMBEDDING_TIMEOUT_SECONDS: float = 10.0

    OPENAI_API_KEY: str | None = None

    OLLAMA_BASE_URL: str = Field(
        default="http://localhost:11434",
        validation_alias=AliasChoices("OLLAMA_BASE_URL", "OLLAMA_URL"),
    )
    OLLAMA_MODEL: str = "qwen2.5:7b"
    OLLAMA_EMBEDDING_MODEL: str = "nomic-embed-text"
    OLLAMA_MAX_CONCURRENCY: int = 2

    # -------------------------------------------------------------------------
    # Generation (lessons and branch candidates)
    # -------------------------------------------------------------------------
    # auto | openai | ollama
    LLM_PROVIDER: str = "auto"
    OPENAI_CHAT_MODEL: str = "gpt-4o-mini"
    GENERATION_TEMPERATURE: float = 0.7
    GENERATION_TIMEOUT_SECONDS: float = 30.0
    GENERATION_MAX_ATTEMPTS: int = Field(default=2, ge=1)

    # -------------------------------------------------------------------------
    # Graph growth policy
    # -------------------------------------------------------------------------
    # New-concept generations allowed per user inside the rolling window.
    GENERATION_RATE_LIMIT: int = Field(default=10, ge=1)
    GENERATION_RATE_WINDOW_MINUTES: int = Field(default=60, ge=1)

    NEIGHBOR_SUGGESTION_LIMIT: int = Field(default=3, ge=1)
    # 0.0 disables thresholding so suggestions show something whenever concepts exist.
    NEIGHBOR_SUGGESTION_MIN_SIMILARITY: float = Field(default=0.0, ge=-1.0, le=1.0)
    # Candidates at or above this similarity reuse the existing concept.
    DEDUP_MIN_SIMILARITY: float = Field(default=0.85, ge=-1.0, le=1.0)
    # Hide neighbours that are already connected from the source.
    OFFER_EXCLUDE_CONNECTED: bool = True
    DEFAULT_NEIGHBOR_BRANCH_TYPE: str = "wildcard"

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once and reused.

    Returns:
        Settings: Validated settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
