"""
Application Configuration Module.

Configuration with:
- Pydantic Settings v2
- Environment variable / .env support
- Secret values kept out of logs

The generation API key and ledger backend token are optional: without a
key the decision engine runs on its fixed fallback content.
"""

from typing import Optional, List
from functools import lru_cache

from pydantic import Field, field_validator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All sensitive values should be loaded from environment variables,
    never hardcoded.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ========================================================================
    # APPLICATION
    # ========================================================================

    app_name: str = "KDSA Decision Engine"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ========================================================================
    # API
    # ========================================================================

    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT")
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000"],
        alias="ALLOWED_ORIGINS",
    )

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    # ========================================================================
    # GENERATION SERVICE
    # ========================================================================

    generation_enabled: bool = Field(default=True, alias="GENERATION_ENABLED")
    gemini_api_key: Optional[str] = Field(
        default=None,
        alias="GEMINI_API_KEY",
        repr=False,
    )
    generation_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GENERATION_BASE_URL",
    )
    generation_model: str = Field(default="gemini-2.5-flash", alias="GENERATION_MODEL")
    generation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        alias="GENERATION_TIMEOUT_SECONDS",
    )
    generation_seed: int = Field(default=42, alias="GENERATION_SEED")
    determinism_iterations: int = Field(
        default=3,
        ge=1,
        alias="DETERMINISM_ITERATIONS",
    )

    # ========================================================================
    # AUDIT LEDGER
    # ========================================================================

    ledger_backend: str = Field(default="memory", alias="LEDGER_BACKEND")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./kdsa_ledger.db",
        alias="DATABASE_URL",
    )
    baserow_url: str = Field(default="https://api.baserow.io", alias="BASEROW_URL")
    baserow_token: Optional[str] = Field(default=None, alias="BASEROW_TOKEN", repr=False)
    baserow_table_id: Optional[int] = Field(default=None, alias="BASEROW_TABLE_ID")

    compliance_tags: List[str] = Field(
        default=[
            "EU AI Act Art 10",
            "EU AI Act Art 13",
            "EU AI Act Art 14",
            "DORA Pillar 3",
            "NIST AI RMF Map 1.2",
        ],
        alias="COMPLIANCE_TAGS",
    )

    @field_validator("ledger_backend")
    @classmethod
    def validate_ledger_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("memory", "sql", "baserow"):
            raise ValueError("ledger_backend must be one of: memory, sql, baserow")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Ensure database URL uses an async driver."""
        if v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif v.startswith("sqlite:///"):
            v = v.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return v

    # ========================================================================
    # COMPUTED
    # ========================================================================

    @computed_field
    @property
    def generation_configured(self) -> bool:
        """True when scenario generation can reach a live model."""
        return self.generation_enabled and bool(self.gemini_api_key)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
