"""
Centralized configuration management.

Every setting is a field on ``Settings``; its environment variable is the
upper-cased field name (``type_sample_size`` -> ``TYPE_SAMPLE_SIZE``).
Provider API keys are not settings and are read where the clients are built.
"""
import os
import logging
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    """Application settings with validation."""

    environment: str = Field(default="development", description="development or production")

    # Upload limits
    max_file_size_mb: int = Field(default=10, ge=1, le=1000, description="Maximum upload size in MB")
    max_file_rows: int = Field(default=1000000, ge=1000, description="Maximum data rows in a decoded table")
    max_file_columns: int = Field(default=1000, ge=10, description="Maximum columns in a decoded table")
    max_cell_size_bytes: int = Field(default=100000, ge=1000, description="Maximum size of a single cell")

    # Analysis
    type_sample_size: int = Field(default=100, ge=1, le=10000, description="Rows sampled per column for type inference")
    insight_timeout_seconds: float = Field(default=20.0, gt=0, le=600, description="Timeout for narrative insight generation")

    # HTTP surface
    rate_limit_per_minute: int = Field(default=10, ge=1, le=1000, description="Uploads per minute per IP")
    request_timeout_seconds: int = Field(default=300, ge=1, le=3600, description="Whole-request timeout")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )
    log_level: str = Field(default="INFO", description="Logging level")

    # AI providers
    groq_model: str = Field(default="llama-3.1-8b-instant")
    gemini_model: str = Field(default="gemini-2.5-flash")

    # Persistence
    storage_backend: Literal["memory", "redis"] = Field(default="memory", description="Where analyses are kept")
    redis_url: Optional[str] = Field(default=None)
    analysis_ttl_seconds: int = Field(default=86400, ge=60, description="How long stored analyses live")
    max_stored_analyses: int = Field(default=500, ge=1, description="In-memory storage capacity")
    feedback_log_path: str = Field(default="training-data.jsonl", description="Append-only chart feedback log")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {list(LOG_LEVELS)}, got '{v}'")
        return v.upper()

    @field_validator('environment', 'storage_backend', mode='before')
    @classmethod
    def lower_case(cls, v):
        return v.lower() if isinstance(v, str) else v

    @property
    def is_production(self) -> bool:
        return self.environment in ("production", "prod")

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from whichever variables are set; pydantic coerces the strings."""
        values = {
            name: os.environ[name.upper()]
            for name in cls.model_fields
            if os.environ.get(name.upper(), "") != ""
        }
        return cls(**values)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.info("Configuration loaded and validated successfully")
    return _settings


def reload_settings() -> Settings:
    """Re-read the environment (used by tests after monkeypatching)."""
    global _settings
    _settings = None
    return get_settings()
