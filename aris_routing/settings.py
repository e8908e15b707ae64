"""Settings configuration for the task routing engine."""

from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import BaseModel, Field, ConfigDict
from dotenv import load_dotenv
from typing import Optional

# Load environment variables from .env file
load_dotenv()


class FeatureFlags(BaseModel):
    """Simple boolean feature flags via environment variables.

    Controls which engine behaviours are active. Each flag maps to
    a FEATURE_FLAGS__<FLAG_NAME> environment variable.
    """

    enable_result_cache: bool = Field(default=True, description="Memoise completed analyses")
    enable_learned_routing: bool = Field(
        default=True, description="Allow requests to opt in to history-based model choice"
    )
    enable_redis_cache: bool = Field(default=False, description="Redis L2 tier for result cache")
    enable_provider_retry: bool = Field(
        default=True, description="Retry transient completion failures once"
    )
    escalate_on_missing_required_context: bool = Field(
        default=True, description="Escalate when a required context source is unavailable"
    )
    enable_performance_persistence: bool = Field(
        default=False, description="Write performance observations to the database"
    )


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Configuration (OpenAI-compatible)
    llm_api_key: str = Field(..., description="API key for the completion provider")

    llm_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL for the OpenAI-compatible completion API",
    )

    # Application Settings
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database (Optional - enables performance/preference persistence)
    database_url: Optional[str] = Field(
        default=None, description="PostgreSQL connection URL (postgresql+asyncpg://...)"
    )
    database_pool_size: int = Field(default=5, ge=1, le=50)
    database_pool_overflow: int = Field(default=10, ge=0, le=100)

    # Redis (Optional - enables the L2 result cache)
    redis_url: Optional[str] = Field(
        default=None, description="Redis connection URL (redis://localhost:6379/0)"
    )
    redis_key_prefix: str = Field(default="aris:", description="Redis key namespace prefix")

    # Model registry
    model_profiles_path: Optional[Path] = Field(
        default=None, description="YAML file with model profiles (built-in profiles when unset)"
    )

    # Result cache
    result_cache_ttl_seconds: float = Field(default=3600.0, gt=0.0)
    result_cache_max_entries: int = Field(default=100, ge=1)
    result_cache_fingerprint_chars: int = Field(default=200, ge=1)

    # Context assembly
    context_source_timeout_seconds: float = Field(default=2.0, gt=0.0)
    context_max_chars: int = Field(default=12000, ge=0)

    # Preference gate
    preference_cache_ttl_seconds: float = Field(default=300.0, ge=0.0)

    # Completion calls
    completion_timeout_seconds: float = Field(default=60.0, gt=0.0)
    completion_max_tokens: int = Field(default=1500, ge=1)
    completion_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    # Input validation
    max_task_chars: int = Field(default=50000, ge=1)

    # Feature Flags
    feature_flags: FeatureFlags = Field(
        default_factory=FeatureFlags, description="Engine feature toggles"
    )


def load_settings() -> Settings:
    """Load settings with proper error handling."""
    try:
        return Settings()
    except Exception as e:
        error_msg = f"Failed to load settings: {e}"
        if "llm_api_key" in str(e).lower():
            error_msg += "\nMake sure to set LLM_API_KEY in your .env file"
        raise ValueError(error_msg) from e
