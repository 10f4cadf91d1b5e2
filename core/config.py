"""
Configuration management using Pydantic Settings
Handles environment variables and validation
"""
from functools import lru_cache

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings with environment variable support"""

    # Environment
    environment: str = Field(default="development")

    # Application
    app_name: str = "Bandwriter"
    app_version: str = "0.1.0"

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Monitoring
    metrics_enabled: bool = Field(default=True)

    # Band engine
    max_group_levels: int = Field(default=74, ge=1, description="Deepest allowed group nesting (levels 0..N-1)")
    strict_group_keys: bool = Field(
        default=True, description="Reject group keys of incomparable types instead of treating them as unequal"
    )
    max_diagnostics: int = Field(default=1000, ge=0, description="Diagnostics retained per run; later ones are counted")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
