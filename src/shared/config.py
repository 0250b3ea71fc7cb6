"""
Shared Configuration - Application Settings and Environment Management
Centralized configuration management for Portfolio Guard.

This module provides:
- Environment-based configuration
- Type-safe settings with validation
- Security layer quotas and thresholds
- Upstream chat service configuration
"""
from typing import Optional
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SecuritySettings(BaseSettings):
    """Security layer configuration settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Bearer token guarding the security log endpoint
    security_logs_token: Optional[str] = Field(None)

    # Route-class quotas (requests per window)
    api_rate_limit: int = Field(30)
    chat_rate_limit: int = Field(10)
    visit_rate_limit: int = Field(5)
    rate_limit_window_ms: int = Field(60 * 1000)
    rate_limit_cleanup_interval_ms: int = Field(5 * 60 * 1000)

    # Attack detection
    suspicion_threshold: float = Field(8)
    block_duration_ms: int = Field(30 * 60 * 1000)

    # Input analysis
    block_risk_score: int = Field(10)

    # CSRF tokens
    csrf_token_expiry_ms: int = Field(30 * 60 * 1000)

    # Security log buffer
    security_log_max_entries: int = Field(1000)

    @field_validator("api_rate_limit", "chat_rate_limit", "visit_rate_limit")
    @classmethod
    def validate_rate_limit(cls, v):
        if v < 1:
            raise ValueError("Rate limits must allow at least one request")
        return v

    @field_validator("rate_limit_window_ms", "block_duration_ms", "csrf_token_expiry_ms")
    @classmethod
    def validate_positive_duration(cls, v):
        if v <= 0:
            raise ValueError("Durations must be positive")
        return v


class ChatSettings(BaseSettings):
    """Upstream chat completion service settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    anthropic_api_key: Optional[str] = Field(None)
    anthropic_api_url: str = Field("https://api.anthropic.com/v1/messages")
    anthropic_version: str = Field("2023-06-01")
    chat_model: str = Field("claude-sonnet-4-20250514")
    chat_max_tokens: int = Field(1024)
    chat_timeout_seconds: float = Field(30.0)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    environment: Environment = Field(Environment.DEVELOPMENT)
    app_name: str = Field("Portfolio Guard")
    app_version: str = Field("1.0.0")
    log_level: LogLevel = Field(LogLevel.INFO)

    security: SecuritySettings = Field(default_factory=SecuritySettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == Environment.TESTING


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings.
    This function can be used as a FastAPI dependency.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
