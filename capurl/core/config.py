"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.
"""
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ignore extra environment variables that aren't defined in the model
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # Signed URL Configuration
    # ============================================================
    signed_url_secret: Optional[str] = Field(None, description="HMAC secret for signing URLs (required)")
    signed_url_ttl: int = Field(3600, description="Seconds until an issued URL expires")
    share_base_url: Optional[str] = Field(
        None,
        description="Scheme + host prefixed to issued relative URLs (e.g. https://example.com)"
    )

    # ============================================================
    # Database Configuration
    # ============================================================
    database_url: str = Field("sqlite:///./capurl.db", description="Salt store database URL")

    # ============================================================
    # Logging
    # ============================================================
    log_level: str = Field("INFO", description="Root log level (DEBUG shows every signing step)")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
