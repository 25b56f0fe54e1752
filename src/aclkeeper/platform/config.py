"""
aclkeeper Configuration Management

Uses Pydantic Settings for type-safe configuration from environment variables.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # =========================================================================
    # APPLICATION
    # =========================================================================
    APP_NAME: str = "aclkeeper"
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "info"
    VERSION: str = "0.1.0"

    # =========================================================================
    # API SERVER
    # =========================================================================
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: str = "http://localhost:3000"

    # =========================================================================
    # ACCESS CONTROL
    # =========================================================================
    # System role that bypasses resource ACL checks in the request guard
    ADMIN_ROLE: str = "ADMIN"
    # Install VIEWER/EDITOR/OWNER roles for every default resource type on startup
    SEED_DEFAULT_ROLES: bool = True
    # Comma-separated resource types accepted in addition to the defaults
    EXTRA_RESOURCE_TYPES: str = ""

    # =========================================================================
    # OBSERVABILITY
    # =========================================================================
    METRICS_ENABLED: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def extra_resource_types(self) -> List[str]:
        return [t.strip() for t in self.EXTRA_RESOURCE_TYPES.split(",") if t.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Singleton instance for easy import
settings = get_settings()
