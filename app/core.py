"""Application configuration and settings management.

This module defines the application settings loaded from environment
variables and provides a helper for accessing the cached settings.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Attributes:
        DATABASE_URL: Database connection string.
        ENVIRONMENT: ``development`` or ``production``; controls how much
            of an unexpected error is shown to clients.
        LOG_LEVEL: Root logging level.
        ALLOWED_ORIGINS: Allowed origins for CORS.
        REDIS_URL: Redis connection URL for rate limiting. Empty means
            use an in-process fake.
        API_PREFIX: Path prefix under which all resource routers are mounted.
        ACTIVITY_ACTOR: Label written to ``performedBy`` on activity entries.
        EXPORT_RATE_LIMIT_TIMES: Exports allowed per client per window.
        EXPORT_RATE_LIMIT_SECONDS: Length of the export rate limit window.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    DATABASE_URL: str = "sqlite:///./contacts.db"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: List[str] = ["*"]
    REDIS_URL: str = "redis://localhost:6379"
    API_PREFIX: str = "/api"
    ACTIVITY_ACTOR: str = "User"
    EXPORT_RATE_LIMIT_TIMES: int = 10
    EXPORT_RATE_LIMIT_SECONDS: int = 60

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings.

    The settings object is cached to prevent reloading environment
    variables multiple times during application lifetime.
    """

    return Settings()
