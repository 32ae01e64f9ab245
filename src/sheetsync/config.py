"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    production = "production"


class Settings(BaseSettings):
    """Settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Pipedrive API
    PIPEDRIVE_SUBDOMAIN: str = "api"
    PIPEDRIVE_API_URL: str = ""  # Full override, e.g. for a proxy or sandbox
    PIPEDRIVE_API_VERSION: str = "v1"
    PIPEDRIVE_API_TOKEN: str = ""
    REQUEST_TIMEOUT: float = 30.0

    # Field metadata cache
    FIELD_CACHE_TTL_SECONDS: int = 3600

    # Product price wrapping
    DEFAULT_CURRENCY: str = "USD"

    @property
    def api_base_url(self) -> str:
        """Return the API base URL, honouring PIPEDRIVE_API_URL when set."""
        if self.PIPEDRIVE_API_URL:
            return self.PIPEDRIVE_API_URL.rstrip("/")
        return f"https://{self.PIPEDRIVE_SUBDOMAIN}.pipedrive.com/{self.PIPEDRIVE_API_VERSION}"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
