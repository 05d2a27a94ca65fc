# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Runtime configuration."""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Represent a missing or invalid configuration value."""


class Settings(BaseSettings):
    """Endpoint and display settings, read from ``CGB_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CGB_", env_file=".env", extra="ignore"
    )

    fhir_base_url: str = ""
    translation_base_url: str = ""
    database_path: Path = Path("cgb.sqlite")
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    test_page_size: int = Field(default=20, gt=0)
    browser_page_size: int = Field(default=10, gt=0)

    def effective_translation_base_url(self) -> str | None:
        """Return the translator endpoint, or ``None`` when unset."""
        url = self.translation_base_url.strip().rstrip("/")
        return url or None

    def library_url(self, library_id: str) -> str:
        """Return the canonical URL of a library on the configured server."""
        base = self.fhir_base_url.strip().rstrip("/")
        if not base:
            return f"Library/{library_id}"
        return f"{base}/Library/{library_id}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
