"""API-layer configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """FastAPI application settings.

    All values can be overridden via environment variables prefixed with
    ``API_`` (e.g. ``API_PORT=8080``) or through a ``.env`` file in the
    working directory.  Node settings (content layout, repository, history
    database) live in :class:`deploy_core.config.Settings`.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"
    port: int = Field(default=8000, gt=0, lt=65536)
    debug: bool = False

    # Upper bound for ``/system/history?limit=``; larger values are clamped.
    max_history_limit: int = Field(default=1000, gt=0)

    # Structured JSON logging for log aggregation.
    structured_logging: bool = False


def load_api_settings() -> APISettings:
    """Construct settings from the environment / ``.env`` file."""
    return APISettings()
