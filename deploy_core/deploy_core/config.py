"""Node configuration loaded from environment variables."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Node settings loaded from environment variables with DEPLOY_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Environment label, also used for the ``cd-<environment>-<branch>``
    # branch fallback.
    environment: str = "dev"
    debug: bool = False
    node_id: str = "node-1"

    # Content layout
    content_root: Path = Path("content")
    checkout_dir: str = "git-checkout"
    snapshot_base: str = "renderedContent"
    state_file: str = "deploy-state.json"

    # Source repository
    repo_url: str | None = None
    default_branch: str = "master"

    # History store
    database_url: str = "sqlite+aiosqlite:///.deploy/history.db"

    # Git transport
    git_timeout_seconds: int = Field(default=120, gt=0)
    ssh_key_path: Path | None = None
    known_hosts_path: Path | None = None
    strict_host_key_checking: bool = True

    # History polling
    history_poll_interval: float = Field(default=1.0, gt=0.0)
    history_wait_timeout: float = Field(default=300.0, gt=0.0)

    # Telemetry
    structured_logging: bool = False

    @field_validator("environment")
    @classmethod
    def _normalise_environment(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("environment must not be empty")
        return v

    @property
    def checkout_path(self) -> Path:
        return self.content_root / self.checkout_dir

    @property
    def initial_snapshot_path(self) -> Path:
        return self.content_root / self.snapshot_base

    @property
    def state_path(self) -> Path:
        return self.content_root / self.state_file


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.environment)

    return settings
