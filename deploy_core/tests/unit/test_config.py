"""Unit tests for deploy_core.config."""

from __future__ import annotations

from pathlib import Path

import pytest
from deploy_core.config import Settings, load_settings
from pydantic import ValidationError

# ---------------------------------------------------------------------------
# Settings - default values
# ---------------------------------------------------------------------------


class TestSettingsDefaults:
    def test_default_environment(self):
        assert Settings().environment == "dev"

    def test_default_layout(self):
        settings = Settings()
        assert settings.checkout_path == Path("content") / "git-checkout"
        assert settings.initial_snapshot_path == Path("content") / "renderedContent"
        assert settings.state_path == Path("content") / "deploy-state.json"

    def test_default_database_is_sqlite(self):
        assert Settings().database_url.startswith("sqlite+aiosqlite://")

    def test_default_git_transport(self):
        settings = Settings()
        assert settings.git_timeout_seconds == 120
        assert settings.strict_host_key_checking is True
        assert settings.ssh_key_path is None

    def test_default_polling(self):
        settings = Settings()
        assert settings.history_poll_interval == 1.0
        assert settings.history_wait_timeout == 300.0


# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------


class TestSettingsFromEnv:
    def test_prefix(self, monkeypatch):
        monkeypatch.setenv("DEPLOY_ENVIRONMENT", "prod")
        monkeypatch.setenv("DEPLOY_CONTENT_ROOT", "/srv/site")
        monkeypatch.setenv("DEPLOY_STRICT_HOST_KEY_CHECKING", "false")

        settings = Settings()

        assert settings.environment == "prod"
        assert settings.checkout_path == Path("/srv/site/git-checkout")
        assert settings.strict_host_key_checking is False

    def test_unprefixed_ignored(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "prod")
        assert Settings().environment == "dev"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_blank_environment_rejected(self):
        with pytest.raises(ValidationError):
            Settings(environment="   ")

    def test_environment_is_stripped(self):
        assert Settings(environment=" qa ").environment == "qa"

    def test_non_positive_poll_interval_rejected(self):
        with pytest.raises(ValidationError):
            Settings(history_poll_interval=0)

    def test_non_positive_git_timeout_rejected(self):
        with pytest.raises(ValidationError):
            Settings(git_timeout_seconds=0)


class TestLoadSettings:
    def test_overrides(self):
        settings = load_settings(environment="staging", node_id="web-3")
        assert settings.environment == "staging"
        assert settings.node_id == "web-3"
