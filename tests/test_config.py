"""
Tests for environment-driven configuration.
"""

from pathlib import Path

import pytest

from casekeeper import config
from casekeeper.env import load_env


class TestConfig:
    """Test configuration readers."""

    def test_defaults(self, monkeypatch):
        """Unset variables fall back to defaults."""
        for name in ("CASEKEEPER_DB_PATH", "CASEKEEPER_PROVIDER", "CASEKEEPER_PROVIDER_TIMEOUT"):
            monkeypatch.delenv(name, raising=False)

        assert config.db_path() == Path("data/casekeeper.db")
        assert config.provider_mode() == "local"
        assert config.provider_timeout() == 20.0

    def test_bad_numbers_use_defaults(self, monkeypatch):
        """Non-numeric values do not crash the readers."""
        monkeypatch.setenv("CASEKEEPER_PROVIDER_RETRIES", "many")
        monkeypatch.setenv("CASEKEEPER_PROVIDER_TIMEOUT", "0")
        assert config.provider_retries() == 2
        assert config.provider_timeout() == 1.0

    @pytest.mark.parametrize("value,expected", [("0", False), ("false", False), ("1", True), ("yes", True)])
    def test_log_to_file(self, monkeypatch, value, expected):
        """File logging can be switched off."""
        monkeypatch.setenv("CASEKEEPER_LOG_TO_FILE", value)
        assert config.log_to_file() is expected

    def test_validate_rejects_unknown_mode(self, monkeypatch):
        """Only local and remote providers exist."""
        monkeypatch.setenv("CASEKEEPER_PROVIDER", "cloud")
        with pytest.raises(RuntimeError, match="local"):
            config.validate_config()


class TestLoadEnv:
    """Test .env loading."""

    def test_missing_file(self, tmp_path, monkeypatch):
        """No .env file means nothing loaded."""
        monkeypatch.chdir(tmp_path)
        assert load_env() is False

    def test_existing_variables_win(self, tmp_path, monkeypatch):
        """Values already in the environment are not overridden."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("CASEKEEPER_DB_PATH=from-file.db\nCASEKEEPER_LOG_DIR=env-logs\n")
        monkeypatch.setenv("CASEKEEPER_DB_PATH", "from-env.db")
        monkeypatch.delenv("CASEKEEPER_LOG_DIR", raising=False)

        load_env()

        assert config.db_path() == Path("from-env.db")
        assert config.log_dir() == Path("env-logs")
