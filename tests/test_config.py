"""Tests for configuration management."""

import pytest
from pydantic import ValidationError

from tollgate.config import Settings, get_settings, reload_settings


class TestSettings:
    """Test the Settings class."""

    def test_default_settings(self, monkeypatch):
        """Test Field defaults with the environment cleared."""
        for name in ("OLLAMA_HOST", "OLLAMA_MODEL", "APPROVAL_TTL_SECONDS", "TOLLGATE_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.ollama_host == "http://localhost:11434"
        assert settings.approval_ttl_seconds == 300
        assert settings.classifier_max_attempts == 2
        assert settings.nonce_bytes == 8
        assert settings.tollgate_log_level == "INFO"
        assert settings.tollgate_log_file is None

    def test_custom_settings(self, test_settings):
        assert test_settings.ollama_host == "http://ollama.test:11434"
        assert test_settings.ollama_model == "test-model"
        assert test_settings.tollgate_log_level == "DEBUG"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("APPROVAL_TTL_SECONDS", "60")
        monkeypatch.setenv("OLLAMA_MODEL", "llama3")

        settings = Settings(_env_file=None)

        assert settings.approval_ttl_seconds == 60
        assert settings.ollama_model == "llama3"

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, approval_ttl_seconds=0)

    def test_nonce_bytes_lower_bound(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, nonce_bytes=2)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, tollgate_log_level="VERBOSE")

    def test_log_file_expanded(self, tmp_path):
        settings = Settings(_env_file=None, tollgate_log_file=str(tmp_path / "logs" / "tollgate.log"))

        assert settings.tollgate_log_file.is_absolute()
        assert settings.tollgate_log_file.name == "tollgate.log"

    def test_base_url_strips_slash(self):
        settings = Settings(_env_file=None, ollama_host="http://localhost:11434/")

        assert settings.ollama_base_url == "http://localhost:11434"

    def test_model_dump_safe(self, test_settings):
        dumped = test_settings.model_dump_safe()

        assert dumped["ollama_model"] == "test-model"
        assert all(isinstance(v, str) for v in dumped.values())


class TestGlobalSettings:
    """Test the cached settings instance."""

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()

    def test_reload_settings(self, monkeypatch):
        monkeypatch.setenv("CLASSIFIER_TIMEOUT", "12.5")

        settings = reload_settings()

        assert settings.classifier_timeout == 12.5
        assert get_settings() is settings

        monkeypatch.delenv("CLASSIFIER_TIMEOUT")
        reload_settings()
