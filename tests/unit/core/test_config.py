"""
Tests for environment configuration
"""

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings

# Mark entire module as unit test and critical - config is fundamental
pytestmark = [pytest.mark.unit, pytest.mark.critical]


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Clear the settings cache before each test"""
    get_settings.cache_clear()


class TestEnvironmentConfiguration:
    """Test environment variable configuration and validation"""

    def test_default_settings(self, monkeypatch):
        """Test default settings initialization"""
        for var in ("ENVIRONMENT", "LOG_FORMAT", "MAX_GROUP_LEVELS", "STRICT_GROUP_KEYS", "MAX_DIAGNOSTICS"):
            monkeypatch.delenv(var, raising=False)

        settings = Settings(_env_file=None)
        assert settings.environment == "development"
        assert settings.app_name == "Bandwriter"
        assert settings.log_format == "json"
        assert settings.metrics_enabled is True
        assert settings.max_group_levels == 74
        assert settings.strict_group_keys is True
        assert settings.max_diagnostics == 1000

    def test_environment_variables_override(self, monkeypatch):
        """Test that engine settings are read from the environment"""
        monkeypatch.setenv("MAX_GROUP_LEVELS", "3")
        monkeypatch.setenv("STRICT_GROUP_KEYS", "false")
        monkeypatch.setenv("MAX_DIAGNOSTICS", "5")

        settings = Settings(_env_file=None)
        assert settings.max_group_levels == 3
        assert settings.strict_group_keys is False
        assert settings.max_diagnostics == 5

    def test_invalid_environment_rejected(self):
        """Test that unknown environments fail validation"""
        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, environment="qa")

        assert "Environment must be one of" in str(exc_info.value)

    def test_invalid_log_format_rejected(self):
        """Test that only json and text log formats are accepted"""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_format="xml")

    def test_group_level_limit_must_be_positive(self):
        """Test that max_group_levels below 1 is rejected"""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_group_levels=0)

    def test_get_settings_is_cached(self):
        """Test that get_settings returns a cached instance"""
        assert get_settings() is get_settings()
