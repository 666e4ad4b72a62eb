"""Tests for gateway settings."""

import pytest
from pydantic import ValidationError

from services.api_gateway.app.config import CommandSettings, Settings


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_command_defaults(self):
        """Test default resilience values."""
        config = Settings().default_command.to_config()

        assert config.core_size == 30
        assert config.max_queue_size == 10
        assert config.timeout_ms == 1000
        assert config.request_volume_threshold == 10
        assert config.error_threshold_percentage == 75
        assert config.sleep_window_ms == 7000
        assert config.rolling_window_ms == 15000

    def test_command_override_from_env(self, monkeypatch):
        """Test per-command overrides use the nested delimiter."""
        monkeypatch.setenv("GATEWAY_COMMANDS__LICENSINGSERVICE__TIMEOUT_MS", "12000")
        monkeypatch.setenv("GATEWAY_REGISTRY_TYPE", "eureka")

        settings = Settings()
        overrides = settings.command_overrides()

        assert settings.registry_type == "eureka"
        assert overrides["licensingservice"].timeout_ms == 12000
        assert overrides["licensingservice"].core_size == 30

    def test_invalid_threshold_rejected(self):
        """Test error thresholds above 100 percent are invalid."""
        with pytest.raises(ValidationError):
            CommandSettings(error_threshold_percentage=150)
