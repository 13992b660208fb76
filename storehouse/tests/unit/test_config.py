"""Tests for configuration loading."""

import pytest

from storehouse.config import get_config
from storehouse.exceptions import ConfigurationError


class TestGetConfig:
    def test_defaults(self, app_config):
        assert app_config.chat.max_message_length == 500
        assert app_config.chat.warn_on_truncation is True
        assert app_config.realtime.max_frame_size == 16 * 1024
        assert app_config.realtime.group_name_max_length == 64
        assert app_config.auth.jwt_algorithm == "HS256"
        assert app_config.auth.query_token_param == "access_token"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CHAT_MAX_MESSAGE_LENGTH", "280")
        monkeypatch.setenv("CHAT_WARN_ON_TRUNCATION", "false")
        monkeypatch.setenv("CORS_ALLOW_METHODS", "get,post")

        config = get_config()

        assert config.chat.max_message_length == 280
        assert config.chat.warn_on_truncation is False
        assert config.cors.allow_methods == ["GET", "POST"]

    def test_missing_secret_raises_configuration_error(self, monkeypatch):
        monkeypatch.delenv("AUTH_JWT_SECRET", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            get_config()

        assert exc_info.value.details["errors"]

    def test_short_secret_rejected(self, monkeypatch):
        monkeypatch.setenv("AUTH_JWT_SECRET", "short")

        with pytest.raises(ConfigurationError):
            get_config()

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("SERVER_PORT", "80"),
            ("CHAT_MAX_MESSAGE_LENGTH", "0"),
            ("REALTIME_MAX_JSON_DEPTH", "0"),
            ("LOGGING_ENVIRONMENT", "staging"),
            ("AUTH_JWT_ALGORITHM", "RS256"),
            ("AUTH_SERVICE_KEY", "short"),
        ],
    )
    def test_invalid_values_rejected(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError):
            get_config()

    def test_legacy_dict_omits_secret(self, app_config):
        legacy = app_config.to_legacy_dict()

        assert legacy["logging"]["environment"] == "unit_test"
        assert "auth" not in legacy
        assert app_config.auth.jwt_secret not in str(legacy)
