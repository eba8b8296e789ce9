"""Tests for minecraft_mod_manager.config_schema -- settings models."""

import pytest
from pydantic import ValidationError

from minecraft_mod_manager.config_schema import (
    LoggingConfig,
    PlatformsConfig,
    Settings,
    build_settings,
    to_config,
)


class TestSettingsModels:
    def test_zero_config(self):
        settings = Settings()
        assert settings.platforms.max_parallel_requests == 5
        assert settings.logging == LoggingConfig()

    def test_frozen(self):
        settings = Settings()
        with pytest.raises(ValidationError):
            settings.platforms.max_retries = 9

    @pytest.mark.parametrize(
        "field, value",
        [
            ("max_parallel_requests", 0),
            ("max_parallel_requests", 101),
            ("max_retries", 11),
            ("requests_per_second", 0),
            ("retry_interval", -1),
            ("download_timeout", 0),
        ],
    )
    def test_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            PlatformsConfig(**{field: value})


class TestBuildSettings:
    def test_empty(self):
        assert build_settings({}) == Settings()

    def test_partial_sections(self):
        settings = build_settings({"logging": {"level": "DEBUG"}})
        assert settings.logging.level == "DEBUG"
        assert settings.platforms == PlatformsConfig()

    def test_invalid_section(self):
        with pytest.raises(ValidationError):
            build_settings({"platforms": {"max_retries": "lots"}})


class TestToConfig:
    def test_yaml_values_flow_through(self):
        settings = build_settings(
            {
                "platforms": {
                    "curseforge_api_key": "yaml-key",
                    "max_parallel_requests": 3,
                    "requests_per_second": 4,
                }
            }
        )

        config = to_config(settings)

        assert config.curseforge_api_key == "yaml-key"
        assert config.max_parallel_requests == 3
        assert config.requests_per_second == 4.0

    def test_cli_overrides_win(self, monkeypatch):
        monkeypatch.setenv("CURSEFORGE_API_KEY", "env-key")
        settings = build_settings({"platforms": {"curseforge_api_key": "yaml"}})

        config = to_config(
            settings, {"curseforge_api_key": "cli-key", "debug": True}
        )

        assert config.curseforge_api_key == "cli-key"
        assert config.debug is True
