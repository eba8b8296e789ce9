"""Tests for config.py -- tool settings precedence and validation."""

import pytest

from minecraft_mod_manager.config import (
    Config,
    get_bool_env,
    load_config,
    validate_config,
)
from minecraft_mod_manager.core.http import DEFAULT_METADATA_TIMEOUT


class TestLoadConfigDefaults:
    def test_zero_config(self):
        config = load_config()

        assert config.modrinth_api_key is None
        assert config.curseforge_api_key is None
        assert config.modrinth_api_url is None
        assert config.debug is False
        assert config.max_parallel_requests == 5
        assert config.requests_per_second is None
        assert config.max_retries == 3
        assert config.metadata_timeout == DEFAULT_METADATA_TIMEOUT


class TestPrecedence:
    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("CURSEFORGE_API_KEY", "from-env")
        config = load_config(curseforge_api_key="from-cli")
        assert config.curseforge_api_key == "from-cli"

    def test_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("CURSEFORGE_API_KEY", "from-env")
        monkeypatch.setenv("MMM_MAX_PARALLEL_REQUESTS", "7")
        config = load_config(
            yaml_fallbacks={
                "curseforge_api_key": "from-yaml",
                "max_parallel_requests": 20,
            }
        )
        assert config.curseforge_api_key == "from-env"
        assert config.max_parallel_requests == 7

    def test_yaml_fallbacks(self):
        config = load_config(
            yaml_fallbacks={
                "modrinth_api_key": "mr-token",
                "modrinth_api_url": "https://staging-api.modrinth.com/v2/",
                "max_retries": 0,
                "requests_per_second": 2,
                "retry_interval": 0.5,
            }
        )
        assert config.modrinth_api_key == "mr-token"
        assert config.modrinth_api_url == "https://staging-api.modrinth.com/v2"
        assert config.max_retries == 0
        assert config.requests_per_second == 2.0
        assert config.retry_interval == 0.5

    def test_blank_key_is_none(self, monkeypatch):
        monkeypatch.setenv("CURSEFORGE_API_KEY", "   ")
        assert load_config().curseforge_api_key is None

    def test_debug_flag_beats_env(self, monkeypatch):
        monkeypatch.setenv("MMM_DEBUG", "false")
        assert load_config(debug=True).debug is True

    def test_debug_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("MMM_DEBUG", "0")
        assert load_config(yaml_fallbacks={"debug": True}).debug is False

    def test_rate_limit_env(self, monkeypatch):
        monkeypatch.setenv("MMM_REQUESTS_PER_SECOND", "2.5")
        assert load_config().requests_per_second == 2.5


class TestEnvValidation:
    @pytest.mark.parametrize("value", ["0", "101", "many"])
    def test_parallel_out_of_range(self, monkeypatch, value):
        monkeypatch.setenv("MMM_MAX_PARALLEL_REQUESTS", value)
        with pytest.raises(ValueError, match="MMM_MAX_PARALLEL_REQUESTS"):
            load_config()

    @pytest.mark.parametrize("value", ["-1", "11"])
    def test_retries_out_of_range(self, monkeypatch, value):
        monkeypatch.setenv("MMM_MAX_RETRIES", value)
        with pytest.raises(ValueError, match="between 0 and 10"):
            load_config()

    @pytest.mark.parametrize("value", ["0", "-2", "fast"])
    def test_rate_limit_must_be_positive(self, monkeypatch, value):
        monkeypatch.setenv("MMM_REQUESTS_PER_SECOND", value)
        with pytest.raises(ValueError, match="greater than 0"):
            load_config()

    def test_bad_url(self, monkeypatch):
        monkeypatch.setenv("CURSEFORGE_API_URL", "ftp://api.curseforge.com")
        with pytest.raises(ValueError, match="http"):
            load_config()


class TestValidateConfig:
    def test_url_needs_hostname(self):
        with pytest.raises(ValueError, match="hostname"):
            validate_config(Config(modrinth_api_url="https://"))

    def test_blank_url_is_none(self):
        config = Config(modrinth_api_url="  ")
        validate_config(config)
        assert config.modrinth_api_url is None

    def test_negative_retry_interval(self):
        with pytest.raises(ValueError, match="retry_interval"):
            validate_config(Config(retry_interval=-1))

    def test_timeouts_positive(self):
        with pytest.raises(ValueError, match="download_timeout"):
            validate_config(Config(download_timeout=0))


class TestGetBoolEnv:
    def test_unset(self, monkeypatch):
        monkeypatch.delenv("MMM_FLAG", raising=False)
        assert get_bool_env("MMM_FLAG") is None

    @pytest.mark.parametrize("value", ["true", "1", "YES", "on"])
    def test_truthy(self, monkeypatch, value):
        monkeypatch.setenv("MMM_FLAG", value)
        assert get_bool_env("MMM_FLAG") is True

    def test_falsy(self, monkeypatch):
        monkeypatch.setenv("MMM_FLAG", "nope")
        assert get_bool_env("MMM_FLAG") is False
