"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest

from bulk_messenger.config import ConfigurationError, load_config
from bulk_messenger.config.environment import DEFAULT_DATABASE_URL, load_environment_config
from bulk_messenger.config.models import AppConfig
from bulk_messenger.config.validators import check_for_warnings

ENV_VARS = ("GATEWAY_API_KEY", "GATEWAY_BASE_URL", "LOG_LEVEL", "DATABASE_URL")

VALID_CONFIG = """
gateway:
  base_url: "https://gateway.example.com/manager"
  timeout_seconds: 20
  max_retries: 3
  retry_backoff_seconds: 0.5
jobs:
  default_pace_seconds: 10
  list_limit: 25
messaging:
  default_country_code: "+351"
logging:
  level: DEBUG
  format: json
"""


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def write_config(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestConfigurationLoading:
    def test_load_valid_config(self, tmp_path, clean_env):
        app_config, env_config = load_config(write_config(tmp_path, VALID_CONFIG))

        assert app_config.gateway.base_url == "https://gateway.example.com/manager"
        assert app_config.gateway.timeout_seconds == 20
        assert app_config.gateway.max_retries == 3
        assert app_config.gateway.retry_backoff_seconds == 0.5
        assert app_config.jobs.default_pace_seconds == 10
        assert app_config.jobs.list_limit == 25
        assert app_config.messaging.default_country_code == "351"
        assert app_config.logging.level == "DEBUG"
        assert app_config.logging.format == "json"
        assert env_config.database_url == DEFAULT_DATABASE_URL

    def test_empty_file_yields_defaults(self, tmp_path, clean_env):
        with pytest.warns(UserWarning, match="base_url"):
            app_config, _ = load_config(write_config(tmp_path, ""))

        assert app_config.gateway.base_url is None
        assert app_config.gateway.max_retries == 2
        assert app_config.jobs.default_pace_seconds == 15
        assert app_config.jobs.recover_on_startup is True
        assert app_config.messaging.default_country_code == "55"
        assert app_config.messaging.default_category == "iptv"
        assert app_config.logging.level == "INFO"
        assert app_config.logging.format == "key-value"

    def test_environment_base_url_overrides_file(self, tmp_path, clean_env):
        clean_env.setenv("GATEWAY_BASE_URL", "https://other.example.com")
        clean_env.setenv("GATEWAY_API_KEY", "  secret  ")

        app_config, env_config = load_config(write_config(tmp_path, VALID_CONFIG))

        assert app_config.gateway.base_url == "https://other.example.com"
        assert env_config.gateway_api_key == "secret"

    def test_config_file_not_found(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(Path("nonexistent.yaml"))

        assert "not found" in str(exc_info.value)

    def test_default_locations(self, tmp_path, clean_env):
        clean_env.chdir(tmp_path)
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "config.yaml").write_text(VALID_CONFIG, encoding="utf-8")

        app_config, _ = load_config()

        assert app_config.jobs.list_limit == 25

    def test_no_config_anywhere(self, tmp_path, clean_env):
        clean_env.chdir(tmp_path)

        with pytest.raises(ConfigurationError) as exc_info:
            load_config()

        assert "Tried" in str(exc_info.value)

    def test_invalid_yaml_syntax(self, tmp_path, clean_env):
        path = write_config(tmp_path, "gateway: [unclosed\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path)

        assert "YAML" in str(exc_info.value)

    def test_root_must_be_mapping(self, tmp_path, clean_env):
        with pytest.raises(ConfigurationError):
            load_config(write_config(tmp_path, "- a\n- b\n"))


class TestConfigurationValidation:
    @pytest.mark.parametrize(
        "content, field",
        [
            ("gateway:\n  timeout_seconds: 0\n", "timeout_seconds"),
            ("gateway:\n  max_retries: -1\n", "max_retries"),
            ("jobs:\n  default_pace_seconds: -5\n", "default_pace_seconds"),
            ("jobs:\n  recovery_interval_seconds: 1\n", "recovery_interval_seconds"),
            ("messaging:\n  default_country_code: 'BR'\n", "default_country_code"),
            ("logging:\n  level: LOUD\n", "level"),
        ],
    )
    def test_invalid_values(self, tmp_path, clean_env, content, field):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(write_config(tmp_path, content))

        assert any(field in error for error in exc_info.value.errors)

    def test_low_pace_warns(self, tmp_path, clean_env):
        content = "gateway:\n  base_url: https://gw\njobs:\n  default_pace_seconds: 1\n"

        with pytest.warns(UserWarning, match="default_pace_seconds"):
            app_config, _ = load_config(write_config(tmp_path, content))

        assert app_config.jobs.default_pace_seconds == 1

    def test_warning_checks(self):
        warnings = check_for_warnings(
            {"gateway": {"base_url": "https://gw", "max_retries": 0}, "jobs": {"default_pace_seconds": 15}}
        )

        assert len(warnings) == 1
        assert "max_retries" in warnings[0]
        assert check_for_warnings({"gateway": {"base_url": "https://gw"}}) == []

    def test_short_lease_warns(self):
        warnings = check_for_warnings(
            {
                "gateway": {"base_url": "https://gw", "timeout_seconds": 30, "max_retries": 3},
                "jobs": {"lease_timeout_seconds": 60},
            }
        )

        assert len(warnings) == 1
        assert "lease_timeout_seconds (60)" in warnings[0]
        assert "126s" in warnings[0]

    def test_lease_default_in_model(self):
        assert AppConfig().jobs.lease_timeout_seconds == 120


class TestEnvironmentVariables:
    def test_all_optional(self, clean_env):
        env_config = load_environment_config()

        assert env_config.gateway_api_key is None
        assert env_config.gateway_base_url is None
        assert env_config.log_level is None
        assert env_config.database_url == DEFAULT_DATABASE_URL

    def test_values_are_read(self, clean_env):
        clean_env.setenv("GATEWAY_API_KEY", "k")
        clean_env.setenv("LOG_LEVEL", "debug")
        clean_env.setenv("DATABASE_URL", "sqlite:///:memory:")

        env_config = load_environment_config()

        assert env_config.gateway_api_key == "k"
        assert env_config.log_level == "DEBUG"
        assert env_config.database_url == "sqlite:///:memory:"

    @pytest.mark.parametrize(
        "name, value, fragment",
        [
            ("GATEWAY_BASE_URL", "gateway.example.com", "GATEWAY_BASE_URL"),
            ("LOG_LEVEL", "VERBOSE", "LOG_LEVEL"),
            ("DATABASE_URL", "   ", "DATABASE_URL"),
        ],
    )
    def test_invalid_values(self, clean_env, name, value, fragment):
        clean_env.setenv(name, value)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert any(fragment in error for error in exc_info.value.errors)

    def test_blank_api_key_is_unset(self, clean_env):
        clean_env.setenv("GATEWAY_API_KEY", "   ")

        assert load_environment_config().gateway_api_key is None
