"""Tests for secpipe configuration loading."""

import pytest

from core.resilience.retry import RetryConfig
from secpipe.config import (
    DimensionOverride,
    DimensionSettings,
    PublisherConfig,
    _deep_merge,
    _expand_env_vars,
    load_config,
    load_yaml,
)

ENV_VARS = [
    "SECPIPE_EVENTHUB_CONNECTION_STRING",
    "SECPIPE_DEFAULT_DESTINATION",
    "SECPIPE_KUSTO_CLUSTER_URL",
    "SECPIPE_DATABASE_NAME_TEMPLATE",
    "SECPIPE_DEFAULT_TABLE_NAME",
    "SECPIPE_MAX_ATTEMPTS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        """
publisher:
  eventhub_connection_string: ${TEST_EH_CONN}
  kusto_cluster_url: ${TEST_KUSTO_URL:-https://fallback.kusto.windows.net}
  default_destination: alerts
  max_attempts: "5"
dimensions:
  default_ttl_seconds: 600
  overrides:
    clusters:
      ttl_seconds: 60
      refresh_interval_seconds: 0
"""
    )
    return path


# =========================================================================
# Helpers
# =========================================================================


class TestHelpers:

    def test_load_yaml_missing_file_returns_empty(self, tmp_path):
        assert load_yaml(tmp_path / "nope.yaml") == {}

    def test_load_yaml_empty_file_returns_empty(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml(path) == {}

    def test_expand_env_vars_substitutes(self, monkeypatch):
        monkeypatch.setenv("SOME_VAR", "value")
        assert _expand_env_vars({"a": ["x-${SOME_VAR}"]}) == {"a": ["x-value"]}

    def test_expand_env_vars_uses_default(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR", raising=False)
        assert _expand_env_vars("${UNSET_VAR:-fallback}") == "fallback"

    def test_expand_env_vars_keeps_unset_reference(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR", raising=False)
        assert _expand_env_vars("${UNSET_VAR}") == "${UNSET_VAR}"

    def test_expand_env_vars_leaves_non_strings(self):
        assert _expand_env_vars(42) == 42

    def test_deep_merge_nested(self):
        base = {"publisher": {"a": 1, "b": 2}, "other": 1}
        overlay = {"publisher": {"b": 3}}
        assert _deep_merge(base, overlay) == {"publisher": {"a": 1, "b": 3}, "other": 1}


# =========================================================================
# PublisherConfig
# =========================================================================


class TestPublisherConfig:

    def test_defaults(self):
        config = PublisherConfig()

        assert config.default_destination == "security-events"
        assert config.database_name_template == "secevents_{}"
        assert config.default_table_name == "SecurityEvents"
        assert config.max_attempts == 3

    def test_coerces_string_values(self):
        config = PublisherConfig(max_attempts="4", retry_base_delay_seconds="0.5")

        assert config.max_attempts == 4
        assert config.retry_base_delay_seconds == 0.5

    def test_retry_config(self):
        retry = PublisherConfig(max_attempts=5, retry_base_delay_seconds=2).retry_config()

        assert isinstance(retry, RetryConfig)
        assert retry.max_attempts == 5
        assert retry.base_delay == 2.0

    def test_validate_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="max_attempts"):
            PublisherConfig(max_attempts=0).validate()

    def test_validate_requires_placeholder(self):
        with pytest.raises(ValueError, match="placeholder"):
            PublisherConfig(database_name_template="events").validate()

    def test_validate_accepts_positional_placeholder(self):
        PublisherConfig(database_name_template="db_{0}").validate()


# =========================================================================
# DimensionSettings
# =========================================================================


class TestDimensionSettings:

    def test_defaults_apply_without_override(self):
        settings = DimensionSettings()

        assert settings.ttl_for("anything") == 900
        assert settings.refresh_interval_for("anything") == 900

    def test_override_wins(self):
        settings = DimensionSettings(
            overrides={"clusters": DimensionOverride(ttl_seconds=30, refresh_interval_seconds=60)}
        )

        assert settings.ttl_for("clusters") == 30
        assert settings.refresh_interval_for("clusters") == 60
        assert settings.ttl_for("other") == 900

    def test_zero_interval_disables_refresh(self):
        settings = DimensionSettings(default_refresh_interval_seconds=0)

        assert settings.refresh_interval_for("clusters") is None

    def test_partial_override_falls_back(self):
        settings = DimensionSettings(
            default_refresh_interval_seconds=120,
            overrides={"clusters": DimensionOverride(ttl_seconds=30)},
        )

        assert settings.refresh_interval_for("clusters") == 120

    def test_from_dict(self):
        settings = DimensionSettings.from_dict(
            {"default_ttl_seconds": "60", "overrides": {"x": {"ttl_seconds": 5}, "y": None}}
        )

        assert settings.default_ttl_seconds == 60.0
        assert settings.overrides["x"].ttl_seconds == 5.0
        assert settings.overrides["y"].ttl_seconds is None


# =========================================================================
# load_config
# =========================================================================


class TestLoadConfig:

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")

        assert config.publisher == PublisherConfig()
        assert config.dimensions.default_ttl_seconds == 900

    def test_loads_file_with_env_expansion(self, config_file, monkeypatch):
        monkeypatch.setenv("TEST_EH_CONN", "Endpoint=sb://ns/")
        monkeypatch.delenv("TEST_KUSTO_URL", raising=False)

        config = load_config(config_file)

        assert config.publisher.eventhub_connection_string == "Endpoint=sb://ns/"
        assert config.publisher.kusto_cluster_url == "https://fallback.kusto.windows.net"
        assert config.publisher.default_destination == "alerts"
        assert config.publisher.max_attempts == 5
        assert config.dimensions.default_ttl_seconds == 600
        assert config.dimensions.ttl_for("clusters") == 60
        assert config.dimensions.refresh_interval_for("clusters") is None

    def test_env_vars_override_file(self, config_file, monkeypatch):
        monkeypatch.setenv("SECPIPE_DEFAULT_DESTINATION", "from-env")
        monkeypatch.setenv("SECPIPE_MAX_ATTEMPTS", "2")

        config = load_config(config_file)

        assert config.publisher.default_destination == "from-env"
        assert config.publisher.max_attempts == 2

    def test_overrides_merge_over_file(self, config_file):
        config = load_config(
            config_file, overrides={"publisher": {"default_table_name": "Alerts"}}
        )

        assert config.publisher.default_table_name == "Alerts"
        assert config.publisher.default_destination == "alerts"

    def test_unknown_publisher_keys_are_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("publisher:\n  not_a_setting: 1\n")

        config = load_config(path)

        assert not hasattr(config.publisher, "not_a_setting")

    def test_invalid_template_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("publisher:\n  database_name_template: fixed\n")

        with pytest.raises(ValueError):
            load_config(path)
