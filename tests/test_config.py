"""Tests for configuration validation."""

import pytest

from health_agent.config import (
    VALID_LOG_LEVELS,
    AggregationSettings,
    AppSettings,
    CompletionSettings,
    InfluxDBSettings,
    SourceSettings,
)


def test_influxdb_token_validation():
    """InfluxDB token must be non-blank when given."""
    with pytest.raises(ValueError, match="InfluxDB token cannot be empty"):
        InfluxDBSettings(token="  ")

    assert InfluxDBSettings(_env_file=None, token=None).token is None


def test_aggregation_defaults():
    settings = AggregationSettings(_env_file=None)

    assert settings.window_months == 18
    assert settings.sample_limit == 550
    assert settings.day_format == "%x"


def test_aggregation_validation():
    with pytest.raises(ValueError, match="Window must be at least 1 month"):
        AggregationSettings(window_months=0)

    with pytest.raises(ValueError, match="Sample limit must be at least 1"):
        AggregationSettings(sample_limit=0)

    with pytest.raises(ValueError, match="Sample limit too large"):
        AggregationSettings(sample_limit=50_000)


def test_completion_defaults():
    settings = CompletionSettings(_env_file=None)

    assert settings.temperature == 0.7
    assert settings.api_key_header == "api-key"
    assert settings.timeout_seconds is None


def test_completion_validation():
    with pytest.raises(ValueError, match="Temperature must be between 0 and 2"):
        CompletionSettings(temperature=3.0)

    with pytest.raises(ValueError, match="Timeout must be positive"):
        CompletionSettings(timeout_seconds=0)


def test_source_kind_normalizes():
    assert SourceSettings(kind="Export").kind == "export"

    with pytest.raises(ValueError, match="Invalid source kind"):
        SourceSettings(kind="healthkit")


def test_app_settings_normalize_log_fields():
    """App settings normalize log format and log level."""
    settings = AppSettings(log_level="debug", log_format="JSON")

    assert settings.log_level == "DEBUG"
    assert settings.log_format == "json"
    assert settings.log_level in VALID_LOG_LEVELS


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("COMPLETION_ENDPOINT_URL", "https://example.test/chat")
    monkeypatch.setenv("AGGREGATION_SAMPLE_LIMIT", "100")

    assert CompletionSettings().endpoint_url == "https://example.test/chat"
    assert AggregationSettings().sample_limit == 100
