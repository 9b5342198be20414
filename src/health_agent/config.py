"""Configuration management using pydantic-settings."""

import threading

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Valid health data source kinds
VALID_SOURCE_KINDS = {"influxdb", "export"}


class SourceSettings(BaseSettings):
    """Health data source selection."""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    kind: str = Field(default="influxdb", description="Data source: influxdb or export")
    export_path: str | None = Field(
        default=None, description="Path to a Health Auto Export JSON file"
    )

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        """Validate source kind is known."""
        normalized = v.lower()
        if normalized not in VALID_SOURCE_KINDS:
            kinds = ", ".join(sorted(VALID_SOURCE_KINDS))
            raise ValueError(f"Invalid source kind '{v}'. Must be one of: {kinds}")
        return normalized


class InfluxDBSettings(BaseSettings):
    """InfluxDB connection settings."""

    model_config = SettingsConfigDict(env_prefix="INFLUXDB_")

    url: str = Field(default="http://influxdb:8086", description="InfluxDB URL")
    token: str | None = Field(default=None, description="InfluxDB API token")
    org: str = Field(default="health", description="InfluxDB organization")
    bucket: str = Field(default="apple_health", description="InfluxDB bucket")

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str | None) -> str | None:
        """Validate token is not blank when given."""
        if v is not None and not v.strip():
            raise ValueError("InfluxDB token cannot be empty")
        return v


class AggregationSettings(BaseSettings):
    """Health summary aggregation settings."""

    model_config = SettingsConfigDict(env_prefix="AGGREGATION_")

    window_months: int = Field(default=18, description="Trailing query window in months")
    sample_limit: int = Field(default=550, description="Maximum samples per metric")
    day_format: str = Field(
        default="%x", description="strftime format for daily calorie dates"
    )

    @field_validator("window_months")
    @classmethod
    def validate_window_months(cls, v: int) -> int:
        """Validate the window covers at least one month."""
        if v < 1:
            raise ValueError(f"Window must be at least 1 month, got {v}")
        return v

    @field_validator("sample_limit")
    @classmethod
    def validate_sample_limit(cls, v: int) -> int:
        """Validate sample limit is reasonable."""
        if v < 1:
            raise ValueError(f"Sample limit must be at least 1, got {v}")
        if v > 10000:
            raise ValueError(f"Sample limit too large (max 10000), got {v}")
        return v


class CompletionSettings(BaseSettings):
    """Remote chat completion endpoint settings."""

    model_config = SettingsConfigDict(env_prefix="COMPLETION_")

    endpoint_url: str | None = Field(default=None, description="Chat completions URL")
    api_key: str | None = Field(default=None, description="API key for the endpoint")
    api_key_header: str = Field(default="api-key", description="Header carrying the API key")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    timeout_seconds: float | None = Field(
        default=None, description="Request timeout; unset waits indefinitely"
    )
    system_prompt: str | None = Field(
        default=None, description="Override for the bundled assistant persona"
    )

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature is in the accepted range."""
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"Temperature must be between 0 and 2, got {v}")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        """Validate timeout is positive when set."""
        if v is not None and v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v


class TracingSettings(BaseSettings):
    """OpenTelemetry tracing settings."""

    model_config = SettingsConfigDict(env_prefix="TRACING_")

    enabled: bool = Field(default=False, description="Enable OTLP trace export")
    service_name: str = Field(default="health-agent", description="Reported service name")


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: json or console")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        normalized = v.upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )
        return normalized

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        normalized = v.lower()
        if normalized not in ("json", "console"):
            raise ValueError(f"Invalid log format '{v}'. Must be 'json' or 'console'")
        return normalized


class Settings(BaseSettings):
    """Combined application settings."""

    source: SourceSettings = Field(default_factory=SourceSettings)
    influxdb: InfluxDBSettings = Field(default_factory=InfluxDBSettings)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)
    completion: CompletionSettings = Field(default_factory=CompletionSettings)
    tracing: TracingSettings = Field(default_factory=TracingSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            source=SourceSettings(),
            influxdb=InfluxDBSettings(),
            aggregation=AggregationSettings(),
            completion=CompletionSettings(),
            tracing=TracingSettings(),
            app=AppSettings(),
        )


# Global settings instance with thread-safe initialization
_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get or create the global settings instance.

    Thread-safe singleton pattern using double-checked locking.
    """
    global _settings
    if _settings is None:
        with _settings_lock:
            # Double-check after acquiring lock
            if _settings is None:
                _settings = Settings.load()
    return _settings
