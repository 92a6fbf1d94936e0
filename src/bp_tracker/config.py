"""Configuration management using pydantic-settings."""

import threading
import warnings
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _validate_timezone_name(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone '{name}'") from e
    return name


class StorageSettings(BaseSettings):
    """SQLite reading store settings."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = Field(default="/data/bp_tracker.db", description="SQLite database file")
    timeout_seconds: float = Field(default=5.0, description="SQLite busy timeout in seconds")
    max_retries: int = Field(default=3, description="Attempts for transient storage errors")
    retry_delay_seconds: float = Field(default=0.1, description="Initial retry backoff")

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate at least one attempt is made."""
        if v < 1:
            raise ValueError(f"Max retries must be at least 1, got {v}")
        return v

    @field_validator("timeout_seconds", "retry_delay_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Validate durations are not negative."""
        if v < 0:
            raise ValueError(f"Duration must not be negative, got {v}")
        return v


class HTTPSettings(BaseSettings):
    """HTTP API settings."""

    model_config = SettingsConfigDict(env_prefix="HTTP_")

    enabled: bool = Field(default=True, description="Serve the HTTP API")
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Bind port")
    auth_token: str = Field(default="", description="Bearer token for API requests")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {v}")
        return v

    @model_validator(mode="after")
    def warn_on_missing_token(self) -> "HTTPSettings":
        """Warn when the API is exposed without authentication."""
        if self.enabled and not self.auth_token:
            warnings.warn(
                "HTTP_AUTH_TOKEN is empty; the HTTP API accepts unauthenticated requests",
                UserWarning,
                stacklevel=2,
            )
        return self


class BotSettings(BaseSettings):
    """Chat bot command settings."""

    model_config = SettingsConfigDict(env_prefix="BOT_")

    enabled: bool = Field(default=True, description="Accept bot commands")
    webhook_token: str = Field(default="", description="Bearer token for bot endpoints")
    response_timeout_seconds: float = Field(default=15.0, description="Command timeout")
    default_timezone: str = Field(
        default="America/Los_Angeles", description="Timezone for users without an override"
    )
    user_timezones: dict[str, str] = Field(
        default_factory=dict, description="Per-user IANA timezone overrides"
    )
    reply_url: str = Field(default="", description="Chat gateway endpoint for webhook replies")
    reply_token: str = Field(default="", description="Bearer token for the chat gateway")
    trend_default_days: int = Field(default=7, description="Default /bptrend daily buckets")
    trend_default_weeks: int = Field(default=4, description="Default /bptrend weekly buckets")
    trend_default_months: int = Field(default=6, description="Default /bptrend monthly buckets")

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, v: str) -> str:
        """Validate the default timezone is a known IANA name."""
        return _validate_timezone_name(v)

    @field_validator("user_timezones")
    @classmethod
    def validate_user_timezones(cls, v: dict[str, str]) -> dict[str, str]:
        """Validate every override is a known IANA name."""
        for name in v.values():
            _validate_timezone_name(name)
        return v

    @field_validator("response_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError(f"Response timeout must be positive, got {v}")
        return v

    @field_validator("trend_default_days", "trend_default_weeks", "trend_default_months")
    @classmethod
    def validate_trend_defaults(cls, v: int) -> int:
        """Validate trend defaults cover at least one bucket."""
        if v < 1:
            raise ValueError(f"Trend default must be at least 1, got {v}")
        return v

    def timezone_for(self, user_id: str) -> str:
        """Return the configured timezone for a user."""
        return self.user_timezones.get(str(user_id), self.default_timezone)


class TracingSettings(BaseSettings):
    """OpenTelemetry tracing settings."""

    model_config = SettingsConfigDict(env_prefix="TRACING_")

    enabled: bool = Field(default=False, description="Export traces via OTLP")
    service_name: str = Field(default="bp-tracker", description="Reported service name")


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")
    metrics_port: int = Field(default=0, description="Standalone Prometheus port (0 disables)")

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

    @field_validator("metrics_port")
    @classmethod
    def validate_metrics_port(cls, v: int) -> int:
        """Validate metrics port is disabled or in valid range."""
        if v != 0 and not 1 <= v <= 65535:
            raise ValueError(f"Metrics port must be 0 or between 1 and 65535, got {v}")
        return v


class Settings(BaseSettings):
    """Combined application settings."""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    bot: BotSettings = Field(default_factory=BotSettings)
    tracing: TracingSettings = Field(default_factory=TracingSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            storage=StorageSettings(),
            http=HTTPSettings(),
            bot=BotSettings(),
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
