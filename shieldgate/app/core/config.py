from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Core stores never read this object; the factories in ``main`` translate it
    into constructor arguments.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Database settings (durable rate-limit and suspicion stores)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./shieldgate.db",
        validation_alias="DATABASE_URL",
    )

    # Connection pool settings (ignored for SQLite)
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30  # Seconds to wait for a pooled connection
    db_pool_recycle: int = 300  # Recycle every 5 minutes
    db_pool_pre_ping: bool = True
    db_command_timeout: float = 30.0  # asyncpg per-command timeout in seconds

    # SQLite busy timeout, how long a writer waits for the database lock
    db_sqlite_busy_timeout: float = 5.0

    # Redis settings (suspicion store)
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "shield:"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Client identification
    trust_forwarded_for: bool = True

    # Rate limiting settings
    rate_limit_enabled: bool = True
    rate_limit_backend: Literal["memory", "database"] = "memory"
    rate_limit_algorithm: Literal["token_bucket", "leaky_bucket"] = "token_bucket"
    rate_limit_max_tokens: int = 10
    rate_limit_refill_rate: float = 1.0  # Units restored per second
    rate_limit_window_ms: int | None = None  # Leaky bucket: time to drain a full bucket
    rate_limit_include_headers: bool = True
    rate_limit_fail_closed: bool = (
        False  # If True, deny requests when the store is unavailable
    )

    # Shield (suspicion scoring) settings
    shield_enabled: bool = True
    shield_backend: Literal["memory", "redis", "database"] = "memory"
    shield_message: str = "Access denied due to suspicious activity."
    shield_suspicion_threshold: int = 5
    shield_block_duration_ms: int = 60_000
    shield_score_ttl_ms: int = 60_000
    shield_sweep_interval_seconds: float = 60.0
    shield_cas_max_retries: int = 3
    shield_fail_closed: bool = False
    shield_xss: bool = True
    shield_sql_injection: bool = True
    shield_lfi: bool = True
    shield_rfi: bool = True
    shield_shell_injection: bool = True

    @field_validator("rate_limit_max_tokens", "shield_suspicion_threshold")
    @classmethod
    def validate_positive_count(cls, v: int) -> int:
        """Validate capacity and threshold values are positive."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("rate_limit_refill_rate", "shield_sweep_interval_seconds")
    @classmethod
    def validate_positive_rate(cls, v: float) -> float:
        """Validate rates and intervals are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("rate_limit_window_ms")
    @classmethod
    def validate_window(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("rate_limit_window_ms must be at least 1")
        return v

    @field_validator(
        "shield_block_duration_ms",
        "shield_score_ttl_ms",
        "shield_cas_max_retries",
        "db_pool_size",
    )
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
