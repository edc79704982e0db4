"""
Service configuration from environment variables using Pydantic BaseSettings.

All configuration values are loaded from environment variables at startup.
No hardcoded hosts, URLs, or credentials.

CHANGELOG:
- 2026-10-09: Add AGGREGATION_MAX_CONCURRENCY and LOG_LEVEL (STORY-024)
- 2026-10-06: Add TIMEZONE, aggregation job settings (STORY-021)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

from datetime import UTC, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


def resolve_timezone(name: str) -> tzinfo:
    """Resolve an IANA timezone name to a tzinfo.

    ``UTC`` short-circuits to :data:`datetime.UTC` so hosts without a tz
    database still work with the default configuration.

    Raises:
        ValueError: If the name is not a known timezone.
    """
    if name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        DATABASE_URL: PostgreSQL connection string (asyncpg).
        REDIS_URL: Redis connection string.
        CACHE_TTL_S: TTL in seconds for cached aggregated query results.
        TIMEZONE: IANA timezone used for day boundaries, labels and pricing.
        AGGREGATION_JOB_ENABLED: When false, scheduled job runs are no-ops.
        AGGREGATION_INTERVAL_S: Seconds between scheduled job runs.
        AGGREGATION_MAX_CONCURRENCY: Minute buckets aggregated in parallel.
        LOG_LEVEL: Root log level name.
    """

    DATABASE_URL: str
    REDIS_URL: str
    CACHE_TTL_S: int = 300
    TIMEZONE: str = "UTC"
    AGGREGATION_JOB_ENABLED: bool = True
    AGGREGATION_INTERVAL_S: int = 60
    AGGREGATION_MAX_CONCURRENCY: int = 1
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("TIMEZONE")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate that TIMEZONE names a known IANA zone."""
        resolve_timezone(v)
        return v

    @field_validator(
        "CACHE_TTL_S", "AGGREGATION_INTERVAL_S", "AGGREGATION_MAX_CONCURRENCY",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Validate that intervals, TTLs and concurrency are >= 1."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @property
    def tz(self) -> tzinfo:
        """The configured local timezone as a tzinfo object."""
        return resolve_timezone(self.TIMEZONE)


def get_settings() -> Settings:
    """Create and return a Settings instance.

    Returns:
        Settings: Validated configuration from environment variables.
    """
    return Settings()
