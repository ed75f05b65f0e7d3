# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

Settings are read from environment variables (and ``.env``), grouped by
prefix: ``DB_``, ``REDIS_``, ``WORKER_`` and ``PROGRESS_``. Settings
aggregates the groups; get_settings() returns a cached instance.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.progress.due_batch_size
    20
"""

from functools import lru_cache
from typing import Literal
from urllib.parse import quote

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import URL


class DatabaseSettings(BaseSettings):
    """School database connection.

    The school database holds students, enrollments, daily activity
    records and every derived progress table.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Connection pool size of the application process.
        max_overflow: Connections allowed beyond pool_size.
        echo: Log every SQL statement.
    """

    model_config = SettingsConfigDict(env_prefix="DB_", extra="ignore")

    user: str = "progress"
    password: SecretStr = SecretStr("progress_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "school"
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    def _url(self, drivername: str) -> str:
        return URL.create(
            drivername,
            username=self.user,
            password=self.password.get_secret_value(),
            host=self.host,
            port=self.port,
            database=self.database,
        ).render_as_string(hide_password=False)

    @property
    def url(self) -> str:
        """asyncpg URL used by the application and the workers."""
        return self._url("postgresql+asyncpg")

    @property
    def sync_url(self) -> str:
        """Driver-less URL for tools that connect synchronously."""
        return self._url("postgresql")


class RedisSettings(BaseSettings):
    """Redis used for caching, alert publishing and the Dramatiq broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password, empty for none.
        database: Redis database number.
        max_connections: Connection pool size per client.
    """

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = "localhost"
    port: int = 6379
    password: SecretStr = SecretStr("")
    database: int = 0
    max_connections: int = 50

    @property
    def url(self) -> str:
        auth = ""
        if pwd := self.password.get_secret_value():
            auth = f":{quote(pwd, safe='')}@"
        return f"redis://{auth}{self.host}:{self.port}/{self.database}"


class WorkerSettings(BaseSettings):
    """Dramatiq worker resources.

    Every worker thread owns its own database engine, so these pool
    sizes apply per thread. pool plus overflow should cover the largest
    batch size, otherwise a batch waits for connections.

    Attributes:
        db_pool_size: Pooled connections per worker thread.
        db_max_overflow: Extra connections per worker thread.
    """

    model_config = SettingsConfigDict(env_prefix="WORKER_", extra="ignore")

    db_pool_size: int = 5
    db_max_overflow: int = 15


class ProgressSettings(BaseSettings):
    """Progress pipeline tuning.

    Batch sizes and delays bound the load a single run puts on the
    database. They do not affect computed values.

    Attributes:
        weeks_history: Weekly records used for a snapshot.
        recent_activity_days: Daily records window used for streaks.
        recalculation_interval_hours: Hours until a snapshot is due again.
        alert_cooldown_hours: Minimum hours between two risk alerts.
        due_batch_size: Concurrency of the due-recomputation run.
        due_batch_delay_ms: Pause between due-run batches.
        full_batch_size: Concurrency of the full-refresh run.
        full_batch_delay_ms: Pause after each full-refresh batch.
        snapshot_cache_ttl: Cached snapshot lifetime in seconds.
        weekly_cache_ttl: Cached weekly progress lifetime in seconds.
        academic_config_cache_ttl: Cached academic configuration lifetime.
        eligible_student_types: Student types that get snapshots.
        default_weekend_days: Weekend used when no configuration is active.
        scheduler_timezone: Timezone of the cron schedules.
    """

    model_config = SettingsConfigDict(env_prefix="PROGRESS_", extra="ignore")

    weeks_history: int = 8
    recent_activity_days: int = 30
    recalculation_interval_hours: int = 24
    alert_cooldown_hours: int = 24
    due_batch_size: int = Field(default=20, ge=1)
    due_batch_delay_ms: int = Field(default=200, ge=0)
    full_batch_size: int = Field(default=10, ge=1)
    full_batch_delay_ms: int = Field(default=300, ge=0)
    snapshot_cache_ttl: int = 300
    weekly_cache_ttl: int = 600
    academic_config_cache_ttl: int = 3600
    eligible_student_types: list[str] = ["REGULAR", "REGULAR_HIFZ"]
    default_weekend_days: list[str] = ["SATURDAY", "SUNDAY"]
    scheduler_timezone: str = "UTC"


class Settings(BaseSettings):
    """All settings of the progress pipeline.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        db: Database settings.
        redis: Redis settings.
        worker: Background worker settings.
        progress: Progress pipeline settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    progress: ProgressSettings = Field(default_factory=ProgressSettings)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings loaded once per process; see clear_settings_cache()."""
    return Settings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next call rereads the environment."""
    get_settings.cache_clear()
