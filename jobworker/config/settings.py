from typing import Literal

from fastapi import Depends
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobworker.core.exceptions import ConfigurationError
from jobworker.jobs.types import JobType


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Job Worker", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Health API
    host: str = Field(default="127.0.0.1", description="Health API host")
    port: int = Field(default=8001, description="Health API port")

    # Database
    database_url: str = Field(..., description="Job store connection URL")
    db_pool_size: int = Field(default=5, ge=1, description="Database connection pool size")
    db_max_overflow: int = Field(default=10, ge=0, description="Database max overflow connections")
    db_pool_timeout: int = Field(default=30, gt=0, description="Database pool timeout in seconds")
    db_pool_recycle: int = Field(default=3600, description="Database connection recycle time in seconds")

    # Downstream services
    functions_base_url: str = Field(..., description="Base URL of the downstream functions")
    service_role_key: str = Field(
        ..., min_length=1, description="Service credential sent to downstream functions"
    )
    downstream_timeout_s: float = Field(
        default=30.0, gt=0, description="Default timeout for a downstream call"
    )
    downstream_timeouts: dict[str, float] = Field(
        default_factory=dict, description="Per job type downstream timeout overrides"
    )

    # Worker
    worker_poll_interval_ms: int = Field(default=5000, gt=0, description="Delay between polls")
    worker_batch_size: int = Field(default=5, gt=0, description="Jobs claimed per poll")
    worker_max_retries: int = Field(default=3, gt=0, description="Attempts before a job fails")
    worker_retry_backoff_base_ms: int = Field(
        default=0, ge=0, description="Retry backoff base, 0 retries immediately"
    )
    worker_retry_max_backoff_s: float = Field(
        default=300.0, gt=0, description="Upper bound for a retry delay"
    )
    worker_retry_jitter: float = Field(
        default=0.25, ge=0, le=1, description="Relative jitter applied to retry delays"
    )
    worker_stale_after_s: int | None = Field(
        default=None, gt=0, description="Recover running jobs older than this"
    )

    @field_validator("functions_base_url")
    @classmethod
    def normalize_functions_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("functions_base_url must be an http(s) URL")
        return value

    @field_validator("downstream_timeouts")
    @classmethod
    def check_timeout_overrides(cls, value: dict[str, float]) -> dict[str, float]:
        known = {job_type.value for job_type in JobType}
        for name, timeout in value.items():
            if name not in known:
                raise ValueError(f"Unknown job type in downstream_timeouts: {name}")
            if timeout <= 0:
                raise ValueError(f"Timeout for {name} must be positive, got: {timeout}")
        return value

    @property
    def poll_interval_s(self) -> float:
        return self.worker_poll_interval_ms / 1000

    def timeout_for(self, job_type: JobType) -> float:
        """Downstream timeout for a job type, falling back to the default."""
        return self.downstream_timeouts.get(job_type.value, self.downstream_timeout_s)


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, failing fast on bad values."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in error['loc']) or 'settings'}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigurationError(
            "Invalid worker configuration", details={"errors": problems}
        ) from e


# Global settings instance, created on first use
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


# Convenience type alias for dependency injection
SettingsDep = Depends(get_settings)
