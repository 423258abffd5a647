from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8")

    database_url: str

    # Auth (tokens are issued by the external auth service; we only verify them)
    jwt_secret_key: str = Field(
        validation_alias=AliasChoices("jwt_secret_key", "jwt_secret", "JWT_SECRET_KEY", "JWT_SECRET")
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias=AliasChoices("jwt_algorithm", "JWT_ALGORITHM"))
    access_token_expire_minutes: int = Field(
        default=480,
        validation_alias=AliasChoices("access_token_expire_minutes", "ACCESS_TOKEN_EXPIRE_MINUTES"),
    )

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    frontend_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )

    # Background jobs
    celery_broker_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("celery_broker_url", "CELERY_BROKER_URL"),
    )
    celery_result_backend: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("celery_result_backend", "CELERY_RESULT_BACKEND"),
    )
    celery_task_always_eager: bool = Field(
        default=False,
        validation_alias=AliasChoices("celery_task_always_eager", "CELERY_TASK_ALWAYS_EAGER"),
    )

    # Allocation engine tuning
    # Cohorts strictly larger than this run in the background when the caller doesn't choose.
    async_student_threshold: int = Field(
        default=500,
        ge=0,
        validation_alias=AliasChoices("async_student_threshold", "ASYNC_STUDENT_THRESHOLD"),
    )
    conflict_repair_budget: int = Field(
        default=1000,
        ge=0,
        validation_alias=AliasChoices("conflict_repair_budget", "CONFLICT_REPAIR_BUDGET"),
    )
    job_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        validation_alias=AliasChoices("job_timeout_seconds", "JOB_TIMEOUT_SECONDS"),
    )
    stale_queued_seconds: int = Field(
        default=300,
        ge=0,
        validation_alias=AliasChoices("stale_queued_seconds", "STALE_QUEUED_SECONDS"),
    )
    # Overrides the level of the placement and job loggers, e.g. DEBUG in production
    # to trace one troublesome exam.
    seating_log_level: str | None = Field(
        default=None,
        validation_alias=AliasChoices("seating_log_level", "SEATING_LOG_LEVEL"),
    )

    @field_validator("frontend_origin")
    @classmethod
    def _normalize_frontend_origin(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return v.strip().rstrip("/")

    @field_validator("jwt_algorithm")
    @classmethod
    def _normalize_jwt_algorithm(cls, v: str) -> str:
        return (v or "HS256").strip().upper()

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()


settings = Settings()
