"""Settings for the study squad engine with observability configuration."""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("studysquad", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")

    # Pomodoro session length; reset always returns the timer here
    session_length_seconds: int = _env_field(25 * 60, "SESSION_LENGTH_SECONDS")
    tick_interval_seconds: float = _env_field(1.0, "TICK_INTERVAL_SECONDS")
    join_code_length: int = _env_field(6, "JOIN_CODE_LENGTH")
    join_code_max_attempts: int = _env_field(32, "JOIN_CODE_MAX_ATTEMPTS")

    # Snapshot persistence: none | file | redis
    snapshot_backend: str = _env_field("none", "SNAPSHOT_BACKEND")
    snapshot_path: str = _env_field("var/squads.json", "SNAPSHOT_PATH")
    snapshot_redis_key: str = _env_field("studysquad:snapshot", "SNAPSHOT_REDIS_KEY")
    snapshot_on_write: bool = _env_field(True, "SNAPSHOT_ON_WRITE")
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")

    seed_demo_squads: bool = _env_field(False, "SEED_DEMO_SQUADS")
    content_transform: str = _env_field("base64", "CONTENT_TRANSFORM")
    # Identity is resolved upstream; the gateway forwards it as X-User-* headers
    trust_identity_headers: bool = _env_field(True, "TRUST_IDENTITY_HEADERS")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("snapshot_backend", "content_transform", mode="before")
    def _lower(cls, value):  # type: ignore[override]
        if value in (None, ""):
            return value
        return str(value).strip().lower()


def _normalise_level(level: str) -> str:
    return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)
