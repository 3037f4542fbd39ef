from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    rate_limit_enabled: bool
    rate_limit: str
    analyze_rate_limit: str
    bulk_rate_limit: str
    keys_rate_limit: str
    admin_login_rate_limit: str
    data_dir: Path
    max_upload_bytes: int
    max_bulk_files: int
    max_batch_bytes: int
    openai_api_key: str | None
    openai_model: str
    openai_base_url: str | None
    llm_enabled: bool
    llm_timeout_s: float
    openai_max_retries: int
    redis_url: str | None
    cache_max_entries: int
    analytics_flush_interval_s: int
    analytics_retention_days: int
    usage_log_max_bytes: int
    analyze_concurrency: int
    bulk_concurrency: int
    job_attempts: int
    job_backoff_s: float
    job_completed_retention_s: int
    job_failed_retention_s: int
    job_stalled_after_s: int
    job_poll_interval_s: float
    admin_username: str
    admin_password: str | None
    admin_token_secret: str
    admin_token_ttl_hours: int
    backup_retention: int
    inactive_key_retention_days: int

    @property
    def config_dir(self) -> Path:
        return self.data_dir / "config"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def backups_dir(self) -> Path:
        return self.data_dir / "backups"

    @property
    def upload_dir(self) -> Path:
        return self.data_dir / "uploads"


def load_settings() -> Settings:
    return Settings(
        log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
        sentry_dsn=_get_env("SENTRY_DSN"),
        cors_allowed_origins=_get_env_list("CORS_ALLOWED_ORIGINS", [_get_env("CLIENT_URL", "http://localhost:3000")]),
        rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
        rate_limit=_get_env("RATE_LIMIT", "100/15 minutes") or "100/15 minutes",
        analyze_rate_limit=_get_env("ANALYZE_RATE_LIMIT", "5/15 minutes") or "5/15 minutes",
        bulk_rate_limit=_get_env("BULK_RATE_LIMIT", "2/hour") or "2/hour",
        keys_rate_limit=_get_env("KEYS_RATE_LIMIT", "20/15 minutes") or "20/15 minutes",
        admin_login_rate_limit=_get_env("ADMIN_LOGIN_RATE_LIMIT", "10/15 minutes") or "10/15 minutes",
        data_dir=Path(_get_env("DATA_DIR", "data") or "data"),
        max_upload_bytes=_get_env_int("MAX_UPLOAD_BYTES", 5 * 1024 * 1024),
        max_bulk_files=_get_env_int("MAX_BULK_FILES", 10),
        max_batch_bytes=_get_env_int("MAX_BATCH_BYTES", 50 * 1024 * 1024),
        openai_api_key=_get_env("OPENAI_API_KEY"),
        openai_model=_get_env("OPENAI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
        openai_base_url=_get_env("OPENAI_BASE_URL"),
        llm_enabled=_get_env_bool("LLM_ENABLED", True),
        llm_timeout_s=_get_env_float("LLM_TIMEOUT_S", 30.0),
        openai_max_retries=_get_env_int("OPENAI_MAX_RETRIES", 2),
        redis_url=_get_env("REDIS_URL"),
        cache_max_entries=_get_env_int("CACHE_MAX_ENTRIES", 1000),
        analytics_flush_interval_s=_get_env_int("ANALYTICS_FLUSH_INTERVAL_S", 300),
        analytics_retention_days=_get_env_int("ANALYTICS_RETENTION_DAYS", 90),
        usage_log_max_bytes=_get_env_int("USAGE_LOG_MAX_BYTES", 10 * 1024 * 1024),
        analyze_concurrency=_get_env_int("ANALYZE_CONCURRENCY", 5),
        bulk_concurrency=_get_env_int("BULK_CONCURRENCY", 2),
        job_attempts=_get_env_int("JOB_ATTEMPTS", 3),
        job_backoff_s=_get_env_float("JOB_BACKOFF_S", 2.0),
        job_completed_retention_s=_get_env_int("JOB_COMPLETED_RETENTION_S", 24 * 3600),
        job_failed_retention_s=_get_env_int("JOB_FAILED_RETENTION_S", 7 * 24 * 3600),
        job_stalled_after_s=_get_env_int("JOB_STALLED_AFTER_S", 600),
        job_poll_interval_s=_get_env_float("JOB_POLL_INTERVAL_S", 0.5),
        admin_username=_get_env("ADMIN_USERNAME", "admin") or "admin",
        admin_password=_get_env("ADMIN_PASSWORD"),
        admin_token_secret=_get_env("ADMIN_TOKEN_SECRET") or secrets.token_urlsafe(32),
        admin_token_ttl_hours=_get_env_int("ADMIN_TOKEN_TTL_HOURS", 12),
        backup_retention=_get_env_int("BACKUP_RETENTION", 10),
        inactive_key_retention_days=_get_env_int("INACTIVE_KEY_RETENTION_DAYS", 180),
    )


settings = load_settings()
