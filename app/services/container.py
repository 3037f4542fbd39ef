from __future__ import annotations

from dataclasses import dataclass

from app.core.config import Settings
from app.core.storage import JsonFileStore, JsonLinesLog
from app.services.admin import AdminService
from app.services.api_keys import ApiKeyManager
from app.services.cache import CacheService
from app.services.job_queue import JobQueue, MemoryJobBackend, RedisJobBackend
from app.services.pipeline import ResumePipeline
from app.services.resume_analyzer import ResumeAnalyzer
from app.services.usage_tracker import UsageTracker


@dataclass
class Services:
    settings: Settings
    api_keys: ApiKeyManager
    usage_tracker: UsageTracker
    cache: CacheService
    analyzer: ResumeAnalyzer
    pipeline: ResumePipeline
    job_queue: JobQueue
    admin: AdminService


def build_services(settings: Settings) -> Services:
    """Wire every service against the directories under settings.data_dir."""
    for directory in (settings.config_dir, settings.logs_dir, settings.backups_dir, settings.upload_dir):
        directory.mkdir(parents=True, exist_ok=True)

    config_store = JsonFileStore(settings.config_dir)
    usage_tracker = UsageTracker(
        JsonFileStore(settings.logs_dir),
        JsonLinesLog(settings.logs_dir / "usage.log"),
        retention_days=settings.analytics_retention_days,
        log_max_bytes=settings.usage_log_max_bytes,
    )
    api_keys = ApiKeyManager(config_store)
    cache = CacheService(
        max_entries=settings.cache_max_entries,
        redis_url=settings.redis_url,
        usage_tracker=usage_tracker,
    )
    analyzer = ResumeAnalyzer(settings)
    pipeline = ResumePipeline(analyzer, cache, usage_tracker)
    if settings.redis_url:
        job_backend = RedisJobBackend(settings.redis_url)
    else:
        job_backend = MemoryJobBackend()
    job_queue = JobQueue(
        job_backend,
        attempts=settings.job_attempts,
        backoff_s=settings.job_backoff_s,
        completed_retention_s=settings.job_completed_retention_s,
        failed_retention_s=settings.job_failed_retention_s,
        stalled_after_s=settings.job_stalled_after_s,
        poll_interval_s=settings.job_poll_interval_s,
    )
    pipeline.register_jobs(
        job_queue,
        analyze_concurrency=settings.analyze_concurrency,
        bulk_concurrency=settings.bulk_concurrency,
    )
    admin = AdminService(config_store, settings, api_keys, usage_tracker)
    return Services(
        settings=settings,
        api_keys=api_keys,
        usage_tracker=usage_tracker,
        cache=cache,
        analyzer=analyzer,
        pipeline=pipeline,
        job_queue=job_queue,
        admin=admin,
    )
