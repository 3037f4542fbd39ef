from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any

from app.core.numbers import round_half_up
from app.features.ats_checker import check_ats_compatibility
from app.features.industry import analyze_industry_fit, detect_industry
from app.schemas.analysis import AnalysisResult
from app.services.cache import CacheService
from app.services.job_queue import Job, JobQueue
from app.services.resume_analyzer import ResumeAnalyzer
from app.services.usage_tracker import UsageTracker

logger = logging.getLogger(__name__)

ANALYZE_JOB = "analyze"
BULK_ANALYZE_JOB = "bulk-analyze"
SECONDS_PER_FILE_ESTIMATE = 30


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    def to_payload(self) -> dict[str, str]:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "content": base64.b64encode(self.content).decode("ascii"),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, str]) -> "UploadedFile":
        return cls(payload["filename"], payload["content_type"], base64.b64decode(payload["content"]))


class ResumePipeline:
    """Extraction, caching and scoring for one resume at a time.

    Shared by the synchronous analyze route and the background job handlers
    so both paths hit the same cache entries.
    """

    def __init__(self, analyzer: ResumeAnalyzer, cache: CacheService, usage_tracker: UsageTracker | None = None):
        self.analyzer = analyzer
        self.cache = cache
        self.usage_tracker = usage_tracker
        self._queue: JobQueue | None = None

    async def analyze(self, upload: UploadedFile) -> AnalysisResult:
        text = await asyncio.to_thread(self.analyzer.extract, upload.content, upload.content_type)

        cached = await self.cache.get_cached_analysis(text)
        if cached is not None:
            logger.info("analysis_cache_hit filename=%s", upload.filename)
            return cached

        fit = await self.cache.get_cached_industry(text)
        if fit is None:
            fit = await asyncio.to_thread(lambda: analyze_industry_fit(text, detect_industry(text)))
            await self.cache.cache_industry(text, fit)

        report = await self.cache.get_cached_ats(text)
        if report is None:
            report = await asyncio.to_thread(check_ats_compatibility, text)
            await self.cache.cache_ats(text, report)

        analysis = await asyncio.to_thread(
            self.analyzer.analyze_text, text, industry_fit=fit, ats_report=report
        )
        await self.cache.cache_analysis(text, analysis)
        return analysis

    async def _progress(self, job: Job, progress: int) -> None:
        if self._queue is not None:
            await self._queue.update_progress(job, progress)
        else:
            job.progress = progress

    async def run_analysis_job(self, job: Job) -> dict[str, Any]:
        upload = UploadedFile.from_payload(job.data["file"])
        await self._progress(job, 10)
        analysis = await self.analyze(upload)
        return {"success": True, "filename": upload.filename, "analysis": analysis.to_api()}

    async def run_bulk_job(self, job: Job) -> dict[str, Any]:
        files = [UploadedFile.from_payload(item) for item in job.data["files"]]
        total = len(files)
        results: list[dict[str, Any]] = []
        for index, upload in enumerate(files):
            try:
                analysis = await self.analyze(upload)
            except Exception as exc:
                logger.warning("bulk_file_failed job=%s filename=%s: %s", job.id, upload.filename, exc)
                if self.usage_tracker is not None:
                    self.usage_tracker.log_usage(
                        "analysis_failure",
                        error_type=getattr(exc, "code", type(exc).__name__),
                        filename=upload.filename,
                    )
                results.append({"filename": upload.filename, "success": False, "error": str(exc) or type(exc).__name__})
            else:
                if self.usage_tracker is not None:
                    self.usage_tracker.log_usage(
                        "analysis_success",
                        industry=analysis.industry_analysis.detected_industry,
                        ats_score=analysis.ats_compatibility.score,
                        file_size=upload.size,
                    )
                results.append({"filename": upload.filename, "success": True, "analysis": analysis.to_api()})
            await self._progress(job, round_half_up((index + 1) / total * 100))

        success_count = sum(1 for item in results if item["success"])
        logger.info("bulk_job_finished job=%s total=%s succeeded=%s", job.id, total, success_count)
        return {
            "success": True,
            "results": results,
            "totalFiles": total,
            "successCount": success_count,
            "jobId": job.id,
        }

    def register_jobs(self, queue: JobQueue, *, analyze_concurrency: int, bulk_concurrency: int) -> None:
        self._queue = queue
        queue.register(ANALYZE_JOB, self.run_analysis_job, concurrency=analyze_concurrency)
        queue.register(BULK_ANALYZE_JOB, self.run_bulk_job, concurrency=bulk_concurrency)

    async def add_analysis_job(
        self, queue: JobQueue, upload: UploadedFile, *, api_key: str | None = None, priority: str = "normal"
    ) -> dict[str, Any]:
        job = await queue.add(ANALYZE_JOB, {"file": upload.to_payload(), "api_key": api_key}, priority=priority)
        return {"jobId": job.id, "status": "queued"}

    async def add_bulk_analysis_job(
        self, queue: JobQueue, uploads: list[UploadedFile], *, api_key: str | None = None, priority: str = "normal"
    ) -> dict[str, Any]:
        job = await queue.add(
            BULK_ANALYZE_JOB,
            {"files": [upload.to_payload() for upload in uploads], "api_key": api_key},
            priority=priority,
            prefix="bulk",
        )
        return {
            "jobId": job.id,
            "status": "queued",
            "totalFiles": len(uploads),
            "estimatedProcessingTime": f"{len(uploads) * SECONDS_PER_FILE_ESTIMATE} seconds",
        }
