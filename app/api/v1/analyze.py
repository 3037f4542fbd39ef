import logging
import time

from fastapi import APIRouter, Depends, File, Header, Request, UploadFile

from app.core.config import settings
from app.core.errors import AnalysisError, FeatureNotAvailable, ValidationError
from app.core.rate_limit import rate_limit
from app.core.security import ensure_available, get_services, require_api_key
from app.parsing.uploads import (
    optimization_recommendations,
    processing_stats,
    trim_analysis,
    validate_batch,
    validate_upload,
)
from app.schemas.keys import ApiKeyRecord
from app.services.pipeline import UploadedFile
from app.services.upload_storage import remove_upload, save_upload

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(ensure_available)])


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


@router.post("/analyze-resume")
@rate_limit(settings.analyze_rate_limit)
async def analyze_resume(
    request: Request,
    resume: UploadFile | None = File(default=None),
    key: ApiKeyRecord = Depends(require_api_key),
):
    services = get_services(request)
    tracker = services.usage_tracker
    if resume is None or not resume.filename:
        raise ValidationError("No file uploaded")

    started = time.perf_counter()
    content_type = resume.content_type or "application/octet-stream"
    path = None
    try:
        path, content = await save_upload(resume, services.settings.upload_dir, services.settings.max_upload_bytes)
        check = validate_upload(
            filename=resume.filename,
            content_type=content_type,
            size=len(content),
            max_bytes=services.settings.max_upload_bytes,
            content=content,
        )
        if not check.is_valid:
            raise ValidationError(check.errors[0], details={"errors": check.errors})

        tracker.log_usage(
            "analysis_request", api_key=key.key, user_id=key.user_id, tier=key.tier, file_size=len(content)
        )
        try:
            analysis = await services.pipeline.analyze(UploadedFile(resume.filename, content_type, content))
        except AnalysisError as exc:
            tracker.log_usage(
                "analysis_failure",
                api_key=key.key,
                user_id=key.user_id,
                error_type=exc.code,
                processing_time=_elapsed_ms(started),
            )
            raise
    finally:
        remove_upload(path)

    services.api_keys.record_usage(key.key)
    elapsed = _elapsed_ms(started)
    tracker.log_usage(
        "analysis_success",
        api_key=key.key,
        user_id=key.user_id,
        industry=analysis.industry_analysis.detected_industry,
        ats_score=analysis.ats_compatibility.score,
        processing_time=elapsed,
        file_size=len(content),
    )
    logger.info("analysis_served filename=%s cached=%s elapsed_ms=%s", resume.filename, analysis.cached, elapsed)
    return {
        "success": True,
        "filename": resume.filename,
        "analysis": trim_analysis(analysis.to_api()),
        "cached": analysis.cached,
        "processingStats": processing_stats(
            filename=resume.filename, size=len(content), content_type=content_type, elapsed_ms=elapsed
        ),
        "optimization": {
            "success": True,
            "recommendations": optimization_recommendations(filename=resume.filename, size=len(content)),
        },
    }


@router.post("/bulk-analyze")
@rate_limit(settings.bulk_rate_limit)
async def bulk_analyze(
    request: Request,
    resumes: list[UploadFile] | None = File(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
):
    services = get_services(request)
    if not resumes:
        raise ValidationError("No files uploaded")
    max_files = services.settings.max_bulk_files
    if x_api_key:
        record = services.api_keys.validate(x_api_key)
        limits = record.limits
        if not limits.bulk_analysis:
            raise FeatureNotAvailable(f"Bulk analysis is not available on the {record.tier} tier")
        max_files = min(max_files, limits.max_batch_size)
    if len(resumes) > max_files:
        raise ValidationError(f"Too many files. Maximum is {max_files} files.")

    uploads: list[UploadedFile] = []
    checks = []
    for item in resumes:
        path = None
        try:
            path, content = await save_upload(item, services.settings.upload_dir, services.settings.max_upload_bytes)
        finally:
            remove_upload(path)
        filename = item.filename or "resume"
        content_type = item.content_type or "application/octet-stream"
        checks.append(
            validate_upload(
                filename=filename,
                content_type=content_type,
                size=len(content),
                max_bytes=services.settings.max_upload_bytes,
                content=content,
            )
        )
        uploads.append(UploadedFile(filename, content_type, content))

    batch = validate_batch(checks, max_total_bytes=services.settings.max_batch_bytes)
    if not batch.is_valid_batch:
        raise ValidationError(
            "Batch validation failed",
            details={"details": batch.details(), "batchSizeError": batch.batch_size_error},
        )

    queued = await services.pipeline.add_bulk_analysis_job(services.job_queue, uploads, api_key=x_api_key)
    if x_api_key:
        services.api_keys.record_usage(x_api_key)
    services.usage_tracker.log_usage(
        "bulk_analysis", api_key=x_api_key, file_count=len(uploads), job_id=queued["jobId"]
    )
    return {
        "success": True,
        "message": "Bulk analysis job queued",
        "jobId": queued["jobId"],
        "totalFiles": queued["totalFiles"],
        "estimatedProcessingTime": queued["estimatedProcessingTime"],
    }
