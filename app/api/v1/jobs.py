from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from app.core.rate_limit import rate_limit
from app.core.security import get_services, require_admin

router = APIRouter()


@router.get("/job-status/{job_id}")
@rate_limit()
async def job_status(request: Request, job_id: str):
    return await get_services(request).job_queue.get_job_status(job_id)


@router.get("/stats")
@rate_limit()
async def performance_stats(request: Request):
    services = get_services(request)
    return {
        "cache": services.cache.get_stats(),
        "queue": await services.job_queue.get_queue_stats(),
        "uptime": services.admin.uptime_s,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/cache/flush", dependencies=[Depends(require_admin)])
@rate_limit()
async def flush_cache(request: Request):
    await get_services(request).cache.flush()
    return {"success": True, "message": "Cache flushed successfully"}


@router.post("/queue/pause", dependencies=[Depends(require_admin)])
@rate_limit()
async def pause_queue(request: Request):
    await get_services(request).job_queue.pause()
    return {"success": True, "message": "Queue paused successfully"}


@router.post("/queue/resume", dependencies=[Depends(require_admin)])
@rate_limit()
async def resume_queue(request: Request):
    await get_services(request).job_queue.resume()
    return {"success": True, "message": "Queue resumed successfully"}
