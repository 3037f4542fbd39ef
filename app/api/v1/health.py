from datetime import datetime, timezone

from fastapi import APIRouter, Request

from app.core.rate_limit import rate_limit
from app.core.security import get_services
from app.services.admin import APP_VERSION

router = APIRouter()


@router.get("/health", summary="Health Check", description="Liveness plus usage-derived health metrics.")
@rate_limit()
async def health_check(request: Request):
    services = get_services(request)
    health = services.usage_tracker.get_health_metrics()
    return {
        "status": health["status"],
        "message": "Resume Screener API is running",
        "system": {
            "uptime": services.admin.uptime_s,
            "version": APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        "metrics": health["metrics"],
    }
