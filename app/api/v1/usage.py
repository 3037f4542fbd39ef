from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from app.core.rate_limit import rate_limit
from app.core.security import get_services, require_api_key
from app.schemas.keys import ApiKeyRecord

router = APIRouter()

EXPORT_MEDIA_TYPES = {"csv": "text/csv", "json": "application/json"}


def export_response(body: str, fmt: str, prefix: str) -> Response:
    day = datetime.now(timezone.utc).date().isoformat()
    return Response(
        content=body,
        media_type=EXPORT_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{prefix}_{day}.{fmt}"'},
    )


@router.get("/usage/stats")
@rate_limit()
async def usage_stats(request: Request, key: ApiKeyRecord = Depends(require_api_key)):
    stats = get_services(request).usage_tracker.get_stats()
    return {
        "user": {
            "tier": key.tier,
            "usage": key.usage.to_api(),
            "limits": key.limits.to_api(),
            "resetDate": key.usage.last_reset_date,
        },
        "system": {
            "totalRequests": stats["overview"]["totalRequests"],
            "successRate": stats["overview"]["successRate"],
            "avgProcessingTime": stats["performance"]["avgProcessingTime"],
        },
    }


@router.get("/usage/export")
@rate_limit()
async def usage_export(
    request: Request,
    format: str = Query(default="json", pattern="^(json|csv)$"),
    key: ApiKeyRecord = Depends(require_api_key),
):
    body = get_services(request).usage_tracker.export_analytics(format)
    return export_response(body, format, "analytics")
