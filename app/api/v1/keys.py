from fastapi import APIRouter, Depends, Request

from app.core.config import settings
from app.core.errors import KeyNotFound, ValidationError
from app.core.rate_limit import rate_limit
from app.core.security import authenticated_key, get_services
from app.schemas.keys import ApiKeyRecord, CreateKeyRequest, TierRequest
from app.services.api_keys import ensure_tier

router = APIRouter()


@router.post("/keys/create")
@rate_limit(settings.keys_rate_limit)
async def create_key(request: Request, payload: CreateKeyRequest):
    return get_services(request).api_keys.create_key(name=payload.name, email=payload.email, tier=payload.tier)


@router.get("/keys/{api_key}/info")
@rate_limit(settings.keys_rate_limit)
async def key_info(request: Request, api_key: str, key: ApiKeyRecord = Depends(authenticated_key)):
    info = get_services(request).api_keys.get_key_info(key.key)
    if info is None:
        raise KeyNotFound()
    return info


@router.post("/keys/{api_key}/upgrade")
@rate_limit(settings.keys_rate_limit)
async def upgrade_key(
    request: Request,
    api_key: str,
    payload: TierRequest,
    key: ApiKeyRecord = Depends(authenticated_key),
):
    tier = ensure_tier(payload.tier)
    services = get_services(request)
    if not services.api_keys.update_tier(key.key, tier):
        raise ValidationError("Failed to upgrade tier")
    services.usage_tracker.log_usage("tier_upgraded", api_key=key.key, user_id=key.user_id, new_tier=tier)
    return {"success": True, "message": f"Upgraded to {tier} tier"}
