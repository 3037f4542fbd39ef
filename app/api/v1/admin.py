from fastapi import APIRouter, Depends, Query, Request

from app.api.v1.usage import export_response
from app.core.config import settings
from app.core.errors import KeyNotFound, ValidationError
from app.core.rate_limit import rate_limit
from app.core.security import get_services, require_admin
from app.schemas.admin import AdminLoginRequest, SettingsUpdateRequest
from app.schemas.keys import AdminCreateKeyRequest, KeyStatusRequest, TierRequest
from app.services.api_keys import key_preview

router = APIRouter()
protected = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/admin/login")
@rate_limit(settings.admin_login_rate_limit)
async def admin_login(request: Request, payload: AdminLoginRequest):
    if not payload.username or not payload.password:
        raise ValidationError("Username and password required")
    admin = get_services(request).admin
    user = admin.authenticate(payload.username, payload.password)
    return {
        "success": True,
        "user": user,
        "token": admin.issue_token(user["username"]),
        "expiresInHours": admin.settings.admin_token_ttl_hours,
        "message": "Admin authenticated successfully",
    }


@protected.get("/admin/dashboard")
@rate_limit()
async def admin_dashboard(request: Request):
    return get_services(request).admin.get_dashboard_overview()


@protected.get("/admin/analytics")
@rate_limit()
async def admin_analytics(request: Request, days: int = Query(default=30, ge=1, le=365)):
    return get_services(request).admin.get_analytics(days)


@protected.get("/admin/users")
@rate_limit()
async def admin_users(request: Request):
    return get_services(request).admin.get_all_users()


@protected.post("/admin/keys/create")
@rate_limit()
async def admin_create_key(request: Request, payload: AdminCreateKeyRequest):
    return get_services(request).admin.create_api_key_for_user(
        name=payload.name, email=payload.email, tier=payload.tier, user_id=payload.user_id
    )


@protected.put("/admin/keys/{api_key}/tier")
@rate_limit()
async def admin_update_tier(request: Request, api_key: str, payload: TierRequest):
    return get_services(request).admin.update_api_key_tier(api_key, payload.tier)


@protected.put("/admin/keys/{api_key}/status")
@rate_limit()
async def admin_update_status(request: Request, api_key: str, payload: KeyStatusRequest):
    services = get_services(request)
    if not services.api_keys.update_status(api_key, payload.is_active):
        raise KeyNotFound()
    services.admin.log_admin_action(
        "key_status_updated", {"apiKey": key_preview(api_key), "isActive": payload.is_active}
    )
    return {"success": True, "isActive": payload.is_active}


@protected.post("/admin/maintenance/toggle")
@rate_limit()
async def admin_toggle_maintenance(request: Request):
    return get_services(request).admin.toggle_maintenance_mode()


@protected.put("/admin/settings")
@rate_limit()
async def admin_update_settings(request: Request, payload: SettingsUpdateRequest):
    return get_services(request).admin.update_system_settings(payload.updates())


@protected.get("/admin/export")
@rate_limit()
async def admin_export(request: Request, format: str = Query(default="json", pattern="^(json|csv)$")):
    body = get_services(request).admin.export_system_data(format)
    return export_response(body, format, "system_export")


@protected.post("/admin/backup")
@rate_limit()
async def admin_backup(request: Request):
    return get_services(request).admin.create_system_backup()


@protected.get("/admin/config")
@rate_limit()
async def admin_config(request: Request):
    return get_services(request).admin.get_system_config()


router.include_router(protected)
