from __future__ import annotations

from typing import Any

from fastapi import Header, Request

from app.core.errors import AdminAuthError, KeyMismatch, MaintenanceModeEnabled, MissingApiKey, ServiceError
from app.schemas.keys import ApiKeyRecord
from app.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def _log_rejection(services: Services, api_key: str, exc: ServiceError) -> None:
    if exc.status_code == 401:
        services.usage_tracker.log_usage("api_key_invalid", api_key=api_key[:12] + "...", reason=str(exc))


def require_api_key(request: Request, x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> ApiKeyRecord:
    """Existence, activity and quota check for metered routes."""
    if not x_api_key:
        raise MissingApiKey()
    services = get_services(request)
    try:
        return services.api_keys.validate(x_api_key)
    except ServiceError as exc:
        _log_rejection(services, x_api_key, exc)
        raise


def authenticated_key(
    request: Request,
    api_key: str,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> ApiKeyRecord:
    # Key management routes are not metered, so quota is not checked here.
    if not x_api_key:
        raise MissingApiKey()
    services = get_services(request)
    try:
        record = services.api_keys.authenticate(x_api_key)
    except ServiceError as exc:
        _log_rejection(services, x_api_key, exc)
        raise
    if record.key != api_key:
        raise KeyMismatch()
    return record


def require_admin(
    request: Request,
    authorization: str | None = Header(default=None),
    x_admin_token: str | None = Header(default=None, alias="X-Admin-Token"),
) -> dict[str, Any]:
    token = x_admin_token
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not token:
        raise AdminAuthError("Admin authentication required")
    return get_services(request).admin.verify_token(token)


def ensure_available(request: Request) -> None:
    if get_services(request).admin.maintenance_mode:
        raise MaintenanceModeEnabled()
