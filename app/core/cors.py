from __future__ import annotations

from app.core.config import Settings, settings as default_settings


def cors_allowed_origins(settings: Settings | None = None) -> list[str]:
    return list((settings or default_settings).cors_allowed_origins)
