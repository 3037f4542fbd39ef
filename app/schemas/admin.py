from __future__ import annotations

from typing import Any

from app.schemas.common import ApiModel


class AdminLoginRequest(ApiModel):
    username: str | None = None
    password: str | None = None


class SettingsUpdateRequest(ApiModel):
    max_daily_requests: int | None = None
    alert_thresholds: dict[str, Any] | None = None
    features: dict[str, Any] | None = None

    def updates(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
