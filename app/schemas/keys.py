from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict, Field, computed_field

from app.schemas.common import ApiModel

Tier = Literal["free", "premium", "enterprise"]
TIERS: tuple[str, ...] = ("free", "premium", "enterprise")

_BASE_FEATURES = ("basic_analysis", "industry_detection", "ats_check")


class TierLimits(ApiModel):
    model_config = ConfigDict(frozen=True)

    daily_requests: int
    monthly_requests: int
    bulk_analysis: bool
    max_file_size: int
    max_batch_size: int
    features: tuple[str, ...]


TIER_LIMITS: dict[str, TierLimits] = {
    "free": TierLimits(
        daily_requests=10,
        monthly_requests=100,
        bulk_analysis=False,
        max_file_size=5 * 1024 * 1024,
        max_batch_size=1,
        features=_BASE_FEATURES,
    ),
    "premium": TierLimits(
        daily_requests=100,
        monthly_requests=2000,
        bulk_analysis=True,
        max_file_size=10 * 1024 * 1024,
        max_batch_size=5,
        features=_BASE_FEATURES + ("detailed_feedback", "export_results"),
    ),
    "enterprise": TierLimits(
        daily_requests=1000,
        monthly_requests=20000,
        bulk_analysis=True,
        max_file_size=50 * 1024 * 1024,
        max_batch_size=20,
        features=_BASE_FEATURES + ("detailed_feedback", "export_results", "api_access", "priority_support"),
    ),
}


def tier_limits(tier: str) -> TierLimits:
    return TIER_LIMITS.get(tier) or TIER_LIMITS["free"]


class UsageCounters(ApiModel):
    total_requests: int = 0
    daily_requests: int = 0
    monthly_requests: int = 0
    last_reset_date: str


class ApiKeyRecord(ApiModel):
    key: str
    user_id: str
    name: str
    email: str | None = None
    tier: Tier = "free"
    created_at: str
    last_used: str | None = None
    last_modified: str | None = None
    is_active: bool = True
    usage: UsageCounters

    # Derived on every read so a record can never disagree with its tier.
    @computed_field
    @property
    def limits(self) -> TierLimits:
        return tier_limits(self.tier)


class UserRecord(ApiModel):
    user_id: str
    name: str
    email: str | None = None
    tier: Tier = "free"
    api_keys: list[str] = Field(default_factory=list)
    created_at: str
    last_modified: str | None = None
    is_active: bool = True


class CreateKeyRequest(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    tier: str = "free"


class AdminCreateKeyRequest(ApiModel):
    name: str | None = Field(default=None, max_length=200)
    email: str | None = None
    tier: str = "free"
    user_id: str | None = None


class TierRequest(ApiModel):
    tier: str | None = None


class KeyStatusRequest(ApiModel):
    is_active: bool
