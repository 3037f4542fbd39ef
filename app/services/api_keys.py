from __future__ import annotations

import logging
import secrets
import threading
from datetime import datetime, timedelta
from typing import Any, Callable

from app.core.errors import (
    DailyLimitExceeded,
    InactiveKey,
    InvalidKey,
    MonthlyLimitExceeded,
    ValidationError,
)
from app.core.storage import DocumentStore, utc_now
from app.schemas.keys import TIERS, ApiKeyRecord, UsageCounters, UserRecord

logger = logging.getLogger(__name__)

KEY_PREFIX = "rsk"
KEYS_DOCUMENT = "api-keys"
USERS_DOCUMENT = "users"
DOCUMENT_VERSION = "1.0"


def generate_api_key(prefix: str = KEY_PREFIX) -> str:
    return f"{prefix}_{secrets.token_hex(32)}"


def key_preview(api_key: str) -> str:
    return api_key[:12] + "..."


def ensure_tier(tier: str | None) -> str:
    if tier not in TIERS:
        raise ValidationError(f"Invalid tier. Valid tiers are: {', '.join(TIERS)}")
    return tier


def usage_as_of(usage: UsageCounters, today: str) -> UsageCounters:
    """Counters as they read on the given day, without touching the stored record."""
    if usage.last_reset_date == today:
        return usage.model_copy()
    rolled = usage.model_copy(update={"daily_requests": 0, "last_reset_date": today})
    if usage.last_reset_date[:7] != today[:7]:
        rolled.monthly_requests = 0
    return rolled


class ApiKeyManager:
    """API keys, their owners and per-key quotas.

    Keys and users live in two JSON documents that are rewritten together on
    every mutation, under one lock, so they never drift apart.
    """

    def __init__(self, store: DocumentStore, *, clock: Callable[[], datetime] = utc_now):
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()
        self._keys_doc = self._load(KEYS_DOCUMENT, "keys")
        self._users_doc = self._load(USERS_DOCUMENT, "users")
        self._keys: dict[str, ApiKeyRecord] = {}
        self._users: dict[str, UserRecord] = {}
        for key, raw in (self._keys_doc.get("keys") or {}).items():
            try:
                self._keys[key] = ApiKeyRecord.model_validate(raw)
            except Exception as exc:
                logger.error("api_key_record_invalid key=%s: %s", key_preview(key), exc)
        for user_id, raw in (self._users_doc.get("users") or {}).items():
            try:
                self._users[user_id] = UserRecord.model_validate(raw)
            except Exception as exc:
                logger.error("user_record_invalid user_id=%s: %s", user_id, exc)

    def _today(self) -> str:
        return self._clock().date().isoformat()

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def _load(self, name: str, collection: str) -> dict[str, Any]:
        document = self._store.load(name)
        if document is None:
            document = {collection: {}, "created": self._now_iso(), "version": DOCUMENT_VERSION}
            self._store.save(name, document)
        return document

    def _save(self) -> None:
        now = self._now_iso()
        self._keys_doc["keys"] = {key: record.model_dump(mode="json") for key, record in self._keys.items()}
        self._keys_doc["last_modified"] = now
        self._users_doc["users"] = {uid: record.model_dump(mode="json") for uid, record in self._users.items()}
        self._users_doc["last_modified"] = now
        self._store.save(KEYS_DOCUMENT, self._keys_doc)
        self._store.save(USERS_DOCUMENT, self._users_doc)

    def _get(self, api_key: str) -> ApiKeyRecord:
        record = self._keys.get(api_key or "")
        if record is None:
            raise InvalidKey()
        return record

    def create_key(
        self,
        *,
        name: str | None,
        email: str | None,
        tier: str = "free",
        user_id: str | None = None,
    ) -> dict[str, Any]:
        tier = ensure_tier(tier)
        with self._lock:
            now = self._clock()
            api_key = generate_api_key()
            owner_id = user_id or f"user_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"
            record = ApiKeyRecord(
                key=api_key,
                user_id=owner_id,
                name=name or "Anonymous User",
                email=email,
                tier=tier,
                created_at=now.isoformat(),
                usage=UsageCounters(last_reset_date=now.date().isoformat()),
            )
            self._keys[api_key] = record

            user = self._users.get(owner_id)
            if user is None:
                self._users[owner_id] = UserRecord(
                    user_id=owner_id,
                    name=record.name,
                    email=email,
                    tier=tier,
                    api_keys=[api_key],
                    created_at=record.created_at,
                )
            else:
                user.api_keys.append(api_key)
                user.tier = tier
                user.last_modified = record.created_at
            self._save()

        logger.info("api_key_created user_id=%s tier=%s", owner_id, tier)
        return {
            "success": True,
            "apiKey": api_key,
            "userId": owner_id,
            "tier": tier,
            "limits": record.limits.to_api(),
        }

    def authenticate(self, api_key: str) -> ApiKeyRecord:
        with self._lock:
            record = self._get(api_key)
            if not record.is_active:
                raise InactiveKey()
            return record.model_copy(deep=True)

    def validate(self, api_key: str) -> ApiKeyRecord:
        """Check existence, activity and quotas, resetting stale counters first."""
        with self._lock:
            record = self._get(api_key)
            if not record.is_active:
                raise InactiveKey()

            today = self._today()
            if record.usage.last_reset_date != today:
                record.usage = usage_as_of(record.usage, today)
                self._save()
            usage = record.usage

            limits = record.limits
            if usage.daily_requests >= limits.daily_requests:
                raise DailyLimitExceeded(details={"limits": limits.to_api(), "usage": usage.to_api()})
            if usage.monthly_requests >= limits.monthly_requests:
                raise MonthlyLimitExceeded(details={"limits": limits.to_api(), "usage": usage.to_api()})
            return record.model_copy(deep=True)

    def record_usage(self, api_key: str) -> bool:
        with self._lock:
            record = self._keys.get(api_key)
            if record is None:
                return False
            record.usage = usage_as_of(record.usage, self._today())
            record.usage.total_requests += 1
            record.usage.daily_requests += 1
            record.usage.monthly_requests += 1
            record.last_used = self._now_iso()
            self._save()
        return True

    def get_key_info(self, api_key: str) -> dict[str, Any] | None:
        today = self._today()
        with self._lock:
            record = self._keys.get(api_key)
            if record is None:
                return None
            user = self._users.get(record.user_id)
            return {
                "apiKey": api_key,
                "user": {
                    "userId": record.user_id,
                    "name": user.name if user else record.name,
                    "email": user.email if user else record.email,
                    "tier": user.tier if user else record.tier,
                },
                "limits": record.limits.to_api(),
                "usage": usage_as_of(record.usage, today).to_api(),
                "createdAt": record.created_at,
                "lastUsed": record.last_used,
                "isActive": record.is_active,
            }

    def list_keys(self) -> list[dict[str, Any]]:
        today = self._today()
        with self._lock:
            listing = []
            for record in self._keys.values():
                user = self._users.get(record.user_id)
                listing.append(
                    {
                        "apiKey": key_preview(record.key),
                        "userId": record.user_id,
                        "name": user.name if user else record.name,
                        "tier": record.tier,
                        "usage": usage_as_of(record.usage, today).to_api(),
                        "isActive": record.is_active,
                        "createdAt": record.created_at,
                        "lastUsed": record.last_used,
                    }
                )
            return listing

    def update_status(self, api_key: str, is_active: bool) -> bool:
        with self._lock:
            record = self._keys.get(api_key)
            if record is None:
                return False
            record.is_active = is_active
            record.last_modified = self._now_iso()
            self._save()
        logger.info("api_key_status_updated key=%s active=%s", key_preview(api_key), is_active)
        return True

    def update_tier(self, api_key: str, tier: str) -> bool:
        tier = ensure_tier(tier)
        with self._lock:
            record = self._keys.get(api_key)
            if record is None:
                return False
            user = self._users.get(record.user_id)
            if user is None:
                logger.error("api_key_owner_missing key=%s user_id=%s", key_preview(api_key), record.user_id)
                return False
            now = self._now_iso()
            record.tier = tier
            record.last_modified = now
            user.tier = tier
            user.last_modified = now
            self._save()
        logger.info("api_key_tier_updated key=%s tier=%s", key_preview(api_key), tier)
        return True

    def get_usage_stats(self) -> dict[str, Any]:
        today = self._today()
        with self._lock:
            stats: dict[str, Any] = {
                "totalKeys": len(self._keys),
                "activeKeys": 0,
                "tiers": {tier: 0 for tier in TIERS},
                "totalRequests": 0,
                "dailyRequests": 0,
                "monthlyRequests": 0,
            }
            for record in self._keys.values():
                if record.is_active:
                    stats["activeKeys"] += 1
                stats["tiers"][record.tier] = stats["tiers"].get(record.tier, 0) + 1
                usage = usage_as_of(record.usage, today)
                stats["totalRequests"] += usage.total_requests
                stats["dailyRequests"] += usage.daily_requests
                stats["monthlyRequests"] += usage.monthly_requests
            return stats

    def cleanup(self, max_age_days: int = 180) -> int:
        """Drop inactive keys that have not been used for max_age_days."""
        cutoff = self._clock() - timedelta(days=max_age_days)
        with self._lock:
            stale = []
            for api_key, record in self._keys.items():
                last_seen = datetime.fromisoformat(record.last_used or record.created_at)
                if not record.is_active and last_seen < cutoff:
                    stale.append(api_key)
            for api_key in stale:
                record = self._keys.pop(api_key)
                user = self._users.get(record.user_id)
                if user and api_key in user.api_keys:
                    user.api_keys.remove(api_key)
            if stale:
                self._save()
        if stale:
            logger.info("api_keys_cleaned count=%s", len(stale))
        return len(stale)

    def documents(self) -> dict[str, Any]:
        with self._lock:
            return {
                "apiKeys": self._store.load(KEYS_DOCUMENT) or {},
                "users": self._store.load(USERS_DOCUMENT) or {},
            }
