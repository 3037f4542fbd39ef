from __future__ import annotations

import base64
import copy
import hashlib
import hmac
import json
import logging
import platform
import secrets
import threading
import time
from datetime import datetime
from typing import Any, Callable

from app.core.config import Settings
from app.core.errors import AdminAuthError, ValidationError
from app.core.storage import DocumentStore, JsonLinesLog, utc_now
from app.services.api_keys import ApiKeyManager, ensure_tier, key_preview
from app.services.usage_tracker import UsageTracker

logger = logging.getLogger(__name__)

ADMIN_DOCUMENT = "admin-config"
APP_VERSION = "1.0"
PBKDF2_ROUNDS = 190_000
SETTINGS_WHITELIST = ("maxDailyRequests", "alertThresholds", "features")
ADMIN_PERMISSIONS = ["view_analytics", "manage_api_keys", "system_control", "user_management"]
# Unknown usernames are hashed against this salt so every login costs one PBKDF2 run.
_DUMMY_SALT = secrets.token_hex(16)


def b64url_encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).decode("utf-8").rstrip("=")


def b64url_decode(value: str) -> bytes:
    padding = "=" * ((4 - (len(value) % 4)) % 4)
    return base64.urlsafe_b64decode(value + padding)


def hash_password(password: str, salt: str) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ROUNDS).hex()


def default_admin_config(now: str) -> dict[str, Any]:
    return {
        "adminUsers": {},
        "settings": {
            "maintenanceMode": False,
            "maxDailyRequests": 1000,
            "alertThresholds": {"errorRate": 10, "responseTime": 5000, "diskUsage": 80},
            "features": {"bulkAnalysis": True, "apiAccess": True, "caching": True, "rateLimiting": True},
        },
        "notifications": {
            "email": {
                "enabled": False,
                "smtp": {"host": "", "port": 587, "user": "", "password": ""},
                "alerts": ["system_error", "high_usage", "maintenance"],
            },
            "webhook": {
                "enabled": False,
                "url": "",
                "events": ["api_key_created", "tier_upgraded", "system_alert"],
            },
        },
        "created": now,
        "version": APP_VERSION,
    }


class AdminService:
    """Operator views and controls over keys, usage and system settings.

    The admin account is seeded from ADMIN_USERNAME / ADMIN_PASSWORD the first
    time a password is configured. Passwords are stored as salted PBKDF2 hashes
    and sessions are HMAC-signed tokens with an expiry.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings,
        api_keys: ApiKeyManager,
        usage_tracker: UsageTracker,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self.settings = settings
        self.api_keys = api_keys
        self.usage_tracker = usage_tracker
        self._clock = clock
        self._lock = threading.RLock()
        self._started = time.monotonic()
        self._actions = JsonLinesLog(settings.logs_dir / "admin-actions.log")
        self.config = self._load()

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def _load(self) -> dict[str, Any]:
        config = self._store.load(ADMIN_DOCUMENT)
        dirty = False
        if config is None:
            config = default_admin_config(self._now_iso())
            dirty = True
        users = config.setdefault("adminUsers", {})
        username = self.settings.admin_username
        if self.settings.admin_password and username not in users:
            salt = secrets.token_hex(16)
            users[username] = {
                "username": username,
                "passwordHash": hash_password(self.settings.admin_password, salt),
                "passwordSalt": salt,
                "role": "super_admin",
                "createdAt": self._now_iso(),
                "lastLogin": None,
                "permissions": list(ADMIN_PERMISSIONS),
            }
            logger.info("admin_user_seeded username=%s", username)
            dirty = True
        if dirty:
            self._store.save(ADMIN_DOCUMENT, config)
        return config

    def _save(self) -> None:
        self.config["lastModified"] = self._now_iso()
        self._store.save(ADMIN_DOCUMENT, self.config)

    @property
    def uptime_s(self) -> float:
        return time.monotonic() - self._started

    @property
    def maintenance_mode(self) -> bool:
        return bool(self.config["settings"].get("maintenanceMode"))

    def authenticate(self, username: str, password: str) -> dict[str, Any]:
        with self._lock:
            user = self.config["adminUsers"].get(username or "")
            if user:
                expected = user.get("passwordHash", "")
                provided = hash_password(password or "", user.get("passwordSalt", ""))
            else:
                expected = ""
                provided = hash_password(password or "", _DUMMY_SALT)
            if not user or not hmac.compare_digest(expected, provided):
                logger.warning("admin_login_failed username=%s", username)
                raise AdminAuthError("Invalid credentials")
            user["lastLogin"] = self._now_iso()
            self._save()
        logger.info("admin_login_ok username=%s", username)
        return {
            "username": user["username"],
            "role": user.get("role"),
            "permissions": list(user.get("permissions") or []),
            "lastLogin": user["lastLogin"],
        }

    def issue_token(self, username: str) -> str:
        payload = {
            "sub": "admin",
            "username": username,
            "exp": int(self._clock().timestamp()) + self.settings.admin_token_ttl_hours * 3600,
        }
        payload_b64 = b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
        return f"{payload_b64}.{b64url_encode(self._sign(payload_b64))}"

    def _sign(self, payload_b64: str) -> bytes:
        return hmac.new(
            self.settings.admin_token_secret.encode("utf-8"), payload_b64.encode("utf-8"), hashlib.sha256
        ).digest()

    def verify_token(self, token: str | None) -> dict[str, Any]:
        parts = (token or "").split(".")
        if len(parts) != 2:
            raise AdminAuthError("Invalid admin session token.")
        payload_b64, signature_b64 = parts
        try:
            provided = b64url_decode(signature_b64)
            payload = json.loads(b64url_decode(payload_b64).decode("utf-8"))
        except ValueError as exc:
            raise AdminAuthError("Invalid admin session token.") from exc
        if not hmac.compare_digest(self._sign(payload_b64), provided):
            raise AdminAuthError("Invalid admin session token.")
        if not isinstance(payload, dict) or payload.get("sub") != "admin":
            raise AdminAuthError("Invalid admin session subject.")
        if int(payload.get("exp", 0)) < int(self._clock().timestamp()):
            raise AdminAuthError("Admin session expired. Please login again.")
        return payload

    def get_dashboard_overview(self) -> dict[str, Any]:
        stats = self.usage_tracker.get_stats()
        key_stats = self.api_keys.get_usage_stats()
        health = self.usage_tracker.get_health_metrics()
        industries = sorted(stats["analysis"]["industryDistribution"].items(), key=lambda item: item[1], reverse=True)
        return {
            "systemHealth": {
                "status": health["status"],
                "uptime": self.uptime_s,
                "errorRate": health["metrics"]["errorRate"],
                "cacheHitRate": health["metrics"]["cacheHitRate"],
            },
            "usage": {
                "totalRequests": stats["overview"]["totalRequests"],
                "todayRequests": stats["usage"]["todayRequests"],
                "successRate": stats["overview"]["successRate"],
                "avgProcessingTime": stats["performance"]["avgProcessingTime"],
            },
            "apiKeys": {
                "total": key_stats["totalKeys"],
                "active": key_stats["activeKeys"],
                "tierDistribution": key_stats["tiers"],
            },
            "recentActivity": {
                "hourlyDistribution": stats["usage"]["hourlyDistribution"],
                "topIndustries": [{"industry": name, "count": count} for name, count in industries[:5]],
                "recentErrors": stats["analysis"]["topErrors"],
            },
            "alerts": self.generate_alerts(stats, health),
        }

    def generate_alerts(self, stats: dict[str, Any], health: dict[str, Any]) -> list[dict[str, Any]]:
        thresholds = self.config["settings"].get("alertThresholds") or {}
        metrics = health["metrics"]
        performance = stats["performance"]
        now = self._now_iso()
        alerts = []
        if metrics["errorRate"] > thresholds.get("errorRate", 10):
            alerts.append(
                {
                    "type": "error",
                    "severity": "high",
                    "message": f"High error rate: {metrics['errorRate']:.1f}%",
                    "timestamp": now,
                }
            )
        if metrics["cacheHitRate"] < 50 and performance["cacheHits"] + performance["cacheMisses"] > 10:
            alerts.append(
                {
                    "type": "performance",
                    "severity": "medium",
                    "message": f"Low cache hit rate: {metrics['cacheHitRate']:.1f}%",
                    "timestamp": now,
                }
            )
        if performance["avgProcessingTime"] > thresholds.get("responseTime", 5000):
            alerts.append(
                {
                    "type": "performance",
                    "severity": "medium",
                    "message": f"High average processing time: {performance['avgProcessingTime']}ms",
                    "timestamp": now,
                }
            )
        return alerts

    def get_analytics(self, days: int = 30) -> dict[str, Any]:
        return self.usage_tracker.get_detailed_analytics(days)

    def toggle_maintenance_mode(self) -> dict[str, Any]:
        with self._lock:
            enabled = not self.maintenance_mode
            self.config["settings"]["maintenanceMode"] = enabled
            self._save()
        self.log_admin_action("maintenance_toggled", {"maintenanceMode": enabled})
        logger.warning("maintenance_mode_changed enabled=%s", enabled)
        return {
            "success": True,
            "maintenanceMode": enabled,
            "message": f"Maintenance mode {'enabled' if enabled else 'disabled'}",
        }

    def update_system_settings(self, updates: dict[str, Any]) -> dict[str, Any]:
        accepted = {key: updates[key] for key in SETTINGS_WHITELIST if updates.get(key) is not None}
        with self._lock:
            self.config["settings"].update(accepted)
            self._save()
            current = copy.deepcopy(self.config["settings"])
        self.log_admin_action("settings_updated", {"keys": sorted(accepted)})
        return {"success": True, "message": "System settings updated successfully", "settings": current}

    def create_api_key_for_user(
        self,
        *,
        name: str | None,
        email: str | None,
        tier: str = "free",
        user_id: str | None = None,
    ) -> dict[str, Any]:
        result = self.api_keys.create_key(name=name, email=email, tier=tier, user_id=user_id)
        self.log_admin_action("api_key_created", {"userId": result["userId"], "tier": result["tier"]})
        return result

    def update_api_key_tier(self, api_key: str, tier: str | None) -> dict[str, Any]:
        if not api_key or not tier:
            raise ValidationError("Missing required parameters")
        tier = ensure_tier(tier)
        if not self.api_keys.update_tier(api_key, tier):
            raise ValidationError("Failed to update API key tier. Please check server logs for details.")
        self.log_admin_action("tier_updated", {"apiKey": key_preview(api_key), "newTier": tier})
        return {"success": True, "message": f"API key tier updated to {tier}"}

    def get_all_users(self) -> list[dict[str, Any]]:
        return [
            {
                "userId": key["userId"],
                "name": key["name"],
                "tier": key["tier"],
                "usage": key["usage"],
                "isActive": key["isActive"],
                "createdAt": key["createdAt"],
                "lastUsed": key["lastUsed"],
                "apiKeyPreview": key["apiKey"],
            }
            for key in self.api_keys.list_keys()
        ]

    def export_system_data(self, fmt: str = "json") -> str:
        if fmt == "csv":
            return self.usage_tracker.export_analytics("csv")
        data = {
            "exportDate": self._now_iso(),
            "systemInfo": {
                "version": APP_VERSION,
                "uptime": self.uptime_s,
                "pythonVersion": platform.python_version(),
                "platform": platform.system().lower(),
            },
            "analytics": self.usage_tracker.get_detailed_analytics(90),
            "apiKeyStats": self.api_keys.get_usage_stats(),
            "systemSettings": self.config["settings"],
            "alerts": self.generate_alerts(self.usage_tracker.get_stats(), self.usage_tracker.get_health_metrics()),
        }
        return json.dumps(data, indent=2)

    def create_system_backup(self) -> dict[str, Any]:
        now = self._clock()
        stamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
        backup_dir = self.settings.backups_dir
        backup_dir.mkdir(parents=True, exist_ok=True)

        documents = self.api_keys.documents()
        with self._lock:
            config = copy.deepcopy(self.config)
        backup = {
            "timestamp": now.isoformat(),
            "version": APP_VERSION,
            "config": config,
            "apiKeys": documents["apiKeys"],
            "users": documents["users"],
            "analytics": self.usage_tracker.snapshot(),
        }
        target = backup_dir / f"backup_{stamp}.json"
        counter = 1
        while target.exists():
            target = backup_dir / f"backup_{stamp}_{counter}.json"
            counter += 1
        target.write_text(json.dumps(backup, indent=2, default=str), encoding="utf-8")
        removed = self._prune_backups()
        logger.info("system_backup_created file=%s pruned=%s", target.name, removed)
        self.log_admin_action("backup_created", {"file": target.name})
        return {"success": True, "backupFile": str(target), "timestamp": stamp}

    def _prune_backups(self) -> int:
        backups = sorted(
            self.settings.backups_dir.glob("backup_*.json"),
            key=lambda path: (path.stat().st_mtime, path.name),
            reverse=True,
        )
        stale = backups[max(0, self.settings.backup_retention):]
        for path in stale:
            try:
                path.unlink()
            except OSError as exc:
                logger.warning("backup_prune_failed file=%s: %s", path.name, exc)
        return len(stale)

    def get_system_config(self) -> dict[str, Any]:
        settings = copy.deepcopy(self.config["settings"])
        return {
            "settings": settings,
            "features": settings.get("features", {}),
            "notifications": copy.deepcopy(self.config.get("notifications", {})),
            "maintenanceMode": bool(settings.get("maintenanceMode")),
        }

    def log_admin_action(self, action: str, details: dict[str, Any] | None = None) -> None:
        entry = {"timestamp": self._now_iso(), "action": action, "details": details or {}}
        try:
            self._actions.append(entry)
        except OSError as exc:
            logger.error("admin_action_log_failed action=%s: %s", action, exc)
