import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from support import MemoryStore, MutableClock, make_settings

from app.core.errors import AdminAuthError, ValidationError
from app.core.storage import JsonLinesLog
from app.services.admin import AdminService, hash_password
from app.services.api_keys import ApiKeyManager
from app.services.usage_tracker import UsageTracker


class AdminServiceTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.settings = make_settings(Path(self._tmp.name), backup_retention=2)
        self.clock = MutableClock()
        self.store = MemoryStore()
        self.api_keys = ApiKeyManager(self.store, clock=self.clock)
        self.tracker = UsageTracker(MemoryStore(), JsonLinesLog(self.settings.logs_dir / "usage.log"), clock=self.clock)
        self.admin = self._service()

    def _service(self):
        return AdminService(self.store, self.settings, self.api_keys, self.tracker, clock=self.clock)

    def _actions(self):
        path = self.settings.logs_dir / "admin-actions.log"
        return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]

    def test_seeded_admin_stores_only_a_hash(self):
        user = self.store.documents["admin-config"]["adminUsers"]["admin"]
        self.assertNotIn("password", user)
        self.assertEqual(user["passwordHash"], hash_password("correct-horse-battery", user["passwordSalt"]))
        self.assertEqual(user["role"], "super_admin")

    def test_reload_keeps_existing_admin(self):
        salt = self.store.documents["admin-config"]["adminUsers"]["admin"]["passwordSalt"]
        self._service()
        self.assertEqual(self.store.documents["admin-config"]["adminUsers"]["admin"]["passwordSalt"], salt)

    def test_authenticate(self):
        user = self.admin.authenticate("admin", "correct-horse-battery")
        self.assertEqual(user["username"], "admin")
        self.assertEqual(user["lastLogin"], self.clock.now.isoformat())
        with self.assertRaises(AdminAuthError):
            self.admin.authenticate("admin", "wrong")
        with self.assertRaises(AdminAuthError):
            self.admin.authenticate("nobody", "correct-horse-battery")

    def test_unknown_username_still_hashes_the_password(self):
        with mock.patch("app.services.admin.hash_password", wraps=hash_password) as hashed:
            with self.assertRaises(AdminAuthError):
                self.admin.authenticate("nobody", "correct-horse-battery")
            self.assertEqual(hashed.call_count, 1)
            with self.assertRaises(AdminAuthError):
                self.admin.authenticate("admin", "wrong")
            self.assertEqual(hashed.call_count, 2)

    def test_token_round_trip_and_expiry(self):
        token = self.admin.issue_token("admin")
        self.assertEqual(self.admin.verify_token(token)["username"], "admin")

        payload, signature = token.split(".")
        with self.assertRaises(AdminAuthError):
            self.admin.verify_token(payload + "." + "A" * len(signature))
        with self.assertRaises(AdminAuthError):
            self.admin.verify_token("garbage")

        self.clock.advance(hours=13)
        with self.assertRaisesRegex(AdminAuthError, "expired"):
            self.admin.verify_token(token)

    def test_maintenance_toggle(self):
        self.assertFalse(self.admin.maintenance_mode)
        result = self.admin.toggle_maintenance_mode()
        self.assertTrue(result["maintenanceMode"])
        self.assertEqual(result["message"], "Maintenance mode enabled")
        self.assertTrue(self._service().maintenance_mode)
        self.assertEqual(self._actions()[-1]["action"], "maintenance_toggled")

    def test_settings_whitelist(self):
        result = self.admin.update_system_settings({"maxDailyRequests": 50, "maintenanceMode": True})
        self.assertEqual(result["settings"]["maxDailyRequests"], 50)
        self.assertFalse(result["settings"]["maintenanceMode"])

    def test_alerts(self):
        for _ in range(3):
            self.tracker.log_usage("analysis_request", api_key="rsk_x")
            self.tracker.log_usage("analysis_failure", error_type="boom")
        self.tracker.log_usage("analysis_success", industry="technology", processing_time=6000)
        for _ in range(11):
            self.tracker.log_usage("cache_miss")

        alerts = self.admin.generate_alerts(self.tracker.get_stats(), self.tracker.get_health_metrics())
        messages = [alert["message"] for alert in alerts]
        self.assertEqual(
            messages,
            [
                "High error rate: 75.0%",
                "Low cache hit rate: 0.0%",
                "High average processing time: 6000ms",
            ],
        )

    def test_dashboard_overview(self):
        self.api_keys.create_key(name="Jane", email=None, tier="premium")
        overview = self.admin.get_dashboard_overview()
        self.assertEqual(overview["apiKeys"]["total"], 1)
        self.assertEqual(overview["apiKeys"]["tierDistribution"]["premium"], 1)
        self.assertEqual(overview["systemHealth"]["status"], "idle")
        self.assertEqual(overview["alerts"], [])

    def test_update_tier(self):
        key = self.admin.create_api_key_for_user(name="Jane", email=None)["apiKey"]
        result = self.admin.update_api_key_tier(key, "premium")
        self.assertEqual(result["message"], "API key tier updated to premium")
        last = self._actions()[-1]
        self.assertEqual(last["action"], "tier_updated")
        self.assertEqual(last["details"], {"apiKey": key[:12] + "...", "newTier": "premium"})

        with self.assertRaisesRegex(ValidationError, "Missing required parameters"):
            self.admin.update_api_key_tier(key, None)
        with self.assertRaises(ValidationError):
            self.admin.update_api_key_tier("rsk_unknown", "premium")

    def test_backup_keeps_newest_files(self):
        self.api_keys.create_key(name="Jane", email=None)
        results = []
        for _ in range(3):
            results.append(self.admin.create_system_backup())
            self.clock.advance(seconds=1)

        remaining = sorted(path.name for path in self.settings.backups_dir.glob("backup_*.json"))
        self.assertEqual(len(remaining), 2)
        newest = json.loads(Path(results[-1]["backupFile"]).read_text(encoding="utf-8"))
        self.assertEqual(len(newest["apiKeys"]["keys"]), 1)
        self.assertIn("adminUsers", newest["config"])
        self.assertIn("total_requests", newest["analytics"])

    def test_export(self):
        self.assertTrue(self.admin.export_system_data("csv").startswith("Date,Requests"))
        exported = json.loads(self.admin.export_system_data("json"))
        self.assertEqual(exported["systemInfo"]["version"], "1.0")
        self.assertIn("apiKeyStats", exported)

    def test_users_listing_masks_keys(self):
        key = self.api_keys.create_key(name="Jane", email=None)["apiKey"]
        users = self.admin.get_all_users()
        self.assertEqual(users[0]["apiKeyPreview"], key[:12] + "...")


if __name__ == "__main__":
    unittest.main()
