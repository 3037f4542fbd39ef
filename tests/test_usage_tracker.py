import json
import tempfile
import unittest
from pathlib import Path

from support import MemoryStore, MutableClock

from app.core.storage import JsonLinesLog
from app.services.usage_tracker import UsageTracker, calculate_trend, determine_health_status


class UsageTrackerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.log_path = Path(self._tmp.name) / "usage.log"
        self.store = MemoryStore()
        self.clock = MutableClock()
        self.tracker = self._tracker()

    def _tracker(self, **kwargs):
        return UsageTracker(self.store, JsonLinesLog(self.log_path), clock=self.clock, **kwargs)

    def _analysis(self, api_key="rsk_abcdefghijklmnop", success=True):
        self.tracker.log_usage("analysis_request", api_key=api_key, filename="cv.pdf")
        if success:
            self.tracker.log_usage(
                "analysis_success", industry="technology", ats_score=7, processing_time=120, file_size=2048
            )
        else:
            self.tracker.log_usage("analysis_failure", error_type="Failed to extract text")

    def test_counters_and_stats(self):
        self._analysis()
        self._analysis()
        self._analysis(success=False)
        self.tracker.log_usage("cache_hit")
        self.tracker.log_usage("cache_miss")

        stats = self.tracker.get_stats()
        self.assertEqual(stats["overview"]["totalRequests"], 3)
        self.assertEqual(stats["overview"]["successfulAnalyses"], 2)
        self.assertEqual(stats["overview"]["successRate"], 66.67)
        self.assertEqual(stats["performance"]["cacheHitRate"], 50.0)
        self.assertEqual(stats["analysis"]["industryDistribution"], {"technology": 2})
        self.assertEqual(stats["analysis"]["topErrors"], [{"error": "Failed to extract text", "count": 1}])
        self.assertEqual(stats["usage"]["todayRequests"], 3)
        self.assertEqual(stats["usage"]["currentHourRequests"], 3)
        self.assertEqual(stats["usage"]["topApiKeys"], [{"apiKey": "rsk_abcdefgh...", "requests": 3}])
        self.assertEqual(len(stats["usage"]["hourlyDistribution"]), 24)

    def test_events_are_appended_as_json_lines(self):
        self._analysis()
        lines = self.log_path.read_text(encoding="utf-8").splitlines()
        self.assertEqual(len(lines), 2)
        first = json.loads(lines[0])
        self.assertEqual(first["event_type"], "analysis_request")
        self.assertEqual(first["filename"], "cv.pdf")

    def test_flush_and_reload_restores_counters(self):
        self._analysis()
        self.tracker.flush()
        reloaded = self._tracker()
        self.assertEqual(reloaded.counters.total_requests, 1)
        self.assertEqual(list(reloaded.counters.ats_scores), [7])
        self.assertEqual(reloaded.counters.hourly_stats, {self.clock.now.hour: 1})

    def test_csv_export(self):
        self._analysis()
        exported = self.tracker.export_analytics("csv").splitlines()
        self.assertEqual(exported[0], "Date,Requests,Successes,Failures,Cache Hits")
        self.assertEqual(len(exported), 32)
        self.assertEqual(exported[-1], f"{self.clock.today().isoformat()},1,1,0,0")

    def test_json_export(self):
        self._analysis()
        exported = json.loads(self.tracker.export_analytics("json"))
        self.assertEqual(exported["rawCounters"]["total_requests"], 1)
        self.assertEqual(exported["detailedAnalytics"]["period"]["days"], 30)

    def test_detailed_analytics_window(self):
        self._analysis()
        detailed = self.tracker.get_detailed_analytics(7)
        self.assertEqual(len(detailed["dailyBreakdown"]), 8)
        self.assertEqual(detailed["trends"]["requestTrend"], 100)

    def test_daily_cleanup_prunes_old_days_and_rotates_log(self):
        tracker = self._tracker(retention_days=30, log_max_bytes=10)
        tracker.log_usage("analysis_request", api_key="rsk_x")
        self.clock.advance(days=45)
        tracker.log_usage("analysis_request", api_key="rsk_x")
        tracker.perform_daily_cleanup()
        self.assertEqual(list(tracker.counters.daily_stats), [self.clock.today().isoformat()])
        archives = [p for p in self.log_path.parent.iterdir() if p.name.startswith("usage_")]
        self.assertEqual(len(archives), 1)
        self.assertEqual(self.log_path.read_text(encoding="utf-8"), "")

    def test_health_metrics(self):
        self.assertEqual(self.tracker.get_health_metrics()["status"], "idle")
        self._analysis()
        self.assertEqual(self.tracker.get_health_metrics()["status"], "healthy")
        self._analysis(success=False)
        self._analysis(success=False)
        metrics = self.tracker.get_health_metrics()
        self.assertEqual(metrics["status"], "critical")
        self.assertAlmostEqual(metrics["metrics"]["errorRate"], 200 / 3)


class HelperTests(unittest.TestCase):
    def test_health_status_thresholds(self):
        self.assertEqual(determine_health_status(0, 0, 0), "idle")
        self.assertEqual(determine_health_status(3, 1, 10), "healthy")
        self.assertEqual(determine_health_status(3, 3, 10), "warning")
        self.assertEqual(determine_health_status(3, 6, 10), "critical")

    def test_trend(self):
        self.assertEqual(calculate_trend([5]), 0)
        self.assertEqual(calculate_trend([0, 0, 0, 0, 0, 0]), 0)
        self.assertEqual(calculate_trend([1, 1, 1, 2, 2, 2]), 100)
        self.assertEqual(calculate_trend([4, 4, 4, 2, 2, 2]), -50)


if __name__ == "__main__":
    unittest.main()
