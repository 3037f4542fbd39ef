from __future__ import annotations

import csv
import io
import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from app.core.numbers import round_half_up, round_to
from app.core.storage import DocumentStore, JsonLinesLog, utc_now

logger = logging.getLogger(__name__)

ANALYTICS_DOCUMENT = "analytics"
ROLLING_WINDOW = 1000
CSV_HEADER = ("Date", "Requests", "Successes", "Failures", "Cache Hits")


def _empty_day() -> dict[str, int]:
    return {"requests": 0, "successes": 0, "failures": 0, "cacheHits": 0}


@dataclass
class UsageCounters:
    total_requests: int = 0
    successful_analyses: int = 0
    failed_analyses: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    bulk_analyses: int = 0
    industry_detections: dict[str, int] = field(default_factory=dict)
    ats_scores: deque = field(default_factory=lambda: deque(maxlen=ROLLING_WINDOW))
    processing_times: deque = field(default_factory=lambda: deque(maxlen=ROLLING_WINDOW))
    file_sizes: deque = field(default_factory=lambda: deque(maxlen=ROLLING_WINDOW))
    error_types: dict[str, int] = field(default_factory=dict)
    api_key_usage: dict[str, int] = field(default_factory=dict)
    hourly_stats: dict[int, int] = field(default_factory=dict)
    daily_stats: dict[str, dict[str, int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_analyses": self.successful_analyses,
            "failed_analyses": self.failed_analyses,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "bulk_analyses": self.bulk_analyses,
            "industry_detections": dict(self.industry_detections),
            "ats_scores": list(self.ats_scores),
            "processing_times": list(self.processing_times),
            "file_sizes": list(self.file_sizes),
            "error_types": dict(self.error_types),
            "api_key_usage": dict(self.api_key_usage),
            "hourly_stats": {str(hour): count for hour, count in self.hourly_stats.items()},
            "daily_stats": {day: dict(bucket) for day, bucket in self.daily_stats.items()},
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "UsageCounters":
        counters = cls()
        for name in ("total_requests", "successful_analyses", "failed_analyses", "cache_hits", "cache_misses", "bulk_analyses"):
            setattr(counters, name, int(raw.get(name) or 0))
        for name in ("industry_detections", "error_types", "api_key_usage"):
            setattr(counters, name, {str(k): int(v) for k, v in (raw.get(name) or {}).items()})
        for name in ("ats_scores", "processing_times", "file_sizes"):
            getattr(counters, name).extend(raw.get(name) or [])
        counters.hourly_stats = {int(hour): int(count) for hour, count in (raw.get("hourly_stats") or {}).items()}
        counters.daily_stats = {
            day: {**_empty_day(), **bucket} for day, bucket in (raw.get("daily_stats") or {}).items()
        }
        return counters


def _average(values: Any) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def calculate_trend(values: list[int]) -> int:
    """Percent change between the mean of the first three and last three days."""
    if len(values) < 2:
        return 0
    recent = sum(values[-3:]) / 3
    older = sum(values[:3]) / 3
    if older == 0:
        return 100 if recent > 0 else 0
    return round_half_up((recent - older) / older * 100)


class UsageTracker:
    def __init__(
        self,
        store: DocumentStore,
        event_log: JsonLinesLog,
        *,
        retention_days: int = 90,
        log_max_bytes: int = 10 * 1024 * 1024,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._event_log = event_log
        self._retention_days = retention_days
        self._log_max_bytes = log_max_bytes
        self._clock = clock
        self._lock = threading.RLock()
        self.counters = self._load()

    def _load(self) -> UsageCounters:
        snapshot = self._store.load(ANALYTICS_DOCUMENT)
        if not snapshot:
            return UsageCounters()
        try:
            counters = UsageCounters.from_dict(snapshot.get("counters") or {})
        except (TypeError, ValueError) as exc:
            logger.error("analytics_snapshot_invalid: %s", exc)
            return UsageCounters()
        logger.info("analytics_snapshot_loaded total_requests=%s", counters.total_requests)
        return counters

    def flush(self) -> None:
        with self._lock:
            snapshot = {
                "counters": self.counters.to_dict(),
                "last_saved": self._clock().isoformat(),
                "version": "1.0",
            }
        self._store.save(ANALYTICS_DOCUMENT, snapshot)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self.counters.to_dict()

    def log_usage(self, event_type: str, **data: Any) -> None:
        now = self._clock()
        entry = {"timestamp": now.isoformat(), "event_type": event_type, **data}
        try:
            self._event_log.append(entry)
        except OSError as exc:
            logger.warning("usage_log_append_failed event=%s: %s", event_type, exc)
        with self._lock:
            self._update_counters(now, event_type, data)

    def _update_counters(self, now: datetime, event_type: str, data: dict[str, Any]) -> None:
        counters = self.counters
        hour = now.hour
        day = counters.daily_stats.setdefault(now.date().isoformat(), _empty_day())
        counters.hourly_stats.setdefault(hour, 0)

        if event_type == "analysis_request":
            counters.total_requests += 1
            counters.hourly_stats[hour] += 1
            day["requests"] += 1
            api_key = data.get("api_key")
            if api_key:
                counters.api_key_usage[api_key] = counters.api_key_usage.get(api_key, 0) + 1
        elif event_type == "analysis_success":
            counters.successful_analyses += 1
            day["successes"] += 1
            industry = data.get("industry")
            if industry:
                counters.industry_detections[industry] = counters.industry_detections.get(industry, 0) + 1
            if data.get("ats_score") is not None:
                counters.ats_scores.append(data["ats_score"])
            if data.get("processing_time") is not None:
                counters.processing_times.append(data["processing_time"])
            if data.get("file_size") is not None:
                counters.file_sizes.append(data["file_size"])
        elif event_type == "analysis_failure":
            counters.failed_analyses += 1
            day["failures"] += 1
            error_type = data.get("error_type")
            if error_type:
                counters.error_types[error_type] = counters.error_types.get(error_type, 0) + 1
        elif event_type == "cache_hit":
            counters.cache_hits += 1
            day["cacheHits"] += 1
        elif event_type == "cache_miss":
            counters.cache_misses += 1
        elif event_type == "bulk_analysis":
            counters.bulk_analyses += 1

    def _top_errors(self, limit: int = 5) -> list[dict[str, Any]]:
        ranked = sorted(self.counters.error_types.items(), key=lambda item: item[1], reverse=True)
        return [{"error": error, "count": count} for error, count in ranked[:limit]]

    def _top_api_keys(self, limit: int = 10) -> list[dict[str, Any]]:
        ranked = sorted(self.counters.api_key_usage.items(), key=lambda item: item[1], reverse=True)
        return [{"apiKey": key[:12] + "...", "requests": count} for key, count in ranked[:limit]]

    def _hourly_distribution(self) -> dict[str, int]:
        return {str(hour): self.counters.hourly_stats.get(hour, 0) for hour in range(24)}

    def get_stats(self) -> dict[str, Any]:
        now = self._clock()
        with self._lock:
            c = self.counters
            analyses = c.successful_analyses + c.failed_analyses
            success_rate = c.successful_analyses / analyses * 100 if analyses else 0.0
            lookups = c.cache_hits + c.cache_misses
            hit_rate = c.cache_hits / lookups * 100 if lookups else 0.0
            today = c.daily_stats.get(now.date().isoformat()) or _empty_day()
            return {
                "overview": {
                    "totalRequests": c.total_requests,
                    "successfulAnalyses": c.successful_analyses,
                    "failedAnalyses": c.failed_analyses,
                    "successRate": round_to(success_rate),
                    "bulkAnalyses": c.bulk_analyses,
                },
                "performance": {
                    "cacheHits": c.cache_hits,
                    "cacheMisses": c.cache_misses,
                    "cacheHitRate": round_to(hit_rate),
                    "avgProcessingTime": round_half_up(_average(c.processing_times)),
                    "avgFileSize": round_half_up(_average(c.file_sizes)),
                },
                "analysis": {
                    "avgAtsScore": round_to(_average(c.ats_scores)),
                    "industryDistribution": dict(c.industry_detections),
                    "topErrors": self._top_errors(),
                    "recentAtsScores": list(c.ats_scores)[-10:],
                },
                "usage": {
                    "todayRequests": today["requests"],
                    "currentHourRequests": c.hourly_stats.get(now.hour, 0),
                    "topApiKeys": self._top_api_keys(),
                    "hourlyDistribution": self._hourly_distribution(),
                },
                "timestamp": now.isoformat(),
            }

    def get_detailed_analytics(self, days: int = 7) -> dict[str, Any]:
        end = self._clock().date()
        start = end - timedelta(days=days)
        with self._lock:
            breakdown: dict[str, dict[str, int]] = {}
            cursor = start
            while cursor <= end:
                key = cursor.isoformat()
                breakdown[key] = dict(self.counters.daily_stats.get(key) or _empty_day())
                cursor += timedelta(days=1)
        requests = [bucket["requests"] for bucket in breakdown.values()]
        successes = [bucket["successes"] for bucket in breakdown.values()]
        return {
            "period": {"startDate": start.isoformat(), "endDate": end.isoformat(), "days": days},
            "dailyBreakdown": breakdown,
            "summary": self.get_stats(),
            "trends": {
                "requestTrend": calculate_trend(requests),
                "successTrend": calculate_trend(successes),
                "avgDailyRequests": _average(requests),
                "avgDailySuccesses": _average(successes),
            },
        }

    def export_analytics(self, fmt: str = "json") -> str:
        detailed = self.get_detailed_analytics(30)
        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(CSV_HEADER)
            for day, bucket in detailed["dailyBreakdown"].items():
                writer.writerow([day, bucket["requests"], bucket["successes"], bucket["failures"], bucket["cacheHits"]])
            return buffer.getvalue()
        data = {
            "exportDate": self._clock().isoformat(),
            "stats": detailed["summary"],
            "detailedAnalytics": detailed,
            "rawCounters": self.snapshot(),
        }
        return json.dumps(data, indent=2)

    def perform_daily_cleanup(self) -> None:
        cutoff = (self._clock().date() - timedelta(days=self._retention_days)).isoformat()
        with self._lock:
            stale = [day for day in self.counters.daily_stats if day < cutoff]
            for day in stale:
                del self.counters.daily_stats[day]
        archive = self._event_log.rotate_if_larger_than(self._log_max_bytes)
        if archive is not None:
            logger.info("usage_log_rotated archive=%s", archive)
        logger.info("usage_daily_cleanup pruned_days=%s", len(stale))

    def get_health_metrics(self) -> dict[str, Any]:
        now = self._clock()
        previous_hour = (now - timedelta(hours=1)).hour
        with self._lock:
            c = self.counters
            current_requests = c.hourly_stats.get(now.hour, 0)
            total = c.successful_analyses + c.failed_analyses
            error_rate = c.failed_analyses / total * 100 if total else 0.0
            lookups = c.cache_hits + c.cache_misses
            return {
                "status": determine_health_status(current_requests, c.failed_analyses, total),
                "metrics": {
                    "currentHourRequests": current_requests,
                    "previousHourRequests": c.hourly_stats.get(previous_hour, 0),
                    "errorRate": error_rate,
                    "cacheHitRate": c.cache_hits / lookups * 100 if lookups else 0.0,
                },
            }


def determine_health_status(current_requests: int, failures: int, total: int) -> str:
    error_rate = failures / total * 100 if total else 0.0
    if error_rate > 50:
        return "critical"
    if error_rate > 20:
        return "warning"
    if current_requests == 0 and total == 0:
        return "idle"
    return "healthy"
