from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

import redis.asyncio as redis_asyncio

from app.schemas.analysis import AnalysisResult, ATSReport, IndustryFit
from app.services.usage_tracker import UsageTracker

logger = logging.getLogger(__name__)

ANALYSIS_TTL_S = 2 * 3600
INDUSTRY_TTL_S = 24 * 3600
ATS_TTL_S = 24 * 3600
CACHE_VERSION = "1.0"
REDIS_PREFIX = "resume-screener:cache:"


def cache_key(text: str, kind: str) -> str:
    digest = hashlib.sha256((text or "").encode("utf-8")).hexdigest()
    return f"{kind}:{digest}"


class TTLStore:
    """Bounded in-process store; the least recently written entry goes first."""

    def __init__(self, max_entries: int = 1000, *, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _live(self, key: str) -> tuple[float, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[0] <= self._clock():
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                self.misses += 1
                return None
            self.hits += 1
            return entry[1]

    def set(self, key: str, value: Any, ttl_s: float) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock() + ttl_s, value)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, (deadline, _) in self._entries.items() if deadline <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class CacheService:
    """Content-addressed result cache.

    Redis, when configured, is read first and mirrored on writes. Any Redis
    error drops the connection and the service carries on with the local store.
    """

    def __init__(
        self,
        *,
        max_entries: int = 1000,
        redis_url: str | None = None,
        redis_client: Any = None,
        usage_tracker: UsageTracker | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.local = TTLStore(max_entries, clock=clock)
        self.redis_url = redis_url
        self.usage_tracker = usage_tracker
        self._redis_client = redis_client
        self._redis: Any = None

    @property
    def redis_connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        if self._redis_client is None and not self.redis_url:
            return
        try:
            client = self._redis_client
            if client is None:
                client = redis_asyncio.from_url(self.redis_url, decode_responses=True)
            await client.ping()
        except Exception as exc:
            logger.warning("cache_redis_unavailable url_configured=true: %s", exc)
            self._redis = None
            return
        self._redis = client
        logger.info("cache_redis_connected")

    async def close(self) -> None:
        client, self._redis = self._redis, None
        if client is not None:
            try:
                await client.aclose()
            except Exception as exc:
                logger.warning("cache_redis_close_failed: %s", exc)

    def _drop_redis(self, operation: str, exc: Exception) -> None:
        logger.warning("cache_redis_unavailable op=%s, falling back to memory: %s", operation, exc)
        self._redis = None

    async def get(self, key: str) -> Any | None:
        if self._redis is not None:
            try:
                raw = await self._redis.get(REDIS_PREFIX + key)
                if raw:
                    return json.loads(raw)
            except Exception as exc:
                self._drop_redis("get", exc)
        return self.local.get(key)

    async def set(self, key: str, value: Any, ttl_s: int = 3600) -> bool:
        if self._redis is not None:
            try:
                await self._redis.set(REDIS_PREFIX + key, json.dumps(value, default=str), ex=ttl_s)
            except Exception as exc:
                self._drop_redis("set", exc)
        self.local.set(key, value, ttl_s)
        return True

    async def delete(self, key: str) -> bool:
        if self._redis is not None:
            try:
                await self._redis.delete(REDIS_PREFIX + key)
            except Exception as exc:
                self._drop_redis("delete", exc)
        self.local.delete(key)
        return True

    async def exists(self, key: str) -> bool:
        if self._redis is not None:
            try:
                return bool(await self._redis.exists(REDIS_PREFIX + key))
            except Exception as exc:
                self._drop_redis("exists", exc)
        return self.local.has(key)

    async def flush(self) -> bool:
        if self._redis is not None:
            try:
                # Only cache keys; job queue state may share the database.
                stale = [key async for key in self._redis.scan_iter(match=REDIS_PREFIX + "*")]
                if stale:
                    await self._redis.delete(*stale)
            except Exception as exc:
                self._drop_redis("flush", exc)
        self.local.clear()
        logger.info("cache_flushed")
        return True

    def cleanup(self) -> int:
        return self.local.purge_expired()

    def get_stats(self) -> dict[str, Any]:
        lookups = self.local.hits + self.local.misses
        return {
            "memory": {
                "keys": len(self.local),
                "hits": self.local.hits,
                "misses": self.local.misses,
                "hitRate": self.local.hits / lookups if lookups else 0,
            },
            "redis": {
                "connected": self.redis_connected,
                "url": "configured" if self.redis_url or self._redis_client is not None else "not configured",
            },
        }

    def _track(self, event_type: str) -> None:
        if self.usage_tracker is not None:
            self.usage_tracker.log_usage(event_type)

    async def get_cached_analysis(self, text: str) -> AnalysisResult | None:
        cached = await self.get(cache_key(text, "analysis"))
        if not cached or not cached.get("analysis"):
            self._track("cache_miss")
            return None
        try:
            analysis = AnalysisResult.model_validate(cached["analysis"])
        except Exception as exc:
            logger.warning("cache_entry_invalid kind=analysis: %s", exc)
            self._track("cache_miss")
            return None
        self._track("cache_hit")
        return analysis.model_copy(update={"cached": True, "cache_timestamp": cached.get("timestamp")})

    async def cache_analysis(self, text: str, analysis: AnalysisResult) -> bool:
        entry = {
            "analysis": analysis.model_dump(mode="json"),
            "timestamp": int(time.time() * 1000),
            "version": CACHE_VERSION,
        }
        return await self.set(cache_key(text, "analysis"), entry, ANALYSIS_TTL_S)

    async def get_cached_industry(self, text: str) -> IndustryFit | None:
        cached = await self.get(cache_key(text, "industry"))
        if not cached:
            return None
        try:
            return IndustryFit.model_validate(cached)
        except Exception as exc:
            logger.warning("cache_entry_invalid kind=industry: %s", exc)
            return None

    async def cache_industry(self, text: str, fit: IndustryFit) -> bool:
        return await self.set(cache_key(text, "industry"), fit.model_dump(mode="json"), INDUSTRY_TTL_S)

    async def get_cached_ats(self, text: str) -> ATSReport | None:
        cached = await self.get(cache_key(text, "ats"))
        if not cached:
            return None
        try:
            return ATSReport.model_validate(cached)
        except Exception as exc:
            logger.warning("cache_entry_invalid kind=ats: %s", exc)
            return None

    async def cache_ats(self, text: str, report: ATSReport) -> bool:
        return await self.set(cache_key(text, "ats"), report.model_dump(mode="json"), ATS_TTL_S)
