import unittest
from unittest import mock

from fakeredis import FakeAsyncRedis, FakeServer
from support import SAMPLE_RESUME

from app.services.cache import REDIS_PREFIX, CacheService, TTLStore, cache_key
from app.services.resume_analyzer import ResumeAnalyzer


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class CacheKeyTests(unittest.TestCase):
    def test_same_text_same_key(self):
        self.assertEqual(cache_key(SAMPLE_RESUME, "analysis"), cache_key(SAMPLE_RESUME, "analysis"))

    def test_kind_namespaces_key(self):
        self.assertNotEqual(cache_key("abc", "analysis"), cache_key("abc", "ats"))
        self.assertTrue(cache_key("abc", "ats").startswith("ats:"))


class TTLStoreTests(unittest.TestCase):
    def test_entries_expire(self):
        clock = FakeClock()
        store = TTLStore(10, clock=clock)
        store.set("k", {"v": 1}, ttl_s=60)
        self.assertEqual(store.get("k"), {"v": 1})
        clock.now += 61
        self.assertIsNone(store.get("k"))
        self.assertEqual(store.hits, 1)
        self.assertEqual(store.misses, 1)

    def test_oldest_entry_is_evicted(self):
        store = TTLStore(2)
        store.set("a", 1, 60)
        store.set("b", 2, 60)
        store.set("c", 3, 60)
        self.assertFalse(store.has("a"))
        self.assertTrue(store.has("c"))
        self.assertEqual(len(store), 2)

    def test_purge_expired(self):
        clock = FakeClock()
        store = TTLStore(10, clock=clock)
        store.set("short", 1, 5)
        store.set("long", 2, 500)
        clock.now += 10
        self.assertEqual(store.purge_expired(), 1)
        self.assertEqual(len(store), 1)


class RecordingTracker:
    def __init__(self):
        self.events = []

    def log_usage(self, event_type, **data):
        self.events.append(event_type)


class CacheServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_analysis_round_trip_marks_cached(self):
        tracker = RecordingTracker()
        cache = CacheService(max_entries=10, usage_tracker=tracker)
        analysis = ResumeAnalyzer(completion=lambda **_: None).analyze_text(SAMPLE_RESUME)

        self.assertIsNone(await cache.get_cached_analysis(SAMPLE_RESUME))
        await cache.cache_analysis(SAMPLE_RESUME, analysis)
        cached = await cache.get_cached_analysis(SAMPLE_RESUME)

        self.assertTrue(cached.cached)
        self.assertIsNotNone(cached.cache_timestamp)
        self.assertEqual(cached.overall_score, analysis.overall_score)
        self.assertEqual(tracker.events, ["cache_miss", "cache_hit"])

    async def test_unreachable_redis_degrades_to_memory(self):
        cache = CacheService(redis_url="redis://127.0.0.1:1/0")
        await cache.connect()
        self.assertFalse(cache.redis_connected)
        await cache.set("k", {"v": 1}, 60)
        self.assertEqual(await cache.get("k"), {"v": 1})
        self.assertTrue(await cache.exists("k"))
        await cache.flush()
        self.assertFalse(await cache.exists("k"))

    async def test_stats_report_memory_and_redis(self):
        cache = CacheService()
        await cache.get("missing")
        stats = cache.get_stats()
        self.assertEqual(stats["memory"]["misses"], 1)
        self.assertEqual(stats["redis"]["url"], "not configured")

class RedisCacheTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.server = FakeServer()

    async def make_cache(self, **kwargs):
        cache = CacheService(redis_client=FakeAsyncRedis(server=self.server, decode_responses=True), **kwargs)
        await cache.connect()
        self.addAsyncCleanup(cache.close)
        return cache

    async def test_writes_are_mirrored_and_read_by_other_instances(self):
        writer = await self.make_cache()
        self.assertTrue(writer.redis_connected)
        analysis = ResumeAnalyzer(completion=lambda **_: None).analyze_text(SAMPLE_RESUME)
        await writer.cache_analysis(SAMPLE_RESUME, analysis)
        self.assertEqual(len(writer.local), 1)

        tracker = RecordingTracker()
        reader = await self.make_cache(usage_tracker=tracker)
        self.assertEqual(len(reader.local), 0)
        cached = await reader.get_cached_analysis(SAMPLE_RESUME)
        self.assertTrue(cached.cached)
        self.assertEqual(cached.overall_score, analysis.overall_score)
        self.assertEqual(tracker.events, ["cache_hit"])
        self.assertEqual(reader.local.hits + reader.local.misses, 0)

    async def test_redis_value_wins_over_local_copy(self):
        cache = await self.make_cache()
        await cache.set("k", {"v": 1}, 60)
        other = FakeAsyncRedis(server=self.server, decode_responses=True)
        await other.set(REDIS_PREFIX + "k", '{"v": 2}')
        self.assertEqual(await cache.get("k"), {"v": 2})

    async def test_flush_leaves_other_keys_alone(self):
        cache = await self.make_cache()
        other = FakeAsyncRedis(server=self.server, decode_responses=True)
        await other.set("resume-screener:jobs:job:job_1", "{}")
        await cache.set("k", {"v": 1}, 60)

        await cache.flush()
        self.assertFalse(await cache.exists("k"))
        self.assertEqual(await other.get("resume-screener:jobs:job:job_1"), "{}")

    async def test_redis_error_falls_back_to_local_store(self):
        cache = await self.make_cache()
        await cache.set("k", {"v": 1}, 60)
        with mock.patch.object(cache._redis, "get", side_effect=ConnectionError("gone")):
            self.assertEqual(await cache.get("k"), {"v": 1})
        self.assertFalse(cache.redis_connected)


if __name__ == "__main__":
    unittest.main()
