import unittest

from fakeredis import FakeAsyncRedis, FakeServer
from support import SAMPLE_RESUME, build_pdf

from app.parsing.extract import PDF_MIME
from app.services.cache import CacheService
from app.services.job_queue import ACTIVE, Job, JobQueue, RedisJobBackend
from app.services.pipeline import BULK_ANALYZE_JOB, ResumePipeline, UploadedFile
from app.services.resume_analyzer import ResumeAnalyzer


class FakeClock:
    def __init__(self):
        self.now = 1_700_000_000.0

    def __call__(self):
        return self.now


class RecordingTracker:
    def __init__(self):
        self.events = []
        self.payloads = []

    def log_usage(self, event_type, **data):
        self.events.append(event_type)
        self.payloads.append((event_type, data))


class JobQueueTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.clock = FakeClock()
        self.queue = JobQueue(attempts=3, backoff_s=0.01, clock=self.clock)
        self.calls = []

    async def asyncTearDown(self):
        await self.queue.close()

    async def test_completed_job_status(self):
        async def handler(job):
            return {"echo": job.data["value"]}

        self.queue.register("echo", handler, concurrency=1)
        await self.queue.start()
        job = await self.queue.add("echo", {"value": 42})
        await self.queue.join()

        status = await self.queue.get_job_status(job.id)
        self.assertEqual(status["status"], "completed")
        self.assertEqual(status["progress"], 100)
        self.assertEqual(status["result"], {"echo": 42})
        self.assertIsNotNone(status["finishedAt"])
        self.assertTrue(job.id.startswith("job_"))

    async def test_unknown_job(self):
        self.assertEqual(await self.queue.get_job_status("job_missing"), {"status": "not_found"})

    async def test_unknown_job_type_is_rejected(self):
        with self.assertRaises(ValueError):
            await self.queue.add("missing", {})

    async def test_retry_then_succeed(self):
        async def flaky(job):
            self.calls.append(job.attempts_made)
            if job.attempts_made < 2:
                raise RuntimeError("temporary")
            return "ok"

        self.queue.register("flaky", flaky, concurrency=1)
        await self.queue.start()
        job = await self.queue.add("flaky", {})
        await self.queue.join()

        self.assertEqual(self.calls, [1, 2])
        self.assertEqual((await self.queue.get_job_status(job.id))["result"], "ok")

    async def test_failure_after_all_attempts(self):
        async def broken(job):
            raise RuntimeError("boom")

        self.queue.register("broken", broken, concurrency=1)
        await self.queue.start()
        job = await self.queue.add("broken", {})
        await self.queue.join()

        status = await self.queue.get_job_status(job.id)
        self.assertEqual(status["status"], "failed")
        self.assertEqual(status["result"], {"error": "boom"})
        self.assertEqual(job.attempts_made, 3)
        self.assertEqual((await self.queue.get_queue_stats())["failed"], 1)

    async def test_higher_priority_runs_first_after_resume(self):
        async def record(job):
            self.calls.append(job.data["label"])

        self.queue.register("record", record, concurrency=1)
        await self.queue.pause()
        await self.queue.start()
        await self.queue.add("record", {"label": "low"}, priority="low")
        await self.queue.add("record", {"label": "high"}, priority="high")
        await self.queue.add("record", {"label": "normal"})
        await self.queue.add("record", {"label": "normal-2"})

        stats = await self.queue.get_queue_stats()
        self.assertTrue(stats["paused"])
        self.assertEqual(stats["waiting"], 4)

        await self.queue.resume()
        await self.queue.join()
        self.assertEqual(self.calls, ["high", "normal", "normal-2", "low"])

    async def test_cleanup_forgets_old_completed_jobs(self):
        async def handler(job):
            return None

        self.queue.register("noop", handler, concurrency=2)
        await self.queue.start()
        job = await self.queue.add("noop", {})
        await self.queue.join()

        self.assertEqual(await self.queue.cleanup(), 0)
        self.clock.now += 25 * 3600
        self.assertEqual(await self.queue.cleanup(), 1)
        self.assertIsNone(await self.queue.get_job(job.id))

    async def test_finished_jobs_drop_their_payload(self):
        async def handler(job):
            if job.data["fail"]:
                raise RuntimeError("nope")
            return "done"

        self.queue.register("payload", handler, concurrency=1)
        await self.queue.start()
        done = await self.queue.add("payload", {"fail": False, "api_key": "rs_secret"})
        failed = await self.queue.add("payload", {"fail": True, "api_key": "rs_secret"})
        await self.queue.join()

        self.assertEqual((await self.queue.get_job(done.id)).data, {})
        self.assertEqual((await self.queue.get_job(failed.id)).data, {})
        self.assertEqual((await self.queue.get_job_status(done.id))["result"], "done")


class RedisJobQueueTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.server = FakeServer()
        self.queues = []

    async def asyncTearDown(self):
        for queue in self.queues:
            await queue.close()

    def make_queue(self, handler, **kwargs):
        backend = RedisJobBackend(client=FakeAsyncRedis(server=self.server, decode_responses=True))
        queue = JobQueue(backend, backoff_s=0.01, poll_interval_s=0.02, **kwargs)
        queue.register("echo", handler, concurrency=1)
        self.queues.append(queue)
        return queue

    async def test_job_queued_before_restart_runs_on_a_new_instance(self):
        async def echo(job):
            return {"echo": job.data["value"]}

        before_restart = self.make_queue(echo)
        job = await before_restart.add("echo", {"value": 7, "api_key": "rs_secret"})
        await before_restart.close()

        after_restart = self.make_queue(echo)
        await after_restart.start()
        await after_restart.join()

        status = await after_restart.get_job_status(job.id)
        self.assertEqual(status["status"], "completed")
        self.assertEqual(status["result"], {"echo": 7})
        self.assertEqual((await after_restart.get_job(job.id)).data, {})
        self.assertEqual((await before_restart.get_queue_stats())["completed"], 1)

    async def test_retry_is_persisted_between_attempts(self):
        attempts = []

        async def flaky(job):
            attempts.append(job.attempts_made)
            if job.attempts_made < 3:
                raise RuntimeError("temporary")
            return "ok"

        queue = self.make_queue(flaky)
        await queue.start()
        job = await queue.add("echo", {})
        await queue.join()

        self.assertEqual(attempts, [1, 2, 3])
        self.assertEqual((await queue.get_job_status(job.id))["result"], "ok")

    async def test_stalled_active_job_is_recovered_on_start(self):
        async def echo(job):
            return job.data["value"]

        queue = self.make_queue(echo)
        stalled = Job(
            id="job_1_stalled",
            name="echo",
            data={"value": "recovered"},
            priority=5,
            created_at=1.0,
            state=ACTIVE,
            attempts_made=1,
            processed_at=1.0,
        )
        await queue.backend.save(stalled)

        await queue.start()
        await queue.join()
        self.assertEqual((await queue.get_job_status(stalled.id))["result"], "recovered")

    async def test_pause_is_shared_between_instances(self):
        async def echo(job):
            return None

        first = self.make_queue(echo)
        second = self.make_queue(echo)
        await first.pause()
        self.assertTrue((await second.get_queue_stats())["paused"])
        await second.resume()
        self.assertFalse((await first.get_queue_stats())["paused"])


class BulkJobTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tracker = RecordingTracker()
        self.pipeline = ResumePipeline(
            ResumeAnalyzer(completion=lambda **_: None), CacheService(), usage_tracker=self.tracker
        )
        self.queue = JobQueue(attempts=1)
        self.pipeline.register_jobs(self.queue, analyze_concurrency=1, bulk_concurrency=1)
        await self.queue.start()

    async def asyncTearDown(self):
        await self.queue.close()

    async def test_partial_failure_keeps_other_results(self):
        uploads = [
            UploadedFile(f"resume-{index}.pdf", PDF_MIME, build_pdf(SAMPLE_RESUME + f"\nReference {index}"))
            for index in range(3)
        ]
        uploads.append(UploadedFile("broken.pdf", PDF_MIME, b"%PDF-1.4 broken"))

        queued = await self.pipeline.add_bulk_analysis_job(self.queue, uploads)
        self.assertTrue(queued["jobId"].startswith("bulk_"))
        self.assertEqual(queued["estimatedProcessingTime"], "120 seconds")
        await self.queue.join()

        status = await self.queue.get_job_status(queued["jobId"])
        self.assertEqual(status["status"], "completed")
        result = status["result"]
        self.assertEqual(result["totalFiles"], 4)
        self.assertEqual(result["successCount"], 3)
        self.assertEqual(result["jobId"], queued["jobId"])
        failed = result["results"][3]
        self.assertEqual(failed["filename"], "broken.pdf")
        self.assertFalse(failed["success"])
        self.assertTrue(failed["error"])
        for item in result["results"][:3]:
            self.assertTrue(1 <= item["analysis"]["overallScore"] <= 10)
        self.assertEqual(self.tracker.events.count("analysis_success"), 3)
        self.assertEqual(self.tracker.events.count("analysis_failure"), 1)
        failure = next(data for event, data in self.tracker.payloads if event == "analysis_failure")
        self.assertEqual(failure["error_type"], "analysis_failed")
        self.assertEqual((await self.queue.get_job(queued["jobId"])).data, {})

    async def test_single_analysis_job(self):
        upload = UploadedFile("resume.pdf", PDF_MIME, build_pdf(SAMPLE_RESUME))
        queued = await self.pipeline.add_analysis_job(self.queue, upload, priority="high")
        await self.queue.join()
        result = (await self.queue.get_job_status(queued["jobId"]))["result"]
        self.assertTrue(result["success"])
        self.assertEqual(result["filename"], "resume.pdf")
        self.assertIn("experience", result["analysis"]["metrics"]["sectionsFound"])

    def test_bulk_job_name(self):
        self.assertEqual(BULK_ANALYZE_JOB, "bulk-analyze")


if __name__ == "__main__":
    unittest.main()
