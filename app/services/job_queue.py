from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import heapq
import itertools
import json
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

import redis.asyncio as redis_asyncio

logger = logging.getLogger(__name__)

PRIORITIES = {"high": 10, "normal": 5, "low": 1}

QUEUED = "queued"
ACTIVE = "active"
COMPLETED = "completed"
FAILED = "failed"

# Waiting-set score is priority * span - sequence, so ZPOPMAX yields the
# highest priority first and, within one priority, the oldest job.
PRIORITY_SPAN = 10**12


@dataclass
class Job:
    id: str
    name: str
    data: dict[str, Any]
    priority: int
    created_at: float
    state: str = QUEUED
    progress: int = 0
    attempts_made: int = 0
    result: Any = None
    failed_reason: str | None = None
    processed_at: float | None = None
    finished_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Job":
        names = {item.name for item in dataclasses.fields(cls)}
        return cls(**{key: value for key, value in raw.items() if key in names})


Handler = Callable[[Job], Awaitable[Any]]


def _iso(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class JobBackend(Protocol):
    durable: bool

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def save(self, job: Job) -> None: ...

    async def load(self, job_id: str) -> Job | None: ...

    async def delete(self, job_id: str) -> None: ...

    async def jobs(self) -> list[Job]: ...

    async def push(self, job: Job) -> None: ...

    async def pop(self, name: str) -> str | None: ...

    async def schedule(self, job: Job, run_at: float) -> None: ...

    async def promote_due(self, name: str, now: float) -> int: ...

    async def set_paused(self, paused: bool) -> None: ...

    async def is_paused(self) -> bool: ...


class MemoryJobBackend:
    """Single-process job storage. Jobs do not survive a restart."""

    durable = False

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._waiting: dict[str, list[tuple[int, int, str]]] = {}
        self._delayed: dict[str, list[tuple[float, str]]] = {}
        self._sequence = itertools.count()
        self._paused = False

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def save(self, job: Job) -> None:
        self._jobs[job.id] = job

    async def load(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    async def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    async def push(self, job: Job) -> None:
        heapq.heappush(self._waiting.setdefault(job.name, []), (-job.priority, next(self._sequence), job.id))

    async def pop(self, name: str) -> str | None:
        lane = self._waiting.get(name)
        if not lane:
            return None
        return heapq.heappop(lane)[2]

    async def schedule(self, job: Job, run_at: float) -> None:
        heapq.heappush(self._delayed.setdefault(job.name, []), (run_at, job.id))

    async def promote_due(self, name: str, now: float) -> int:
        delayed = self._delayed.get(name) or []
        promoted = 0
        while delayed and delayed[0][0] <= now:
            _, job_id = heapq.heappop(delayed)
            job = self._jobs.get(job_id)
            if job is not None:
                await self.push(job)
                promoted += 1
        return promoted

    async def set_paused(self, paused: bool) -> None:
        self._paused = paused

    async def is_paused(self) -> bool:
        return self._paused


class RedisJobBackend:
    """Job storage shared by every process pointed at the same Redis.

    Each job is one JSON document. Waiting jobs sit in a sorted set per job
    type and are claimed with ZPOPMAX, so a job is handed to one worker only.
    Retries wait in a second sorted set scored by their due time.
    """

    durable = True

    def __init__(self, url: str | None = None, *, client: Any = None, namespace: str = "resume-screener:jobs"):
        if client is None and not url:
            raise ValueError("RedisJobBackend needs a Redis URL or client")
        self._owns_client = client is None
        self._client = client if client is not None else redis_asyncio.from_url(url, decode_responses=True)
        self.namespace = namespace

    def _key(self, *parts: str) -> str:
        return ":".join((self.namespace, *parts))

    async def connect(self) -> None:
        await self._client.ping()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def save(self, job: Job) -> None:
        await self._client.set(self._key("job", job.id), json.dumps(job.to_dict(), default=str))
        await self._client.sadd(self._key("index"), job.id)

    async def load(self, job_id: str) -> Job | None:
        raw = await self._client.get(self._key("job", job_id))
        return Job.from_dict(json.loads(raw)) if raw else None

    async def delete(self, job_id: str) -> None:
        await self._client.delete(self._key("job", job_id))
        await self._client.srem(self._key("index"), job_id)

    async def jobs(self) -> list[Job]:
        job_ids = sorted(await self._client.smembers(self._key("index")))
        if not job_ids:
            return []
        raws = await self._client.mget([self._key("job", job_id) for job_id in job_ids])
        return [Job.from_dict(json.loads(raw)) for raw in raws if raw]

    async def push(self, job: Job) -> None:
        sequence = await self._client.incr(self._key("sequence"))
        await self._client.zadd(self._key("waiting", job.name), {job.id: job.priority * PRIORITY_SPAN - sequence})

    async def pop(self, name: str) -> str | None:
        popped = await self._client.zpopmax(self._key("waiting", name))
        return popped[0][0] if popped else None

    async def schedule(self, job: Job, run_at: float) -> None:
        await self._client.zadd(self._key("delayed", job.name), {job.id: run_at})

    async def promote_due(self, name: str, now: float) -> int:
        key = self._key("delayed", name)
        promoted = 0
        for job_id in await self._client.zrangebyscore(key, "-inf", now):
            # Only the process whose ZREM succeeds requeues the job.
            if not await self._client.zrem(key, job_id):
                continue
            job = await self.load(job_id)
            if job is not None:
                await self.push(job)
                promoted += 1
        return promoted

    async def set_paused(self, paused: bool) -> None:
        if paused:
            await self._client.set(self._key("paused"), "1")
        else:
            await self._client.delete(self._key("paused"))

    async def is_paused(self) -> bool:
        return bool(await self._client.exists(self._key("paused")))


class JobQueue:
    """Priority job queue with retries, exponential backoff and retention.

    Storage is pluggable: Redis when configured, so queued jobs, retries and
    status survive restarts and are shared between processes, otherwise an
    in-process store. Each job type gets a fixed number of local workers.
    Higher priority jobs run first; equal priorities run in submission order.
    """

    def __init__(
        self,
        backend: JobBackend | None = None,
        *,
        attempts: int = 3,
        backoff_s: float = 2.0,
        completed_retention_s: float = 24 * 3600,
        failed_retention_s: float = 7 * 24 * 3600,
        stalled_after_s: float = 600,
        poll_interval_s: float = 0.5,
        clock: Callable[[], float] = time.time,
    ):
        self.backend: JobBackend = backend or MemoryJobBackend()
        self.attempts = max(1, attempts)
        self.backoff_s = backoff_s
        self.completed_retention_s = completed_retention_s
        self.failed_retention_s = failed_retention_s
        self.stalled_after_s = stalled_after_s
        self.poll_interval_s = poll_interval_s
        self._clock = clock
        self._handlers: dict[str, Handler] = {}
        self._concurrency: dict[str, int] = {}
        self._wakeups: dict[str, asyncio.Event] = {}
        self._workers: list[asyncio.Task] = []
        self._inflight = 0
        self._started = False

    def register(self, name: str, handler: Handler, *, concurrency: int) -> None:
        if self._started:
            raise RuntimeError("Cannot register job handlers after the queue has started.")
        self._handlers[name] = handler
        self._concurrency[name] = max(1, concurrency)

    async def start(self) -> None:
        if self._started:
            return
        try:
            await self.backend.connect()
        except Exception as exc:
            if not self.backend.durable:
                raise
            logger.warning("job_queue_redis_unavailable falling back to memory: %s", exc)
            self.backend = MemoryJobBackend()
        self._started = True
        self._wakeups = {name: asyncio.Event() for name in self._handlers}
        await self.recover_stalled()
        for name, concurrency in self._concurrency.items():
            for index in range(concurrency):
                self._workers.append(asyncio.create_task(self._worker(name), name=f"job-{name}-{index}"))
        logger.info(
            "job_queue_started durable=%s lanes=%s", self.backend.durable, dict(self._concurrency)
        )

    async def add(self, name: str, data: dict[str, Any], *, priority: str = "normal", prefix: str = "job") -> Job:
        if name not in self._handlers:
            raise ValueError(f"Unknown job type: {name}")
        now = self._clock()
        job = Job(
            id=f"{prefix}_{int(now * 1000)}_{secrets.token_hex(5)}",
            name=name,
            data=data,
            priority=PRIORITIES.get(priority, PRIORITIES["normal"]),
            created_at=now,
        )
        await self.backend.save(job)
        await self.backend.push(job)
        self._wake(name)
        logger.info("job_queued id=%s name=%s priority=%s", job.id, name, job.priority)
        return job

    def _wake(self, name: str) -> None:
        event = self._wakeups.get(name)
        if event is not None:
            event.set()

    async def _idle(self, wakeup: asyncio.Event) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(wakeup.wait(), timeout=self.poll_interval_s)

    async def _worker(self, name: str) -> None:
        wakeup = self._wakeups[name]
        while True:
            wakeup.clear()
            try:
                if await self.backend.is_paused():
                    await self._idle(wakeup)
                    continue
                await self.backend.promote_due(name, time.time())
                job_id = await self.backend.pop(name)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("job_queue_poll_failed lane=%s: %s", name, exc)
                await self._idle(wakeup)
                continue
            if job_id is None:
                await self._idle(wakeup)
                continue
            job = await self.backend.load(job_id)
            if job is None or job.state != QUEUED:
                continue
            self._inflight += 1
            try:
                await self._run(job)
            finally:
                self._inflight -= 1

    async def _run(self, job: Job) -> None:
        job.state = ACTIVE
        job.processed_at = self._clock()
        job.attempts_made += 1
        await self.backend.save(job)
        try:
            result = await self._handlers[job.name](job)
        except asyncio.CancelledError:
            # Interrupted by shutdown; hand the job back untouched.
            job.state = QUEUED
            job.attempts_made -= 1
            await self.backend.save(job)
            await self.backend.push(job)
            raise
        except Exception as exc:
            if job.attempts_made < self.attempts:
                delay = self.backoff_s * 2 ** (job.attempts_made - 1)
                job.state = QUEUED
                await self.backend.save(job)
                await self.backend.schedule(job, time.time() + delay)
                logger.warning(
                    "job_retry_scheduled id=%s attempt=%s delay_s=%s: %s", job.id, job.attempts_made, delay, exc
                )
                return
            job.state = FAILED
            job.failed_reason = str(exc) or type(exc).__name__
            job.finished_at = self._clock()
            job.data = {}
            await self.backend.save(job)
            logger.error("job_failed id=%s attempts=%s: %s", job.id, job.attempts_made, job.failed_reason)
            return
        job.state = COMPLETED
        job.result = result
        job.progress = 100
        job.finished_at = self._clock()
        job.data = {}
        await self.backend.save(job)
        logger.info("job_completed id=%s name=%s", job.id, job.name)

    async def update_progress(self, job: Job, progress: int) -> None:
        job.progress = progress
        await self.backend.save(job)

    async def recover_stalled(self) -> int:
        """Requeue jobs left active by a worker that died mid-run."""
        cutoff = self._clock() - self.stalled_after_s
        recovered = 0
        for job in await self.backend.jobs():
            if job.state == ACTIVE and (job.processed_at or 0) < cutoff:
                job.state = QUEUED
                await self.backend.save(job)
                await self.backend.push(job)
                recovered += 1
        if recovered:
            logger.warning("job_queue_recovered_stalled count=%s", recovered)
        return recovered

    async def get_job(self, job_id: str) -> Job | None:
        return await self.backend.load(job_id)

    async def get_job_status(self, job_id: str) -> dict[str, Any]:
        job = await self.backend.load(job_id)
        if job is None:
            return {"status": "not_found"}
        result: Any = None
        if job.state == COMPLETED:
            result = job.result
        elif job.state == FAILED:
            result = {"error": job.failed_reason}
        return {
            "status": job.state,
            "progress": job.progress,
            "result": result,
            "createdAt": _iso(job.created_at),
            "processedAt": _iso(job.processed_at),
            "finishedAt": _iso(job.finished_at),
        }

    async def get_queue_stats(self) -> dict[str, Any]:
        counts = {QUEUED: 0, ACTIVE: 0, COMPLETED: 0, FAILED: 0}
        for job in await self.backend.jobs():
            counts[job.state] = counts.get(job.state, 0) + 1
        return {
            "waiting": counts[QUEUED],
            "active": counts[ACTIVE],
            "completed": counts[COMPLETED],
            "failed": counts[FAILED],
            "total": sum(counts.values()),
            "paused": await self.backend.is_paused(),
        }

    async def pause(self) -> None:
        await self.backend.set_paused(True)
        logger.info("job_queue_paused")

    async def resume(self) -> None:
        await self.backend.set_paused(False)
        for name in self._wakeups:
            self._wake(name)
        logger.info("job_queue_resumed")

    async def cleanup(self) -> int:
        """Forget finished jobs past their retention window."""
        now = self._clock()
        removed = 0
        for job in await self.backend.jobs():
            if job.finished_at is None:
                continue
            age = now - job.finished_at
            if (job.state == COMPLETED and age > self.completed_retention_s) or (
                job.state == FAILED and age > self.failed_retention_s
            ):
                await self.backend.delete(job.id)
                removed += 1
        if removed:
            logger.info("job_queue_cleanup removed=%s", removed)
        return removed

    async def join(self) -> None:
        """Wait until every stored job, including pending retries, has settled."""
        while True:
            jobs = await self.backend.jobs()
            if not self._inflight and all(job.state in (COMPLETED, FAILED) for job in jobs):
                return
            await asyncio.sleep(0.01)

    async def close(self) -> None:
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        for task in workers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.backend.close()
        self._started = False
        logger.info("job_queue_closed")
