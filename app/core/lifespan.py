import asyncio
import contextlib
import inspect
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

DAILY_SWEEP_INTERVAL_S = 24 * 3600


async def _periodic(stop_event: asyncio.Event, interval_s: float, name: str, func) -> None:
    while not stop_event.is_set():
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_s)
        except asyncio.TimeoutError:
            pass
        else:
            break
        try:
            result = func()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # pragma: no cover - keeps the loop alive
            logger.warning("%s_failed: %s", name, exc)


@asynccontextmanager
async def lifespan(app):
    services = app.state.services
    settings = services.settings

    await services.cache.connect()
    await services.job_queue.start()

    async def flush_tick() -> None:
        services.usage_tracker.flush()
        await services.job_queue.cleanup()

    async def daily_sweep() -> None:
        services.usage_tracker.perform_daily_cleanup()
        removed_keys = services.api_keys.cleanup(settings.inactive_key_retention_days)
        removed_jobs = await services.job_queue.cleanup()
        expired = services.cache.cleanup()
        logger.info("daily_sweep keys=%s jobs=%s cache_entries=%s", removed_keys, removed_jobs, expired)

    stop_event = asyncio.Event()
    tasks = [
        asyncio.create_task(_periodic(stop_event, settings.analytics_flush_interval_s, "usage_flush", flush_tick)),
        asyncio.create_task(_periodic(stop_event, DAILY_SWEEP_INTERVAL_S, "daily_sweep", daily_sweep)),
    ]
    yield
    stop_event.set()
    for task in tasks:
        if not task.done():
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    await services.job_queue.close()
    try:
        services.usage_tracker.flush()
    except OSError as exc:
        logger.error("usage_flush_on_shutdown_failed: %s", exc)
    await services.cache.close()
