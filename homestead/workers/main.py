"""ARQ worker entrypoint."""

import asyncio
import logging

from arq import cron
from arq.connections import RedisSettings

from homestead.core.config import get_settings
from homestead.services.notifier import build_notifier
from homestead.workers.onboarding import recover_onboarding, sweep_stalled_onboardings


def _redis_settings() -> RedisSettings:
    """ARQ RedisSettings from REDIS_URL (redis://[:password@]host:port/db)."""
    return RedisSettings.from_dsn(get_settings().redis_url)


async def startup(ctx: dict) -> None:
    """Called when the worker starts."""
    from homestead.core.database import init_db

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    await init_db()
    notifier = build_notifier(settings)
    await notifier.open()
    ctx["notifier"] = notifier


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""
    notifier = ctx.get("notifier")
    if notifier is not None:
        await notifier.close()


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [recover_onboarding]
    cron_jobs = [
        cron(sweep_stalled_onboardings, minute=set(range(0, 60, 5)), run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _redis_settings()
    max_jobs = 10
    job_timeout = 120


if __name__ == "__main__":
    from arq import run_worker
    asyncio.run(run_worker(WorkerSettings))  # type: ignore[arg-type]
