from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wareworks.services.container import Services


def start_scheduler(services: Services) -> AsyncIOScheduler:
    settings = services.settings
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        services.sweep_rate_limits,
        IntervalTrigger(minutes=settings.rate_limit_sweep_minutes),
        id="rate_limit_sweep",
        replace_existing=True,
    )
    scheduler.add_job(
        services.sweep_csrf_tokens,
        IntervalTrigger(minutes=settings.csrf_sweep_minutes),
        id="csrf_token_sweep",
        replace_existing=True,
    )
    scheduler.add_job(
        services.sweep_retained_documents,
        IntervalTrigger(minutes=settings.retention_sweep_minutes),
        id="document_retention_sweep",
        replace_existing=True,
    )
    scheduler.start()
    return scheduler
