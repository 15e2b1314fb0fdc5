"""Hourly deadline monitoring task."""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()


async def _run_cycle(database_url: str) -> dict:
    from deadlines.monitor import run_monitor_cycle

    engine = create_async_engine(database_url)
    try:
        async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        async with async_session() as db:
            return await run_monitor_cycle(db)
    finally:
        await engine.dispose()


@celery_app.task(
    name="workers.deadlines.monitor_deadlines",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def monitor_deadlines(self):
    """
    Reminder + overdue pass over all open orders.

    Safe to overlap with a previous run: notification inserts are
    write-once per (order, threshold).
    """
    from core.config import get_settings

    run_id = self.request.id or "manual"
    logger.info("deadlines.task_started", run_id=run_id)

    try:
        summary = asyncio.run(_run_cycle(get_settings().database_url))
    except Exception as exc:  # noqa: BLE001
        logger.error("deadlines.task_failed", run_id=run_id, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)

    logger.info("deadlines.task_complete", run_id=run_id, **_flat_counts(summary))
    return {"status": "success", "run_id": run_id, **summary}


def _flat_counts(summary: dict) -> dict:
    return {
        f"{pass_name}_{key}": counts[key]
        for pass_name, counts in summary.items()
        for key in ("created", "skipped", "failed")
    }
