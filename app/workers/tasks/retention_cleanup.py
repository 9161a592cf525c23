from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from time import perf_counter

import structlog
from celery.schedules import crontab
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.repo.processed_payment_events_repo import ProcessedPaymentEventsRepo
from app.db.session import SessionLocal
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

BATCH_SIZE = 5000
MAX_BATCHES_PER_TABLE = 100
MIN_RETENTION_DAYS = 1
MAX_RETENTION_DAYS = 3650


@dataclass(frozen=True, slots=True)
class PurgeTarget:
    table: str
    delete_batch: Callable[[AsyncSession, datetime, int], Awaitable[int]]


async def _delete_processed_slots(session: AsyncSession, cutoff_utc: datetime, limit: int) -> int:
    return await ProcessedPaymentEventsRepo.delete_processed_before(
        session,
        cutoff_utc=cutoff_utc,
        limit=limit,
    )


async def _delete_outbox_events(session: AsyncSession, cutoff_utc: datetime, limit: int) -> int:
    return await OutboxEventsRepo.delete_created_before(session, cutoff_utc=cutoff_utc, limit=limit)


PURGE_TARGETS: tuple[PurgeTarget, ...] = (
    PurgeTarget(table="processed_payment_events", delete_batch=_delete_processed_slots),
    PurgeTarget(table="outbox_events", delete_batch=_delete_outbox_events),
)


def _clamp_retention_days(value: int) -> int:
    return min(MAX_RETENTION_DAYS, max(MIN_RETENTION_DAYS, int(value)))


async def _purge(target: PurgeTarget, *, cutoff_utc: datetime) -> dict[str, object]:
    started_at = perf_counter()
    rows_deleted = 0
    batches_executed = 0
    # Each batch commits on its own so locks stay short.
    while batches_executed < MAX_BATCHES_PER_TABLE:
        async with SessionLocal.begin() as session:
            deleted = await target.delete_batch(session, cutoff_utc, BATCH_SIZE)
        batches_executed += 1
        rows_deleted += deleted
        if deleted < BATCH_SIZE:
            break

    return {
        "table": target.table,
        "rows_deleted": rows_deleted,
        "batches_executed": batches_executed,
        "duration_ms": int((perf_counter() - started_at) * 1000),
    }


async def run_retention_cleanup_async() -> dict[str, object]:
    now_utc = datetime.now(timezone.utc)
    retention_days = _clamp_retention_days(get_settings().retention_days)
    cutoff_utc = now_utc - timedelta(days=retention_days)

    tables: list[dict[str, object]] = []
    rows_deleted_total = 0
    error_count = 0
    for target in PURGE_TARGETS:
        try:
            summary = await _purge(target, cutoff_utc=cutoff_utc)
        except Exception as exc:
            error_count += 1
            summary = {"table": target.table, "rows_deleted": 0, "error": str(exc)}
            logger.exception("retention_cleanup_table_failed", table=target.table)
        else:
            rows_deleted_total += int(summary["rows_deleted"])
            logger.info("retention_cleanup_table_finished", cutoff_utc=cutoff_utc.isoformat(), **summary)
        tables.append(summary)

    result: dict[str, object] = {
        "cutoff_utc": cutoff_utc.isoformat(),
        "retention_days": retention_days,
        "tables": tables,
        "rows_deleted_total": rows_deleted_total,
        "error_count": error_count,
    }
    log = logger.warning if error_count else logger.info
    log("retention_cleanup_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.retention_cleanup.run_retention_cleanup")
def run_retention_cleanup() -> dict[str, object]:
    return run_async_job(run_retention_cleanup_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule["gift-card-retention-cleanup"] = {
    "task": "app.workers.tasks.retention_cleanup.run_retention_cleanup",
    "schedule": crontab(hour=4, minute=15),
    "options": {"queue": "q_low"},
}
