from __future__ import annotations

from datetime import datetime, timezone

import structlog

from app.db.session import SessionLocal
from app.economy.ledger.store import LedgerStore
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

EXPIRY_BATCH_SIZE = 500
EXPIRY_MAX_BATCHES = 20


async def expire_gift_cards_async(*, batch_size: int = EXPIRY_BATCH_SIZE) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    expired_total = 0
    batches = 0
    for _ in range(EXPIRY_MAX_BATCHES):
        async with SessionLocal.begin() as session:
            expired = await LedgerStore.expire_due_gift_cards(
                session,
                now_utc=now_utc,
                limit=batch_size,
            )
        batches += 1
        expired_total += expired
        if expired < batch_size:
            break

    result = {"expired_gift_cards": expired_total, "batches": batches}
    logger.info("gift_card_expiry_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.gift_card_maintenance.expire_gift_cards")
def expire_gift_cards() -> dict[str, int]:
    return run_async_job(expire_gift_cards_async())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "expire-gift-cards-hourly": {
            "task": "app.workers.tasks.gift_card_maintenance.expire_gift_cards",
            "schedule": 3600.0,
            "options": {"queue": "q_low"},
        },
    }
)
