from __future__ import annotations

import random

import structlog

from app.db.repo.outbox_events_repo import OutboxEventsRepo
from app.db.session import SessionLocal

logger = structlog.get_logger(__name__)

RETRY_JITTER_RATIO = 0.25


def retry_backoff_seconds(
    *,
    next_retry_attempt: int,
    backoff_max_seconds: int,
    base_seconds: int = 1,
) -> int:
    safe_retry_attempt = max(1, int(next_retry_attempt))
    safe_backoff_max_seconds = max(1, int(backoff_max_seconds))
    safe_base_seconds = max(1, int(base_seconds))

    base_delay = min(
        safe_backoff_max_seconds,
        safe_base_seconds * 2 ** (safe_retry_attempt - 1),
    )
    max_jitter = max(0, int(base_delay * RETRY_JITTER_RATIO))
    jitter = random.randint(0, max_jitter) if max_jitter > 0 else 0
    return min(safe_backoff_max_seconds, base_delay + jitter)


async def emit_reliability_event(
    *,
    event_type: str,
    payload: dict[str, object],
    status: str = "SENT",
) -> None:
    try:
        async with SessionLocal.begin() as session:
            await OutboxEventsRepo.create(
                session,
                event_type=event_type,
                payload=payload,
                status=status,
            )
    except Exception:
        logger.exception(
            "reliability_event_write_failed",
            event_type=event_type,
            payload=payload,
        )
